"""
Re-resolves countries for users whose stored country is missing or a sentinel.
"""

import asyncio
from typing import Optional

from pydantic import BaseModel

from airdrop_portal.core.logger.logger import get_logger
from airdrop_portal.core.service.claim.models import EligibleUser
from airdrop_portal.core.service.geolocation.ip_geolocation import (
    SENTINEL_COUNTRIES,
    GeolocationService,
    is_private_ip,
)
from airdrop_portal.infra.repository.eligible_user_repository import EligibleUserRepository

logger = get_logger(__name__)


class BackfillReport(BaseModel):
    found: int = 0
    updated: int = 0
    failed: int = 0
    skipped: int = 0


class CountryBackfill:
    """Batches lookups to stay under the free providers' rate limits"""

    def __init__(
        self,
        users: EligibleUserRepository,
        geolocation: GeolocationService,
        batch_size: int = 10,
        item_delay: float = 0.2,
        batch_delay: float = 2.0
    ):
        self.users = users
        self.geolocation = geolocation
        self.batch_size = batch_size
        self.item_delay = item_delay
        self.batch_delay = batch_delay

    async def _lookup(self, user: EligibleUser) -> Optional[str]:
        try:
            country = await self.geolocation.get_country(user.ip_address)
        except Exception as e:
            logger.error(f"Error resolving {user.wallet_address}: {e}")
            return None
        if self.item_delay:
            await asyncio.sleep(self.item_delay)
        return country

    async def run(self) -> BackfillReport:
        users = await self.users.find_missing_country()
        report = BackfillReport(found=len(users))
        logger.info(f"Found {len(users)} users to update")

        candidates = []
        for user in users:
            if is_private_ip(user.ip_address):
                report.skipped += 1
                logger.info(f"Skipping {user.wallet_address}: Private IP ({user.ip_address})")
            else:
                candidates.append(user)

        for start in range(0, len(candidates), self.batch_size):
            batch = candidates[start:start + self.batch_size]
            countries = await asyncio.gather(*(self._lookup(user) for user in batch))

            # The session is not shared across tasks, so writes stay sequential
            for user, country in zip(batch, countries):
                if country and country not in SENTINEL_COUNTRIES:
                    await self.users.update_country(user.wallet_address, country)
                    report.updated += 1
                    logger.info(f"Updated {user.wallet_address}: {country}")
                else:
                    report.failed += 1
                    logger.warning(
                        f"Could not determine country for {user.wallet_address} (IP: {user.ip_address})"
                    )

            if start + self.batch_size < len(candidates) and self.batch_delay:
                logger.info(
                    f"Processed batch {start // self.batch_size + 1}. "
                    f"Waiting {self.batch_delay} seconds before next batch..."
                )
                await asyncio.sleep(self.batch_delay)

        logger.info("Country backfill summary", extra=report.model_dump())
        return report
