"""
Eligible user repository using SQLAlchemy ORM
"""

from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Set
from sqlalchemy import select, update, delete, func, cast, Float, Numeric, or_
from sqlalchemy.ext.asyncio import AsyncSession

from airdrop_portal.core.service.claim.models import EligibleUser, AirdropStats, ClaimsByDay
from airdrop_portal.infra.models import EligibleUserModel
from airdrop_portal.core.logger.logger import get_logger

logger = get_logger(__name__)

# Country values the backfill job is allowed to replace
UNRESOLVED_COUNTRIES = ("", "Local/Private", "Unknown")


class EligibleUserRepository:
    """Repository for eligibility records"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _model_to_entity(self, model: EligibleUserModel) -> EligibleUser:
        """Convert SQLAlchemy model to Pydantic entity"""
        return EligibleUser(
            id=model.id,
            wallet_address=model.wallet_address,
            allocated_amount=model.allocated_amount,
            xp_points=model.xp_points,
            rank=model.rank,
            claimed=model.claimed,
            claim_date=model.claim_date,
            tx_hash=model.tx_hash,
            signature=model.signature,
            attempts=model.attempts,
            last_attempt=model.last_attempt,
            ip_address=model.ip_address,
            country=model.country,
            created_at=model.created_at,
            updated_at=model.updated_at
        )

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

    async def find_by_address(self, address: str) -> Optional[EligibleUser]:
        """
        Case-insensitive lookup by wallet address

        Returns:
            EligibleUser or None when the wallet is not on the list
        """
        stmt = select(EligibleUserModel).where(
            EligibleUserModel.wallet_address == address.lower()
        )
        users = await self._load(stmt)
        return users[0] if users else None

    async def _load(self, stmt) -> List[EligibleUser]:
        # Bulk UPDATEs skip the identity map, so reloaded rows must overwrite it
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return [self._model_to_entity(model) for model in result.scalars().all()]

    async def mark_as_claimed(
        self,
        address: str,
        ip_address: Optional[str] = None,
        country: Optional[str] = None,
        tx_hash: Optional[str] = None,
        signature: Optional[str] = None
    ) -> bool:
        """
        Move a record from unclaimed to claimed.

        The update only matches rows that are still unclaimed, so of two
        concurrent claims for the same wallet exactly one sees a row updated.

        Returns:
            True if this call performed the transition, False otherwise
        """
        now = datetime.now(timezone.utc)
        values = {
            "claimed": True,
            "claim_date": now,
            "tx_hash": tx_hash,
            "updated_at": now,
        }
        if ip_address:
            values["ip_address"] = ip_address
        if country:
            values["country"] = country
        if signature:
            values["signature"] = signature

        stmt = (
            update(EligibleUserModel)
            .where(
                EligibleUserModel.wallet_address == address.lower(),
                EligibleUserModel.claimed.is_(False)
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self._commit()

        claimed = result.rowcount == 1
        logger.info(
            "Claim state write",
            extra={"wallet_address": address.lower(), "transitioned": claimed}
        )
        return claimed

    async def set_transfer_hash(self, address: str, tx_hash: str) -> None:
        """Attach the on-chain transfer hash to a claimed record"""
        stmt = (
            update(EligibleUserModel)
            .where(EligibleUserModel.wallet_address == address.lower())
            .values(tx_hash=tx_hash, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
        await self._commit()

    async def release_claim(self, address: str) -> bool:
        """
        Undo a claim reservation whose on-chain transfer never completed.
        Only records without a transfer hash can be released.
        """
        stmt = (
            update(EligibleUserModel)
            .where(
                EligibleUserModel.wallet_address == address.lower(),
                EligibleUserModel.claimed.is_(True),
                EligibleUserModel.tx_hash.is_(None)
            )
            .values(claimed=False, claim_date=None, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self._commit()
        return result.rowcount == 1

    async def increment_attempt(self, address: str) -> bool:
        """
        Bump the failed-attempt counter.

        Best effort: a failure here is logged and reported as False, never raised.
        """
        try:
            now = datetime.now(timezone.utc)
            stmt = (
                update(EligibleUserModel)
                .where(EligibleUserModel.wallet_address == address.lower())
                .values(
                    attempts=EligibleUserModel.attempts + 1,
                    last_attempt=now,
                    updated_at=now
                )
                .execution_options(synchronize_session=False)
            )
            result = await self.session.execute(stmt)
            await self.session.commit()
            return result.rowcount == 1

        except Exception as e:
            await self.session.rollback()
            logger.error(
                "Failed to update attempt counter",
                extra={"wallet_address": address, "error": str(e)}
            )
            return False

    async def update_location(self, address: str, ip_address: str, country: str) -> None:
        """Store the IP address and country observed for a wallet"""
        stmt = (
            update(EligibleUserModel)
            .where(EligibleUserModel.wallet_address == address.lower())
            .values(ip_address=ip_address, country=country, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
        await self._commit()

    async def update_country(self, address: str, country: str) -> None:
        """Replace the stored country (backfill job)"""
        stmt = (
            update(EligibleUserModel)
            .where(EligibleUserModel.wallet_address == address.lower())
            .values(country=country, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
        await self._commit()

    async def count_users(self, claimed: Optional[bool] = None) -> int:
        stmt = select(func.count()).select_from(EligibleUserModel)
        if claimed is not None:
            stmt = stmt.where(EligibleUserModel.claimed.is_(claimed))
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def _sum_allocated(self, claimed_only: bool) -> float:
        stmt = select(func.sum(cast(EligibleUserModel.allocated_amount, Float)))
        if claimed_only:
            stmt = stmt.where(EligibleUserModel.claimed.is_(True))
        result = await self.session.execute(stmt)
        return float(result.scalar_one() or 0)

    async def get_stats(self) -> AirdropStats:
        """
        Aggregate counters.

        Amount sums are computed as floats by the database and are only fit for
        reporting, not settlement.
        """
        total_eligible = await self.count_users()
        total_claimed = await self.count_users(claimed=True)

        return AirdropStats(
            totalEligible=total_eligible,
            totalClaimed=total_claimed,
            totalUnclaimed=total_eligible - total_claimed,
            totalAllocated=await self._sum_allocated(claimed_only=False),
            totalDistributed=await self._sum_allocated(claimed_only=True)
        )

    async def list_users(self, page: int = 1, limit: int = 50, claimed: Optional[bool] = None) -> List[EligibleUser]:
        """Page through users ordered by rank"""
        stmt = select(EligibleUserModel).order_by(EligibleUserModel.rank.asc(), EligibleUserModel.id.asc())
        if claimed is not None:
            stmt = stmt.where(EligibleUserModel.claimed.is_(claimed))
        stmt = stmt.offset((page - 1) * limit).limit(limit)
        return await self._load(stmt)

    async def recent_claims(self, limit: int = 10) -> List[EligibleUser]:
        stmt = (
            select(EligibleUserModel)
            .where(EligibleUserModel.claimed.is_(True))
            .order_by(EligibleUserModel.claim_date.desc())
            .limit(limit)
        )
        return await self._load(stmt)

    async def top_claimers(self, limit: int = 10) -> List[EligibleUser]:
        """Claimed users with the largest allocations"""
        stmt = (
            select(EligibleUserModel)
            .where(EligibleUserModel.claimed.is_(True))
            .order_by(cast(EligibleUserModel.allocated_amount, Numeric).desc())
            .limit(limit)
        )
        return await self._load(stmt)

    async def claimed_users(self) -> List[EligibleUser]:
        """All claimed users, newest claim first"""
        stmt = (
            select(EligibleUserModel)
            .where(EligibleUserModel.claimed.is_(True))
            .order_by(EligibleUserModel.claim_date.desc())
        )
        return await self._load(stmt)

    async def claims_by_day(self, days: int = 7) -> List[ClaimsByDay]:
        """Claim counts and amounts per UTC day over the last ``days`` days"""
        since = datetime.now(timezone.utc) - timedelta(days=days)
        stmt = (
            select(EligibleUserModel.claim_date, EligibleUserModel.allocated_amount)
            .where(
                EligibleUserModel.claimed.is_(True),
                EligibleUserModel.claim_date >= since
            )
            .order_by(EligibleUserModel.claim_date.asc())
        )
        result = await self.session.execute(stmt)

        buckets: "OrderedDict[str, ClaimsByDay]" = OrderedDict()
        for claim_date, amount in result.all():
            day = claim_date.strftime("%Y-%m-%d")
            bucket = buckets.setdefault(day, ClaimsByDay(date=day, count=0, totalAmount=0))
            bucket.count += 1
            bucket.totalAmount += float(amount)
        return list(buckets.values())

    async def find_missing_country(self) -> List[EligibleUser]:
        """Users with a stored IP whose country is missing or a sentinel"""
        stmt = select(EligibleUserModel).where(
            EligibleUserModel.ip_address.is_not(None),
            EligibleUserModel.ip_address != "",
            or_(
                EligibleUserModel.country.is_(None),
                EligibleUserModel.country.in_(UNRESOLVED_COUNTRIES)
            )
        )
        return await self._load(stmt)

    async def existing_addresses(self, addresses: Iterable[str]) -> Set[str]:
        """Subset of ``addresses`` already present"""
        lowered = [address.lower() for address in addresses]
        if not lowered:
            return set()
        stmt = select(EligibleUserModel.wallet_address).where(
            EligibleUserModel.wallet_address.in_(lowered)
        )
        result = await self.session.execute(stmt)
        return set(result.scalars().all())

    async def bulk_insert(self, records: List[dict]) -> int:
        """Insert new eligibility records in one transaction"""
        self.session.add_all([EligibleUserModel(**record) for record in records])
        await self._commit()
        return len(records)

    async def delete_all(self) -> int:
        result = await self.session.execute(delete(EligibleUserModel))
        await self._commit()
        return result.rowcount
