"""Fill in countries for users that have an IP but no usable country."""

import argparse
import asyncio
import sys
from typing import Optional

from dotenv import load_dotenv

from airdrop_portal.api.utils.metrics import get_metrics
from airdrop_portal.core.service.geolocation.ip_geolocation import GeolocationService
from airdrop_portal.core.service.importer.country_backfill import BackfillReport, CountryBackfill
from airdrop_portal.infra.database import DatabaseManager
from airdrop_portal.infra.repository.eligible_user_repository import EligibleUserRepository


async def run_backfill(
    database_url: Optional[str] = None,
    batch_size: int = 10,
    batch_delay: float = 2.0,
    geolocation: Optional[GeolocationService] = None
) -> BackfillReport:
    db_manager = DatabaseManager(database_url)
    geolocation = geolocation or GeolocationService(metrics=get_metrics())
    try:
        await db_manager.connect()
        async with db_manager.get_session_factory()() as session:
            backfill = CountryBackfill(
                EligibleUserRepository(session),
                geolocation,
                batch_size=batch_size,
                batch_delay=batch_delay
            )
            report = await backfill.run()
    finally:
        await geolocation.close()
        await db_manager.close()

    print("\n=== Update Summary ===")
    print(f"Users found: {report.found}")
    print(f"Updated: {report.updated}")
    print(f"Failed: {report.failed}")
    print(f"Skipped (private IPs): {report.skipped}")
    return report


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Backfill missing countries from stored IP addresses")
    parser.add_argument("--database-url", default=None, help="overrides DATABASE_URL")
    parser.add_argument("--batch-size", type=int, default=10)
    parser.add_argument("--batch-delay", type=float, default=2.0, help="seconds between batches")
    args = parser.parse_args(argv)

    load_dotenv()
    asyncio.run(run_backfill(args.database_url, args.batch_size, args.batch_delay))
    return 0


if __name__ == "__main__":
    sys.exit(main())
