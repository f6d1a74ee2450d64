"""Load a leaderboard CSV (Wallet, XP, Rank) into the eligibility store."""

import argparse
import asyncio
import sys
from typing import Optional

from dotenv import load_dotenv

from airdrop_portal.core.logger.logger import get_logger
from airdrop_portal.core.service.importer.leaderboard_importer import BATCH_SIZE, ImportReport, LeaderboardImporter
from airdrop_portal.infra.database import DatabaseManager
from airdrop_portal.infra.repository.eligible_user_repository import EligibleUserRepository

logger = get_logger(__name__)


async def run_import(
    csv_path: str,
    replace: bool = False,
    database_url: Optional[str] = None,
    batch_size: int = BATCH_SIZE
) -> ImportReport:
    db_manager = DatabaseManager(database_url)
    try:
        await db_manager.create_tables()
        async with db_manager.get_session_factory()() as session:
            importer = LeaderboardImporter(EligibleUserRepository(session), batch_size=batch_size)
            report = await importer.import_file(csv_path, replace=replace)
            stats = await importer.users.get_stats()
    finally:
        await db_manager.close()

    print("\n=== Import Summary ===")
    print(f"Total valid records: {report.processed}")
    print(f"Invalid rows skipped: {report.errors}")
    print(f"Duplicate wallets in file: {report.duplicates}")
    print(f"Already in database: {report.skipped_existing}")
    print(f"Imported: {report.imported}")
    print("\n=== Database Statistics ===")
    print(f"Total eligible: {stats.totalEligible}")
    print(f"Total allocated: {stats.totalAllocated}")
    return report


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Import the airdrop leaderboard CSV")
    parser.add_argument("csv_path", help="CSV with Wallet, XP and Rank columns")
    parser.add_argument("--replace", action="store_true", help="delete existing eligibility records first")
    parser.add_argument("--database-url", default=None, help="overrides DATABASE_URL")
    parser.add_argument("--batch-size", type=int, default=BATCH_SIZE)
    args = parser.parse_args(argv)

    load_dotenv()
    try:
        asyncio.run(run_import(args.csv_path, args.replace, args.database_url, args.batch_size))
    except FileNotFoundError as e:
        logger.error(str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
