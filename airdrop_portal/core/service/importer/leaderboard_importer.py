"""
Leaderboard import: turns a ranked CSV (Wallet, XP, Rank) into eligibility records.
"""

import csv
from pathlib import Path
from typing import Dict, Iterable, List, Tuple, Union

from pydantic import BaseModel

from airdrop_portal.api.utils.validators import AddressValidator
from airdrop_portal.core.logger.logger import get_logger
from airdrop_portal.core.service.wallet.units import to_base_units
from airdrop_portal.infra.repository.eligible_user_repository import EligibleUserRepository

logger = get_logger(__name__)

# (highest rank in tier, whole tokens)
ALLOCATION_TIERS = [
    (100, 1000),
    (500, 500),
    (1000, 250),
    (5000, 100),
]
DEFAULT_ALLOCATION = 50
TOKEN_DECIMALS = 18
BATCH_SIZE = 1000


def calculate_allocation(rank: int) -> str:
    """Base-unit allocation for a leaderboard rank, as a decimal string"""
    tokens = next((amount for max_rank, amount in ALLOCATION_TIERS if rank <= max_rank), DEFAULT_ALLOCATION)
    return str(to_base_units(tokens, TOKEN_DECIMALS))


def _parse_int(value) -> int:
    text = str(value or "").strip()
    try:
        return int(text)
    except ValueError:
        try:
            return int(float(text))
        except ValueError:
            return 0


class ImportReport(BaseModel):
    processed: int = 0
    errors: int = 0
    duplicates: int = 0
    skipped_existing: int = 0
    removed: int = 0
    imported: int = 0


def parse_rows(rows: Iterable[Dict[str, str]]) -> Tuple[List[dict], ImportReport]:
    """
    Validate leaderboard rows.

    Rows with an invalid wallet or a non-positive rank count as errors. A wallet
    listed twice keeps its first row.
    """
    report = ImportReport()
    records: Dict[str, dict] = {}

    for row in rows:
        wallet = (row.get("Wallet") or "").strip()
        if not AddressValidator.validate_evm_address(wallet):
            logger.warning(f"Invalid address: {wallet}")
            report.errors += 1
            continue

        rank = _parse_int(row.get("Rank"))
        if rank <= 0:
            logger.warning(f"Invalid rank for {wallet}: {row.get('Rank')}")
            report.errors += 1
            continue

        xp_points = max(_parse_int(row.get("XP")), 0)
        address = wallet.lower()
        if address in records:
            report.duplicates += 1
            continue

        records[address] = {
            "wallet_address": address,
            "allocated_amount": calculate_allocation(rank),
            "xp_points": xp_points,
            "rank": rank,
            "claimed": False,
        }
        report.processed += 1
        if report.processed % 1000 == 0:
            logger.info(f"Processed {report.processed} records...")

    return list(records.values()), report


class LeaderboardImporter:
    """Loads parsed leaderboard records into the eligibility store"""

    def __init__(self, users: EligibleUserRepository, batch_size: int = BATCH_SIZE):
        self.users = users
        self.batch_size = batch_size

    async def import_rows(self, rows: Iterable[Dict[str, str]], replace: bool = False) -> ImportReport:
        """
        Insert new wallets in batches.

        Args:
            rows: CSV rows keyed by Wallet / XP / Rank
            replace: delete every existing record first

        Returns:
            ImportReport with the counts of this run
        """
        records, report = parse_rows(rows)

        if replace:
            report.removed = await self.users.delete_all()
            logger.info(f"Cleared {report.removed} existing records")

        for start in range(0, len(records), self.batch_size):
            batch = records[start:start + self.batch_size]
            existing = await self.users.existing_addresses(record["wallet_address"] for record in batch)
            fresh = [record for record in batch if record["wallet_address"] not in existing]
            report.skipped_existing += len(batch) - len(fresh)

            if fresh:
                report.imported += await self.users.bulk_insert(fresh)
            logger.info(f"Imported batch: {report.imported}/{len(records)}")

        logger.info("Import complete", extra=report.model_dump())
        return report

    async def import_file(self, path: Union[str, Path], replace: bool = False) -> ImportReport:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"CSV file not found at: {path}")

        # utf-8-sig drops a spreadsheet BOM before the header
        with path.open(newline="", encoding="utf-8-sig") as handle:
            rows = list(csv.DictReader(handle))

        logger.info(f"Reading CSV from: {path}", extra={"rows": len(rows)})
        return await self.import_rows(rows, replace=replace)
