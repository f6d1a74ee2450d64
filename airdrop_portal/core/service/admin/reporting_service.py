"""
Aggregate reporting over the eligibility list and the transaction log.
"""

import csv
import io
import math
from typing import List, Optional, Tuple

from airdrop_portal.core.logger.logger import get_logger
from airdrop_portal.core.service.admin.models import (
    BackendWallet,
    ClaimerSummary,
    Dashboard,
    FailedTransactionSummary,
    StatsOverview,
    TransactionSummary,
)
from airdrop_portal.core.service.claim.models import EligibleUser
from airdrop_portal.core.service.wallet.units import format_ether
from airdrop_portal.core.service.wallet.wallet_service import WalletService
from airdrop_portal.infra.models import TransactionStatus
from airdrop_portal.infra.repository.eligible_user_repository import EligibleUserRepository
from airdrop_portal.infra.repository.transaction_repository import TransactionRepository

logger = get_logger(__name__)

UTF8_BOM = "\ufeff"

EXPORT_COLUMNS = [
    "Wallet Address",
    "Amount",
    "XP Points",
    "Rank",
    "Registration Date",
    "IP Address",
    "Country",
    "Transaction Hash",
]


class ReportingService:
    """Statistics, listings and CSV export"""

    def __init__(
        self,
        users: EligibleUserRepository,
        transactions: TransactionRepository,
        wallet: Optional[WalletService] = None
    ):
        self.users = users
        self.transactions = transactions
        self.wallet = wallet

    async def _backend_wallet(self) -> BackendWallet:
        if self.wallet is None:
            return BackendWallet()
        try:
            balance = await self.wallet.get_formatted_balance()
        except Exception as e:
            logger.warning(f"Backend balance unavailable: {e}")
            balance = "unavailable"
        return BackendWallet(address=self.wallet.address, balance=balance)

    async def get_stats(self) -> StatsOverview:
        stats = await self.users.get_stats()
        return StatsOverview(
            **stats.model_dump(),
            backendWallet=await self._backend_wallet(),
            claimPercentage=stats.claim_percentage
        )

    async def get_dashboard(self, claims_paused: bool = False) -> Dashboard:
        """
        Stats, the 20 latest and 10 latest failed transfers, the 10 largest
        claimed allocations and claims per day over the last week.
        """
        recent = await self.transactions.recent(limit=20)
        failed = await self.transactions.recent(limit=10, status=TransactionStatus.FAILED)
        top = await self.users.top_claimers(limit=10)

        return Dashboard(
            stats=await self.get_stats(),
            recentTransactions=[
                TransactionSummary(
                    txHash=tx.tx_hash,
                    walletAddress=tx.wallet_address,
                    amount=format_ether(tx.amount),
                    status=tx.status,
                    createdAt=tx.created_at,
                    blockNumber=tx.block_number
                )
                for tx in recent
            ],
            failedTransactions=[
                FailedTransactionSummary(
                    txHash=tx.tx_hash,
                    walletAddress=tx.wallet_address,
                    error=tx.error,
                    createdAt=tx.created_at
                )
                for tx in failed
            ],
            topClaimers=[
                ClaimerSummary(
                    walletAddress=user.wallet_address,
                    amount=format_ether(user.allocated_amount),
                    rank=user.rank,
                    xpPoints=user.xp_points,
                    claimDate=user.claim_date
                )
                for user in top
            ],
            claimsByDay=await self.users.claims_by_day(days=7),
            claimsPaused=claims_paused
        )

    async def list_users(
        self,
        page: int = 1,
        limit: int = 50,
        claimed: Optional[bool] = None
    ) -> Tuple[List[EligibleUser], int, int]:
        """
        Returns:
            (users on the page, total matching users, total pages)
        """
        users = await self.users.list_users(page=page, limit=limit, claimed=claimed)
        total = await self.users.count_users(claimed=claimed)
        return users, total, math.ceil(total / limit) if limit else 0

    async def export_claims_csv(self) -> str:
        """Claimed users, newest first, as BOM-prefixed CSV"""
        users = await self.users.claimed_users()

        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(EXPORT_COLUMNS)
        for user in users:
            writer.writerow([
                user.wallet_address,
                format_ether(user.allocated_amount),
                user.xp_points,
                user.rank,
                user.claim_date.isoformat() if user.claim_date else "",
                user.ip_address or "",
                user.country or "",
                user.tx_hash or "",
            ])

        logger.info("Claims exported", extra={"rows": len(users)})
        return UTF8_BOM + buffer.getvalue()
