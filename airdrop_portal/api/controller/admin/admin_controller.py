"""Admin controller: dashboard, user listing, export and claim intake control."""

from typing import Optional

from starlette.datastructures import State

from airdrop_portal.api.controller.admin.dto.output_dto import (
    AdminUserDto,
    DashboardResponseDto,
    MetricsResponseDto,
    PaginationDto,
    PauseResponseDto,
    UsersResponseDto,
)
from airdrop_portal.api.utils.metrics import ClaimMetrics
from airdrop_portal.core.logger.logger import get_logger
from airdrop_portal.core.service.admin.reporting_service import ReportingService
from airdrop_portal.core.service.wallet.units import format_ether

logger = get_logger(__name__)


class AdminController:
    """Controller for admin operations."""

    def __init__(self, reporting: ReportingService):
        self.reporting = reporting

    async def get_dashboard(self, state: State) -> DashboardResponseDto:
        dashboard = await self.reporting.get_dashboard(
            claims_paused=getattr(state, "claims_paused", False)
        )
        return DashboardResponseDto(dashboard=dashboard)

    async def list_users(self, page: int, limit: int, claimed: Optional[bool]) -> UsersResponseDto:
        users, total, total_pages = await self.reporting.list_users(page=page, limit=limit, claimed=claimed)
        return UsersResponseDto(
            users=[
                AdminUserDto(
                    walletAddress=user.wallet_address,
                    allocatedAmount=format_ether(user.allocated_amount),
                    xpPoints=user.xp_points,
                    rank=user.rank,
                    claimed=user.claimed,
                    claimDate=user.claim_date,
                    txHash=user.tx_hash,
                    attempts=user.attempts,
                    ipAddress=user.ip_address,
                    country=user.country
                )
                for user in users
            ],
            pagination=PaginationDto(
                currentPage=page,
                totalPages=total_pages,
                totalUsers=total,
                limit=limit
            )
        )

    async def export_claims(self) -> str:
        return await self.reporting.export_claims_csv()

    @staticmethod
    def set_paused(state: State, paused: bool) -> PauseResponseDto:
        state.claims_paused = paused
        logger.warning(f"Claim intake {'paused' if paused else 'resumed'} by admin")
        return PauseResponseDto(
            paused=paused,
            message="Claims paused" if paused else "Claims resumed"
        )

    @staticmethod
    def get_metrics(metrics: ClaimMetrics) -> MetricsResponseDto:
        return MetricsResponseDto(metrics=metrics.get_metrics_summary())
