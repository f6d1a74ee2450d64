"""Airdrop controller: maps claim workflow results to response DTOs."""

from airdrop_portal.api.controller.airdrop.dto.input_dto import CheckEligibilityRequestDto, ClaimRequestDto
from airdrop_portal.api.controller.airdrop.dto.output_dto import (
    ClaimResponseDto,
    ClaimStatusResponseDto,
    EligibilityResponseDto,
    RecentClaimDto,
    RecentClaimsResponseDto,
    StatsResponseDto,
    TransactionDto,
)
from airdrop_portal.api.utils.validators import AddressValidator
from airdrop_portal.core.exceptions.handler import ServiceError, ServiceErrorCode
from airdrop_portal.core.service.admin.reporting_service import ReportingService
from airdrop_portal.core.service.claim.claim_service import ClaimService
from airdrop_portal.core.service.wallet.units import format_ether
from airdrop_portal.core.logger.logger import get_logger

logger = get_logger(__name__)


class AirdropController:
    """Controller for the public airdrop endpoints."""

    def __init__(self, claim_service: ClaimService):
        self.claim_service = claim_service

    async def check_eligibility(self, request: CheckEligibilityRequestDto, client_ip: str) -> EligibilityResponseDto:
        result = await self.claim_service.check_eligibility(request.walletAddress, client_ip)

        if not result.eligible:
            return EligibilityResponseDto(
                eligible=False,
                message="Wallet address is not eligible for this airdrop"
            )

        user = result.user
        return EligibilityResponseDto(
            eligible=True,
            amount=user.allocated_amount,
            amountFormatted=format_ether(user.allocated_amount),
            xpPoints=user.xp_points,
            rank=user.rank,
            claimed=user.claimed,
            claimDate=user.claim_date,
            txHash=user.tx_hash
        )

    async def claim(self, request: ClaimRequestDto, client_ip: str) -> ClaimResponseDto:
        logger.info(f"Claim request for {request.walletAddress}", extra={"client_ip": client_ip})
        result = await self.claim_service.claim(
            wallet_address=request.walletAddress,
            signature=request.signature,
            captcha_token=request.captchaToken,
            client_ip=client_ip
        )

        return ClaimResponseDto(
            amount=result.user.allocated_amount,
            amountFormatted=format_ether(result.user.allocated_amount),
            registeredDate=result.user.claim_date,
            ipAddress=result.ip_address,
            country=result.country,
            txHash=result.tx_hash
        )

    async def get_claim_status(self, address: str) -> ClaimStatusResponseDto:
        is_valid, normalized = AddressValidator.normalize(address)
        if not is_valid:
            raise ServiceError(
                code=ServiceErrorCode.INVALID_INPUT,
                message="Validation error",
                status_code=400,
                details={"errors": [{"field": "address", "message": normalized}]}
            )

        status = await self.claim_service.get_claim_status(normalized)
        if status.user is None:
            return ClaimStatusResponseDto(found=False, message="Address not found in eligible list")

        user = status.user
        return ClaimStatusResponseDto(
            found=True,
            claimed=user.claimed,
            claimDate=user.claim_date,
            txHash=user.tx_hash,
            amount=user.allocated_amount,
            amountFormatted=format_ether(user.allocated_amount),
            xpPoints=user.xp_points,
            rank=user.rank,
            attempts=user.attempts,
            lastAttempt=user.last_attempt,
            transactions=[
                TransactionDto(
                    txHash=tx.tx_hash,
                    status=tx.status,
                    amount=tx.amount,
                    blockNumber=tx.block_number,
                    createdAt=tx.created_at
                )
                for tx in status.transactions
            ]
        )

    async def get_stats(self, reporting: ReportingService) -> StatsResponseDto:
        return StatsResponseDto(stats=await reporting.get_stats())

    async def get_recent_claims(self, limit: int) -> RecentClaimsResponseDto:
        users = await self.claim_service.recent_claims(limit)
        return RecentClaimsResponseDto(
            claims=[
                RecentClaimDto(
                    walletAddress=user.wallet_address,
                    amount=format_ether(user.allocated_amount),
                    claimDate=user.claim_date,
                    txHash=user.tx_hash,
                    xpPoints=user.xp_points,
                    rank=user.rank
                )
                for user in users
            ]
        )
