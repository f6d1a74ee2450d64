"""Public airdrop router."""

from fastapi import APIRouter, Depends, Query, Request

from airdrop_portal.api.controller.airdrop.airdrop_controller import AirdropController
from airdrop_portal.api.controller.airdrop.dto.input_dto import CheckEligibilityRequestDto, ClaimRequestDto
from airdrop_portal.api.controller.airdrop.dto.output_dto import (
    ClaimResponseDto,
    ClaimStatusResponseDto,
    EligibilityResponseDto,
    RecentClaimsResponseDto,
    StatsResponseDto,
)
from airdrop_portal.api.middleware.security.rate_limiter import claim_rate_limit, eligibility_rate_limit
from airdrop_portal.core.dependencies import get_claim_service, get_reporting_service
from airdrop_portal.core.service.admin.reporting_service import ReportingService
from airdrop_portal.core.service.claim.claim_service import ClaimService
from airdrop_portal.core.service.geolocation.ip_geolocation import get_client_ip

router = APIRouter(
    prefix="/api",
    tags=["airdrop"],
    responses={
        400: {"description": "Bad Request"},
        429: {"description": "Too Many Requests"},
        500: {"description": "Internal Server Error"}
    }
)


async def get_airdrop_controller(
    claim_service: ClaimService = Depends(get_claim_service)
) -> AirdropController:
    return AirdropController(claim_service)


@router.post(
    "/check-eligibility",
    response_model=EligibilityResponseDto,
    dependencies=[Depends(eligibility_rate_limit)],
    summary="Check whether a wallet is on the eligibility list"
)
async def check_eligibility(
    payload: CheckEligibilityRequestDto,
    request: Request,
    controller: AirdropController = Depends(get_airdrop_controller)
) -> EligibilityResponseDto:
    """
    Look up a wallet. On the first lookup of a listed wallet the client IP and
    its country are stored.
    """
    return await controller.check_eligibility(payload, get_client_ip(request))


@router.post(
    "/claim",
    response_model=ClaimResponseDto,
    dependencies=[Depends(claim_rate_limit)],
    summary="Register an airdrop claim",
    responses={503: {"description": "Claims paused or wallet unfunded"}}
)
async def claim(
    payload: ClaimRequestDto,
    request: Request,
    controller: AirdropController = Depends(get_airdrop_controller)
) -> ClaimResponseDto:
    """
    Register a claim. Requires a CAPTCHA token and a signature over
    "Claim airdrop for <lower-case address>".
    """
    return await controller.claim(payload, get_client_ip(request))


@router.get(
    "/claim-status/{address}",
    response_model=ClaimStatusResponseDto,
    dependencies=[Depends(eligibility_rate_limit)]
)
async def claim_status(
    address: str,
    controller: AirdropController = Depends(get_airdrop_controller)
) -> ClaimStatusResponseDto:
    return await controller.get_claim_status(address)


@router.get("/stats", response_model=StatsResponseDto)
async def stats(
    controller: AirdropController = Depends(get_airdrop_controller),
    reporting: ReportingService = Depends(get_reporting_service)
) -> StatsResponseDto:
    return await controller.get_stats(reporting)


@router.get("/recent-claims", response_model=RecentClaimsResponseDto)
async def recent_claims(
    limit: int = Query(10, ge=1, le=100),
    controller: AirdropController = Depends(get_airdrop_controller)
) -> RecentClaimsResponseDto:
    return await controller.get_recent_claims(limit)
