"""
FastAPI dependency injection functions.
Long-lived services are built at startup and kept on ``app.state``;
repositories and workflow services are built per request around one session.
"""

import secrets
from typing import Optional
from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from airdrop_portal.api.utils.metrics import ClaimMetrics, get_metrics
from airdrop_portal.core.exceptions.handler import ServiceError, ServiceErrorCode
from airdrop_portal.core.logger.logger import get_logger
from airdrop_portal.core.service.admin.reporting_service import ReportingService
from airdrop_portal.core.service.captcha.captcha_verifier import CaptchaVerifier
from airdrop_portal.core.service.claim.claim_service import ClaimService
from airdrop_portal.core.service.geolocation.ip_geolocation import GeolocationService
from airdrop_portal.core.service.wallet.wallet_service import WalletService
from airdrop_portal.infra.config.settings import get_settings
from airdrop_portal.infra.database import get_async_session
from airdrop_portal.infra.repository.eligible_user_repository import EligibleUserRepository
from airdrop_portal.infra.repository.transaction_repository import TransactionRepository

logger = get_logger(__name__)


async def get_eligible_user_repository(session: AsyncSession = Depends(get_async_session)) -> EligibleUserRepository:
    """Get eligibility repository with SQLAlchemy session dependency."""
    return EligibleUserRepository(session)


async def get_transaction_repository(session: AsyncSession = Depends(get_async_session)) -> TransactionRepository:
    """Get transaction log repository with SQLAlchemy session dependency."""
    return TransactionRepository(session)


async def get_optional_wallet_service(request: Request) -> Optional[WalletService]:
    """Wallet service if startup built one; reporting degrades without it."""
    return getattr(request.app.state, "wallet_service", None)


async def get_geolocation_service(request: Request) -> GeolocationService:
    service = getattr(request.app.state, "geolocation_service", None)
    if service is None:
        service = GeolocationService(metrics=get_metrics())
        request.app.state.geolocation_service = service
    return service


async def get_captcha_verifier(request: Request) -> CaptchaVerifier:
    verifier = getattr(request.app.state, "captcha_verifier", None)
    if verifier is None:
        verifier = CaptchaVerifier()
        request.app.state.captcha_verifier = verifier
    return verifier


async def get_claim_metrics() -> ClaimMetrics:
    return get_metrics()


async def get_claim_service(
    request: Request,
    users: EligibleUserRepository = Depends(get_eligible_user_repository),
    transactions: TransactionRepository = Depends(get_transaction_repository),
    geolocation: GeolocationService = Depends(get_geolocation_service),
    captcha: CaptchaVerifier = Depends(get_captcha_verifier),
    wallet: Optional[WalletService] = Depends(get_optional_wallet_service),
    metrics: ClaimMetrics = Depends(get_claim_metrics)
) -> ClaimService:
    """Get claim workflow with the current pause flag."""
    return ClaimService(
        users=users,
        transactions=transactions,
        geolocation=geolocation,
        captcha=captcha,
        wallet=wallet,
        metrics=metrics,
        config=get_settings(),
        claims_paused=getattr(request.app.state, "claims_paused", False)
    )


async def get_reporting_service(
    users: EligibleUserRepository = Depends(get_eligible_user_repository),
    transactions: TransactionRepository = Depends(get_transaction_repository),
    wallet: Optional[WalletService] = Depends(get_optional_wallet_service)
) -> ReportingService:
    return ReportingService(users, transactions, wallet)


async def require_admin_key(x_admin_key: Optional[str] = Header(None, alias="x-admin-key")) -> None:
    """Shared-secret admin check; with no secret configured every call is refused."""
    expected = get_settings().API_SECRET_KEY
    if not expected or not x_admin_key or not secrets.compare_digest(x_admin_key.encode(), expected.encode()):
        logger.warning("Rejected admin request", extra={"key_present": bool(x_admin_key)})
        raise ServiceError(
            code=ServiceErrorCode.UNAUTHORIZED,
            message="Unauthorized",
            status_code=401
        )
