from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from airdrop_portal.api.controller.airdrop.dto.output_dto import HealthResponseDto, ReadinessResponseDto
from airdrop_portal.api.utils.metrics import get_metrics
from airdrop_portal.core.logger.logger import logger
from airdrop_portal.core.service.wallet.wallet_service import WalletService
from airdrop_portal.infra.database import get_async_session

router = APIRouter(tags=["health"])


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


async def check_database_health(session: AsyncSession) -> Dict[str, str]:
    """Check database connection health."""
    try:
        await session.execute(text("SELECT 1"))
        return {"status": "healthy", "message": "Connected"}
    except Exception as e:
        return {"status": "unhealthy", "message": f"Connection failed: {str(e)}"}


async def check_wallet_health(wallet_service: Optional[WalletService]) -> Dict[str, Any]:
    """Check RPC connectivity of the backend wallet."""
    if wallet_service is None:
        return {"status": "unhealthy", "message": "Wallet service not initialized"}

    if not await wallet_service.is_connected():
        return {"status": "unhealthy", "message": "RPC endpoint unreachable", "address": wallet_service.address}

    return {"status": "healthy", "message": "Connected", "address": wallet_service.address}


@router.get("/health", response_model=HealthResponseDto, status_code=status.HTTP_200_OK)
async def health() -> HealthResponseDto:
    """Liveness probe."""
    return HealthResponseDto(message="Server is running", timestamp=_timestamp())


@router.get("/health/ready", response_model=ReadinessResponseDto)
async def readiness(request: Request, session: AsyncSession = Depends(get_async_session)):
    """
    Readiness probe: database, backend wallet and claim error rate.
    Answers 503 while any dependency is unhealthy.
    """
    checks = {
        "database": await check_database_health(session),
        "wallet": await check_wallet_health(getattr(request.app.state, "wallet_service", None)),
        "claims": get_metrics().get_health_metrics(),
    }
    checks["claims"]["paused"] = getattr(request.app.state, "claims_paused", False)

    if any(check["status"] == "unhealthy" for check in checks.values()):
        overall = "unhealthy"
    elif any(check["status"] == "degraded" for check in checks.values()):
        overall = "degraded"
    else:
        overall = "healthy"

    if overall == "unhealthy":
        logger.warning("Readiness check failed", extra={"checks": checks})

    body = ReadinessResponseDto(
        success=overall != "unhealthy",
        status=overall,
        checks=checks,
        timestamp=_timestamp()
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE if overall == "unhealthy" else status.HTTP_200_OK,
        content=body.model_dump()
    )
