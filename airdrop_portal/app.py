from datetime import datetime, timezone
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from airdrop_portal.infra.config.settings import settings
from airdrop_portal.infra.config.redis import close_redis, get_redis
from airdrop_portal.infra.database import get_database_manager
from airdrop_portal.core.logger.logger import logger
from airdrop_portal.api.router import admin, airdrop, health, network
from airdrop_portal.api.utils.metrics import get_metrics
from airdrop_portal.api.middleware.security.rate_limiter import (
    MemoryRateLimitStore,
    RateLimitMiddleware,
    RedisRateLimitStore,
    build_rate_limiters,
)
from airdrop_portal.api.middleware.logging.request_logging import RequestLoggingMiddleware
from airdrop_portal.core.exceptions.handler import ServiceError, GlobalErrorHandler
from airdrop_portal.core.service.captcha.captcha_verifier import CaptchaVerifier
from airdrop_portal.core.service.geolocation.ip_geolocation import GeolocationService
from airdrop_portal.core.service.wallet.wallet_service import WalletService


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description="""
Airdrop registration API.

## Public
- **Eligibility**: look up a wallet on the imported leaderboard
- **Claim**: CAPTCHA + wallet signature, recorded exactly once per wallet
- **Stats**: aggregate totals and recent claims

## Admin
Routes under `/api/admin` require the `x-admin-key` header.
        """,
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials="*" not in settings.allowed_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        max_age=600,
    )

    # Rate limiting middleware
    app.add_middleware(RateLimitMiddleware)

    # Request logging middleware (added last so it wraps everything else)
    app.add_middleware(RequestLoggingMiddleware)

    # Add centralized error handlers
    app.add_exception_handler(ServiceError, GlobalErrorHandler.service_error_handler)
    app.add_exception_handler(RequestValidationError, GlobalErrorHandler.validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, GlobalErrorHandler.http_exception_handler)
    app.add_exception_handler(Exception, GlobalErrorHandler.general_exception_handler)

    app.include_router(health.router)
    app.include_router(network.router)
    app.include_router(airdrop.router)
    app.include_router(admin.router)

    # Process-wide state; startup swaps in the configured services
    app.state.claims_paused = False
    app.state.rate_limiters = build_rate_limiters(MemoryRateLimitStore())
    app.state.wallet_service = None

    @app.on_event("startup")
    async def startup_event():
        logger.info(
            "Starting airdrop API",
            extra={
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "service": settings.APP_NAME,
                "version": settings.APP_VERSION,
                "transfer_mode": settings.TRANSFER_MODE
            }
        )

        db_manager = get_database_manager()
        if settings.DB_AUTO_CREATE:
            await db_manager.create_tables()
        else:
            await db_manager.connect()

        # No signing key or RPC endpoint means no claims; refuse to start
        app.state.wallet_service = await WalletService.create(settings)

        if settings.RATE_LIMIT_STORAGE == "redis":
            app.state.rate_limiters = build_rate_limiters(RedisRateLimitStore(await get_redis()))

        app.state.geolocation_service = GeolocationService(metrics=get_metrics())
        app.state.captcha_verifier = CaptchaVerifier()

        logger.info(
            "Airdrop API ready",
            extra={"wallet": app.state.wallet_service.address, "rate_limit_storage": settings.RATE_LIMIT_STORAGE}
        )

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info(
            "Shutting down airdrop API",
            extra={
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "service": settings.APP_NAME,
                "version": settings.APP_VERSION
            }
        )

        geolocation = getattr(app.state, "geolocation_service", None)
        if geolocation is not None:
            await geolocation.close()

        captcha = getattr(app.state, "captcha_verifier", None)
        if captcha is not None:
            await captcha.close()

        if settings.RATE_LIMIT_STORAGE == "redis":
            await close_redis()

        await get_database_manager().close()

    return app
