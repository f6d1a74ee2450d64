"""
Fixed-window rate limiting.

General ``/api/`` traffic is limited per client IP by ``RateLimitMiddleware``.
Eligibility, claim-status and claim routes add their own limits through the
``EndpointRateLimit`` dependency; the claim limit is keyed by wallet address.
Counters live in process memory unless ``RATE_LIMIT_STORAGE=redis``.
"""

import asyncio
import time
from typing import Dict, NamedTuple, Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from airdrop_portal.core.exceptions.handler import ErrorResponseBuilder, ServiceError, ServiceErrorCode
from airdrop_portal.core.logger.logger import get_logger
from airdrop_portal.core.service.geolocation.ip_geolocation import get_client_ip
from airdrop_portal.infra.config.settings import Settings, get_settings

logger = get_logger(__name__)

API_LIMIT = "api"
ELIGIBILITY_LIMIT = "eligibility"
CLAIM_LIMIT = "claim"

LOOPBACK_ADDRESSES = ("127.0.0.1", "::1", "localhost", "testclient")


class RateLimitState(NamedTuple):
    limited: bool
    count: int
    limit: int
    reset_at: float

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)

    @property
    def retry_after(self) -> int:
        return max(1, int(self.reset_at - time.time()))

    def headers(self) -> Dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at)),
        }
        if self.limited:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class MemoryRateLimitStore:
    """Per-process counters: key -> (count, window end)"""

    def __init__(self):
        self._windows: Dict[str, Tuple[int, float]] = {}
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        expired = [key for key, (_, window_end) in self._windows.items() if window_end <= now]
        for key in expired:
            del self._windows[key]

    async def hit(self, key: str, window_seconds: int) -> Tuple[int, float]:
        now = time.time()
        async with self._lock:
            count, window_end = self._windows.get(key, (0, 0.0))
            if now >= window_end:
                if len(self._windows) > 10000:
                    self._prune(now)
                count, window_end = 0, now + window_seconds
            count += 1
            self._windows[key] = (count, window_end)
            return count, window_end


class RedisRateLimitStore:
    """Counters shared between processes through INCR + EXPIRE"""

    def __init__(self, redis_client: Redis, prefix: str = "ratelimit"):
        self.redis = redis_client
        self.prefix = prefix

    async def hit(self, key: str, window_seconds: int) -> Tuple[int, float]:
        redis_key = f"{self.prefix}:{key}"
        count = await self.redis.incr(redis_key)
        if count == 1:
            await self.redis.expire(redis_key, window_seconds)
            ttl = window_seconds
        else:
            ttl = await self.redis.ttl(redis_key)
            if ttl < 0:
                # Key lost its expiry; start a new window
                await self.redis.expire(redis_key, window_seconds)
                ttl = window_seconds
        return int(count), time.time() + ttl


class FixedWindowRateLimiter:
    """One named limit: ``max_requests`` per ``window_seconds`` per key."""

    def __init__(self, name: str, store, max_requests: int, window_seconds: int, message: str):
        self.name = name
        self.store = store
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.message = message

    async def hit(self, key: str) -> RateLimitState:
        count, reset_at = await self.store.hit(f"{self.name}:{key}", self.window_seconds)
        return RateLimitState(
            limited=count > self.max_requests,
            count=count,
            limit=self.max_requests,
            reset_at=reset_at
        )


def build_rate_limiters(store, config: Optional[Settings] = None) -> Dict[str, FixedWindowRateLimiter]:
    config = config or get_settings()
    return {
        API_LIMIT: FixedWindowRateLimiter(
            API_LIMIT, store,
            config.RATE_LIMIT_MAX_REQUESTS, config.RATE_LIMIT_WINDOW_SECONDS,
            "Too many requests from this IP, please try again later."
        ),
        ELIGIBILITY_LIMIT: FixedWindowRateLimiter(
            ELIGIBILITY_LIMIT, store,
            config.ELIGIBILITY_RATE_LIMIT_MAX, config.ELIGIBILITY_RATE_LIMIT_WINDOW_SECONDS,
            "Too many eligibility checks. Please slow down."
        ),
        CLAIM_LIMIT: FixedWindowRateLimiter(
            CLAIM_LIMIT, store,
            config.CLAIM_RATE_LIMIT_MAX, config.CLAIM_RATE_LIMIT_WINDOW_SECONDS,
            f"Too many claim attempts. Please try again in "
            f"{max(1, config.CLAIM_RATE_LIMIT_WINDOW_SECONDS // 60)} minutes."
        ),
    }


def _skip_rate_limit(ip: str) -> bool:
    """Loopback clients are exempt in DEBUG mode"""
    return get_settings().DEBUG and ip in LOOPBACK_ADDRESSES


def _get_limiter(request: Request, name: str) -> Optional[FixedWindowRateLimiter]:
    limiters = getattr(request.app.state, "rate_limiters", None)
    return limiters.get(name) if limiters else None


async def _hit(limiter: FixedWindowRateLimiter, key: str) -> Optional[RateLimitState]:
    try:
        return await limiter.hit(key)
    except Exception as e:
        # Counter store down: serve the request rather than fail it
        logger.error(f"Rate limit store unavailable: {e}", extra={"limiter": limiter.name})
        return None


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP limit on every /api/ route, with X-RateLimit-* headers."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method == "OPTIONS" or not request.url.path.startswith("/api/"):
            return await call_next(request)

        limiter = _get_limiter(request, API_LIMIT)
        ip = get_client_ip(request)
        if limiter is None or _skip_rate_limit(ip):
            return await call_next(request)

        state = await _hit(limiter, ip)
        if state is None:
            return await call_next(request)

        if state.limited:
            logger.warning(
                f"Rate limit exceeded for IP: {ip}",
                extra={"path": request.url.path, "count": state.count, "limit": state.limit}
            )
            return JSONResponse(
                status_code=429,
                content=ErrorResponseBuilder.build_error_response(
                    error_code=ServiceErrorCode.RATE_LIMIT_EXCEEDED,
                    message=limiter.message
                ),
                headers=state.headers()
            )

        response = await call_next(request)
        for header, value in state.headers().items():
            response.headers.setdefault(header, value)
        return response


class EndpointRateLimit:
    """
    Route dependency enforcing a named limit.

    Args:
        name: key into ``app.state.rate_limiters``
        by_wallet: key on the ``walletAddress`` of the JSON body, falling back to IP
    """

    def __init__(self, name: str, by_wallet: bool = False):
        self.name = name
        self.by_wallet = by_wallet

    async def _key(self, request: Request, ip: str) -> str:
        if not self.by_wallet:
            return ip
        try:
            body = await request.json()
        except ValueError:
            return ip
        wallet = body.get("walletAddress") if isinstance(body, dict) else None
        if isinstance(wallet, str) and wallet.strip():
            return wallet.strip().lower()
        return ip

    async def __call__(self, request: Request) -> None:
        limiter = _get_limiter(request, self.name)
        ip = get_client_ip(request)
        if limiter is None or _skip_rate_limit(ip):
            return

        key = await self._key(request, ip)
        state = await _hit(limiter, key)
        if state is None or not state.limited:
            return

        logger.warning(
            f"{self.name} rate limit exceeded for: {key}",
            extra={"path": request.url.path, "count": state.count, "limit": state.limit}
        )
        raise ServiceError(
            code=ServiceErrorCode.RATE_LIMIT_EXCEEDED,
            message=limiter.message,
            status_code=429,
            headers=state.headers()
        )


eligibility_rate_limit = EndpointRateLimit(ELIGIBILITY_LIMIT)
claim_rate_limit = EndpointRateLimit(CLAIM_LIMIT, by_wallet=True)
