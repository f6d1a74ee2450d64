import redis.asyncio as redis
from functools import lru_cache
from airdrop_portal.infra.config.settings import settings
from airdrop_portal.core.logger.logger import logger

@lru_cache()
def get_redis_pool():
    """Get Redis connection pool (cached)"""
    return redis.ConnectionPool.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        max_connections=settings.REDIS_MAX_CONNECTIONS
    )

async def get_redis() -> redis.Redis:
    """Get Redis connection from pool (used by the shared rate-limit store)"""
    try:
        pool = get_redis_pool()
        redis_client = redis.Redis(connection_pool=pool)
        await redis_client.ping()
        logger.info("Connected to Redis successfully")
        return redis_client
    except Exception as e:
        logger.error(f"Failed to connect to Redis: {e}")
        raise

async def close_redis() -> None:
    """Disconnect the cached pool, if one was created"""
    if get_redis_pool.cache_info().currsize:
        await get_redis_pool().disconnect()
        get_redis_pool.cache_clear()
