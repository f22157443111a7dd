"""Shared Redis client for event and alert pubsub.

Redis is optional for the risk engine: when it does not answer a ping,
events stay in-process and alerts go to the log and Telegram only.
"""

from loguru import logger
from redis.asyncio import Redis
from redis.exceptions import RedisError

from config.settings import settings

_redis_client: Redis | None = None


async def connect_redis(url: str | None = None) -> Redis | None:
    """Return the shared client, or None if Redis is unreachable."""
    global _redis_client
    if _redis_client is not None:
        return _redis_client

    client = Redis.from_url(url or settings.redis_url, decode_responses=True)
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        logger.warning(f"[ENGINE] Redis unavailable, pubsub disabled: {e}")
        await client.aclose()
        return None

    _redis_client = client
    return client


async def close_redis() -> None:
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
