"""
Redis Connection Management

Shared client for the primary session tier. Connecting never raises: when
Redis is unreachable the caller gets None and the session store switches to
its in-process tier.
"""

import logging
from typing import Optional

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import RedisError

from app.config import settings

logger = logging.getLogger(__name__)

# Namespace for every key this service writes
APP_PREFIX = "booking:v1:"


def _build_client() -> Redis:
    """Client with short socket timeouts and a couple of backoff retries."""
    return redis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=settings.session_store_timeout,
        socket_timeout=settings.session_store_timeout,
        retry_on_timeout=True,
        retry=Retry(ExponentialBackoff(), retries=2),
    )


class RedisClient:
    """Process-wide Redis client, created lazily and verified with PING."""

    _client: Optional[Redis] = None
    _connected: bool = False

    @classmethod
    async def get_client(cls) -> Optional[Redis]:
        """
        Get the shared client, connecting if needed.

        Returns:
            Redis client or None if Redis does not answer
        """
        if cls._client is not None and cls._connected:
            return cls._client

        client = _build_client()
        try:
            await client.ping()
        except (RedisError, OSError) as e:
            logger.error(f"Redis unreachable: {e}")
            cls._client = None
            cls._connected = False
            await client.aclose()
            return None

        cls._client = client
        cls._connected = True
        logger.info("Redis connection established")
        return client

    @classmethod
    async def close(cls) -> None:
        if cls._client is None:
            return
        try:
            await cls._client.aclose()
            logger.info("Redis connection closed")
        except RedisError as e:
            logger.error(f"Error closing Redis connection: {e}")
        finally:
            cls._client = None
            cls._connected = False


async def get_redis() -> Optional[Redis]:
    """Shared Redis client, or None if Redis is unavailable."""
    return await RedisClient.get_client()


async def check_redis_health() -> bool:
    """PING through the shared client."""
    client = await get_redis()
    if client is None:
        return False
    try:
        await client.ping()
        return True
    except (RedisError, OSError) as e:
        logger.error(f"Redis health check failed: {e}")
        return False
