"""
Two-tier session store.

Redis is the primary tier. Every Redis call is bounded by
settings.session_store_timeout; any error or timeout switches the store to
an in-process FallbackCache. While degraded, Redis is re-probed at most once
per settings.session_probe_interval. When a probe succeeds the fallback
entries are copied into Redis and the fallback is discarded.

A write that lands in the fallback while its entries are being copied may
be lost with the discarded fallback. Concurrent messages for the same
identity are last-write-wins.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.config import settings
from app.core.conversation.context import INITIAL_SENTINEL
from app.core.conversation.steps import ConversationStep, INITIAL_STEP
from app.infra.redis import get_redis, APP_PREFIX
from .fallback import FallbackCache
from .models import SessionData

logger = logging.getLogger(__name__)

# Session key prefix (extends existing APP_PREFIX)
SESSION_PREFIX = f"{APP_PREFIX}session:"

# Failures that mean "Redis is not usable right now"
PRIMARY_ERRORS = (RedisError, asyncio.TimeoutError, OSError)


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class SessionManager:
    """
    Session store with Redis primary and in-process fallback.

    Key pattern: booking:v1:session:{identity}

    Args:
        redis_provider: Coroutine function returning a Redis client or None
        ttl: Session TTL in seconds
        timeout: Bound for each Redis call in seconds
        probe_interval: Minimum seconds between re-probes while degraded
        max_fallback_entries: Capacity of the in-process tier
        clock: Monotonic clock used for probe pacing
    """

    def __init__(
        self,
        redis_provider: Callable[[], Awaitable[Optional[Redis]]] = get_redis,
        ttl: Optional[int] = None,
        timeout: Optional[float] = None,
        probe_interval: Optional[float] = None,
        max_fallback_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._redis_provider = redis_provider
        self._ttl = ttl or settings.redis_session_ttl
        self._timeout = timeout or settings.session_store_timeout
        self._probe_interval = (
            probe_interval if probe_interval is not None else settings.session_probe_interval
        )
        self._max_fallback_entries = max_fallback_entries or settings.session_fallback_max_entries
        self._clock = clock

        self._fallback: Optional[FallbackCache] = None
        self._last_probe = 0.0
        self._migration_lock = asyncio.Lock()

    def _key(self, identity: str) -> str:
        """Generate Redis key."""
        return f"{SESSION_PREFIX}{identity}"

    @property
    def degraded(self) -> bool:
        """True while sessions are served from the in-process tier."""
        return self._fallback is not None

    def status(self) -> dict:
        """Tier summary for health endpoints."""
        return {
            "tier": "fallback" if self._fallback is not None else "redis",
            "fallback_entries": len(self._fallback) if self._fallback is not None else 0,
        }

    async def _call(self, awaitable: Awaitable):
        return await asyncio.wait_for(awaitable, timeout=self._timeout)

    def _degrade(self, reason: object) -> FallbackCache:
        """Switch to (or stay on) the in-process tier."""
        if self._fallback is None:
            logger.warning(f"Redis unavailable ({reason}), using in-process session tier")
            self._fallback = FallbackCache(self._max_fallback_entries)
            self._last_probe = self._clock()
        return self._fallback

    async def _recover(self) -> bool:
        """
        Re-probe Redis and migrate fallback entries if it answers.

        Returns:
            True if Redis is the active tier again
        """
        if self._clock() - self._last_probe < self._probe_interval:
            return False

        async with self._migration_lock:
            fallback = self._fallback
            if fallback is None:
                return True
            self._last_probe = self._clock()

            try:
                redis = await self._call(self._redis_provider())
                if redis is None:
                    return False
                await self._call(redis.ping())

                entries = await fallback.snapshot()
                for session in entries:
                    await self._call(
                        redis.setex(self._key(session.identity), self._ttl, session.to_json())
                    )
            except PRIMARY_ERRORS as e:
                logger.debug(f"Redis probe failed: {e}")
                return False

            self._fallback = None
            await fallback.clear()

        logger.info(f"Redis available again, migrated {len(entries)} sessions")
        return True

    async def _route(self) -> tuple[Optional[Redis], Optional[FallbackCache]]:
        """Pick the tier for one operation: (redis, None) or (None, fallback)."""
        fallback = self._fallback
        if fallback is not None and not await self._recover():
            return None, fallback

        try:
            redis = await self._call(self._redis_provider())
        except PRIMARY_ERRORS as e:
            return None, self._degrade(e)

        if redis is None:
            return None, self._degrade("no connection")
        return redis, None

    async def get(self, identity: str) -> Optional[SessionData]:
        """
        Get session by identity.

        Returns:
            SessionData or None if not found
        """
        redis, fallback = await self._route()

        if redis is not None:
            try:
                data = await self._call(redis.get(self._key(identity)))
                return SessionData.from_json(data) if data else None
            except PRIMARY_ERRORS as e:
                fallback = self._degrade(e)

        return await fallback.get(identity)

    async def get_or_create(self, identity: str) -> SessionData:
        """
        Get existing session or create one at the main menu.

        Creation uses SET NX so two concurrent first messages end up with
        the same session.

        Raises:
            SessionStoreUnavailable: If neither tier can hold the session
        """
        fresh = SessionData(identity=identity)
        redis, fallback = await self._route()

        if redis is not None:
            key = self._key(identity)
            try:
                data = await self._call(redis.get(key))
                if data:
                    await self._call(redis.expire(key, self._ttl))
                    return SessionData.from_json(data)

                created = await self._call(
                    redis.set(key, fresh.to_json(), ex=self._ttl, nx=True)
                )
                if created:
                    logger.debug(f"Session created: {identity}")
                    return fresh

                data = await self._call(redis.get(key))
                if data:
                    return SessionData.from_json(data)

                # Expired between SET NX and GET
                await self._call(redis.setex(key, self._ttl, fresh.to_json()))
                return fresh
            except PRIMARY_ERRORS as e:
                fallback = self._degrade(e)

        return await fallback.get_or_create(fresh)

    async def save(
        self,
        identity: str,
        step: ConversationStep,
        context: str,
    ) -> SessionData:
        """
        Upsert step and context and refresh the TTL.

        Raises:
            SessionStoreUnavailable: If neither tier can hold the session
        """
        session = SessionData(
            identity=identity,
            step=step,
            context=context,
            last_activity=_utcnow(),
        )
        redis, fallback = await self._route()

        if redis is not None:
            try:
                await self._call(
                    redis.setex(self._key(identity), self._ttl, session.to_json())
                )
                logger.debug(f"Session saved: {identity} -> {step.value}")
                return session
            except PRIMARY_ERRORS as e:
                fallback = self._degrade(e)

        await fallback.put(session)
        return session

    async def reset(self, identity: str) -> SessionData:
        """Administrative reset to the main menu."""
        logger.info(f"Session reset: {identity}")
        return await self.save(identity, INITIAL_STEP, INITIAL_SENTINEL)
