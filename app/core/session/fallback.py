"""
In-process session tier used while Redis is unavailable.

The session manager creates one FallbackCache when it detects Redis is
down, drains it back into Redis once a probe succeeds and then drops it.
All access goes through the cache's own lock, so migration can iterate a
snapshot while new writes land.
"""

import asyncio
import logging

from .models import SessionData

logger = logging.getLogger(__name__)


class SessionStoreUnavailable(Exception):
    """Raised when neither Redis nor the in-process tier can serve a session."""
    pass


class FallbackCache:
    """Bounded identity -> session map."""

    def __init__(self, max_entries: int):
        self._max_entries = max_entries
        self._entries: dict[str, str] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def _store(self, session: SessionData) -> None:
        if session.identity not in self._entries and len(self._entries) >= self._max_entries:
            raise SessionStoreUnavailable(
                f"In-process session tier full ({self._max_entries} entries)"
            )
        self._entries[session.identity] = session.to_json()

    async def get(self, identity: str) -> SessionData | None:
        async with self._lock:
            data = self._entries.get(identity)
        return SessionData.from_json(data) if data is not None else None

    async def get_or_create(self, session: SessionData) -> SessionData:
        """Return the stored session for this identity, storing `session` if absent."""
        async with self._lock:
            data = self._entries.get(session.identity)
            if data is not None:
                return SessionData.from_json(data)
            self._store(session)
            return session

    async def put(self, session: SessionData) -> None:
        async with self._lock:
            self._store(session)

    async def snapshot(self) -> list[SessionData]:
        """Copy of all entries, safe to iterate while writes continue."""
        async with self._lock:
            items = list(self._entries.values())
        return [SessionData.from_json(data) for data in items]

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()
