"""Shared fixtures: a seeded SQLite bookings database, a fixed clock and a fake Redis."""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.config import Settings
from app.core.conversation.registry import HandlerDeps
from app.core.scheduling.availability import AvailabilityEngine
from app.core.scheduling.calendar import BusinessCalendar
from app.core.scheduling.catalog import Catalog
from app.core.scheduling.ledger import BookingLedger
from app.infra.database import build_engine, build_session_factory, init_db
from app.infra.seed import seed_catalog

# Monday, shop open 09:00-19:00
MONDAY_10AM = datetime(2024, 1, 15, 10, 0)

# Seeded catalogue ids
STANDARD_CUT = 1  # 30 min
SKIN_FADE = 2  # 45 min
BEARD_TRIM = 3  # 20 min
CUT_AND_BEARD = 4  # 60 min
MIKE = 1
JOHN = 2

CUSTOMER = "+353871111111"
OTHER_CUSTOMER = "+353872222222"


class FakeClock:
    """Settable shop-local clock."""

    def __init__(self, now: datetime):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)

    def set(self, value: datetime) -> None:
        self.current = value


class FakeRedis:
    """Dict-backed stand-in for the handful of Redis commands the session store uses."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise RedisConnectionError("Connection refused")

    async def ping(self):
        self._check()
        return True

    async def get(self, key):
        self._check()
        return self.data.get(key)

    async def set(self, key, value, ex=None, nx=False):
        self._check()
        if nx and key in self.data:
            return None
        self.data[key] = value
        self.ttls[key] = ex
        return True

    async def setex(self, key, ttl, value):
        self._check()
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    async def expire(self, key, ttl):
        self._check()
        if key not in self.data:
            return False
        self.ttls[key] = ttl
        return True

    async def delete(self, key):
        self._check()
        return 1 if self.data.pop(key, None) is not None else 0


@pytest.fixture
def settings():
    """Settings with defaults only, no .env."""
    return Settings(_env_file=None)


@pytest.fixture
def clock():
    return FakeClock(MONDAY_10AM)


@pytest.fixture
async def session_factory(tmp_path):
    """Seeded bookings database in a temporary SQLite file."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}")
    await init_db(engine)
    factory = build_session_factory(engine)
    await seed_catalog(factory)
    yield factory
    await engine.dispose()


@pytest.fixture
def engine():
    return AvailabilityEngine(BusinessCalendar())


@pytest.fixture
def ledger(session_factory, engine, clock):
    return BookingLedger(session_factory, engine, now=clock)


@pytest.fixture
def deps(session_factory, ledger, settings):
    return HandlerDeps(catalog=Catalog(session_factory), ledger=ledger, settings=settings)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def channel():
    """Outbound channel that accepts every message."""
    mock = MagicMock()
    mock.send = AsyncMock(return_value=True)
    mock.close = AsyncMock()
    return mock
