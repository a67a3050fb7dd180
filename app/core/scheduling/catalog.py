"""Read-only access to services and providers."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.database import Provider, Service

logger = logging.getLogger(__name__)


class Catalog:
    """Looks up active services and providers in display order."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def active_services(self) -> list[Service]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Service)
                .where(Service.active.is_(True))
                .order_by(Service.display_order, Service.id)
            )
            return list(result.scalars().all())

    async def active_providers(self) -> list[Provider]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Provider)
                .where(Provider.active.is_(True))
                .order_by(Provider.display_order, Provider.id)
            )
            return list(result.scalars().all())

    async def get_service(self, service_id: int) -> Optional[Service]:
        async with self._session_factory() as db:
            return await db.get(Service, service_id)

    async def get_provider(self, provider_id: int) -> Optional[Provider]:
        async with self._session_factory() as db:
            return await db.get(Provider, provider_id)
