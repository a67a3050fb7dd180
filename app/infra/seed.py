"""
Development seed data.

Loads the shop's starter catalogue into an empty database.
"""

import logging
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.database import Provider, Service

logger = logging.getLogger(__name__)

SERVICES = [
    ("Standard Cut", "Classic scissor or clipper cut", Decimal("25.00"), 30),
    ("Skin Fade", "Fade down to the skin, finished with a line-up", Decimal("30.00"), 45),
    ("Beard Trim", "Shape, trim and hot towel", Decimal("15.00"), 20),
    ("Cut & Beard", "Any haircut plus a full beard trim", Decimal("40.00"), 60),
]

PROVIDERS = [
    ("Mike", "Owner, 15 years behind the chair. Fade specialist.", Decimal("4.9")),
    ("John", "Classic cuts and hot towel shaves.", Decimal("4.8")),
    ("Steve", "Beard sculpting and modern styles.", Decimal("4.7")),
    ("Alex", "Creative cuts and designs.", Decimal("4.8")),
]


async def seed_catalog(session_factory: async_sessionmaker[AsyncSession]) -> bool:
    """
    Insert services and providers if none exist.

    Returns:
        True if data was inserted
    """
    async with session_factory() as db:
        count = await db.scalar(select(func.count()).select_from(Service))
        if count:
            return False

        for order, (name, description, price, duration) in enumerate(SERVICES, start=1):
            db.add(Service(
                name=name,
                description=description,
                price=price,
                duration_minutes=duration,
                active=True,
                display_order=order,
            ))

        for order, (name, bio, rating) in enumerate(PROVIDERS, start=1):
            db.add(Provider(
                name=name,
                bio=bio,
                rating=rating,
                active=True,
                display_order=order,
                total_bookings=0,
                completed_bookings=0,
            ))

        await db.commit()

    logger.info(f"Seeded {len(SERVICES)} services and {len(PROVIDERS)} providers")
    return True
