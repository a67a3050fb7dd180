"""
Booking Ledger

The only writer of booking rows. Creation is serialised per provider with an
in-process lock and, on PostgreSQL, a transaction-scoped advisory lock, then
the slot is re-validated inside the transaction before anything is written.
"""

import asyncio
import logging
import random
import re
import time as time_module
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Callable, Optional

from sqlalchemy import and_, func, or_, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import get_settings
from app.models.database import (
    BLOCKING_STATUSES,
    Booking,
    BookingStatus,
    Customer,
    Provider,
    Service,
)
from .availability import AvailabilityEngine, BusyInterval, SlotCheck
from .loyalty import LoyaltyPolicy

logger = logging.getLogger(__name__)

BOOKING_CODE_PATTERN = re.compile(r"^BK\d{4}$")
MAX_CODE_ATTEMPTS = 10
CODE_SPACE = 10000

# First key of pg_advisory_xact_lock(int, int); second key is the provider id
ADVISORY_LOCK_NAMESPACE = 7301


class LedgerError(str, Enum):
    """Business-rule failures reported by the ledger."""

    SERVICE_NOT_FOUND = "service_not_found"
    PROVIDER_NOT_FOUND = "provider_not_found"
    SLOT_UNAVAILABLE = "slot_unavailable"
    NOT_FOUND = "not_found"
    NOT_OWNER = "not_owner"
    ALREADY_CANCELLED = "already_cancelled"
    NOT_CONFIRMED = "not_confirmed"
    CODE_UNAVAILABLE = "code_unavailable"


@dataclass
class ReservationResult:
    """Outcome of a ledger write."""

    success: bool
    booking: Optional[Booking] = None
    error_code: Optional[LedgerError] = None
    message: Optional[str] = None
    slot_check: Optional[SlotCheck] = None

    @classmethod
    def ok(cls, booking: Booking) -> "ReservationResult":
        return cls(success=True, booking=booking)

    @classmethod
    def fail(
        cls,
        error_code: LedgerError,
        message: str,
        slot_check: Optional[SlotCheck] = None,
    ) -> "ReservationResult":
        return cls(
            success=False,
            error_code=error_code,
            message=message,
            slot_check=slot_check,
        )


def is_valid_booking_code(code: str) -> bool:
    """Check the public BK#### reference format."""
    return bool(BOOKING_CODE_PATTERN.match(code))


def _add_minutes(start: time, minutes: int) -> time:
    return (datetime.combine(date.min, start) + timedelta(minutes=minutes)).time()


class BookingLedger:
    """
    Creates, cancels and closes out bookings.

    Args:
        session_factory: Async session factory for the bookings database
        engine: Availability engine used for the in-transaction re-check
        now: Clock returning naive shop-local time
        rng: Random source for booking codes
        loyalty: Points and milestone rules applied to customer profiles
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: AvailabilityEngine,
        now: Optional[Callable[[], datetime]] = None,
        rng: Optional[random.Random] = None,
        loyalty: Optional[LoyaltyPolicy] = None,
    ):
        self._session_factory = session_factory
        self.engine = engine
        self.loyalty = loyalty or LoyaltyPolicy.from_settings()
        self._now = now or get_settings().local_now
        self._rng = rng or random.Random()
        self._provider_locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    def now(self) -> datetime:
        return self._now()

    # === Reads ===

    async def _busy_on(
        self,
        db: AsyncSession,
        provider_id: int,
        start_day: date,
        end_day: date,
    ) -> dict[date, list[BusyInterval]]:
        result = await db.execute(
            select(Booking.booking_date, Booking.start_time, Booking.end_time)
            .where(
                Booking.provider_id == provider_id,
                Booking.booking_date >= start_day,
                Booking.booking_date <= end_day,
                Booking.status.in_(BLOCKING_STATUSES),
            )
            .order_by(Booking.booking_date, Booking.start_time)
        )
        busy: dict[date, list[BusyInterval]] = defaultdict(list)
        for day, start, end in result.all():
            busy[day].append(BusyInterval(start=start, end=end))
        return dict(busy)

    async def busy_intervals(
        self,
        provider_id: int,
        start_day: date,
        end_day: Optional[date] = None,
    ) -> dict[date, list[BusyInterval]]:
        """Intervals taken by CONFIRMED/COMPLETED bookings, keyed by date."""
        async with self._session_factory() as db:
            return await self._busy_on(db, provider_id, start_day, end_day or start_day)

    async def get_by_code(self, code: str) -> Optional[Booking]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Booking).where(Booking.booking_code == code)
            )
            return result.scalar_one_or_none()

    async def get_customer(self, identity: str) -> Optional[Customer]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Customer).where(Customer.identity == identity)
            )
            return result.scalar_one_or_none()

    async def customer_reservations(self, customer_identity: str) -> list[Booking]:
        """Upcoming CONFIRMED bookings for a customer, soonest first."""
        today = self.now().date()
        async with self._session_factory() as db:
            result = await db.execute(
                select(Booking)
                .where(
                    Booking.customer_identity == customer_identity,
                    Booking.status == BookingStatus.CONFIRMED,
                    Booking.booking_date >= today,
                )
                .order_by(Booking.booking_date, Booking.start_time)
            )
            return list(result.scalars().all())

    async def potential_no_shows(self, grace_minutes: int = 15) -> list[Booking]:
        """Today's CONFIRMED bookings whose start passed more than grace ago."""
        now = self.now()
        cutoff = now - timedelta(minutes=grace_minutes)
        if cutoff.date() != now.date():
            return []
        async with self._session_factory() as db:
            result = await db.execute(
                select(Booking)
                .where(
                    Booking.status == BookingStatus.CONFIRMED,
                    Booking.booking_date == now.date(),
                    Booking.start_time < cutoff.time(),
                )
                .order_by(Booking.start_time)
            )
            return list(result.scalars().all())

    # === Create ===

    async def _lock_provider(self, db: AsyncSession, provider_id: int) -> None:
        """Take the cross-process provider lock where the database offers one."""
        if db.get_bind().dialect.name == "postgresql":
            await db.execute(
                text("SELECT pg_advisory_xact_lock(:namespace, :provider_id)"),
                {"namespace": ADVISORY_LOCK_NAMESPACE, "provider_id": provider_id},
            )

    async def _code_taken(self, db: AsyncSession, code: str) -> bool:
        existing = await db.execute(
            select(Booking.id).where(Booking.booking_code == code)
        )
        return existing.first() is not None

    async def _generate_code(self, db: AsyncSession) -> Optional[str]:
        """
        Draw BK#### codes until one is unused.

        After MAX_CODE_ATTEMPTS collisions, step upwards from a
        millisecond-derived code to the next unused one. Returns None only
        when every code is taken.
        """
        for _ in range(MAX_CODE_ATTEMPTS):
            code = f"BK{self._rng.randint(0, CODE_SPACE - 1):04d}"
            if not await self._code_taken(db, code):
                return code

        start = int(time_module.time() * 1000) % CODE_SPACE
        for offset in range(CODE_SPACE):
            code = f"BK{(start + offset) % CODE_SPACE:04d}"
            if not await self._code_taken(db, code):
                logger.warning(
                    f"Booking code attempts exhausted, using time-derived code {code}"
                )
                return code

        logger.error("Every booking code is in use")
        return None

    async def _bookings_by(self, db: AsyncSession, column, identity: str) -> dict[int, int]:
        """Count a customer's CONFIRMED/COMPLETED bookings grouped by column."""
        result = await db.execute(
            select(column, func.count())
            .where(
                Booking.customer_identity == identity,
                Booking.status.in_(BLOCKING_STATUSES),
            )
            .group_by(column)
        )
        return {key: count for key, count in result.all()}

    async def _record_booking(
        self,
        db: AsyncSession,
        identity: str,
        service_id: int,
        provider_id: int,
    ) -> None:
        """
        Update the customer profile for a new booking.

        Runs inside the booking transaction after the row is flushed, so the
        new booking is part of the preference counts. A service or provider
        becomes preferred when it is (jointly) the most booked one.
        """
        result = await db.execute(
            select(Customer)
            .where(Customer.identity == identity)
            .with_for_update()
        )
        customer = result.scalar_one()

        customer.total_bookings += 1
        points = self.loyalty.points_for(customer.total_bookings)
        customer.loyalty_points += points
        customer.lifetime_loyalty_points += points
        if customer.total_bookings == 1 and points:
            logger.info(f"First booking bonus: {identity} earned {points} points")

        services = await self._bookings_by(db, Booking.service_id, identity)
        if services.get(service_id, 0) >= max(services.values(), default=0):
            customer.preferred_service_id = service_id
            customer.preferred_service_count = services[service_id]

        providers = await self._bookings_by(db, Booking.provider_id, identity)
        if providers.get(provider_id, 0) >= max(providers.values(), default=0):
            customer.preferred_provider_id = provider_id
            customer.preferred_provider_count = providers[provider_id]

    async def _ensure_customer(self, identity: str) -> None:
        """Create the customer profile in its own transaction if missing."""
        async with self._session_factory() as db:
            exists = await db.execute(
                select(Customer.id).where(Customer.identity == identity)
            )
            if exists.first() is not None:
                return
            db.add(Customer(identity=identity))
            try:
                await db.commit()
            except IntegrityError:
                # Created concurrently by another booking for the same customer
                await db.rollback()
                logger.debug(f"Customer {identity} already created")

    async def create_reservation(
        self,
        customer_identity: str,
        service_id: int,
        provider_id: int,
        booking_date: date,
        start_time: time,
    ) -> ReservationResult:
        """
        Reserve a slot and issue a booking code.

        Returns:
            ReservationResult with the CONFIRMED booking, or SLOT_UNAVAILABLE
            and no writes when the slot no longer passes validation.
            CODE_UNAVAILABLE when no unique booking code could be stored.
        """
        await self._ensure_customer(customer_identity)

        async with self._provider_locks[provider_id]:
            try:
                result = await self._reserve(
                    customer_identity, service_id, provider_id, booking_date, start_time
                )
            except IntegrityError as e:
                # Booking code claimed by another process between check and insert
                logger.error(f"Booking for {customer_identity} hit a code conflict: {e.orig}")
                return ReservationResult.fail(
                    LedgerError.CODE_UNAVAILABLE,
                    "Could not issue a booking code",
                )

        if result.success:
            logger.info(
                f"Booking {result.booking.booking_code} created for {customer_identity} "
                f"with provider {provider_id} on {booking_date} at {start_time}"
            )
        return result

    async def _reserve(
        self,
        customer_identity: str,
        service_id: int,
        provider_id: int,
        booking_date: date,
        start_time: time,
    ) -> ReservationResult:
        """One transaction: lock, re-validate, insert and update counters."""
        async with self._session_factory() as db:
            async with db.begin():
                await self._lock_provider(db, provider_id)

                service = await db.get(Service, service_id)
                if service is None or not service.active:
                    return ReservationResult.fail(
                        LedgerError.SERVICE_NOT_FOUND,
                        f"Service {service_id} not found",
                    )
                provider = await db.get(Provider, provider_id)
                if provider is None or not provider.active:
                    return ReservationResult.fail(
                        LedgerError.PROVIDER_NOT_FOUND,
                        f"Provider {provider_id} not found",
                    )

                now = self.now()
                busy = await self._busy_on(db, provider_id, booking_date, booking_date)
                check = self.engine.validate_slot(
                    booking_date,
                    start_time,
                    service.duration_minutes,
                    busy.get(booking_date, []),
                    now,
                )
                if not check.ok:
                    logger.info(
                        f"Slot rejected for provider {provider_id} on "
                        f"{booking_date} {start_time}: {check.value}"
                    )
                    return ReservationResult.fail(
                        LedgerError.SLOT_UNAVAILABLE,
                        "Time slot is no longer available",
                        slot_check=check,
                    )

                code = await self._generate_code(db)
                if code is None:
                    return ReservationResult.fail(
                        LedgerError.CODE_UNAVAILABLE,
                        "Could not issue a booking code",
                    )

                booking = Booking(
                    booking_code=code,
                    customer_identity=customer_identity,
                    service_id=service.id,
                    provider_id=provider.id,
                    booking_date=booking_date,
                    start_time=start_time,
                    end_time=_add_minutes(start_time, service.duration_minutes),
                    status=BookingStatus.CONFIRMED,
                    created_at=now,
                    day_before_reminder_sent=False,
                    short_horizon_reminder_sent=False,
                )
                booking.service = service
                booking.provider = provider
                db.add(booking)
                await db.flush()

                await db.execute(
                    update(Provider)
                    .where(Provider.id == provider_id)
                    .values(total_bookings=Provider.total_bookings + 1)
                    .execution_options(synchronize_session=False)
                )
                await self._record_booking(db, customer_identity, service.id, provider.id)

        return ReservationResult.ok(booking)

    # === Status transitions ===

    async def cancel_reservation(
        self,
        code: str,
        customer_identity: str,
    ) -> ReservationResult:
        """Cancel a customer's CONFIRMED booking by code."""
        async with self._session_factory() as db:
            async with db.begin():
                result = await db.execute(
                    select(Booking)
                    .where(Booking.booking_code == code)
                    .with_for_update(of=Booking)
                )
                booking = result.scalar_one_or_none()

                if booking is None:
                    return ReservationResult.fail(
                        LedgerError.NOT_FOUND, f"Booking {code} not found"
                    )
                if booking.customer_identity != customer_identity:
                    logger.warning(
                        f"{customer_identity} tried to cancel booking {code} they do not own"
                    )
                    return ReservationResult.fail(
                        LedgerError.NOT_OWNER, f"Booking {code} belongs to another customer"
                    )
                if booking.status == BookingStatus.CANCELLED:
                    return ReservationResult.fail(
                        LedgerError.ALREADY_CANCELLED, f"Booking {code} is already cancelled"
                    )
                if booking.status != BookingStatus.CONFIRMED:
                    return ReservationResult.fail(
                        LedgerError.NOT_CONFIRMED,
                        f"Booking {code} is {booking.status.value} and cannot be cancelled",
                    )

                booking.status = BookingStatus.CANCELLED
                booking.cancelled_at = self.now()

                await db.execute(
                    update(Customer)
                    .where(Customer.identity == customer_identity)
                    .values(cancelled_bookings=Customer.cancelled_bookings + 1)
                    .execution_options(synchronize_session=False)
                )

        logger.info(f"Booking {code} cancelled by {customer_identity}")
        return ReservationResult.ok(booking)

    async def _close_out(self, booking_id: int, status: BookingStatus) -> bool:
        """Move a CONFIRMED booking to COMPLETED or NO_SHOW."""
        async with self._session_factory() as db:
            async with db.begin():
                result = await db.execute(
                    select(Booking)
                    .where(Booking.id == booking_id)
                    .with_for_update(of=Booking)
                )
                booking = result.scalar_one_or_none()

                if booking is None:
                    logger.warning(f"Booking {booking_id} not found, cannot mark {status.value}")
                    return False
                if booking.status != BookingStatus.CONFIRMED:
                    logger.warning(
                        f"Booking {booking.booking_code} is {booking.status.value}, "
                        f"not marking {status.value}"
                    )
                    return False

                booking.status = status

                if status == BookingStatus.COMPLETED:
                    booking.completed_at = self.now()
                    await db.execute(
                        update(Provider)
                        .where(Provider.id == booking.provider_id)
                        .values(completed_bookings=Provider.completed_bookings + 1)
                        .execution_options(synchronize_session=False)
                    )
                    await db.execute(
                        update(Customer)
                        .where(Customer.identity == booking.customer_identity)
                        .values(
                            completed_bookings=Customer.completed_bookings + 1,
                            first_visit=func.coalesce(Customer.first_visit, booking.booking_date),
                            last_visit=booking.booking_date,
                        )
                        .execution_options(synchronize_session=False)
                    )
                else:
                    await db.execute(
                        update(Customer)
                        .where(Customer.identity == booking.customer_identity)
                        .values(no_show_count=Customer.no_show_count + 1)
                        .execution_options(synchronize_session=False)
                    )

        logger.info(f"Booking {booking.booking_code} marked {status.value}")
        return True

    async def complete_reservation(self, booking_id: int) -> bool:
        return await self._close_out(booking_id, BookingStatus.COMPLETED)

    async def mark_no_show(self, booking_id: int) -> bool:
        return await self._close_out(booking_id, BookingStatus.NO_SHOW)

    async def auto_complete_due(self) -> int:
        """
        Complete every CONFIRMED booking that has already ended.

        Returns:
            Number of bookings completed
        """
        now = self.now()
        today = now.date()

        async with self._session_factory() as db:
            result = await db.execute(
                select(Booking.id).where(
                    Booking.status == BookingStatus.CONFIRMED,
                    or_(
                        Booking.booking_date < today,
                        and_(
                            Booking.booking_date == today,
                            Booking.end_time <= now.time(),
                        ),
                    ),
                )
            )
            due = list(result.scalars().all())

        completed = 0
        for booking_id in due:
            try:
                if await self.complete_reservation(booking_id):
                    completed += 1
            except Exception:
                logger.exception(f"Failed to auto-complete booking {booking_id}")

        if completed:
            logger.info(f"Auto-completed {completed} bookings")
        return completed

    # === Reminder bookkeeping ===

    async def due_day_before_reminders(self) -> list[Booking]:
        """Tomorrow's CONFIRMED bookings without a day-before reminder."""
        tomorrow = self.now().date() + timedelta(days=1)
        async with self._session_factory() as db:
            result = await db.execute(
                select(Booking)
                .where(
                    Booking.status == BookingStatus.CONFIRMED,
                    Booking.booking_date == tomorrow,
                    Booking.day_before_reminder_sent.is_(False),
                )
                .order_by(Booking.start_time)
            )
            return list(result.scalars().all())

    async def due_short_horizon_reminders(
        self,
        minutes_before: int,
        window_minutes: int,
    ) -> list[Booking]:
        """Today's CONFIRMED bookings starting within now+minutes_before ± window."""
        now = self.now()
        target = now + timedelta(minutes=minutes_before)
        window = timedelta(minutes=window_minutes)
        earliest = max(target - window, datetime.combine(now.date(), time.min))
        latest = min(target + window, datetime.combine(now.date(), time.max))
        if earliest.date() != now.date() or earliest > latest:
            return []

        async with self._session_factory() as db:
            result = await db.execute(
                select(Booking)
                .where(
                    Booking.status == BookingStatus.CONFIRMED,
                    Booking.booking_date == now.date(),
                    Booking.start_time >= earliest.time(),
                    Booking.start_time <= latest.time(),
                    Booking.short_horizon_reminder_sent.is_(False),
                )
                .order_by(Booking.start_time)
            )
            return list(result.scalars().all())

    async def mark_reminder_sent(self, booking_id: int, day_before: bool) -> None:
        """Set one of the two reminder flags with its timestamp."""
        if day_before:
            values = {
                "day_before_reminder_sent": True,
                "day_before_reminder_sent_at": self.now(),
            }
        else:
            values = {
                "short_horizon_reminder_sent": True,
                "short_horizon_reminder_sent_at": self.now(),
            }
        async with self._session_factory() as db:
            async with db.begin():
                await db.execute(
                    update(Booking)
                    .where(Booking.id == booking_id)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
