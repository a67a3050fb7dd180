"""Tests for the booking ledger and reminder passes."""

import asyncio
from datetime import date, datetime, time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import func, select

from app.core.scheduling.ledger import BookingLedger, LedgerError, is_valid_booking_code
from app.core.scheduling.loyalty import LoyaltyPolicy
from app.core.scheduling.reminders import ReminderService
from app.core.scheduling.availability import SlotCheck
from app.models.database import Booking, BookingStatus, Customer, Provider

from .conftest import (
    BEARD_TRIM,
    CUSTOMER,
    JOHN,
    MIKE,
    OTHER_CUSTOMER,
    SKIN_FADE,
    STANDARD_CUT,
)

TODAY = date(2024, 1, 15)
TOMORROW = date(2024, 1, 16)


class SequenceRng:
    """Random source returning preset values."""

    def __init__(self, values):
        self._values = list(values)

    def randint(self, low, high):
        if len(self._values) > 1:
            return self._values.pop(0)
        return self._values[0]


async def _customer(session_factory, identity) -> Customer:
    async with session_factory() as db:
        result = await db.execute(select(Customer).where(Customer.identity == identity))
        return result.scalar_one()


async def _provider(session_factory, provider_id) -> Provider:
    async with session_factory() as db:
        return await db.get(Provider, provider_id)


async def _booking_count(session_factory) -> int:
    async with session_factory() as db:
        return await db.scalar(select(func.count()).select_from(Booking))


class TestBookingCodes:
    """Test the public code format."""

    def test_valid(self):
        assert is_valid_booking_code("BK0042")
        assert is_valid_booking_code("BK9999")

    def test_invalid(self):
        assert not is_valid_booking_code("BK12")
        assert not is_valid_booking_code("bk1234")
        assert not is_valid_booking_code("BK12345")
        assert not is_valid_booking_code("1234")


class TestCreateReservation:
    """Test booking creation."""

    @pytest.mark.asyncio
    async def test_creates_confirmed_booking(self, ledger, session_factory):
        """Test a valid slot becomes a CONFIRMED booking with a code."""
        result = await ledger.create_reservation(
            CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(10, 0)
        )

        assert result.success
        booking = result.booking
        assert is_valid_booking_code(booking.booking_code)
        assert booking.status == BookingStatus.CONFIRMED
        assert booking.end_time == time(10, 30)
        assert booking.service.name == "Standard Cut"
        assert booking.provider.name == "Mike"

        stored = await ledger.get_by_code(booking.booking_code)
        assert stored.customer_identity == CUSTOMER

    @pytest.mark.asyncio
    async def test_updates_counters(self, ledger, session_factory):
        """Test provider and customer totals are incremented."""
        await ledger.create_reservation(CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(10, 0))
        await ledger.create_reservation(CUSTOMER, BEARD_TRIM, MIKE, TOMORROW, time(11, 0))

        provider = await _provider(session_factory, MIKE)
        customer = await _customer(session_factory, CUSTOMER)
        assert provider.total_bookings == 2
        assert customer.total_bookings == 2

    @pytest.mark.asyncio
    async def test_rejects_past_slot(self, ledger, session_factory):
        result = await ledger.create_reservation(
            CUSTOMER, STANDARD_CUT, MIKE, TODAY, time(9, 0)
        )

        assert not result.success
        assert result.error_code == LedgerError.SLOT_UNAVAILABLE
        assert result.slot_check == SlotCheck.IN_PAST
        assert await _booking_count(session_factory) == 0

    @pytest.mark.asyncio
    async def test_rejects_short_notice(self, ledger):
        result = await ledger.create_reservation(
            CUSTOMER, STANDARD_CUT, MIKE, TODAY, time(11, 0)
        )

        assert result.error_code == LedgerError.SLOT_UNAVAILABLE
        assert result.slot_check == SlotCheck.TOO_SOON

    @pytest.mark.asyncio
    async def test_rejects_overlap(self, ledger):
        """Test a second booking overlapping the first is refused."""
        first = await ledger.create_reservation(
            CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(14, 0)
        )
        second = await ledger.create_reservation(
            OTHER_CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(14, 15)
        )

        assert first.success
        assert second.error_code == LedgerError.SLOT_UNAVAILABLE
        assert second.slot_check == SlotCheck.CONFLICT

    @pytest.mark.asyncio
    async def test_same_time_different_provider(self, ledger):
        first = await ledger.create_reservation(
            CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(14, 0)
        )
        second = await ledger.create_reservation(
            OTHER_CUSTOMER, STANDARD_CUT, JOHN, TOMORROW, time(14, 0)
        )

        assert first.success
        assert second.success

    @pytest.mark.asyncio
    async def test_concurrent_overlapping_requests(self, ledger, session_factory):
        """Test exactly one of two racing overlapping bookings wins."""
        results = await asyncio.gather(
            ledger.create_reservation(CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(10, 0)),
            ledger.create_reservation(OTHER_CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(10, 15)),
        )

        successes = [r for r in results if r.success]
        failures = [r for r in results if not r.success]
        assert len(successes) == 1
        assert len(failures) == 1
        assert failures[0].error_code == LedgerError.SLOT_UNAVAILABLE
        assert await _booking_count(session_factory) == 1

    @pytest.mark.asyncio
    async def test_unknown_service(self, ledger):
        result = await ledger.create_reservation(CUSTOMER, 99, MIKE, TOMORROW, time(10, 0))
        assert result.error_code == LedgerError.SERVICE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_unknown_provider(self, ledger):
        result = await ledger.create_reservation(
            CUSTOMER, STANDARD_CUT, 99, TOMORROW, time(10, 0)
        )
        assert result.error_code == LedgerError.PROVIDER_NOT_FOUND

    @pytest.mark.asyncio
    async def test_code_collision_is_redrawn(self, session_factory, engine, clock):
        """Test an already issued code is not handed out twice."""
        ledger = BookingLedger(
            session_factory, engine, now=clock, rng=SequenceRng([1234, 1234, 5678])
        )

        first = await ledger.create_reservation(
            CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(10, 0)
        )
        second = await ledger.create_reservation(
            CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(11, 0)
        )

        assert first.booking.booking_code == "BK1234"
        assert second.booking.booking_code == "BK5678"

    @pytest.mark.asyncio
    async def test_code_attempts_exhausted(self, session_factory, engine, clock):
        """Test the time-derived fallback code after repeated collisions."""
        ledger = BookingLedger(session_factory, engine, now=clock, rng=SequenceRng([1234]))
        await ledger.create_reservation(CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(10, 0))

        with patch("app.core.scheduling.ledger.time_module") as mock_time:
            mock_time.time.return_value = 1700000004.5
            result = await ledger.create_reservation(
                CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(11, 0)
            )

        assert result.booking.booking_code == "BK4500"

    @pytest.mark.asyncio
    async def test_time_derived_code_steps_past_collision(self, session_factory, engine, clock):
        """Test the fallback code moves on when it is already issued."""
        ledger = BookingLedger(session_factory, engine, now=clock, rng=SequenceRng([1234]))
        await ledger.create_reservation(CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(10, 0))

        with patch("app.core.scheduling.ledger.time_module") as mock_time:
            mock_time.time.return_value = 1700000001.2345
            result = await ledger.create_reservation(
                CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(11, 0)
            )

        assert result.success
        assert result.booking.booking_code == "BK1235"

    @pytest.mark.asyncio
    async def test_no_free_code(self, ledger, session_factory):
        with patch.object(ledger, "_code_taken", AsyncMock(return_value=True)):
            result = await ledger.create_reservation(
                CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(10, 0)
            )

        assert not result.success
        assert result.error_code == LedgerError.CODE_UNAVAILABLE
        assert await _booking_count(session_factory) == 0

    @pytest.mark.asyncio
    async def test_duplicate_code_on_insert(self, ledger, session_factory):
        """Test a code stored by another writer after the check is reported, not raised."""
        first = await ledger.create_reservation(
            CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(10, 0)
        )

        with patch.object(
            ledger, "_generate_code", AsyncMock(return_value=first.booking.booking_code)
        ):
            result = await ledger.create_reservation(
                OTHER_CUSTOMER, STANDARD_CUT, JOHN, TOMORROW, time(10, 0)
            )

        assert not result.success
        assert result.error_code == LedgerError.CODE_UNAVAILABLE
        assert await _booking_count(session_factory) == 1
        assert (await _provider(session_factory, JOHN)).total_bookings == 0
        assert (await _customer(session_factory, OTHER_CUSTOMER)).total_bookings == 0


class TestCustomerProfile:
    """Test loyalty points and preference tracking on new bookings."""

    @pytest.mark.asyncio
    async def test_first_booking_bonus(self, ledger, session_factory):
        await ledger.create_reservation(CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(10, 0))

        customer = await _customer(session_factory, CUSTOMER)
        assert customer.total_bookings == 1
        assert customer.loyalty_points == 60
        assert customer.lifetime_loyalty_points == 60
        assert customer.preferred_service_id == STANDARD_CUT
        assert customer.preferred_service_count == 1
        assert customer.preferred_provider_id == MIKE
        assert customer.preferred_provider_count == 1

    @pytest.mark.asyncio
    async def test_preferences_follow_most_booked(self, ledger, session_factory):
        await ledger.create_reservation(CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(10, 0))
        await ledger.create_reservation(CUSTOMER, SKIN_FADE, JOHN, TOMORROW, time(11, 0))

        customer = await _customer(session_factory, CUSTOMER)
        assert customer.loyalty_points == 70
        # Ties go to the latest booking
        assert customer.preferred_service_id == SKIN_FADE
        assert customer.preferred_provider_id == JOHN

        await ledger.create_reservation(CUSTOMER, STANDARD_CUT, JOHN, TOMORROW, time(13, 0))
        await ledger.create_reservation(CUSTOMER, BEARD_TRIM, MIKE, TOMORROW, time(15, 0))

        customer = await _customer(session_factory, CUSTOMER)
        assert customer.total_bookings == 4
        assert customer.loyalty_points == 90
        assert customer.preferred_service_id == STANDARD_CUT
        assert customer.preferred_service_count == 2
        # Mike draws level with John on the latest booking
        assert customer.preferred_provider_id == MIKE
        assert customer.preferred_provider_count == 2

    @pytest.mark.asyncio
    async def test_cancelled_bookings_not_counted(self, ledger, session_factory):
        first = await ledger.create_reservation(
            CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(10, 0)
        )
        await ledger.cancel_reservation(first.booking.booking_code, CUSTOMER)
        await ledger.create_reservation(CUSTOMER, SKIN_FADE, JOHN, TOMORROW, time(11, 0))

        customer = await _customer(session_factory, CUSTOMER)
        assert customer.preferred_service_id == SKIN_FADE
        assert customer.preferred_service_count == 1
        assert customer.preferred_provider_id == JOHN

    @pytest.mark.asyncio
    async def test_loyalty_disabled(self, session_factory, engine, clock):
        ledger = BookingLedger(
            session_factory, engine, now=clock, loyalty=LoyaltyPolicy(enabled=False)
        )

        await ledger.create_reservation(CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(10, 0))

        customer = await _customer(session_factory, CUSTOMER)
        assert customer.total_bookings == 1
        assert customer.loyalty_points == 0
        assert customer.preferred_service_id == STANDARD_CUT

    @pytest.mark.asyncio
    async def test_rejected_booking_leaves_profile(self, ledger, session_factory):
        await ledger.create_reservation(CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(10, 0))
        await ledger.create_reservation(OTHER_CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(10, 0))

        other = await _customer(session_factory, OTHER_CUSTOMER)
        assert other.total_bookings == 0
        assert other.loyalty_points == 0
        assert other.preferred_service_id is None


class TestLoyaltyPolicy:
    def test_points(self):
        policy = LoyaltyPolicy()
        assert policy.points_for(1) == 60
        assert policy.points_for(2) == 10
        assert LoyaltyPolicy(enabled=False).points_for(1) == 0

    def test_milestones(self):
        policy = LoyaltyPolicy()
        assert policy.is_milestone(5)
        assert not policy.is_milestone(6)
        assert not LoyaltyPolicy(enabled=False).is_milestone(5)
        assert "regular" in policy.milestone_message(5)
        assert policy.milestone_message(7).startswith("You've completed 7 bookings!")

    def test_from_settings(self, settings):
        settings.loyalty_milestones = "3, 6"
        settings.loyalty_points_per_booking = 5

        policy = LoyaltyPolicy.from_settings(settings)

        assert policy.milestones == frozenset({3, 6})
        assert policy.points_for(2) == 5


class TestCancelReservation:
    """Test cancellation rules."""

    @pytest.fixture
    async def booking(self, ledger):
        result = await ledger.create_reservation(
            CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(10, 0)
        )
        return result.booking

    @pytest.mark.asyncio
    async def test_cancel(self, ledger, booking, session_factory):
        result = await ledger.cancel_reservation(booking.booking_code, CUSTOMER)

        assert result.success
        stored = await ledger.get_by_code(booking.booking_code)
        assert stored.status == BookingStatus.CANCELLED
        assert stored.cancelled_at is not None
        customer = await _customer(session_factory, CUSTOMER)
        assert customer.cancelled_bookings == 1

    @pytest.mark.asyncio
    async def test_not_found(self, ledger):
        result = await ledger.cancel_reservation("BK0000", CUSTOMER)
        assert result.error_code == LedgerError.NOT_FOUND

    @pytest.mark.asyncio
    async def test_not_owner(self, ledger, booking):
        """Test another customer cannot cancel the booking."""
        result = await ledger.cancel_reservation(booking.booking_code, OTHER_CUSTOMER)

        assert result.error_code == LedgerError.NOT_OWNER
        stored = await ledger.get_by_code(booking.booking_code)
        assert stored.status == BookingStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_already_cancelled(self, ledger, booking):
        await ledger.cancel_reservation(booking.booking_code, CUSTOMER)
        result = await ledger.cancel_reservation(booking.booking_code, CUSTOMER)
        assert result.error_code == LedgerError.ALREADY_CANCELLED

    @pytest.mark.asyncio
    async def test_completed_cannot_be_cancelled(self, ledger, booking):
        await ledger.complete_reservation(booking.id)
        result = await ledger.cancel_reservation(booking.booking_code, CUSTOMER)
        assert result.error_code == LedgerError.NOT_CONFIRMED

    @pytest.mark.asyncio
    async def test_cancelled_slot_is_free_again(self, ledger, booking):
        """Test cancelled bookings no longer block availability."""
        busy = await ledger.busy_intervals(MIKE, TOMORROW)
        assert len(busy[TOMORROW]) == 1

        await ledger.cancel_reservation(booking.booking_code, CUSTOMER)

        assert await ledger.busy_intervals(MIKE, TOMORROW) == {}
        again = await ledger.create_reservation(
            OTHER_CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(10, 0)
        )
        assert again.success


class TestCloseOut:
    """Test completion and no-show transitions."""

    @pytest.mark.asyncio
    async def test_complete(self, ledger, session_factory):
        result = await ledger.create_reservation(
            CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(10, 0)
        )

        assert await ledger.complete_reservation(result.booking.id)
        assert not await ledger.complete_reservation(result.booking.id)

        provider = await _provider(session_factory, MIKE)
        customer = await _customer(session_factory, CUSTOMER)
        assert provider.completed_bookings == 1
        assert customer.completed_bookings == 1
        assert customer.first_visit == TOMORROW
        assert customer.last_visit == TOMORROW

    @pytest.mark.asyncio
    async def test_no_show(self, ledger, session_factory):
        result = await ledger.create_reservation(
            CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(10, 0)
        )

        assert await ledger.mark_no_show(result.booking.id)
        assert not await ledger.complete_reservation(result.booking.id)

        stored = await ledger.get_by_code(result.booking.booking_code)
        assert stored.status == BookingStatus.NO_SHOW
        customer = await _customer(session_factory, CUSTOMER)
        assert customer.no_show_count == 1

    @pytest.mark.asyncio
    async def test_unknown_booking(self, ledger):
        assert not await ledger.mark_no_show(12345)

    @pytest.mark.asyncio
    async def test_auto_complete_due(self, ledger, clock):
        """Test only bookings that have ended are completed."""
        today = await ledger.create_reservation(
            CUSTOMER, STANDARD_CUT, MIKE, TODAY, time(12, 0)
        )
        tomorrow = await ledger.create_reservation(
            CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(12, 0)
        )

        clock.set(datetime(2024, 1, 15, 12, 29))
        assert await ledger.auto_complete_due() == 0

        clock.set(datetime(2024, 1, 15, 12, 30))
        assert await ledger.auto_complete_due() == 1

        assert (await ledger.get_by_code(today.booking.booking_code)).status == BookingStatus.COMPLETED
        assert (await ledger.get_by_code(tomorrow.booking.booking_code)).status == BookingStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_potential_no_shows(self, ledger, clock):
        result = await ledger.create_reservation(
            CUSTOMER, STANDARD_CUT, MIKE, TODAY, time(12, 0)
        )

        clock.set(datetime(2024, 1, 15, 12, 10))
        assert await ledger.potential_no_shows() == []

        clock.set(datetime(2024, 1, 15, 12, 16))
        late = await ledger.potential_no_shows()
        assert [b.booking_code for b in late] == [result.booking.booking_code]


class TestCustomerReservations:
    """Test the customer's upcoming bookings."""

    @pytest.mark.asyncio
    async def test_lists_confirmed_soonest_first(self, ledger):
        later = await ledger.create_reservation(
            CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(15, 0)
        )
        sooner = await ledger.create_reservation(
            CUSTOMER, BEARD_TRIM, JOHN, TODAY, time(13, 0)
        )
        dropped = await ledger.create_reservation(
            CUSTOMER, STANDARD_CUT, JOHN, TOMORROW, time(9, 0)
        )
        await ledger.create_reservation(OTHER_CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(9, 0))
        await ledger.cancel_reservation(dropped.booking.booking_code, CUSTOMER)

        bookings = await ledger.customer_reservations(CUSTOMER)

        assert [b.booking_code for b in bookings] == [
            sooner.booking.booking_code,
            later.booking.booking_code,
        ]
        assert bookings[0].service.name == "Beard Trim"
        assert bookings[0].provider.name == "John"


class TestReminderService:
    """Test reminder passes."""

    @pytest.mark.asyncio
    async def test_day_before(self, ledger, channel, settings):
        """Test tomorrow's bookings are reminded once."""
        result = await ledger.create_reservation(
            CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(10, 0)
        )
        reminders = ReminderService(ledger, channel, settings)

        assert await reminders.send_day_before_reminders() == 1
        assert await reminders.send_day_before_reminders() == 0

        identity, text = channel.send.call_args.args
        assert identity == CUSTOMER
        assert result.booking.booking_code in text
        stored = await ledger.get_by_code(result.booking.booking_code)
        assert stored.day_before_reminder_sent
        assert stored.day_before_reminder_sent_at is not None

    @pytest.mark.asyncio
    async def test_failed_send_is_retried(self, ledger, settings):
        """Test a rejected message leaves the flag unset."""
        await ledger.create_reservation(CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(10, 0))
        channel = MagicMock()
        channel.send = AsyncMock(return_value=False)

        reminders = ReminderService(ledger, channel, settings)

        assert await reminders.send_day_before_reminders() == 0
        assert len(await ledger.due_day_before_reminders()) == 1

    @pytest.mark.asyncio
    async def test_short_horizon(self, ledger, channel, settings, clock):
        """Test a booking an hour out is reminded within the window."""
        await ledger.create_reservation(CUSTOMER, STANDARD_CUT, MIKE, TODAY, time(12, 0))
        await ledger.create_reservation(CUSTOMER, STANDARD_CUT, MIKE, TODAY, time(16, 0))
        reminders = ReminderService(ledger, channel, settings)

        clock.set(datetime(2024, 1, 15, 11, 0))
        assert await reminders.send_short_horizon_reminders() == 1
        assert await reminders.send_short_horizon_reminders() == 0

    @pytest.mark.asyncio
    async def test_disabled(self, ledger, channel, settings):
        await ledger.create_reservation(CUSTOMER, STANDARD_CUT, MIKE, TOMORROW, time(10, 0))
        settings.reminders_enabled = False
        reminders = ReminderService(ledger, channel, settings)

        assert await reminders.send_day_before_reminders() == 0
        channel.send.assert_not_called()
