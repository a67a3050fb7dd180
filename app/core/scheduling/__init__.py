"""Scheduling: business calendar, availability, booking ledger and reminders."""

from .availability import (
    AvailabilityEngine,
    BusyInterval,
    DateAvailability,
    SlotCheck,
)
from .calendar import BusinessCalendar
from .catalog import Catalog
from .loyalty import LoyaltyPolicy
from .ledger import (
    BookingLedger,
    LedgerError,
    ReservationResult,
    is_valid_booking_code,
)
from .reminders import ReminderService

__all__ = [
    "AvailabilityEngine",
    "BookingLedger",
    "BusinessCalendar",
    "BusyInterval",
    "Catalog",
    "DateAvailability",
    "LedgerError",
    "LoyaltyPolicy",
    "ReminderService",
    "ReservationResult",
    "SlotCheck",
    "is_valid_booking_code",
]
