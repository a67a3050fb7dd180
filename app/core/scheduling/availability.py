"""
Availability Engine

Pure computation of bookable start times. Nothing here touches the database
or the clock: callers pass in the provider's busy intervals and "now".
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Mapping, Sequence

from .calendar import BusinessCalendar


@dataclass(frozen=True)
class BusyInterval:
    """A half-open [start, end) span already taken on a provider's day."""

    start: time
    end: time

    def overlaps(self, start: time, end: time) -> bool:
        """Touching endpoints do not conflict."""
        return self.start < end and self.end > start


@dataclass(frozen=True)
class DateAvailability:
    """A bookable date and how many slots it offers."""

    day: date
    slot_count: int


class SlotCheck(str, Enum):
    """Verdict of validate_slot."""

    OK = "ok"
    CLOSED_DAY = "closed_day"
    OUTSIDE_HOURS = "outside_hours"
    IN_PAST = "in_past"
    TOO_SOON = "too_soon"
    CONFLICT = "conflict"

    @property
    def ok(self) -> bool:
        return self is SlotCheck.OK


def _conflicts(busy: Sequence[BusyInterval], start: time, end: time) -> bool:
    return any(interval.overlaps(start, end) for interval in busy)


class AvailabilityEngine:
    """
    Computes slots, bookable dates and slot validity for one calendar.

    Example:
        engine = AvailabilityEngine(BusinessCalendar())
        slots = engine.slots_for_date(day, 30, busy, now)
    """

    def __init__(self, calendar: BusinessCalendar):
        self.calendar = calendar

    def earliest_start(self, day: date, now: datetime) -> time | None:
        """
        Earliest start time allowed on a date, or None if the date is gone.

        For today this is now plus the minimum notice; a result that lands
        on another day or at/after closing leaves nothing bookable.
        """
        today = now.date()
        if day < today:
            return None
        if day > today:
            return self.calendar.opening_time

        earliest = now + self.calendar.minimum_advance
        if earliest.date() != day:
            return None
        if earliest.time() >= self.calendar.closing_time:
            return None
        return max(earliest.time(), self.calendar.opening_time)

    def slots_for_date(
        self,
        day: date,
        duration_minutes: int,
        busy: Sequence[BusyInterval],
        now: datetime,
    ) -> list[time]:
        """
        Ordered bookable start times for a provider on a date.

        Candidates run from opening in slot-interval steps while the service
        still finishes by closing.
        """
        if not self.calendar.is_open(day):
            return []

        earliest = self.earliest_start(day, now)
        if earliest is None:
            return []

        duration = timedelta(minutes=duration_minutes)
        closing = datetime.combine(day, self.calendar.closing_time)
        candidate = datetime.combine(day, self.calendar.opening_time)

        slots: list[time] = []
        while candidate + duration <= closing:
            start = candidate.time()
            end = (candidate + duration).time()
            if start >= earliest and not _conflicts(busy, start, end):
                slots.append(start)
            candidate += self.calendar.slot_interval

        return slots

    def dates_with_availability(
        self,
        duration_minutes: int,
        busy_by_date: Mapping[date, Sequence[BusyInterval]],
        now: datetime,
        horizon_days: int,
    ) -> list[DateAvailability]:
        """Dates from today onward (scan order) that have at least one slot."""
        today = now.date()
        result: list[DateAvailability] = []

        for offset in range(horizon_days):
            day = today + timedelta(days=offset)
            if not self.calendar.is_open(day):
                continue
            slots = self.slots_for_date(
                day, duration_minutes, busy_by_date.get(day, ()), now
            )
            if slots:
                result.append(DateAvailability(day=day, slot_count=len(slots)))

        return result

    def validate_slot(
        self,
        day: date,
        start: time,
        duration_minutes: int,
        busy: Sequence[BusyInterval],
        now: datetime,
    ) -> SlotCheck:
        """Authoritative eligibility check run right before a booking write."""
        if not self.calendar.is_open(day):
            return SlotCheck.CLOSED_DAY

        start_dt = datetime.combine(day, start)
        end_dt = start_dt + timedelta(minutes=duration_minutes)
        closing = datetime.combine(day, self.calendar.closing_time)
        if start < self.calendar.opening_time or end_dt > closing:
            return SlotCheck.OUTSIDE_HOURS

        if start_dt < now:
            return SlotCheck.IN_PAST

        if day == now.date() and start_dt < now + self.calendar.minimum_advance:
            return SlotCheck.TOO_SOON

        if _conflicts(busy, start, end_dt.time()):
            return SlotCheck.CONFLICT

        return SlotCheck.OK
