"""Business calendar: opening hours, closed weekdays and slot rules."""

from dataclasses import dataclass, field
from datetime import date, time, timedelta
from typing import Optional

from app.config import Settings, get_settings

WEEKDAYS = (
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
)


@dataclass(frozen=True)
class BusinessCalendar:
    """Shop-wide rules the availability engine works against."""

    opening_time: time = time(9, 0)
    closing_time: time = time(19, 0)
    closed_weekdays: frozenset[int] = field(default_factory=lambda: frozenset({6}))
    slot_interval_minutes: int = 15
    minimum_advance_minutes: int = 120

    def __post_init__(self) -> None:
        if self.closing_time <= self.opening_time:
            raise ValueError("closing_time must be after opening_time")
        if self.slot_interval_minutes <= 0:
            raise ValueError("slot_interval_minutes must be positive")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "BusinessCalendar":
        """Build the calendar from application settings."""
        settings = settings or get_settings()
        closed = set()
        for name in settings.closed_days_list:
            if name not in WEEKDAYS:
                raise ValueError(f"Unknown weekday in closed_days: {name}")
            closed.add(WEEKDAYS.index(name))

        return cls(
            opening_time=settings.opening_time,
            closing_time=settings.closing_time,
            closed_weekdays=frozenset(closed),
            slot_interval_minutes=settings.slot_interval_minutes,
            minimum_advance_minutes=settings.minimum_advance_minutes,
        )

    @property
    def slot_interval(self) -> timedelta:
        return timedelta(minutes=self.slot_interval_minutes)

    @property
    def minimum_advance(self) -> timedelta:
        return timedelta(minutes=self.minimum_advance_minutes)

    def is_open(self, day: date) -> bool:
        """Check whether the shop opens on this date."""
        return day.weekday() not in self.closed_weekdays
