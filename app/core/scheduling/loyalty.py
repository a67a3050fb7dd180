"""Loyalty rules: points per booking, first-booking bonus and visit milestones."""

from dataclasses import dataclass, field
from typing import Optional

from app.config import Settings, get_settings

MILESTONE_MESSAGES = {
    5: "You've completed 5 bookings! You're becoming a regular! 🌟",
    10: "10 bookings! You're officially part of the family! 🎉",
    25: "25 bookings! You're a VIP customer! 👑",
    50: "50 bookings! Half-century milestone! 🏆",
    100: "100 bookings! Century club member! You're a legend! 🎖️",
}


@dataclass(frozen=True)
class LoyaltyPolicy:
    """How many points a booking earns and which visit counts are celebrated."""

    enabled: bool = True
    points_per_booking: int = 10
    first_booking_bonus: int = 50
    milestones: frozenset[int] = field(
        default_factory=lambda: frozenset(MILESTONE_MESSAGES)
    )
    usual_service_threshold: int = 3

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "LoyaltyPolicy":
        settings = settings or get_settings()
        return cls(
            enabled=settings.loyalty_enabled,
            points_per_booking=settings.loyalty_points_per_booking,
            first_booking_bonus=settings.loyalty_first_booking_bonus,
            milestones=frozenset(settings.loyalty_milestones_list),
            usual_service_threshold=settings.usual_service_threshold,
        )

    def points_for(self, booking_number: int) -> int:
        """
        Points earned by a customer's n-th booking (1-based).

        Example:
            >>> LoyaltyPolicy().points_for(1)
            60
            >>> LoyaltyPolicy().points_for(2)
            10
        """
        if not self.enabled:
            return 0
        if booking_number == 1:
            return self.points_per_booking + self.first_booking_bonus
        return self.points_per_booking

    def is_milestone(self, completed_visits: int) -> bool:
        return self.enabled and completed_visits in self.milestones

    @staticmethod
    def milestone_message(completed_visits: int) -> str:
        return MILESTONE_MESSAGES.get(
            completed_visits,
            f"You've completed {completed_visits} bookings! Thank you for your loyalty! ⭐",
        )
