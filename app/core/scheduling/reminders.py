"""
Reminder passes invoked by the job runner on a wall-clock cadence.

A reminder flag is only set when the channel accepted the message, so a
failed send is retried on the next pass.
"""

import logging
from typing import Optional

from app.config import Settings, get_settings
from app.infra.notifications import MessageChannel
from app.models.database import Booking
from .ledger import BookingLedger

logger = logging.getLogger(__name__)


def _day_before_text(booking: Booking, settings: Settings) -> str:
    return (
        f"⏰ Reminder: your appointment is tomorrow!\n\n"
        f"📋 {booking.service.name} with {booking.provider.name}\n"
        f"🕐 {booking.start_time.strftime('%H:%M')}\n"
        f"📍 {settings.shop_address}\n\n"
        f"Need to cancel? Reply 4 from the main menu and quote {booking.booking_code}."
    )


def _short_horizon_text(booking: Booking, settings: Settings) -> str:
    return (
        f"⏰ See you soon! Your {booking.service.name} with {booking.provider.name} "
        f"starts at {booking.start_time.strftime('%H:%M')}.\n"
        f"📍 {settings.shop_address}"
    )


class ReminderService:
    """Sends day-before and short-horizon reminders for CONFIRMED bookings."""

    def __init__(
        self,
        ledger: BookingLedger,
        channel: MessageChannel,
        settings: Optional[Settings] = None,
    ):
        self.ledger = ledger
        self.channel = channel
        self.settings = settings or get_settings()

    async def send_day_before_reminders(self) -> int:
        """Remind customers booked for tomorrow. Returns reminders sent."""
        if not (self.settings.reminders_enabled and self.settings.day_before_reminders_enabled):
            logger.debug("Day-before reminders disabled")
            return 0

        sent = 0
        for booking in await self.ledger.due_day_before_reminders():
            if await self.channel.send(
                booking.customer_identity, _day_before_text(booking, self.settings)
            ):
                await self.ledger.mark_reminder_sent(booking.id, day_before=True)
                sent += 1
            else:
                logger.warning(f"Day-before reminder for {booking.booking_code} not delivered")

        logger.info(f"Day-before reminders sent: {sent}")
        return sent

    async def send_short_horizon_reminders(self) -> int:
        """Remind customers whose booking starts shortly. Returns reminders sent."""
        if not (self.settings.reminders_enabled and self.settings.short_horizon_reminders_enabled):
            logger.debug("Short-horizon reminders disabled")
            return 0

        due = await self.ledger.due_short_horizon_reminders(
            self.settings.short_horizon_minutes_before,
            self.settings.short_horizon_window_minutes,
        )

        sent = 0
        for booking in due:
            if await self.channel.send(
                booking.customer_identity, _short_horizon_text(booking, self.settings)
            ):
                await self.ledger.mark_reminder_sent(booking.id, day_before=False)
                sent += 1
            else:
                logger.warning(f"Short-horizon reminder for {booking.booking_code} not delivered")

        logger.info(f"Short-horizon reminders sent: {sent}")
        return sent
