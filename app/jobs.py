#!/usr/bin/env python3
"""
Scheduled Jobs

Runs one booking-maintenance pass and exits. Meant to be called from cron
or a Kubernetes CronJob on its own cadence.

Usage:
    python -m app.jobs auto-complete          # every 15 minutes
    python -m app.jobs day-before             # daily, e.g. 18:00
    python -m app.jobs short-horizon          # every 10 minutes
    python -m app.jobs potential-no-shows     # list today's late arrivals
    python -m app.jobs mark-no-show 42        # booking id
    python -m app.jobs seed                   # load starter services/barbers
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from app.config import get_settings
from app.core.scheduling import (
    AvailabilityEngine,
    BookingLedger,
    BusinessCalendar,
    ReminderService,
)
from app.infra.database import async_session_factory, close_db, init_db
from app.infra.notifications import get_message_channel
from app.infra.seed import seed_catalog

logger = logging.getLogger("app.jobs")


def build_ledger() -> BookingLedger:
    settings = get_settings()
    engine = AvailabilityEngine(BusinessCalendar.from_settings(settings))
    return BookingLedger(async_session_factory, engine, now=settings.local_now)


async def run(command: str, booking_id: Optional[int] = None) -> int:
    """Run one job. Returns the number of items processed."""
    ledger = build_ledger()

    if command == "auto-complete":
        return await ledger.auto_complete_due()

    if command in ("day-before", "short-horizon"):
        channel = get_message_channel()
        try:
            reminders = ReminderService(ledger, channel)
            if command == "day-before":
                return await reminders.send_day_before_reminders()
            return await reminders.send_short_horizon_reminders()
        finally:
            await channel.close()

    if command == "potential-no-shows":
        bookings = await ledger.potential_no_shows()
        for booking in bookings:
            print(
                f"{booking.id}\t{booking.booking_code}\t{booking.start_time:%H:%M}\t"
                f"{booking.provider.name}\t{booking.customer_identity}"
            )
        return len(bookings)

    if command == "mark-no-show":
        return 1 if await ledger.mark_no_show(booking_id) else 0

    if command == "seed":
        await init_db()
        return 1 if await seed_catalog(async_session_factory) else 0

    raise ValueError(f"Unknown job: {command}")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="app.jobs", description="Booking maintenance jobs")
    parser.add_argument(
        "command",
        choices=[
            "auto-complete",
            "day-before",
            "short-horizon",
            "potential-no-shows",
            "mark-no-show",
            "seed",
        ],
    )
    parser.add_argument("booking_id", nargs="?", type=int, help="Booking id for mark-no-show")
    args = parser.parse_args(argv)
    if args.command == "mark-no-show" and args.booking_id is None:
        parser.error("mark-no-show requires a booking id")
    return args


async def main(argv: Optional[list[str]] = None) -> int:
    """Entry point; returns a process exit code."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if get_settings().debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        processed = await run(args.command, args.booking_id)
        logger.info(f"Job {args.command} processed {processed} item(s)")
        return 0
    except Exception:
        logger.exception(f"Job {args.command} failed")
        return 1
    finally:
        await close_db()


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
