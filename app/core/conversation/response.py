"""
Reply templates for the booking dialogue.

Everything the customer reads is built here so handlers only decide *what*
to show.
"""

from datetime import date, time, timedelta
from decimal import Decimal
from typing import Optional, Sequence

from app.config import Settings
from app.core.scheduling.availability import DateAvailability
from app.core.scheduling.loyalty import LoyaltyPolicy
from app.models.database import Booking, Customer, Provider, Service

KEYCAPS = ["0️⃣", "1️⃣", "2️⃣", "3️⃣", "4️⃣", "5️⃣", "6️⃣", "7️⃣", "8️⃣", "9️⃣", "🔟"]

MENU_HINT = "0️⃣ - Main Menu"

GENERIC_ERROR = f"Something went wrong. Let's start over!\n\n{MENU_HINT}"
TECHNICAL_DIFFICULTIES = (
    "We're experiencing technical difficulties. Please try again in a moment."
)
DIDNT_UNDERSTAND = "⚠️ I didn't understand that. Reply 0 for the main menu."

FAQ_ENTRIES = [
    ("What are your opening hours?", "hours"),
    ("Where are you located?", "location"),
    ("Do you take walk-ins?", "walk_ins"),
    ("How can I pay?", "payment"),
    ("What is your cancellation policy?", "cancellation"),
]


def keycap(n: int) -> str:
    """Number as a keycap emoji, plain digits past ten."""
    return KEYCAPS[n] if 0 <= n < len(KEYCAPS) else f"{n}."


def price(amount: Decimal) -> str:
    if amount == amount.to_integral_value():
        return f"€{int(amount)}"
    return f"€{amount:.2f}"


def hhmm(value: time) -> str:
    return value.strftime("%H:%M")


def date_label(day: date, today: date) -> str:
    """Today / Tomorrow / weekday, with day and month."""
    if day == today:
        name = "Today"
    elif day == today + timedelta(days=1):
        name = "Tomorrow"
    else:
        name = day.strftime("%A")
    return f"{name} ({day.strftime('%d %b')})"


def invalid_number(count: int) -> str:
    return f"⚠️ Please enter a valid number (1-{count})"


def with_note(note: str | None, body: str) -> str:
    return f"{note}\n\n{body}" if note else body


# === Menus ===

def main_menu(settings: Settings) -> str:
    return (
        f"💈 Welcome to {settings.shop_name}!\n\n"
        f"What would you like to do?\n\n"
        f"1️⃣ - View services & prices\n"
        f"2️⃣ - Book an appointment\n"
        f"3️⃣ - My bookings\n"
        f"4️⃣ - Cancel a booking\n"
        f"5️⃣ - FAQ\n\n"
        f"Reply with a number."
    )


def services_overview(services: Sequence[Service], settings: Settings) -> str:
    lines = ["✂️ Our services:\n"]
    for service in services:
        lines.append(
            f"• {service.name} - {price(service.price)} ({service.duration_minutes} min)"
        )
        if service.description:
            lines.append(f"  {service.description}")
    lines.append(f"\n📍 {settings.shop_address}")
    lines.append(f"\n1️⃣ - Book now\n{MENU_HINT}")
    return "\n".join(lines)


def faq_menu() -> str:
    lines = ["❓ Frequently asked questions:\n"]
    for n, (question, _) in enumerate(FAQ_ENTRIES, start=1):
        lines.append(f"{keycap(n)} {question}")
    lines.append(f"\nReply with a number.\n{MENU_HINT}")
    return "\n".join(lines)


def faq_answer(topic: str, settings: Settings) -> str:
    closed = ", ".join(day.capitalize() for day in settings.closed_days_list) or "never"
    answers = {
        "hours": (
            f"🕘 We're open {hhmm(settings.opening_time)}-{hhmm(settings.closing_time)}. "
            f"Closed: {closed}."
        ),
        "location": f"📍 {settings.shop_name}, {settings.shop_address}. Call us on {settings.shop_phone}.",
        "walk_ins": "🚶 Walk-ins are welcome when a chair is free, but booking guarantees your slot.",
        "payment": "💳 We accept cash, card and contactless.",
        "cancellation": (
            "📅 Cancel any time before your appointment with your booking code "
            "(option 4 in the main menu). Repeated no-shows may need a deposit."
        ),
    }
    return answers[topic]


# === Booking flow ===

def personalized_greeting(
    customer: Optional[Customer],
    loyalty: LoyaltyPolicy,
    usual_service: Optional[Service] = None,
) -> Optional[str]:
    """
    Greeting shown above the service list for returning customers.

    Milestone first, then the usual service, then a plain welcome back.
    None for new customers and for those yet to complete a visit.
    """
    if customer is None:
        return None

    visits = customer.completed_bookings
    if loyalty.is_milestone(visits):
        return (
            f"{loyalty.milestone_message(visits)}\n\n"
            f"💎 You have {customer.loyalty_points} loyalty points\n"
            f"📊 Total visits: {visits}\n\n"
            f"Thank you for being an amazing customer!"
        )

    if (
        usual_service is not None
        and customer.preferred_service_count >= loyalty.usual_service_threshold
    ):
        return f"Welcome back! 👋\n\n🪒 Your usual: *{usual_service.name}*"

    if customer.total_bookings == 0 or visits == 0:
        return None
    if visits == 1 or not loyalty.enabled:
        return "Welcome back! 👋 Great to see you again!"
    return (
        f"Welcome back! 👋\n\n"
        f"Visit #{visits + 1} • {customer.loyalty_points} Loyalty Points 💎"
    )


def choose_service(services: Sequence[Service]) -> str:
    lines = ["✂️ Which service would you like?\n"]
    for n, service in enumerate(services, start=1):
        lines.append(
            f"{keycap(n)} {service.name} - {price(service.price)} ({service.duration_minutes} min)"
        )
    lines.append(f"\n{MENU_HINT}")
    return "\n".join(lines)


def choose_provider(
    providers: Sequence[Provider],
    service: Service,
    usual_provider_id: Optional[int] = None,
) -> str:
    lines = [f"💈 Who would you like for your {service.name}?\n"]
    for n, provider in enumerate(providers, start=1):
        rating = f" ⭐ {provider.rating}" if provider.rating is not None else ""
        usual = " (Your usual)" if provider.id == usual_provider_id else ""
        lines.append(f"{keycap(n)} {provider.name}{rating}{usual}")
        if provider.bio:
            lines.append(f"   {provider.bio}")
    lines.append(f"\nBACK - Change service\n{MENU_HINT}")
    return "\n".join(lines)


def choose_date(dates: Sequence[DateAvailability], provider: Provider, today: date) -> str:
    lines = [f"📅 When would you like to see {provider.name}?\n"]
    for n, entry in enumerate(dates, start=1):
        slots = "slot" if entry.slot_count == 1 else "slots"
        lines.append(f"{keycap(n)} {date_label(entry.day, today)} - {entry.slot_count} {slots}")
    lines.append(f"\nBACK - Change barber\n{MENU_HINT}")
    return "\n".join(lines)


def no_dates(provider: Provider, horizon_days: int) -> str:
    return (
        f"😔 Sorry, {provider.name} has no free slots in the next {horizon_days} days.\n"
        f"Try another barber or check back later."
    )


def choose_time(slots: Sequence[time], day: date, today: date) -> str:
    lines = [f"🕐 Available times for {date_label(day, today)}:\n"]
    for n, slot in enumerate(slots, start=1):
        lines.append(f"{keycap(n)} {hhmm(slot)}")
    lines.append(f"\nBACK - Change date\n{MENU_HINT}")
    return "\n".join(lines)


DATE_FULL = "😔 Sorry, this date just became fully booked."
SLOT_TAKEN = "😔 Sorry, that time slot was just taken! Please pick another time."


def confirm_booking(service: Service, provider: Provider, day: date, start: time, today: date) -> str:
    return (
        f"📋 Please confirm your booking:\n\n"
        f"✂️ {service.name} - {price(service.price)}\n"
        f"💈 {provider.name}\n"
        f"📅 {date_label(day, today)}\n"
        f"🕐 {hhmm(start)}\n\n"
        f"Reply YES to confirm or NO to cancel."
    )


def booking_confirmed(booking: Booking, settings: Settings, today: date) -> str:
    return (
        f"✅ Booking confirmed!\n\n"
        f"🎫 Code: {booking.booking_code}\n"
        f"✂️ {booking.service.name}\n"
        f"💈 {booking.provider.name}\n"
        f"📅 {date_label(booking.booking_date, today)}\n"
        f"🕐 {hhmm(booking.start_time)} - {hhmm(booking.end_time)}\n"
        f"📍 {settings.shop_address}\n\n"
        f"Keep your code to cancel if plans change.\n{MENU_HINT}"
    )


BOOKING_ABANDONED = "❌ Booking cancelled."
YES_OR_NO = "⚠️ Please reply YES or NO"


# === My bookings ===

def my_bookings(bookings: Sequence[Booking], today: date) -> str:
    if not bookings:
        return f"📭 You have no upcoming bookings.\n\n2️⃣ from the main menu to book.\n{MENU_HINT}"
    lines = ["📅 Your upcoming bookings:\n"]
    for booking in bookings:
        lines.append(
            f"🎫 {booking.booking_code} - {booking.service.name} with {booking.provider.name}\n"
            f"   {date_label(booking.booking_date, today)} at {hhmm(booking.start_time)}"
        )
    lines.append(f"\n{MENU_HINT}")
    return "\n".join(lines)


# === Cancellation ===

CANCEL_PROMPT = f"🎫 Please enter your booking code (e.g. BK1234).\n\n{MENU_HINT}"
INVALID_CODE = "⚠️ Invalid booking code. Codes look like BK1234."
NOT_OWNER = "⚠️ That booking was made from a different number."
KEEP_BOOKING = "👍 No problem, your booking is kept."


def code_not_found(code: str) -> str:
    return f"❌ Booking {code} not found. Please check the code and try again."


def already_cancelled(code: str) -> str:
    return f"ℹ️ Booking {code} is already cancelled."


def not_cancellable(code: str, status: str) -> str:
    return f"ℹ️ Booking {code} is {status.replace('_', ' ')} and can no longer be cancelled."


def confirm_cancel(booking: Booking, today: date) -> str:
    return (
        f"Cancel this booking?\n\n"
        f"🎫 {booking.booking_code}\n"
        f"✂️ {booking.service.name} with {booking.provider.name}\n"
        f"📅 {date_label(booking.booking_date, today)} at {hhmm(booking.start_time)}\n\n"
        f"Reply YES to cancel or NO to keep it."
    )


def cancelled(code: str) -> str:
    return f"✅ Booking {code} has been cancelled."
