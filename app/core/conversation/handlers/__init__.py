"""
Step handlers and the registry that maps steps to them.
"""

from app.core.conversation.registry import HandlerRegistry
from app.core.conversation.steps import ConversationStep
from .booking import (
    handle_booking_confirmed,
    handle_confirm_booking,
    handle_select_date,
    handle_select_provider,
    handle_select_service,
    handle_select_time,
)
from .cancel import handle_cancel_confirm, handle_cancel_input, handle_view_my_bookings
from .menu import handle_fallback, handle_faq, handle_main_menu, handle_view_services


def build_registry() -> HandlerRegistry:
    """Register every step handler once."""
    registry = HandlerRegistry(fallback=handle_fallback)
    registry.add(handle_main_menu, [ConversationStep.MAIN_MENU])
    registry.add(handle_view_services, [ConversationStep.VIEW_SERVICES])
    registry.add(handle_faq, [ConversationStep.FAQ])
    registry.add(handle_select_service, [ConversationStep.SELECT_SERVICE])
    registry.add(handle_select_provider, [ConversationStep.SELECT_PROVIDER])
    registry.add(handle_select_date, [ConversationStep.SELECT_DATE])
    registry.add(handle_select_time, [ConversationStep.SELECT_TIME])
    registry.add(handle_confirm_booking, [ConversationStep.CONFIRM_BOOKING])
    registry.add(handle_booking_confirmed, [ConversationStep.BOOKING_CONFIRMED])
    registry.add(handle_view_my_bookings, [ConversationStep.VIEW_MY_BOOKINGS])
    registry.add(handle_cancel_input, [ConversationStep.CANCEL_INPUT])
    registry.add(handle_cancel_confirm, [ConversationStep.CANCEL_CONFIRM])
    return registry


__all__ = [
    "build_registry",
    "handle_booking_confirmed",
    "handle_cancel_confirm",
    "handle_cancel_input",
    "handle_confirm_booking",
    "handle_fallback",
    "handle_faq",
    "handle_main_menu",
    "handle_select_date",
    "handle_select_provider",
    "handle_select_service",
    "handle_select_time",
    "handle_view_my_bookings",
    "handle_view_services",
]
