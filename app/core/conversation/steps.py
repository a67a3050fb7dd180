"""Conversation steps of the booking dialogue."""

from enum import Enum
from typing import Optional


class ConversationStep(str, Enum):
    """
    Named states of the dialogue.

    The machine is cyclic: every path returns to MAIN_MENU.
    """

    MAIN_MENU = "MAIN_MENU"
    VIEW_SERVICES = "VIEW_SERVICES"
    FAQ = "FAQ"
    SELECT_SERVICE = "SELECT_SERVICE"
    SELECT_PROVIDER = "SELECT_PROVIDER"
    SELECT_DATE = "SELECT_DATE"
    SELECT_TIME = "SELECT_TIME"
    CONFIRM_BOOKING = "CONFIRM_BOOKING"
    BOOKING_CONFIRMED = "BOOKING_CONFIRMED"
    VIEW_MY_BOOKINGS = "VIEW_MY_BOOKINGS"
    CANCEL_INPUT = "CANCEL_INPUT"
    CANCEL_CONFIRM = "CANCEL_CONFIRM"

    @property
    def parent(self) -> Optional["ConversationStep"]:
        """Step that BACK returns to, None for the main menu."""
        return _PARENTS.get(self)


INITIAL_STEP = ConversationStep.MAIN_MENU

_PARENTS = {
    ConversationStep.VIEW_SERVICES: ConversationStep.MAIN_MENU,
    ConversationStep.FAQ: ConversationStep.MAIN_MENU,
    ConversationStep.SELECT_SERVICE: ConversationStep.MAIN_MENU,
    ConversationStep.SELECT_PROVIDER: ConversationStep.SELECT_SERVICE,
    ConversationStep.SELECT_DATE: ConversationStep.SELECT_PROVIDER,
    ConversationStep.SELECT_TIME: ConversationStep.SELECT_DATE,
    ConversationStep.CONFIRM_BOOKING: ConversationStep.SELECT_TIME,
    ConversationStep.BOOKING_CONFIRMED: ConversationStep.MAIN_MENU,
    ConversationStep.VIEW_MY_BOOKINGS: ConversationStep.MAIN_MENU,
    ConversationStep.CANCEL_INPUT: ConversationStep.MAIN_MENU,
    ConversationStep.CANCEL_CONFIRM: ConversationStep.CANCEL_INPUT,
}
