"""
Conversation layer: steps, context and handler types.

The dispatcher and handlers live in their own modules
(app.core.conversation.dispatch, app.core.conversation.handlers) so the
session store can import steps and context without pulling them in.
"""

from .context import (
    Booked,
    CancelPending,
    Context,
    ContextDecodeError,
    DateChosen,
    INITIAL_SENTINEL,
    Initial,
    ProviderChosen,
    READY_SENTINEL,
    Ready,
    ServiceChosen,
    TimeChosen,
    decode_context,
    encode_context,
)
from .steps import ConversationStep, INITIAL_STEP
from .types import HandlerRequest, HandlerResponse, parse_choice

__all__ = [
    # Steps
    "ConversationStep",
    "INITIAL_STEP",
    # Context
    "Booked",
    "CancelPending",
    "Context",
    "ContextDecodeError",
    "DateChosen",
    "INITIAL_SENTINEL",
    "Initial",
    "ProviderChosen",
    "READY_SENTINEL",
    "Ready",
    "ServiceChosen",
    "TimeChosen",
    "decode_context",
    "encode_context",
    # Handler types
    "HandlerRequest",
    "HandlerResponse",
    "parse_choice",
]
