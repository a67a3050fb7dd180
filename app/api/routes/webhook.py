"""
Inbound Message Webhook.

Receives customer messages from the messaging gateway as form-encoded
``From``/``Body`` fields. The reply is sent through the outbound channel, so
the HTTP answer is always "accepted". Request authenticity is verified
upstream, before this route.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Form, HTTPException, status
from pydantic import BaseModel

from app.core.conversation.dispatch import get_dispatcher
from app.infra.notifications import WHATSAPP_PREFIX

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["Webhook"])


def normalize_identity(sender: str) -> str:
    """Strip the channel prefix so one phone number maps to one session."""
    sender = sender.strip()
    if sender.startswith(WHATSAPP_PREFIX):
        sender = sender[len(WHATSAPP_PREFIX):]
    return sender


class AcceptedResponse(BaseModel):
    """Acknowledgement returned to the gateway."""

    status: str = "accepted"


class SessionView(BaseModel):
    """Administrative view of a session."""

    identity: str
    step: str
    context: str
    last_activity: str


class ErrorResponse(BaseModel):
    """Error response."""

    error: str
    detail: Optional[str] = None


@router.post(
    "/message",
    response_model=AcceptedResponse,
    status_code=status.HTTP_200_OK,
    summary="Receive an inbound message",
    description="Processes one customer message. The reply is delivered via the outbound channel.",
)
async def receive_message(
    sender: str = Form(
        "",
        alias="From",
        description="Sender address",
        examples=["whatsapp:+353871234567"],
    ),
    body: str = Form(
        "",
        alias="Body",
        description="Raw message text",
        examples=["2"],
    ),
) -> AcceptedResponse:
    """Process an inbound message; never fails towards the gateway."""
    identity = normalize_identity(sender)
    if not identity:
        logger.warning("Inbound message with empty sender ignored")
        return AcceptedResponse()

    dispatcher = get_dispatcher()
    result = await dispatcher.process(identity, body)

    logger.info(
        f"Message from {identity} handled -> {result.step} "
        f"({result.processing_time_ms:.1f} ms, delivered={result.delivered})"
    )
    return AcceptedResponse()


def _view(session) -> SessionView:
    return SessionView(
        identity=session.identity,
        step=session.step.value,
        context=session.context,
        last_activity=session.last_activity.isoformat(),
    )


@router.get(
    "/sessions/{identity}",
    response_model=SessionView,
    summary="Get session data",
    description="Retrieve the current step and context of a customer's conversation.",
    responses={
        200: {"description": "Session data"},
        404: {"model": ErrorResponse, "description": "Session not found"},
    },
)
async def get_session(identity: str) -> SessionView:
    """Get session information."""
    dispatcher = get_dispatcher()
    session = await dispatcher.get_session(normalize_identity(identity))

    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        )

    return _view(session)


@router.delete(
    "/sessions/{identity}",
    response_model=SessionView,
    summary="Reset a session",
    description="Reset a customer's conversation to the main menu.",
)
async def reset_session(identity: str) -> SessionView:
    """Reset session to the main menu."""
    dispatcher = get_dispatcher()
    session = await dispatcher.reset_session(normalize_identity(identity))
    return _view(session)
