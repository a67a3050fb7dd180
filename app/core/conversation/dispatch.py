"""
Dispatcher for the booking dialogue.

Main orchestrator for one inbound message.

Flow:
1. Get or create the customer's session
2. Resolve the handler for the current step (menu tokens short-circuit)
3. Persist the returned step and context
4. If the reply is empty, re-dispatch against the new step (bounded)
5. Hand the reply to the outbound channel
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from app.config import Settings, get_settings
from app.core.scheduling.availability import AvailabilityEngine
from app.core.scheduling.calendar import BusinessCalendar
from app.core.scheduling.catalog import Catalog
from app.core.scheduling.ledger import BookingLedger
from app.core.session.fallback import SessionStoreUnavailable
from app.core.session.manager import SessionManager
from app.core.session.models import SessionData
from app.infra.database import async_session_factory
from app.infra.notifications import MessageChannel, get_message_channel
from . import response
from .handlers import build_registry
from .context import INITIAL_SENTINEL, decode_context, encode_context
from .registry import HandlerDeps, HandlerRegistry
from .steps import ConversationStep, INITIAL_STEP
from .types import HandlerRequest, HandlerResponse, parse_choice

logger = logging.getLogger(__name__)


@dataclass
class DispatchResponse:
    """Result of processing one inbound message."""

    message: str
    identity: str
    step: str
    delivered: bool = False
    processing_time_ms: Optional[float] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        result = {
            "message": self.message,
            "identity": self.identity,
            "step": self.step,
            "delivered": self.delivered,
        }
        if self.processing_time_ms is not None:
            result["processing_time_ms"] = self.processing_time_ms
        return result


class Dispatcher:
    """
    Runs step handlers against the session store.

    Any exception raised while building a reply is logged and turned into
    the generic error reply with the session reset to the main menu.
    """

    def __init__(
        self,
        sessions: SessionManager,
        registry: HandlerRegistry,
        deps: HandlerDeps,
        channel: MessageChannel,
        max_auto_continuations: Optional[int] = None,
    ):
        self.sessions = sessions
        self.registry = registry
        self.deps = deps
        self.channel = channel
        self.max_auto_continuations = (
            max_auto_continuations
            if max_auto_continuations is not None
            else deps.settings.max_auto_continuations
        )

    async def process(self, identity: str, text: str) -> DispatchResponse:
        """
        Handle one inbound message and send the reply.

        Args:
            identity: Customer address (phone number)
            text: Raw message body

        Returns:
            DispatchResponse with the reply and the resulting step
        """
        start_time = time.perf_counter()

        try:
            message, step = await self._dispatch(identity, text or "")
        except Exception as e:
            logger.exception(f"Unhandled error dispatching message from {identity}: {e}")
            message, step = response.GENERIC_ERROR, INITIAL_STEP

        delivered = await self.channel.send(identity, message)

        return DispatchResponse(
            message=message,
            identity=identity,
            step=step.value,
            delivered=delivered,
            processing_time_ms=(time.perf_counter() - start_time) * 1000,
        )

    async def _dispatch(self, identity: str, text: str) -> tuple[str, ConversationStep]:
        try:
            session = await self.sessions.get_or_create(identity)
        except SessionStoreUnavailable as e:
            logger.error(f"Session store unavailable for {identity}: {e}")
            return response.TECHNICAL_DIFFICULTIES, INITIAL_STEP

        hops = 0
        while True:
            try:
                result = await self._run_handler(session, text)
            except Exception:
                logger.exception(
                    f"Handler failed for {identity} at step {session.step.value} "
                    f"with context {session.context!r}"
                )
                await self._force_reset(identity)
                return response.GENERIC_ERROR, INITIAL_STEP

            next_step = result.next_step or session.step
            context = self._next_context(session, result)

            try:
                saved = await self.sessions.save(identity, next_step, context)
            except SessionStoreUnavailable as e:
                logger.error(f"Could not persist session for {identity}: {e}")
                return response.TECHNICAL_DIFFICULTIES, session.step

            if result.message:
                return result.message, next_step

            if result.next_step is None:
                return response.DIDNT_UNDERSTAND, next_step

            if hops >= self.max_auto_continuations:
                logger.warning(
                    f"Auto-continuation limit reached for {identity} at step {next_step.value}"
                )
                return response.DIDNT_UNDERSTAND, next_step

            hops += 1
            session = await self.sessions.get(identity) or saved
            text = ""

    async def _run_handler(self, session: SessionData, text: str) -> HandlerResponse:
        request = HandlerRequest(
            identity=session.identity,
            text=text,
            choice=parse_choice(text),
            step=session.step,
            context=decode_context(session.context),
        )

        if request.step != ConversationStep.MAIN_MENU and request.wants_menu:
            return HandlerResponse(
                message="",
                next_step=ConversationStep.MAIN_MENU,
                clear_context=True,
            )

        handler = self.registry.resolve(request.step)
        return await handler(request, self.deps)

    @staticmethod
    def _next_context(session: SessionData, result: HandlerResponse) -> str:
        if result.clear_context:
            return INITIAL_SENTINEL
        if result.context is not None:
            return encode_context(result.context)
        return session.context

    async def _force_reset(self, identity: str) -> None:
        try:
            await self.sessions.reset(identity)
        except SessionStoreUnavailable as e:
            logger.error(f"Could not reset session for {identity}: {e}")

    async def reset_session(self, identity: str) -> SessionData:
        """Administrative reset to the main menu."""
        return await self.sessions.reset(identity)

    async def get_session(self, identity: str) -> Optional[SessionData]:
        """Current session, without creating one."""
        return await self.sessions.get(identity)


def build_dispatcher(
    session_factory=None,
    sessions: Optional[SessionManager] = None,
    channel: Optional[MessageChannel] = None,
    settings: Optional[Settings] = None,
) -> Dispatcher:
    """Wire the dispatcher with its collaborators."""
    settings = settings or get_settings()
    session_factory = session_factory or async_session_factory
    engine = AvailabilityEngine(BusinessCalendar.from_settings(settings))
    deps = HandlerDeps(
        catalog=Catalog(session_factory),
        ledger=BookingLedger(session_factory, engine, now=settings.local_now),
        settings=settings,
    )
    return Dispatcher(
        sessions=sessions or SessionManager(),
        registry=build_registry(),
        deps=deps,
        channel=channel or get_message_channel(),
    )


# Singleton
_dispatcher: Optional[Dispatcher] = None


def get_dispatcher() -> Dispatcher:
    """Get singleton Dispatcher."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = build_dispatcher()
    return _dispatcher
