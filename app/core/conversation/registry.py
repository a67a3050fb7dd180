"""
Step-keyed handler registry.

Handlers are plain async functions ``(request, deps) -> HandlerResponse``.
Each is registered for the steps it serves; the registry is built once at
startup and refuses a step claimed twice. Unclaimed steps resolve to the
fallback handler.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Iterable

from app.config import Settings
from app.core.scheduling.availability import AvailabilityEngine
from app.core.scheduling.catalog import Catalog
from app.core.scheduling.ledger import BookingLedger
from .steps import ConversationStep
from .types import HandlerRequest, HandlerResponse

logger = logging.getLogger(__name__)


@dataclass
class HandlerDeps:
    """Collaborators handed to every handler."""

    catalog: Catalog
    ledger: BookingLedger
    settings: Settings

    @property
    def engine(self) -> AvailabilityEngine:
        return self.ledger.engine

    def now(self) -> datetime:
        return self.ledger.now()


Handler = Callable[[HandlerRequest, HandlerDeps], Awaitable[HandlerResponse]]


class DuplicateHandlerError(ValueError):
    """Raised when two handlers claim the same step."""
    pass


class HandlerRegistry:
    """Maps each conversation step to exactly one handler."""

    def __init__(self, fallback: Handler):
        self.fallback = fallback
        self._handlers: dict[ConversationStep, Handler] = {}

    def add(self, handler: Handler, steps: Iterable[ConversationStep]) -> None:
        for step in steps:
            existing = self._handlers.get(step)
            if existing is not None:
                raise DuplicateHandlerError(
                    f"{step.value} already handled by {existing.__name__}, "
                    f"cannot register {handler.__name__}"
                )
            self._handlers[step] = handler

    def resolve(self, step: ConversationStep) -> Handler:
        return self._handlers.get(step, self.fallback)

    def unclaimed(self) -> list[ConversationStep]:
        """Steps that will be served by the fallback handler."""
        return [step for step in ConversationStep if step not in self._handlers]
