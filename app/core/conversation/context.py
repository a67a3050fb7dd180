"""
Conversation context carried between steps.

In process the context is one of a closed set of frozen dataclasses, each
holding exactly the selections made so far. For storage it is encoded to a
string: the two sentinels stay bare words, everything else is compact JSON
with a "stage" tag. encode_context(decode_context(blob)) == blob for every
blob encode_context produces.
"""

import json
from dataclasses import dataclass
from datetime import date, time
from typing import Optional, Union

INITIAL_SENTINEL = "show_initial"
READY_SENTINEL = "ready"


class ContextDecodeError(ValueError):
    """Raised when a stored context blob cannot be decoded."""
    pass


@dataclass(frozen=True)
class Initial:
    """Render the initial view of the current step."""


@dataclass(frozen=True)
class Ready:
    """Initial view shown, waiting for input."""


@dataclass(frozen=True)
class ServiceChosen:
    service_id: int


@dataclass(frozen=True)
class ProviderChosen:
    service_id: int
    provider_id: int

    def back(self) -> ServiceChosen:
        return ServiceChosen(self.service_id)


@dataclass(frozen=True)
class DateChosen:
    service_id: int
    provider_id: int
    day: date

    def back(self) -> ProviderChosen:
        return ProviderChosen(self.service_id, self.provider_id)


@dataclass(frozen=True)
class TimeChosen:
    service_id: int
    provider_id: int
    day: date
    start: time

    def back(self) -> DateChosen:
        return DateChosen(self.service_id, self.provider_id, self.day)


@dataclass(frozen=True)
class Booked:
    booking_code: str


@dataclass(frozen=True)
class CancelPending:
    booking_code: str


Context = Union[
    Initial,
    Ready,
    ServiceChosen,
    ProviderChosen,
    DateChosen,
    TimeChosen,
    Booked,
    CancelPending,
]

# Stage tags used in the JSON encoding
_STAGES: dict[str, type] = {
    "service": ServiceChosen,
    "provider": ProviderChosen,
    "date": DateChosen,
    "time": TimeChosen,
    "booked": Booked,
    "cancel": CancelPending,
}
_TAGS = {cls: tag for tag, cls in _STAGES.items()}


def encode_context(context: Context) -> str:
    """Encode a context for the session store."""
    if isinstance(context, Initial):
        return INITIAL_SENTINEL
    if isinstance(context, Ready):
        return READY_SENTINEL

    payload: dict = {"stage": _TAGS[type(context)]}
    if isinstance(context, (ServiceChosen, ProviderChosen, DateChosen, TimeChosen)):
        payload["service_id"] = context.service_id
    if isinstance(context, (ProviderChosen, DateChosen, TimeChosen)):
        payload["provider_id"] = context.provider_id
    if isinstance(context, (DateChosen, TimeChosen)):
        payload["date"] = context.day.isoformat()
    if isinstance(context, TimeChosen):
        payload["time"] = context.start.strftime("%H:%M")
    if isinstance(context, (Booked, CancelPending)):
        payload["booking_code"] = context.booking_code

    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


def decode_context(blob: Optional[str]) -> Context:
    """
    Decode a stored context blob.

    A missing or empty blob means the initial view.

    Raises:
        ContextDecodeError: If the blob is not a known encoding
    """
    if not blob or blob == INITIAL_SENTINEL:
        return Initial()
    if blob == READY_SENTINEL:
        return Ready()

    try:
        payload = json.loads(blob)
        stage = _STAGES[payload["stage"]]

        if stage in (Booked, CancelPending):
            return stage(booking_code=str(payload["booking_code"]))

        service_id = int(payload["service_id"])
        if stage is ServiceChosen:
            return ServiceChosen(service_id)

        provider_id = int(payload["provider_id"])
        if stage is ProviderChosen:
            return ProviderChosen(service_id, provider_id)

        day = date.fromisoformat(payload["date"])
        if stage is DateChosen:
            return DateChosen(service_id, provider_id, day)

        return TimeChosen(
            service_id, provider_id, day, time.fromisoformat(payload["time"])
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ContextDecodeError(f"Invalid context blob {blob!r}: {e}") from e
