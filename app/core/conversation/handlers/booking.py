"""
Booking flow handlers: service -> provider -> date -> time -> confirm.

Each step renders its list when called with empty input and processes the
customer's choice otherwise. Lists are recomputed on every call, so a choice
is always checked against current availability.
"""

import logging
from datetime import date, time, timedelta
from typing import Optional

from app.core.conversation import response
from app.core.conversation.context import (
    Booked,
    Context,
    DateChosen,
    ProviderChosen,
    Ready,
    ServiceChosen,
    TimeChosen,
)
from app.core.conversation.registry import HandlerDeps
from app.core.conversation.steps import ConversationStep
from app.core.conversation.types import HandlerRequest, HandlerResponse
from app.core.scheduling.availability import DateAvailability
from app.core.scheduling.ledger import LedgerError
from app.models.database import Provider, Service
from .common import back_to_menu, go_to, is_back, is_no, is_yes, pick

logger = logging.getLogger(__name__)


# === Lookups ===

async def _service(deps: HandlerDeps, service_id: int) -> Service:
    service = await deps.catalog.get_service(service_id)
    if service is None:
        raise LookupError(f"Service {service_id} no longer exists")
    return service


async def _provider(deps: HandlerDeps, provider_id: int) -> Provider:
    provider = await deps.catalog.get_provider(provider_id)
    if provider is None:
        raise LookupError(f"Provider {provider_id} no longer exists")
    return provider


async def _available_dates(
    deps: HandlerDeps,
    service: Service,
    provider_id: int,
) -> list[DateAvailability]:
    now = deps.now()
    horizon = deps.settings.booking_horizon_days
    busy = await deps.ledger.busy_intervals(
        provider_id, now.date(), now.date() + timedelta(days=horizon - 1)
    )
    return deps.engine.dates_with_availability(service.duration_minutes, busy, now, horizon)


async def _available_times(
    deps: HandlerDeps,
    service: Service,
    provider_id: int,
    day: date,
) -> list[time]:
    busy = await deps.ledger.busy_intervals(provider_id, day)
    return deps.engine.slots_for_date(
        day, service.duration_minutes, busy.get(day, []), deps.now()
    )


def _with_provider(context: Context) -> Optional[ProviderChosen]:
    """Reduce a later booking context to service + provider."""
    if isinstance(context, ProviderChosen):
        return context
    if isinstance(context, DateChosen):
        return context.back()
    if isinstance(context, TimeChosen):
        return context.back().back()
    return None


# === Renderers ===

async def _greeting(deps: HandlerDeps, identity: str) -> Optional[str]:
    customer = await deps.ledger.get_customer(identity)
    if customer is None:
        return None
    usual = None
    if customer.preferred_service_id is not None:
        usual = await deps.catalog.get_service(customer.preferred_service_id)
    return response.personalized_greeting(customer, deps.ledger.loyalty, usual)


async def _render_services(
    deps: HandlerDeps,
    identity: str,
    note: Optional[str] = None,
) -> HandlerResponse:
    services = await deps.catalog.active_services()
    if not services:
        return back_to_menu(deps, "😔 Sorry, no services are available right now.")
    body = response.choose_service(services)
    if note is None:
        body = response.with_note(await _greeting(deps, identity), body)
    return HandlerResponse(
        message=response.with_note(note, body),
        next_step=ConversationStep.SELECT_SERVICE,
        context=Ready(),
    )


async def _render_providers(
    deps: HandlerDeps,
    identity: str,
    context: ServiceChosen,
    note: Optional[str] = None,
) -> HandlerResponse:
    service = await _service(deps, context.service_id)
    providers = await deps.catalog.active_providers()
    if not providers:
        return back_to_menu(deps, "😔 Sorry, no barbers are available right now.")
    customer = await deps.ledger.get_customer(identity)
    usual = customer.preferred_provider_id if customer is not None else None
    return HandlerResponse(
        message=response.with_note(
            note, response.choose_provider(providers, service, usual)
        ),
        next_step=ConversationStep.SELECT_PROVIDER,
        context=context,
    )


async def _render_dates(
    deps: HandlerDeps,
    context: ProviderChosen,
    note: Optional[str] = None,
) -> HandlerResponse:
    service = await _service(deps, context.service_id)
    provider = await _provider(deps, context.provider_id)
    dates = await _available_dates(deps, service, provider.id)
    if not dates:
        return back_to_menu(
            deps,
            response.with_note(
                note, response.no_dates(provider, deps.settings.booking_horizon_days)
            ),
        )
    return HandlerResponse(
        message=response.with_note(
            note, response.choose_date(dates, provider, deps.now().date())
        ),
        next_step=ConversationStep.SELECT_DATE,
        context=context,
    )


async def _render_times(
    deps: HandlerDeps,
    context: DateChosen,
    note: Optional[str] = None,
) -> HandlerResponse:
    service = await _service(deps, context.service_id)
    slots = await _available_times(deps, service, context.provider_id, context.day)
    if not slots:
        return await _render_dates(
            deps, context.back(), note=response.with_note(note, response.DATE_FULL)
        )
    return HandlerResponse(
        message=response.with_note(
            note, response.choose_time(slots, context.day, deps.now().date())
        ),
        next_step=ConversationStep.SELECT_TIME,
        context=context,
    )


async def _render_confirm(
    deps: HandlerDeps,
    context: TimeChosen,
    note: Optional[str] = None,
) -> HandlerResponse:
    service = await _service(deps, context.service_id)
    provider = await _provider(deps, context.provider_id)
    summary = response.confirm_booking(
        service, provider, context.day, context.start, deps.now().date()
    )
    return HandlerResponse(
        message=response.with_note(note, summary),
        next_step=ConversationStep.CONFIRM_BOOKING,
        context=context,
    )


# === Handlers ===

async def handle_select_service(request: HandlerRequest, deps: HandlerDeps) -> HandlerResponse:
    if request.is_empty:
        return await _render_services(deps, request.identity)

    services = await deps.catalog.active_services()
    service = pick(request, services)
    if service is None:
        return await _render_services(
            deps, request.identity, response.invalid_number(len(services))
        )

    return go_to(ConversationStep.SELECT_PROVIDER, context=ServiceChosen(service.id))


async def handle_select_provider(request: HandlerRequest, deps: HandlerDeps) -> HandlerResponse:
    context = request.context
    if isinstance(context, (ProviderChosen, DateChosen, TimeChosen)):
        context = ServiceChosen(context.service_id)
    if not isinstance(context, ServiceChosen):
        return go_to(ConversationStep.SELECT_SERVICE, clear_context=True)

    if is_back(request):
        return go_to(ConversationStep.SELECT_SERVICE, clear_context=True)
    if request.is_empty:
        return await _render_providers(deps, request.identity, context)

    providers = await deps.catalog.active_providers()
    provider = pick(request, providers)
    if provider is None:
        return await _render_providers(
            deps, request.identity, context, response.invalid_number(len(providers))
        )

    return go_to(
        ConversationStep.SELECT_DATE,
        context=ProviderChosen(context.service_id, provider.id),
    )


async def handle_select_date(request: HandlerRequest, deps: HandlerDeps) -> HandlerResponse:
    context = _with_provider(request.context)
    if context is None:
        return go_to(ConversationStep.SELECT_SERVICE, clear_context=True)

    if is_back(request):
        return go_to(ConversationStep.SELECT_PROVIDER, context=context.back())
    if request.is_empty:
        return await _render_dates(deps, context)

    service = await _service(deps, context.service_id)
    dates = await _available_dates(deps, service, context.provider_id)
    chosen = pick(request, dates)
    if chosen is None:
        return await _render_dates(deps, context, response.invalid_number(len(dates)))

    return go_to(
        ConversationStep.SELECT_TIME,
        context=DateChosen(context.service_id, context.provider_id, chosen.day),
    )


async def handle_select_time(request: HandlerRequest, deps: HandlerDeps) -> HandlerResponse:
    context = request.context
    if isinstance(context, TimeChosen):
        context = context.back()
    if not isinstance(context, DateChosen):
        return go_to(ConversationStep.SELECT_SERVICE, clear_context=True)

    if is_back(request):
        return go_to(ConversationStep.SELECT_DATE, context=context.back())
    if request.is_empty:
        return await _render_times(deps, context)

    service = await _service(deps, context.service_id)
    slots = await _available_times(deps, service, context.provider_id, context.day)
    if not slots:
        return await _render_times(deps, context)

    start = pick(request, slots)
    if start is None:
        return await _render_times(deps, context, response.invalid_number(len(slots)))

    return go_to(
        ConversationStep.CONFIRM_BOOKING,
        context=TimeChosen(context.service_id, context.provider_id, context.day, start),
    )


async def handle_confirm_booking(request: HandlerRequest, deps: HandlerDeps) -> HandlerResponse:
    context = request.context
    if not isinstance(context, TimeChosen):
        return go_to(ConversationStep.SELECT_SERVICE, clear_context=True)

    if request.is_empty:
        return await _render_confirm(deps, context)
    if is_back(request):
        return go_to(ConversationStep.SELECT_TIME, context=context.back())
    if is_no(request):
        return back_to_menu(deps, response.BOOKING_ABANDONED)
    if not is_yes(request):
        return await _render_confirm(deps, context, response.YES_OR_NO)

    result = await deps.ledger.create_reservation(
        customer_identity=request.identity,
        service_id=context.service_id,
        provider_id=context.provider_id,
        booking_date=context.day,
        start_time=context.start,
    )

    if result.success:
        return go_to(
            ConversationStep.BOOKING_CONFIRMED,
            context=Booked(result.booking.booking_code),
        )

    logger.info(
        f"Booking for {request.identity} rejected: {result.error_code.value} ({result.message})"
    )
    if result.error_code == LedgerError.SLOT_UNAVAILABLE:
        return await _render_times(deps, context.back(), response.SLOT_TAKEN)
    return back_to_menu(deps, "😔 Sorry, that booking couldn't be completed.")


async def handle_booking_confirmed(request: HandlerRequest, deps: HandlerDeps) -> HandlerResponse:
    context = request.context
    if not isinstance(context, Booked):
        return back_to_menu(deps)

    booking = await deps.ledger.get_by_code(context.booking_code)
    if booking is None:
        raise LookupError(f"Booking {context.booking_code} vanished after creation")

    return HandlerResponse(
        message=response.booking_confirmed(booking, deps.settings, deps.now().date()),
        next_step=ConversationStep.MAIN_MENU,
        clear_context=True,
    )
