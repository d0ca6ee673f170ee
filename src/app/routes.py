from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse, RedirectResponse

from src.app.config import Settings
from src.app.dependencies import (
    get_active_tenant,
    get_calendar_cache,
    get_calendar_service,
    get_credential_store,
    get_legacy_tagger,
    get_oauth_service,
    get_outbox,
    get_settings,
    require_admin_secret,
)
from src.schemas.calendar import (
    BackfillResult,
    BookingRequest,
    BookingResponse,
    DeleteAppointmentRequest,
    EventsResponse,
    OutboxDrainResult,
)
from src.schemas.context import TenantContext
from src.schemas.tenant import ConnectionStatusResponse
from src.services.backfill import LegacyEventTagger
from src.services.calendar import CalendarService, Customer
from src.services.calendar_resolver import CalendarCache
from src.services.credentials import CredentialStore, business_object_id
from src.services.errors import ProviderFailure, ValidationError
from src.services.oauth import OAuthService
from src.services.outbox import NotificationOutbox

logger = logging.getLogger(__name__)

router = APIRouter()


def _admin_business_id(business_id: Optional[str], settings: Settings) -> str:
    resolved = (business_id or "").strip() or settings.default_business_id.strip()
    if not resolved:
        raise ValidationError("Missing businessId (query param) or DEFAULT_BUSINESS_ID env")
    return resolved


@router.get("/health", status_code=status.HTTP_200_OK)
def health(settings: Settings = Depends(get_settings)) -> dict:
    return {"app": settings.app_name, "status": "ok"}


@router.get("/oauth/start")
def oauth_start(
    purpose: Optional[str] = Query(default="calendar"),
    next: Optional[str] = Query(default=None),
    tenant: TenantContext = Depends(get_active_tenant),
    oauth: OAuthService = Depends(get_oauth_service),
) -> RedirectResponse:
    url = oauth.authorization_url(tenant.business_id, purpose, next)
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


@router.get("/oauth/callback")
def oauth_callback(
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    oauth: OAuthService = Depends(get_oauth_service),
) -> RedirectResponse:
    return RedirectResponse(oauth.handle_callback(code, state), status_code=status.HTTP_302_FOUND)


@router.get("/calendar/status", response_model=ConnectionStatusResponse)
def calendar_status(
    tenant: TenantContext = Depends(get_active_tenant),
    store: CredentialStore = Depends(get_credential_store),
) -> ConnectionStatusResponse:
    business_object_id(tenant.business_id)
    return ConnectionStatusResponse(**store.status(tenant.business_id))


@router.get("/calendar/events", response_model=EventsResponse)
def calendar_events(
    time_min: Optional[str] = Query(default=None, alias="timeMin"),
    time_max: Optional[str] = Query(default=None, alias="timeMax"),
    tenant: TenantContext = Depends(get_active_tenant),
    calendar: CalendarService = Depends(get_calendar_service),
) -> EventsResponse:
    events = calendar.list_events(tenant.business_id, time_min, time_max)
    return EventsResponse(events=events, business_id=tenant.business_id)


@router.post("/calendar/book", response_model=BookingResponse)
def calendar_book(
    payload: BookingRequest,
    tenant: TenantContext = Depends(get_active_tenant),
    calendar: CalendarService = Depends(get_calendar_service),
) -> BookingResponse:
    if payload.business_id and payload.business_id != tenant.business_id:
        raise ValidationError("businessId does not match the active business")
    result = calendar.book(
        business_id=payload.business_id or tenant.business_id,
        customer=Customer(
            name=payload.customer_name,
            email=payload.attendee_email,
            phone=payload.phone,
            id=payload.customer_id,
        ),
        service=payload.service,
        start_iso=payload.start_iso,
        end_iso=payload.end_iso,
        business_name=payload.business_name,
        meeting_type=payload.meeting_type,
    )
    return BookingResponse(
        event_id=result.event_id,
        appointment_id=result.appointment_id,
        task_id=result.task_id,
        meet_link=result.meet_link,
        html_link=result.html_link,
        notification_sent=result.notification_sent,
        email_id=result.email_id,
        message=result.message,
    )


@router.post("/appointments/delete")
def delete_appointment(
    payload: DeleteAppointmentRequest,
    tenant: TenantContext = Depends(get_active_tenant),
    calendar: CalendarService = Depends(get_calendar_service),
) -> dict:
    calendar.delete_appointment(tenant.business_id, payload.appointment_id, payload.google_event_id)
    return {"success": True}


@router.get("/calendar/token-check")
def token_check(
    tenant: TenantContext = Depends(get_active_tenant),
    calendar: CalendarService = Depends(get_calendar_service),
):
    try:
        return calendar.check_token(tenant.business_id)
    except ProviderFailure as exc:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"ok": False, "error": "token_refresh_failed", "message": exc.message},
        )


@router.post("/calendar/tag-legacy", response_model=BackfillResult, dependencies=[Depends(require_admin_secret)])
def tag_legacy(
    time_min: Optional[str] = Query(default=None, alias="timeMin"),
    time_max: Optional[str] = Query(default=None, alias="timeMax"),
    business_id: Optional[str] = Query(default=None, alias="businessId"),
    calendar_id: Optional[str] = Query(default=None, alias="calendarId"),
    settings: Settings = Depends(get_settings),
    tagger: LegacyEventTagger = Depends(get_legacy_tagger),
) -> BackfillResult:
    resolved_business = _admin_business_id(business_id, settings)
    counts = tagger.backfill(resolved_business, time_min, time_max, calendar_id=calendar_id)
    return BackfillResult(
        window={"timeMin": time_min, "timeMax": time_max},
        business_id=resolved_business,
        calendar_id=counts.calendar_id,
        scanned=counts.scanned,
        eligible=counts.eligible,
        patched=counts.patched,
        skipped=counts.skipped,
        errors=counts.errors,
    )


@router.post("/calendar/cache/clear", dependencies=[Depends(require_admin_secret)])
def clear_calendar_cache(cache: CalendarCache = Depends(get_calendar_cache)) -> dict:
    cache.clear()
    return {"ok": True}


@router.post("/calendar/outbox/drain", response_model=OutboxDrainResult, dependencies=[Depends(require_admin_secret)])
def drain_outbox(
    business_id: Optional[str] = Query(default=None, alias="businessId"),
    settings: Settings = Depends(get_settings),
    outbox: NotificationOutbox = Depends(get_outbox),
) -> OutboxDrainResult:
    resolved_business = _admin_business_id(business_id, settings)
    business_object_id(resolved_business)
    return OutboxDrainResult(**outbox.drain(resolved_business))
