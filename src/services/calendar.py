from __future__ import annotations

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar

from src.schemas.calendar import CalendarEvent, event_summary, meet_link_for
from src.services.appointments import AppointmentRepository, OrphanedEventRepository, TaskRepository
from src.services.calendar_resolver import CalendarResolver
from src.services.credentials import CredentialStore, business_object_id
from src.services.errors import AppointmentPersistenceError, SlotConflictError, ValidationError
from src.services.google_clients import GoogleClientProvider
from src.services.locks import SlotLockRepository
from src.services.notifications import build_confirmation
from src.services.outbox import NotificationOutbox
from src.services.reauth import ReauthHandler

logger = logging.getLogger(__name__)

T = TypeVar("T")

EVENT_LIST_FIELDS = "items(id,summary,start,end,hangoutLink,conferenceData,htmlLink,description,attendees,status)"

# Side-effect threads outlive a timed-out booking request; keep the pool small.
_side_effects = ThreadPoolExecutor(max_workers=4, thread_name_prefix="booking-side-effect")


@dataclass
class Customer:
    name: Optional[str]
    email: Optional[str]
    phone: Optional[str] = None
    id: Optional[str] = None


@dataclass
class BookingResult:
    event_id: str
    appointment_id: str
    task_id: Optional[str]
    meet_link: Optional[str]
    html_link: Optional[str]
    notification_sent: bool
    email_id: Optional[str]
    message: str


def parse_timestamp(value: str, field_name: str) -> datetime:
    try:
        moment = datetime.fromisoformat(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid {field_name}: expected an ISO 8601 timestamp") from exc
    if moment.tzinfo is None:
        raise ValidationError(f"Invalid {field_name}: timestamp must include a UTC offset")
    return moment


class CalendarService:
    """Tenant-scoped booking lifecycle against Google Calendar."""

    def __init__(
        self,
        clients: GoogleClientProvider,
        resolver: CalendarResolver,
        credential_store: CredentialStore,
        reauth: ReauthHandler,
        appointments: AppointmentRepository,
        tasks: TaskRepository,
        orphans: OrphanedEventRepository,
        locks: SlotLockRepository,
        outbox: NotificationOutbox,
        default_timezone: str = "America/New_York",
        side_effect_timeout: float = 10.0,
    ) -> None:
        self._clients = clients
        self._resolver = resolver
        self._store = credential_store
        self._reauth = reauth
        self._appointments = appointments
        self._tasks = tasks
        self._orphans = orphans
        self._locks = locks
        self._outbox = outbox
        self._default_timezone = default_timezone
        self._side_effect_timeout = side_effect_timeout

    def book(
        self,
        business_id: Optional[str],
        customer: Customer,
        service: str,
        start_iso: Optional[str],
        end_iso: Optional[str],
        business_name: Optional[str] = None,
        meeting_type: str = "appointment",
    ) -> BookingResult:
        if not customer.email or not start_iso or not end_iso:
            raise ValidationError("Missing required fields: attendeeEmail, startISO, endISO")
        if not customer.name:
            raise ValidationError("Missing customerName")
        if not business_id:
            raise ValidationError("Missing businessId")
        business_object_id(business_id)
        start = parse_timestamp(start_iso, "startISO")
        end = parse_timestamp(end_iso, "endISO")
        if end <= start:
            raise ValidationError("endISO must be after startISO")
        service = service or "Appointment"

        logger.info("Booking request for business %s: %s %s-%s", business_id, service, start_iso, end_iso)

        with self._reauth.guard(business_id):
            business = self._store.get_business(business_id) or {}
            business_name = business_name or business.get("name")
            calendar_id = self._resolver.resolve(business_id, business_name)
            client = self._clients.calendar_for(business_id)

            with self._locks.hold(business_id, start_iso, end_iso):
                conflicts = client.list_events(calendar_id, start_iso, end_iso)
                if conflicts:
                    logger.info("Time slot conflict for business %s (%d events)", business_id, len(conflicts))
                    raise SlotConflictError(conflicts)

                event_body = self._event_body(
                    business_id=business_id,
                    business_name=business_name,
                    customer=customer,
                    service=service,
                    meeting_type=meeting_type,
                    start_iso=start_iso,
                    end_iso=end_iso,
                )
                created = client.create_event(calendar_id, event_body)

        event_id = created.get("id") or ""
        meet_link = meet_link_for(created)
        html_link = created.get("htmlLink")
        logger.info("Created Google Calendar event %s for business %s", event_id, business_id)

        try:
            appointment_id = self._appointments.insert(
                {
                    "businessId": business_id,
                    "customerId": customer.id or "",
                    "customerName": customer.name,
                    "customerPhone": customer.phone or "",
                    "attendeeEmail": customer.email,
                    "service": service,
                    "startISO": start_iso,
                    "endISO": end_iso,
                    "meetLink": meet_link or "",
                    "googleEventId": event_id,
                    "googleHtmlLink": html_link or "",
                    "calendarId": calendar_id,
                }
            )
        except Exception as exc:
            logger.error("Appointment write failed after event %s was created", event_id, exc_info=True)
            self._orphans.record(business_id, calendar_id, event_id, str(exc))
            raise AppointmentPersistenceError(
                "Appointment was created in Google Calendar but could not be saved", event_id=event_id
            ) from exc

        task_id = self._bounded(
            "task creation",
            lambda: self._tasks.create(
                {
                    "title": f"{service} - {customer.name}",
                    "date": start_iso,
                    "calendarEventId": event_id,
                    "meetLink": meet_link or "",
                    "attendeeEmail": customer.email,
                    "businessId": business_id,
                }
            ),
        )

        email = build_confirmation(
            recipient=customer.email,
            customer_name=customer.name,
            service=service,
            start=start,
            end=end,
            timezone=business.get("timezone") or self._default_timezone,
            business_name=business_name,
            meet_link=meet_link,
            html_link=html_link,
            sender_email=business.get("googleEmail"),
        )
        sent: Dict[str, Any] = {}

        def send_confirmation() -> Dict[str, Any]:
            mailer = self._clients.email_for(business_id)
            return mailer.send(
                recipient=email.recipient,
                subject=email.subject,
                body=email.body,
                sender_name=email.sender_name,
                sender_email=email.sender_email,
            )

        try:
            sent = self._run_with_timeout(send_confirmation)
        except Exception as exc:
            logger.warning("Confirmation email failed for event %s (non-critical)", event_id, exc_info=True)
            self._reauth.handle_if_reauth(business_id, exc)
            self._outbox.enqueue(business_id, email, error=str(exc) or exc.__class__.__name__, appointment_id=appointment_id)
        notification_sent = bool(sent)

        return BookingResult(
            event_id=event_id,
            appointment_id=appointment_id,
            task_id=task_id,
            meet_link=meet_link,
            html_link=html_link,
            notification_sent=notification_sent,
            email_id=sent.get("id"),
            message="Appointment booked successfully"
            + (" and confirmation email sent" if notification_sent else " (email failed to send)"),
        )

    def list_events(self, business_id: str, time_min: Optional[str], time_max: Optional[str]) -> List[CalendarEvent]:
        if not time_min or not time_max:
            raise ValidationError("Missing timeMin/timeMax")
        with self._reauth.guard(business_id):
            calendar_id = self._resolver.resolve(business_id)
            client = self._clients.calendar_for(business_id)
            items = client.list_events(calendar_id, time_min, time_max, fields=EVENT_LIST_FIELDS)
        return [event_summary(item) for item in items]

    def delete_appointment(
        self,
        business_id: str,
        appointment_id: Optional[str],
        google_event_id: Optional[str],
    ) -> bool:
        deleted = False
        if appointment_id:
            deleted = self._appointments.delete_for_business(appointment_id, business_id)
        if google_event_id:
            try:
                with self._reauth.guard(business_id):
                    calendar_id = self._resolver.resolve(business_id)
                    self._clients.calendar_for(business_id).delete_event(calendar_id, google_event_id)
            except Exception:
                logger.warning("Google Calendar delete failed for event %s", google_event_id, exc_info=True)
        return deleted

    def check_token(self, business_id: str) -> Dict[str, Any]:
        with self._reauth.guard(business_id):
            credentials = self._clients.refresh(business_id)
        expiry = getattr(credentials, "expiry", None)
        return {
            "ok": True,
            "accessTokenExists": bool(getattr(credentials, "token", None)),
            "expiry": expiry.isoformat() if expiry else None,
        }

    def _event_body(
        self,
        *,
        business_id: str,
        business_name: Optional[str],
        customer: Customer,
        service: str,
        meeting_type: str,
        start_iso: str,
        end_iso: str,
    ) -> Dict[str, Any]:
        description = "\n".join(
            [
                f"Customer: {customer.name}",
                f"Phone: {customer.phone or 'N/A'}",
                f"Email: {customer.email}",
                f"Service: {service}",
                f"Type: {meeting_type}",
                f"Business: {business_name or ''}",
                f"Customer ID: {customer.id or 'N/A'}",
                f"Business ID: {business_id}",
            ]
        )
        return {
            "summary": f"{customer.name} - {service}",
            "description": description,
            "start": {"dateTime": start_iso, "timeZone": self._default_timezone},
            "end": {"dateTime": end_iso, "timeZone": self._default_timezone},
            "attendees": [
                {"email": customer.email, "displayName": customer.name, "responseStatus": "needsAction"}
            ],
            "conferenceData": {
                "createRequest": {
                    "requestId": uuid.uuid4().hex,
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            },
            "reminders": {
                "useDefault": False,
                "overrides": [
                    {"method": "email", "minutes": 24 * 60},
                    {"method": "email", "minutes": 60},
                    {"method": "popup", "minutes": 30},
                ],
            },
            "extendedProperties": {"private": {"businessId": business_id}},
        }

    def _bounded(self, label: str, func: Callable[[], T]) -> Optional[T]:
        try:
            return self._run_with_timeout(func)
        except Exception:
            logger.warning("Booking %s failed (non-critical)", label, exc_info=True)
            return None

    def _run_with_timeout(self, func: Callable[[], T]) -> T:
        future = _side_effects.submit(func)
        try:
            return future.result(timeout=self._side_effect_timeout)
        except FutureTimeoutError as exc:
            future.cancel()
            raise TimeoutError(f"Timed out after {self._side_effect_timeout}s") from exc
