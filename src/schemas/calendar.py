from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class BookingRequest(BaseModel):
    """Booking payload. Required fields are checked by the booking service so
    missing values answer 400 rather than a schema error."""

    model_config = ConfigDict(populate_by_name=True)

    business_id: Optional[str] = Field(default=None, alias="businessId")
    business_name: Optional[str] = Field(default=None, alias="businessName")
    attendee_email: Optional[str] = Field(default=None, alias="attendeeEmail")
    start_iso: Optional[str] = Field(default=None, alias="startISO")
    end_iso: Optional[str] = Field(default=None, alias="endISO")
    meeting_type: str = Field(default="appointment", alias="meetingType")
    customer_id: Optional[str] = Field(default=None, alias="customerId")
    customer_name: Optional[str] = Field(default=None, alias="customerName")
    phone: Optional[str] = None
    service: str = "Appointment"


class BookingResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    event_id: str = Field(alias="eventId")
    appointment_id: str = Field(alias="appointmentId")
    task_id: Optional[str] = Field(default=None, alias="taskId")
    meet_link: Optional[str] = Field(default=None, alias="meetLink")
    html_link: Optional[str] = Field(default=None, alias="htmlLink")
    notification_sent: bool = Field(default=False, alias="notificationSent")
    email_id: Optional[str] = Field(default=None, alias="emailId")
    message: str


class CalendarEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    start: Optional[str] = None
    end: Optional[str] = None
    meet_link: Optional[str] = Field(default=None, alias="meetLink")
    html_link: Optional[str] = Field(default=None, alias="htmlLink")
    attendees: List[str] = Field(default_factory=list)
    description: str = ""
    status: str = ""


class EventsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    events: List[CalendarEvent]
    business_id: str = Field(alias="businessId")


class DeleteAppointmentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    appointment_id: Optional[str] = Field(default=None, alias="appointmentId")
    google_event_id: Optional[str] = Field(default=None, alias="googleEventId")


class BackfillResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    window: Dict[str, str]
    business_id: str = Field(alias="businessId")
    calendar_id: str = Field(alias="calendarId")
    scanned: int
    eligible: int
    patched: int
    skipped: int
    errors: int


class OutboxDrainResult(BaseModel):
    attempted: int
    sent: int
    failed: int


def event_summary(item: Dict[str, Any]) -> CalendarEvent:
    start = item.get("start") or {}
    end = item.get("end") or {}
    return CalendarEvent(
        id=item.get("id") or "",
        title=item.get("summary") or "Untitled",
        start=start.get("dateTime") or start.get("date"),
        end=end.get("dateTime") or end.get("date"),
        meet_link=meet_link_for(item),
        html_link=item.get("htmlLink"),
        attendees=[a["email"] for a in item.get("attendees") or [] if a.get("email")],
        description=item.get("description") or "",
        status=item.get("status") or "",
    )


def meet_link_for(item: Dict[str, Any]) -> Optional[str]:
    if item.get("hangoutLink"):
        return item["hangoutLink"]
    entry_points = (item.get("conferenceData") or {}).get("entryPoints") or []
    if entry_points:
        return entry_points[0].get("uri")
    return None
