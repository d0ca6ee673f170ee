from __future__ import annotations

import pytest
from google.auth.exceptions import RefreshError

from fakes import Harness, business_document
from src.services.calendar import Customer
from src.services.errors import (
    AppointmentPersistenceError,
    ProviderFailure,
    ReauthRequiredError,
    SlotConflictError,
    SlotLockedError,
    ValidationError,
)
from src.services.locks import SlotLockRepository

T1 = "65f1c0ffee00000000000001"
T2 = "65f1c0ffee00000000000002"
START = "2025-03-01T10:00:00Z"
END = "2025-03-01T11:00:00Z"


def _customer(**overrides):
    values = {"name": "Casey Jordan", "email": "casey@example.com", "phone": "+1 555 0100", "id": "cust-1"}
    values.update(overrides)
    return Customer(**values)


def _harness(**kwargs):
    return Harness(
        [business_document(T1, googleEmail="owner@brightsmiles.test"), business_document(T2, refresh_token=None)],
        **kwargs,
    )


def _book(harness, business_id=T1, start=START, end=END, **customer):
    return harness.service.book(
        business_id=business_id,
        customer=_customer(**customer),
        service="Cleaning",
        start_iso=start,
        end_iso=end,
    )


def test_booking_creates_event_records_and_sends_email():
    harness = _harness()

    result = _book(harness)

    assert result.event_id and result.appointment_id and result.task_id
    assert result.notification_sent is True
    assert result.meet_link == f"https://meet.google.com/{result.event_id}"
    assert "confirmation email sent" in result.message

    inserted = harness.calendar.inserted[0]["body"]
    assert inserted["summary"] == "Casey Jordan - Cleaning"
    assert inserted["extendedProperties"]["private"]["businessId"] == T1
    assert inserted["attendees"][0]["email"] == "casey@example.com"

    appointment = harness.appointments.documents[0]
    assert appointment["googleEventId"] == result.event_id
    assert appointment["status"] == "confirmed"
    assert harness.tasks.documents[0]["calendarEventId"] == result.event_id

    sent = harness.email.sent[0]
    assert sent["recipient"] == "casey@example.com"
    assert sent["sender_email"] == "owner@brightsmiles.test"
    assert sent["subject"].startswith("Appointment Confirmation: Cleaning")
    assert harness.locks.documents == []


def test_overlapping_slot_returns_conflict_without_inserting():
    harness = _harness()
    calendar_id = harness.resolver.resolve(T1)
    harness.calendar.add_event(calendar_id, START, END, id="busy")

    with pytest.raises(SlotConflictError) as excinfo:
        _book(harness, start="2025-03-01T10:30:00Z", end="2025-03-01T11:30:00Z")

    assert [item["id"] for item in excinfo.value.conflicts] == ["busy"]
    assert excinfo.value.status_code == 409
    assert harness.calendar.inserted == []
    assert harness.appointments.documents == []


def test_adjacent_slot_is_not_a_conflict():
    harness = _harness()
    calendar_id = harness.resolver.resolve(T1)
    harness.calendar.add_event(calendar_id, START, END)

    result = _book(harness, start=END, end="2025-03-01T12:00:00Z")

    assert result.event_id


def test_missing_credential_is_a_credential_error():
    harness = _harness()

    with pytest.raises(ReauthRequiredError) as excinfo:
        _book(harness, business_id=T2)

    assert excinfo.value.code == "google_reauth_required"
    assert excinfo.value.status_code == 401
    assert harness.calendar.list_calls == 0
    assert harness.store.status(T2)["status"] == "unconnected"


def test_cleared_credential_on_connected_tenant_asks_for_reauth():
    harness = Harness([business_document(T2, refresh_token=None, calendarConnectionStatus="connected")])

    with pytest.raises(ReauthRequiredError):
        _book(harness, business_id=T2)

    assert harness.store.status(T2)["status"] == "needs_reauth"


@pytest.mark.parametrize(
    "overrides,message",
    [
        ({"email": None}, "attendeeEmail"),
        ({"name": ""}, "customerName"),
    ],
)
def test_missing_customer_fields_are_rejected_before_provider_calls(overrides, message):
    harness = _harness()

    with pytest.raises(ValidationError) as excinfo:
        _book(harness, **overrides)

    assert message in excinfo.value.message
    assert harness.calendar.list_calls == 0


@pytest.mark.parametrize(
    "business_id,start,end",
    [
        (None, START, END),
        ("not-an-id", START, END),
        (T1, None, END),
        (T1, "tomorrow", END),
        (T1, END, START),
        (T1, "2025-03-01T10:00:00", END),
    ],
)
def test_invalid_booking_input_is_rejected(business_id, start, end):
    harness = _harness()

    with pytest.raises(ValidationError):
        _book(harness, business_id=business_id, start=start, end=end)

    assert harness.calendar.list_calls == 0


def test_notification_failure_does_not_fail_booking():
    harness = _harness(email_error=RuntimeError("gmail quota exceeded"))

    result = _book(harness)

    assert result.notification_sent is False
    assert result.appointment_id
    assert "email failed to send" in result.message
    queued = harness.outbox.documents[0]
    assert queued["status"] == "pending"
    assert queued["appointmentId"] == result.appointment_id
    assert queued["message"]["recipient"] == "casey@example.com"


def test_revoked_mailbox_during_booking_marks_tenant_for_reauth():
    harness = _harness(email_error=RefreshError("invalid_grant: Token has been expired or revoked."))
    harness.resolver.resolve(T1)

    result = _book(harness)

    assert result.appointment_id
    assert result.notification_sent is False
    assert harness.store.status(T1)["status"] == "needs_reauth"
    assert harness.store.get(T1) is None
    assert harness.cache.get(T1) is None
    assert harness.outbox.documents[0]["status"] == "pending"


def test_task_failure_does_not_fail_booking():
    harness = _harness()
    harness.tasks.fail_inserts = True

    result = _book(harness)

    assert result.task_id is None
    assert result.appointment_id
    assert result.notification_sent is True


def test_appointment_write_failure_reports_orphaned_event():
    harness = _harness()
    harness.appointments.fail_inserts = True

    with pytest.raises(AppointmentPersistenceError) as excinfo:
        _book(harness)

    event_id = excinfo.value.event_id
    assert harness.calendar.inserted
    assert harness.orphans.documents[0]["eventId"] == event_id
    assert harness.tasks.documents == []
    assert harness.email.sent == []


def test_identical_slot_in_progress_is_locked():
    harness = _harness()
    harness.lock_repository.acquire(T1, START, END)

    with pytest.raises(SlotLockedError):
        _book(harness)

    assert harness.calendar.inserted == []


def test_same_instant_in_other_notation_is_locked():
    harness = _harness()
    harness.lock_repository.acquire(T1, "2025-03-01T10:00:00+00:00", "2025-03-01T06:00:00-05:00")

    with pytest.raises(SlotLockedError):
        _book(harness, start=START, end=END)

    assert harness.calendar.inserted == []


def test_lock_key_is_independent_of_offset_notation():
    assert SlotLockRepository.key_for(T1, START, END) == SlotLockRepository.key_for(
        T1, "2025-03-01T10:00:00+00:00", "2025-03-01T12:00:00+01:00"
    )


def test_expired_lock_is_reclaimed():
    harness = _harness()
    expired = SlotLockRepository(harness.locks, ttl_seconds=-1)
    expired.acquire(T1, START, END)

    result = _book(harness)

    assert result.event_id


def test_revoked_token_during_booking_marks_tenant_for_reauth():
    harness = _harness()
    harness.resolver.resolve(T1)
    harness.calendar.list_error = RefreshError("invalid_grant: Token has been expired or revoked.")

    with pytest.raises(ReauthRequiredError):
        _book(harness)

    assert harness.store.get(T1) is None
    assert harness.store.status(T1)["status"] == "needs_reauth"
    assert harness.cache.get(T1) is None


def test_other_provider_failures_surface_as_provider_errors():
    harness = _harness()
    harness.calendar.list_error = RuntimeError("backend unavailable")

    with pytest.raises(ProviderFailure) as excinfo:
        _book(harness)

    assert excinfo.value.status_code == 500
    assert excinfo.value.message == "backend unavailable"
    assert harness.store.get(T1) == "refresh-1"


def test_list_events_normalizes_items():
    harness = _harness()
    calendar_id = harness.resolver.resolve(T1)
    harness.calendar.add_event(
        calendar_id,
        START,
        END,
        id="evt-9",
        summary="Checkup",
        hangoutLink="https://meet.google.com/abc",
        attendees=[{"email": "pat@example.com"}, {"displayName": "no email"}],
    )

    events = harness.service.list_events(T1, "2025-03-01T00:00:00Z", "2025-03-02T00:00:00Z")

    assert len(events) == 1
    event = events[0]
    assert event.id == "evt-9"
    assert event.title == "Checkup"
    assert event.meet_link == "https://meet.google.com/abc"
    assert event.attendees == ["pat@example.com"]


def test_list_events_requires_window():
    harness = _harness()

    with pytest.raises(ValidationError):
        harness.service.list_events(T1, None, "2025-03-02T00:00:00Z")


def test_delete_appointment_is_tenant_scoped():
    harness = _harness()
    result = _book(harness)

    assert harness.service.delete_appointment(T2, result.appointment_id, None) is False
    assert harness.service.delete_appointment(T1, result.appointment_id, result.event_id) is True
    assert harness.appointments.documents == []
    assert harness.calendar.deleted[0]["event_id"] == result.event_id


def test_delete_appointment_tolerates_provider_failure():
    harness = _harness()

    assert harness.service.delete_appointment(T2, None, "evt-1") is False
    assert harness.calendar.deleted == []


def test_check_token_reports_access_token():
    harness = _harness()

    assert harness.service.check_token(T1) == {"ok": True, "accessTokenExists": True, "expiry": None}
