from __future__ import annotations

import pytest
from google.auth.exceptions import RefreshError

from fakes import Harness, business_document
from src.services.calendar import Customer
from src.services.errors import ReauthRequiredError

T1 = "65f1c0ffee00000000000001"


def _harness_with_queued_email():
    harness = Harness([business_document(T1)], email_error=RuntimeError("gmail quota exceeded"))
    harness.service.book(
        business_id=T1,
        customer=Customer(name="Casey Jordan", email="casey@example.com"),
        service="Cleaning",
        start_iso="2025-03-01T10:00:00Z",
        end_iso="2025-03-01T11:00:00Z",
    )
    return harness


def test_drain_sends_pending_messages():
    harness = _harness_with_queued_email()
    harness.email.error = None

    result = harness.notification_outbox.drain(T1)

    assert result == {"attempted": 1, "sent": 1, "failed": 0}
    assert harness.email.sent[0]["recipient"] == "casey@example.com"
    assert harness.outbox.documents[0]["status"] == "sent"


def test_drain_keeps_message_pending_on_transient_failure():
    harness = _harness_with_queued_email()

    result = harness.notification_outbox.drain(T1)

    assert result == {"attempted": 1, "sent": 0, "failed": 1}
    entry = harness.outbox.documents[0]
    assert entry["status"] == "pending"
    assert entry["attempts"] == 2
    assert harness.store.status(T1)["status"] == "connected"


def test_drain_with_revoked_mailbox_asks_for_reauth():
    harness = _harness_with_queued_email()
    harness.email.error = RefreshError("invalid_grant: Token has been expired or revoked.")

    with pytest.raises(ReauthRequiredError) as excinfo:
        harness.notification_outbox.drain(T1)

    assert excinfo.value.status_code == 401
    assert harness.store.status(T1)["status"] == "needs_reauth"
    assert harness.store.get(T1) is None
    entry = harness.outbox.documents[0]
    assert entry["status"] == "pending"
    assert entry["attempts"] == 2


def test_drain_without_credential_asks_for_reauth():
    harness = _harness_with_queued_email()
    harness.store.mark_needs_reauth(T1, clear_token=True)

    with pytest.raises(ReauthRequiredError):
        harness.notification_outbox.drain(T1)

    assert harness.outbox.documents[0]["attempts"] == 1


def test_drain_with_nothing_pending_makes_no_provider_calls():
    harness = Harness([business_document(T1, refresh_token=None)])

    assert harness.notification_outbox.drain(T1) == {"attempted": 0, "sent": 0, "failed": 0}
