from __future__ import annotations

import pytest
from bson import ObjectId

from fakes import MemoryCollection, business_document
from src.schemas.tenant import OAuthPurpose
from src.services.credentials import CredentialStore
from src.services.errors import CredentialMissingError, ValidationError
from src.utils.crypto import TokenCipher

BUSINESS_ID = "65f1c0ffee0000000000beef"


def _store(refresh_token=None, cipher=None, clear_token_on_reauth=True):
    collection = MemoryCollection([business_document(BUSINESS_ID, refresh_token=refresh_token)])
    return CredentialStore(collection, cipher=cipher, clear_token_on_reauth=clear_token_on_reauth), collection


def test_put_encrypts_token_at_rest_and_get_returns_plaintext():
    store, collection = _store(cipher=TokenCipher("a long operator secret"))

    store.put(BUSINESS_ID, "refresh-abc")

    raw = collection.documents[0]["calendarRefreshToken"]
    assert raw != "refresh-abc"
    assert store.get(BUSINESS_ID) == "refresh-abc"
    assert collection.documents[0]["calendarConnectionStatus"] == "connected"


def test_put_rejects_empty_credential():
    store, _ = _store(refresh_token="refresh-old")

    with pytest.raises(ValueError):
        store.put(BUSINESS_ID, "")

    assert store.get(BUSINESS_ID) == "refresh-old"


def test_require_raises_when_no_credential():
    store, _ = _store(refresh_token=None)

    with pytest.raises(CredentialMissingError):
        store.require(BUSINESS_ID)


def test_undecryptable_token_is_treated_as_missing():
    store, collection = _store(cipher=TokenCipher("secret-one"))
    store.put(BUSINESS_ID, "refresh-abc")
    rotated = CredentialStore(collection, cipher=TokenCipher("secret-two"))

    assert rotated.get(BUSINESS_ID) is None
    with pytest.raises(CredentialMissingError):
        rotated.require(BUSINESS_ID)


def test_mark_needs_reauth_clears_token_by_default():
    store, collection = _store(refresh_token="refresh-old")

    store.mark_needs_reauth(BUSINESS_ID)

    document = collection.documents[0]
    assert "calendarRefreshToken" not in document
    assert document["calendarConnectionStatus"] == "needs_reauth"
    assert document["calendarNeedsReauthAt"] is not None


def test_mark_needs_reauth_can_keep_token():
    store, collection = _store(refresh_token="refresh-old", clear_token_on_reauth=False)

    store.mark_needs_reauth(BUSINESS_ID)

    assert collection.documents[0]["calendarRefreshToken"] == "refresh-old"
    assert store.status(BUSINESS_ID)["status"] == "needs_reauth"


def test_gmail_consent_does_not_change_calendar_status():
    store, collection = _store(refresh_token=None)

    store.put(BUSINESS_ID, "refresh-gmail", purpose=OAuthPurpose.GMAIL, google_email="owner@example.com")

    document = collection.documents[0]
    assert document["gmailConnectionStatus"] == "connected"
    assert "calendarConnectionStatus" not in document
    assert "calendarNeedsReauthAt" not in document
    assert document["googleEmail"] == "owner@example.com"


def test_gmail_consent_lifts_pending_calendar_reauth():
    store, collection = _store(refresh_token="refresh-old", clear_token_on_reauth=False)
    store.mark_needs_reauth(BUSINESS_ID)

    store.put(BUSINESS_ID, "refresh-gmail", purpose=OAuthPurpose.GMAIL)

    document = collection.documents[0]
    assert document["calendarConnectionStatus"] == "connected"
    assert "calendarNeedsReauthAt" not in document
    assert store.get(BUSINESS_ID) == "refresh-gmail"


def test_needs_reauth_can_be_limited_to_connected_tenants():
    store, collection = _store(refresh_token=None)

    assert store.mark_needs_reauth(BUSINESS_ID, only_if_connected=True) is False
    assert store.status(BUSINESS_ID)["status"] == "unconnected"
    assert "calendarNeedsReauthAt" not in collection.documents[0]

    collection.documents[0]["calendarConnectionStatus"] = "connected"
    assert store.mark_needs_reauth(BUSINESS_ID, only_if_connected=True) is True
    assert store.status(BUSINESS_ID)["status"] == "needs_reauth"


def test_invalid_business_id_is_a_validation_error():
    store, _ = _store()

    with pytest.raises(ValidationError):
        store.get("not-an-object-id")


def test_get_business_omits_credential():
    store, _ = _store(refresh_token="refresh-old")

    business = store.get_business(BUSINESS_ID)

    assert business["_id"] == ObjectId(BUSINESS_ID)
    assert "calendarRefreshToken" not in business
