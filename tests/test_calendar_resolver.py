from __future__ import annotations

import threading

import pytest

from fakes import FakeCalendarClient, FakeClientProvider, FakeEmailClient, MemoryCollection, business_document
from src.services.calendar_resolver import CalendarCache, CalendarResolver, tenant_marker
from src.services.credentials import CredentialStore
from src.services.errors import CredentialMissingError

BUSINESS_ID = "65f1c0ffee0000000000beef"
PRIMARY_ID = "65f1c0ffee0000000000aaaa"


def _resolver(calendars=None, refresh_token="refresh-1", **kwargs):
    store = CredentialStore(MemoryCollection([business_document(BUSINESS_ID, refresh_token=refresh_token)]))
    calendar = FakeCalendarClient(calendars)
    clients = FakeClientProvider(store, calendar, FakeEmailClient())
    cache = CalendarCache()
    resolver = CalendarResolver(clients, cache, default_timezone="America/New_York", **kwargs)
    return resolver, calendar, cache


def test_primary_tenant_shortcut_skips_provider():
    resolver, calendar, cache = _resolver(
        primary_business_id=PRIMARY_ID,
        primary_calendar_id="primary@example.com",
    )

    assert resolver.resolve(PRIMARY_ID) == "primary@example.com"
    assert cache.get(PRIMARY_ID) == "primary@example.com"
    assert calendar.created_calendars == []


def test_marker_bearing_calendar_is_found():
    resolver, calendar, cache = _resolver(
        calendars=[
            {"id": "other@group", "description": "Team calendar"},
            {"id": "tenant@group", "description": f"Auto-created calendar for tenant {tenant_marker(BUSINESS_ID)}"},
        ]
    )

    assert resolver.resolve(BUSINESS_ID) == "tenant@group"
    assert cache.get(BUSINESS_ID) == "tenant@group"
    assert calendar.created_calendars == []


def test_provisions_once_then_resolution_is_idempotent():
    resolver, calendar, cache = _resolver()

    first = resolver.resolve(BUSINESS_ID, "Bright Smiles Dental")
    cache.clear()
    second = resolver.resolve(BUSINESS_ID)

    assert first == second
    assert len(calendar.created_calendars) == 1
    created = calendar.created_calendars[0]
    assert created["summary"] == "Bright Smiles Dental"
    assert tenant_marker(BUSINESS_ID) in created["description"]
    assert created["timeZone"] == "America/New_York"


def test_cache_hit_does_not_require_credentials():
    resolver, _, cache = _resolver(refresh_token=None)
    cache.set(BUSINESS_ID, "cached@group")

    assert resolver.resolve(BUSINESS_ID) == "cached@group"


def test_missing_credential_fails_fast():
    resolver, calendar, _ = _resolver(refresh_token=None)

    with pytest.raises(CredentialMissingError):
        resolver.resolve(BUSINESS_ID)
    assert calendar.created_calendars == []


def test_concurrent_first_resolutions_provision_a_single_calendar():
    resolver, calendar, _ = _resolver()
    calendar.create_delay = 0.05
    barrier = threading.Barrier(5)
    results = []

    def worker():
        barrier.wait()
        results.append(resolver.resolve(BUSINESS_ID))

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(calendar.created_calendars) == 1
    assert len(set(results)) == 1
