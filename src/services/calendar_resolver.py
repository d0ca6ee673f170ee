from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

from src.services.google_clients import GoogleClientProvider

logger = logging.getLogger(__name__)


def tenant_marker(business_id: str) -> str:
    return f"[businessId:{business_id}]"


class CalendarCache:
    """Process-wide businessId -> calendarId map with one lock per tenant.

    Mappings never expire; a provisioned calendar id does not change for the
    life of the process unless :meth:`evict` or :meth:`clear` is called.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, str] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def get(self, business_id: str) -> Optional[str]:
        return self._entries.get(business_id)

    def set(self, business_id: str, calendar_id: str) -> None:
        self._entries[business_id] = calendar_id

    def evict(self, business_id: str) -> None:
        self._entries.pop(business_id, None)

    def clear(self) -> None:
        self._entries.clear()
        logger.info("Calendar cache cleared")

    def lock_for(self, business_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(business_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[business_id] = lock
            return lock

    def __len__(self) -> int:
        return len(self._entries)


class CalendarResolver:
    """Finds or provisions the dedicated Google calendar for a tenant."""

    def __init__(
        self,
        clients: GoogleClientProvider,
        cache: CalendarCache,
        default_timezone: str,
        primary_business_id: str = "",
        primary_calendar_id: str = "",
    ) -> None:
        self._clients = clients
        self._cache = cache
        self._default_timezone = default_timezone
        self._primary_business_id = primary_business_id
        self._primary_calendar_id = primary_calendar_id

    def resolve(self, business_id: str, display_name: Optional[str] = None) -> str:
        if self._primary_business_id and business_id == self._primary_business_id and self._primary_calendar_id:
            self._cache.set(business_id, self._primary_calendar_id)
            return self._primary_calendar_id

        cached = self._cache.get(business_id)
        if cached:
            return cached

        # Single-flight: concurrent first resolutions for a tenant wait here
        # instead of each provisioning a calendar.
        with self._cache.lock_for(business_id):
            cached = self._cache.get(business_id)
            if cached:
                return cached
            calendar_id = self._search_or_provision(business_id, display_name)
            self._cache.set(business_id, calendar_id)
            return calendar_id

    def _search_or_provision(self, business_id: str, display_name: Optional[str]) -> str:
        client = self._clients.calendar_for(business_id)
        marker = tenant_marker(business_id)

        for calendar in client.list_calendars():
            if marker in (calendar.get("description") or "") and calendar.get("id"):
                logger.info("Found existing calendar %s for business %s", calendar["id"], business_id)
                return calendar["id"]

        logger.info("Creating new calendar for business %s", business_id)
        created = client.create_calendar(
            summary=display_name or f"Business Calendar - {business_id[:8]}",
            description=f"Auto-created calendar for tenant {marker}",
            timezone=self._default_timezone,
        )
        calendar_id = created["id"]
        logger.info("Created calendar %s for business %s", calendar_id, business_id)
        return calendar_id
