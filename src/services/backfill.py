from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from src.services.calendar_resolver import CalendarResolver
from src.services.credentials import business_object_id
from src.services.errors import ValidationError
from src.services.google_clients import GoogleClientProvider
from src.services.reauth import ReauthHandler

logger = logging.getLogger(__name__)

MARKER_PROPERTY = "businessId"


def is_authorized(expected_secret: str, provided_secret: Optional[str]) -> bool:
    """Constant-time check of the operator secret; an unset secret rejects everyone."""
    if not expected_secret or not provided_secret:
        return False
    return hmac.compare_digest(expected_secret.encode("utf-8"), provided_secret.encode("utf-8"))


@dataclass
class BackfillCounts:
    calendar_id: str
    scanned: int = 0
    eligible: int = 0
    patched: int = 0
    skipped: int = 0
    errors: int = 0


class LegacyEventTagger:
    """Tags historical events with the owning tenant's id.

    Only events without a marker are eligible, so a second pass over the same
    window finds nothing to patch. Patches run one at a time to stay inside
    provider rate limits.
    """

    def __init__(
        self,
        clients: GoogleClientProvider,
        resolver: CalendarResolver,
        reauth: ReauthHandler,
        primary_calendar_id: str = "",
    ) -> None:
        self._clients = clients
        self._resolver = resolver
        self._reauth = reauth
        self._primary_calendar_id = primary_calendar_id

    def backfill(
        self,
        business_id: Optional[str],
        time_min: Optional[str],
        time_max: Optional[str],
        calendar_id: Optional[str] = None,
    ) -> BackfillCounts:
        if not business_id:
            raise ValidationError("Missing businessId (query param) or DEFAULT_BUSINESS_ID env")
        business_object_id(business_id)
        if not time_min or not time_max:
            raise ValidationError("Missing timeMin/timeMax")

        with self._reauth.guard(business_id):
            calendar_id = calendar_id or self._primary_calendar_id or self._resolver.resolve(business_id)
            client = self._clients.calendar_for(business_id)
            items = client.list_events(
                calendar_id,
                time_min,
                time_max,
                fields="items(id,extendedProperties)",
            )

        counts = BackfillCounts(calendar_id=calendar_id, scanned=len(items))
        eligible = [item for item in items if not _marker_of(item)]
        counts.eligible = len(eligible)

        for item in eligible:
            event_id = item.get("id")
            if not event_id:
                counts.skipped += 1
                continue
            private = dict(_private_properties(item))
            private[MARKER_PROPERTY] = business_id
            try:
                client.patch_event(
                    calendar_id,
                    event_id,
                    {"extendedProperties": {"private": private}},
                )
            except Exception:
                counts.errors += 1
                logger.warning("tag-legacy patch failed for event %s", event_id, exc_info=True)
                continue
            counts.patched += 1

        logger.info(
            "tag-legacy for business %s on %s: scanned=%d eligible=%d patched=%d skipped=%d errors=%d",
            business_id,
            calendar_id,
            counts.scanned,
            counts.eligible,
            counts.patched,
            counts.skipped,
            counts.errors,
        )
        return counts


def _private_properties(item: Dict[str, Any]) -> Dict[str, Any]:
    return (item.get("extendedProperties") or {}).get("private") or {}


def _marker_of(item: Dict[str, Any]) -> Optional[str]:
    return _private_properties(item).get(MARKER_PROPERTY) or None
