from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from typing import Iterator

from pymongo.errors import DuplicateKeyError

from src.services.errors import SlotLockedError

logger = logging.getLogger(__name__)


class SlotLockRepository:
    """Advisory per-tenant, per-slot locks held for the conflict-check-then-insert window.

    Only identical (tenant, start, end) requests exclude each other. Overlapping
    slots with different bounds can still race across processes.
    """

    def __init__(self, collection, ttl_seconds: int = 60) -> None:
        self._collection = collection
        self._ttl = timedelta(seconds=ttl_seconds)

    def ensure_indexes(self) -> None:
        self._collection.create_index("expiresAt", expireAfterSeconds=0)

    @staticmethod
    def key_for(business_id: str, start_iso: str, end_iso: str) -> str:
        return f"{business_id}|{_normalized(start_iso)}|{_normalized(end_iso)}"

    def acquire(self, business_id: str, start_iso: str, end_iso: str) -> str:
        key = self.key_for(business_id, start_iso, end_iso)
        now = datetime.now(UTC)
        # The TTL monitor runs about once a minute; expired locks are cleared here too.
        self._collection.delete_one({"_id": key, "expiresAt": {"$lt": now}})
        try:
            self._collection.insert_one(
                {
                    "_id": key,
                    "businessId": business_id,
                    "createdAt": now,
                    "expiresAt": now + self._ttl,
                }
            )
        except DuplicateKeyError as exc:
            raise SlotLockedError("Another booking for this time slot is in progress") from exc
        return key

    def release(self, key: str) -> None:
        try:
            self._collection.delete_one({"_id": key})
        except Exception:
            logger.warning("Failed to release booking lock %s; it will expire on its own", key, exc_info=True)

    @contextmanager
    def hold(self, business_id: str, start_iso: str, end_iso: str) -> Iterator[str]:
        key = self.acquire(business_id, start_iso, end_iso)
        try:
            yield key
        finally:
            self.release(key)


def _normalized(value: str) -> str:
    """UTC form of an offset-aware timestamp, so equal instants share a key."""
    moment = datetime.fromisoformat(value)
    if moment.tzinfo is None:
        return moment.isoformat()
    return moment.astimezone(UTC).isoformat()
