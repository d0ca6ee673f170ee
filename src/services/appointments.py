from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, Dict, Optional

from bson import ObjectId

logger = logging.getLogger(__name__)


class AppointmentRepository:
    """Stores one appointment document per booked provider event."""

    def __init__(self, collection) -> None:
        self._collection = collection

    def insert(self, payload: Dict[str, Any]) -> str:
        now = datetime.now(UTC)
        document = {**payload, "status": payload.get("status", "confirmed"), "createdAt": now, "updatedAt": now}
        result = self._collection.insert_one(document)
        return str(result.inserted_id)

    def delete_for_business(self, appointment_id: str, business_id: str) -> bool:
        if not ObjectId.is_valid(appointment_id):
            return False
        result = self._collection.delete_one({"_id": ObjectId(appointment_id), "businessId": business_id})
        return bool(result.deleted_count)


class TaskRepository:
    def __init__(self, collection) -> None:
        self._collection = collection

    def create(self, payload: Dict[str, Any]) -> str:
        document = {"status": "todo", **payload, "createdAt": datetime.now(UTC)}
        result = self._collection.insert_one(document)
        return str(result.inserted_id)


class OrphanedEventRepository:
    """Provider events that exist upstream without a local appointment record."""

    def __init__(self, collection) -> None:
        self._collection = collection

    def record(self, business_id: str, calendar_id: str, event_id: str, error: str) -> Optional[str]:
        try:
            result = self._collection.insert_one(
                {
                    "businessId": business_id,
                    "calendarId": calendar_id,
                    "eventId": event_id,
                    "error": error,
                    "status": "pending",
                    "createdAt": datetime.now(UTC),
                }
            )
        except Exception:
            logger.warning("Failed to record orphaned event %s", event_id, exc_info=True)
            return None
        return str(result.inserted_id)
