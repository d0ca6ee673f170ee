from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import UTC, datetime
from typing import Dict

from src.services.google_clients import GoogleClientProvider
from src.services.notifications import ConfirmationEmail
from src.services.provider_errors import classify
from src.services.reauth import ReauthHandler

logger = logging.getLogger(__name__)


class NotificationOutbox:
    """Durable queue for confirmation emails that could not be sent inline.

    Messages stay ``pending`` until a drain succeeds, so a message may be
    delivered more than once. A drain stops at the first failure that needs
    the tenant to reconnect; the remaining messages wait for the next drain.
    """

    def __init__(self, collection, clients: GoogleClientProvider, reauth: ReauthHandler) -> None:
        self._collection = collection
        self._clients = clients
        self._reauth = reauth

    def enqueue(self, business_id: str, email: ConfirmationEmail, error: str, appointment_id: str = "") -> None:
        try:
            self._collection.insert_one(
                {
                    "businessId": business_id,
                    "appointmentId": appointment_id,
                    "message": asdict(email),
                    "status": "pending",
                    "attempts": 1,
                    "lastError": error,
                    "createdAt": datetime.now(UTC),
                }
            )
        except Exception:
            logger.warning("Failed to queue confirmation email for business %s", business_id, exc_info=True)

    def drain(self, business_id: str) -> Dict[str, int]:
        attempted = sent = failed = 0
        pending = list(self._collection.find({"businessId": business_id, "status": "pending"}))
        if not pending:
            return {"attempted": 0, "sent": 0, "failed": 0}

        with self._reauth.guard(business_id):
            client = self._clients.email_for(business_id)
        for entry in pending:
            attempted += 1
            message = ConfirmationEmail(**entry["message"])
            try:
                client.send(
                    recipient=message.recipient,
                    subject=message.subject,
                    body=message.body,
                    sender_name=message.sender_name,
                    sender_email=message.sender_email,
                )
            except Exception as exc:
                failed += 1
                self._collection.update_one(
                    {"_id": entry["_id"]},
                    {"$inc": {"attempts": 1}, "$set": {"lastError": str(exc)}},
                )
                if classify(exc).is_reauth_required:
                    raise self._reauth.handle(business_id, exc) from exc
                logger.warning("Outbox send failed for %s", entry["_id"], exc_info=True)
                continue
            sent += 1
            self._collection.update_one(
                {"_id": entry["_id"]},
                {"$set": {"status": "sent", "sentAt": datetime.now(UTC)}},
            )
        return {"attempted": attempted, "sent": sent, "failed": failed}
