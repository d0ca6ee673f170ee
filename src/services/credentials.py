from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, Dict, Optional

from bson import ObjectId
from bson.errors import InvalidId

from src.schemas.tenant import ConnectionStatus, OAuthPurpose
from src.services.errors import CredentialMissingError, ValidationError
from src.utils.crypto import TokenCipher

logger = logging.getLogger(__name__)

TOKEN_FIELD = "calendarRefreshToken"
STATUS_FIELD = "calendarConnectionStatus"
CONNECTED_AT_FIELD = "calendarConnectedAt"
NEEDS_REAUTH_AT_FIELD = "calendarNeedsReauthAt"
GMAIL_STATUS_FIELD = "gmailConnectionStatus"
GMAIL_CONNECTED_AT_FIELD = "gmailConnectedAt"
GOOGLE_EMAIL_FIELD = "googleEmail"


def business_object_id(business_id: str) -> ObjectId:
    try:
        return ObjectId(business_id)
    except (InvalidId, TypeError) as exc:
        raise ValidationError("Invalid businessId") from exc


class CredentialStore:
    """Persists one refresh credential per tenant on the business document.

    Writes are synchronous and last-write-wins; document store failures
    propagate to the caller.
    """

    def __init__(self, collection, cipher: Optional[TokenCipher] = None, clear_token_on_reauth: bool = True) -> None:
        self._collection = collection
        self._cipher = cipher or TokenCipher()
        self._clear_token_on_reauth = clear_token_on_reauth

    def get_business(self, business_id: str) -> Optional[Dict[str, Any]]:
        """Return the tenant record without its credential."""
        return self._collection.find_one(
            {"_id": business_object_id(business_id)},
            projection={TOKEN_FIELD: 0},
        )

    def get(self, business_id: str) -> Optional[str]:
        document = self._collection.find_one(
            {"_id": business_object_id(business_id)},
            projection={TOKEN_FIELD: 1},
        )
        stored = (document or {}).get(TOKEN_FIELD)
        if not stored:
            return None
        credential = self._cipher.decrypt(stored)
        if credential is None:
            logger.warning("Stored refresh token could not be decrypted", extra={"business_id": business_id})
        return credential

    def require(self, business_id: str) -> str:
        credential = self.get(business_id)
        if not credential:
            raise CredentialMissingError(business_id)
        return credential

    def put(
        self,
        business_id: str,
        credential: str,
        purpose: OAuthPurpose = OAuthPurpose.CALENDAR,
        google_email: Optional[str] = None,
    ) -> None:
        if not credential:
            raise ValueError("put() requires a non-empty credential")
        update = self._connection_update(purpose, google_email)
        update["$set"][TOKEN_FIELD] = self._cipher.encrypt(credential)
        self._record_connection(business_id, purpose, update)
        logger.info("Stored refresh credential for business %s (%s)", business_id, purpose.value)

    def mark_connected(
        self,
        business_id: str,
        purpose: OAuthPurpose = OAuthPurpose.CALENDAR,
        google_email: Optional[str] = None,
    ) -> None:
        """Record a successful consent without touching the stored credential."""
        self._record_connection(business_id, purpose, self._connection_update(purpose, google_email))
        logger.info("Kept existing refresh credential for business %s (%s)", business_id, purpose.value)

    def mark_needs_reauth(
        self,
        business_id: str,
        clear_token: Optional[bool] = None,
        only_if_connected: bool = False,
    ) -> bool:
        """Flag the tenant for reconnection. Returns False when nothing was marked.

        With ``only_if_connected`` a tenant that never completed a calendar
        connection keeps its ``unconnected`` status.
        """
        if clear_token is None:
            clear_token = self._clear_token_on_reauth
        query: Dict[str, Any] = {"_id": business_object_id(business_id)}
        if only_if_connected:
            query[STATUS_FIELD] = {"$in": [ConnectionStatus.CONNECTED.value, ConnectionStatus.NEEDS_REAUTH.value]}
        update: Dict[str, Any] = {
            "$set": {
                STATUS_FIELD: ConnectionStatus.NEEDS_REAUTH.value,
                NEEDS_REAUTH_AT_FIELD: datetime.now(UTC),
            }
        }
        if clear_token:
            update["$unset"] = {TOKEN_FIELD: ""}
        result = self._collection.update_one(query, update)
        if not result.matched_count:
            return False
        logger.warning(
            "Marked business %s as needing Google reauthorization (token cleared=%s)", business_id, clear_token
        )
        return True

    def status(self, business_id: str) -> Dict[str, Any]:
        document = self.get_business(business_id) or {}
        return {
            "business_id": business_id,
            "status": document.get(STATUS_FIELD) or ConnectionStatus.UNCONNECTED.value,
            "connected_at": document.get(CONNECTED_AT_FIELD),
            "needs_reauth_at": document.get(NEEDS_REAUTH_AT_FIELD),
            "gmail_status": document.get(GMAIL_STATUS_FIELD) or ConnectionStatus.UNCONNECTED.value,
        }

    def _record_connection(self, business_id: str, purpose: OAuthPurpose, update: Dict[str, Any]) -> None:
        object_id = business_object_id(business_id)
        self._collection.update_one({"_id": object_id}, update)
        if purpose is not OAuthPurpose.CALENDAR:
            # Every purpose shares one credential, so any successful consent
            # lifts a pending reauth on the calendar connection.
            self._collection.update_one(
                {"_id": object_id, STATUS_FIELD: ConnectionStatus.NEEDS_REAUTH.value},
                {"$set": {STATUS_FIELD: ConnectionStatus.CONNECTED.value}},
            )

    def _connection_update(self, purpose: OAuthPurpose, google_email: Optional[str]) -> Dict[str, Any]:
        now = datetime.now(UTC)
        fields: Dict[str, Any] = {CONNECTED_AT_FIELD: now}
        update: Dict[str, Any] = {"$set": fields, "$unset": {NEEDS_REAUTH_AT_FIELD: ""}}
        if purpose is OAuthPurpose.CALENDAR:
            fields[STATUS_FIELD] = ConnectionStatus.CONNECTED.value
        else:
            fields[GMAIL_STATUS_FIELD] = ConnectionStatus.CONNECTED.value
            fields[GMAIL_CONNECTED_AT_FIELD] = now
        if google_email:
            fields[GOOGLE_EMAIL_FIELD] = google_email
        return update
