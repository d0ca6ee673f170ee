from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional
from urllib.parse import urlencode

from src.adapters.oauth_client import GoogleOAuthClient
from src.schemas.tenant import OAuthPurpose
from src.services.credentials import CredentialStore, business_object_id
from src.services.errors import ValidationError

logger = logging.getLogger(__name__)

BASE_SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/userinfo.email",
]
SCOPES: Dict[OAuthPurpose, List[str]] = {
    OAuthPurpose.CALENDAR: [
        *BASE_SCOPES,
        "https://www.googleapis.com/auth/calendar",
        "https://www.googleapis.com/auth/calendar.events",
    ],
    OAuthPurpose.GMAIL: [
        *BASE_SCOPES,
        "https://www.googleapis.com/auth/gmail.readonly",
        "https://www.googleapis.com/auth/gmail.send",
    ],
}
SUCCESS_INDICATOR = {OAuthPurpose.CALENDAR: "google", OAuthPurpose.GMAIL: "gmail"}


@dataclass(frozen=True)
class OAuthState:
    business_id: str
    purpose: OAuthPurpose
    next: str


def encode_state(state: OAuthState) -> str:
    payload = json.dumps({"businessId": state.business_id, "purpose": state.purpose.value, "next": state.next})
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii").rstrip("=")


def decode_state(token: str, default_next: str) -> OAuthState:
    """Parse a state token. Raises ValueError when it is not valid base64url JSON."""
    padded = token + "=" * (-len(token) % 4)
    parsed = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8"))
    if not isinstance(parsed, dict):
        raise ValueError("state payload must be an object")
    return OAuthState(
        business_id=str(parsed.get("businessId") or ""),
        purpose=OAuthPurpose.from_label(parsed.get("purpose")),
        next=str(parsed.get("next") or default_next),
    )


def _with_query(path: str, params: Dict[str, str]) -> str:
    separator = "&" if "?" in path else "?"
    return f"{path}{separator}{urlencode(params)}"


class OAuthService:
    """Starts Google consent and completes the authorization callback."""

    def __init__(
        self,
        oauth_client: GoogleOAuthClient,
        credential_store: CredentialStore,
        default_next: str = "/dashboard/calendar",
        error_path: str = "/dashboard/calendar",
        integrations_path: str = "/dashboard/integrations",
    ) -> None:
        self._oauth = oauth_client
        self._store = credential_store
        self._default_next = default_next
        self._error_path = error_path
        self._integrations_path = integrations_path

    def authorization_url(self, business_id: str, purpose: Optional[str], next_path: Optional[str]) -> str:
        business_object_id(business_id)
        resolved = OAuthPurpose.from_label(purpose)
        state = OAuthState(business_id=business_id, purpose=resolved, next=self._safe_next(next_path))
        return self._oauth.authorization_url(SCOPES[resolved], encode_state(state))

    def handle_callback(self, code: Optional[str], state: Optional[str]) -> str:
        """Return the URL to redirect the browser to. Never raises."""
        if not code or not state:
            return self._error("missing_code_or_state")

        try:
            parsed = decode_state(state, self._default_next)
        except (ValueError, UnicodeDecodeError):
            return self._error("bad_state")

        try:
            business_object_id(parsed.business_id)
        except ValidationError:
            return self._error("bad_business")

        if not self._oauth.configured:
            return self._error("missing_oauth_envs")

        try:
            if self._store.get_business(parsed.business_id) is None:
                return self._error("bad_business")

            tokens = self._oauth.exchange_code(code)
            new_credential = tokens.get("refresh_token")
            existing_credential = self._store.get(parsed.business_id)
            google_email = self._oauth.email_from_tokens(tokens)

            if new_credential:
                self._store.put(parsed.business_id, new_credential, parsed.purpose, google_email)
            elif existing_credential:
                # Google only returns a refresh token on first consent; keep the stored one.
                self._store.mark_connected(parsed.business_id, parsed.purpose, google_email)
            else:
                if parsed.purpose is OAuthPurpose.GMAIL:
                    return self._error("no_refresh_token", path=self._integrations_path)
                return self._error("no_refresh_token")
        except Exception:
            logger.exception("Google OAuth callback failed for business %s", parsed.business_id)
            return self._error("exception")

        return _with_query(self._safe_next(parsed.next), {SUCCESS_INDICATOR[parsed.purpose]: "connected"})

    def _safe_next(self, next_path: Optional[str]) -> str:
        # Relative paths only; anything else could turn the callback into an open redirect.
        if not next_path or not next_path.startswith("/") or next_path.startswith("//"):
            return self._default_next
        return next_path

    def _error(self, reason: str, path: Optional[str] = None) -> str:
        return _with_query(path or self._error_path, {"google": "error", "reason": reason})
