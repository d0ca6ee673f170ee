from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence
from urllib.parse import urlencode

import requests
from google.auth import jwt
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from src.services.errors import ConfigurationError

AUTHORIZATION_ENDPOINT = "https://accounts.google.com/o/oauth2/v2/auth"


@dataclass
class GoogleOAuthClient:
    client_id: str
    client_secret: str
    redirect_uri: str
    token_uri: str = "https://oauth2.googleapis.com/token"
    timeout: float = 10.0

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)

    def _require_config(self) -> None:
        if not self.configured:
            raise ConfigurationError(
                "Missing Google OAuth settings (GOOGLE_CLIENT_ID/GOOGLE_CLIENT_SECRET/GOOGLE_REDIRECT_URI)"
            )

    def authorization_url(self, scopes: Sequence[str], state: str) -> str:
        self._require_config()
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(scopes),
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
            "state": state,
        }
        return f"{AUTHORIZATION_ENDPOINT}?{urlencode(params)}"

    def exchange_code(self, code: str) -> Dict[str, Any]:
        """Trade an authorization code for tokens.

        Google only includes ``refresh_token`` on first consent, so callers must
        not assume it is present.
        """
        self._require_config()
        response = requests.post(
            self.token_uri,
            data={
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    def credentials_for(self, refresh_token: str) -> Credentials:
        self._require_config()
        return Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=self.token_uri,
            client_id=self.client_id,
            client_secret=self.client_secret,
        )

    def refresh(self, credentials: Credentials) -> Credentials:
        credentials.refresh(Request())
        return credentials

    @staticmethod
    def email_from_tokens(tokens: Dict[str, Any]) -> Optional[str]:
        id_token = tokens.get("id_token")
        if not id_token:
            return None
        try:
            claims = jwt.decode(id_token, verify=False)
        except ValueError:
            return None
        email = claims.get("email")
        return str(email) if email else None
