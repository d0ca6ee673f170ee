from __future__ import annotations

from google.oauth2.credentials import Credentials

from src.adapters.calendar_client import CalendarClient
from src.adapters.email_client import EmailClient
from src.adapters.oauth_client import GoogleOAuthClient
from src.services.credentials import CredentialStore


class GoogleClientProvider:
    """Builds Google API clients bound to a tenant's stored refresh credential."""

    def __init__(self, credential_store: CredentialStore, oauth_client: GoogleOAuthClient, default_timezone: str) -> None:
        self._store = credential_store
        self._oauth = oauth_client
        self._default_timezone = default_timezone

    def credentials_for(self, business_id: str) -> Credentials:
        refresh_token = self._store.require(business_id)
        return self._oauth.credentials_for(refresh_token)

    def calendar_for(self, business_id: str) -> CalendarClient:
        return CalendarClient(
            credentials=self.credentials_for(business_id),
            default_timezone=self._default_timezone,
        )

    def email_for(self, business_id: str) -> EmailClient:
        return EmailClient(credentials=self.credentials_for(business_id))

    def refresh(self, business_id: str) -> Credentials:
        return self._oauth.refresh(self.credentials_for(business_id))
