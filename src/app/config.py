from __future__ import annotations

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central application configuration."""

    app_name: str = Field(default="AI Receptionist Calendar")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # MongoDB
    mongo_uri: str = Field(default="mongodb://localhost:27017")
    mongo_database: str = Field(default="receptionist")
    businesses_collection: str = Field(default="businesses")
    appointments_collection: str = Field(default="appointments")
    tasks_collection: str = Field(default="tasks")
    booking_locks_collection: str = Field(default="booking_locks")
    orphaned_events_collection: str = Field(default="orphaned_events")
    outbox_collection: str = Field(default="notification_outbox")

    # Google OAuth
    google_client_id: str = Field(default="")
    google_client_secret: str = Field(default="")
    google_redirect_uri: str = Field(default="")
    google_token_uri: str = Field(default="https://oauth2.googleapis.com/token")
    token_encryption_key: str = Field(
        default="",
        validation_alias=AliasChoices("TOKEN_ENC_KEY", "TOKEN_ENCRYPTION_KEY"),
    )
    clear_token_on_reauth: bool = Field(default=True)

    # Google Calendar
    primary_tenant_business_id: str = Field(default="")
    google_calendar_id: str = Field(
        default="",
        validation_alias=AliasChoices("GOOGLE_CALENDAR_ID", "PRIMARY_CALENDAR_ID"),
    )
    default_timezone: str = Field(default="America/New_York")

    # Booking
    side_effect_timeout_seconds: float = Field(default=10.0)
    booking_lock_ttl_seconds: int = Field(default=60)

    # Admin jobs
    admin_job_secret: str = Field(default="")
    default_business_id: str = Field(default="")

    # OAuth redirects
    oauth_default_next: str = Field(default="/dashboard/calendar")
    oauth_error_path: str = Field(default="/dashboard/calendar")
    oauth_integrations_path: str = Field(default="/dashboard/integrations")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
