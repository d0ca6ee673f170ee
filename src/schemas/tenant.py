from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ConnectionStatus(str, Enum):
    UNCONNECTED = "unconnected"
    CONNECTED = "connected"
    NEEDS_REAUTH = "needs_reauth"


class OAuthPurpose(str, Enum):
    CALENDAR = "calendar"
    GMAIL = "gmail"

    @classmethod
    def from_label(cls, label: Optional[str]) -> "OAuthPurpose":
        normalized = (label or "").strip().lower()
        if normalized == cls.GMAIL.value:
            return cls.GMAIL
        return cls.CALENDAR


class ConnectionStatusResponse(BaseModel):
    business_id: str = Field(..., serialization_alias="businessId")
    status: ConnectionStatus
    connected_at: Optional[datetime] = Field(default=None, serialization_alias="connectedAt")
    needs_reauth_at: Optional[datetime] = Field(default=None, serialization_alias="needsReauthAt")
    gmail_status: ConnectionStatus = Field(
        default=ConnectionStatus.UNCONNECTED, serialization_alias="gmailStatus"
    )
