from __future__ import annotations

from typing import Any, Dict, List, Optional

REAUTH_ERROR_CODE = "google_reauth_required"


class CalendarIntegrationError(Exception):
    """Base class for failures surfaced by the calendar integration."""

    status_code = 500
    code: Optional[str] = None

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> Dict[str, Any]:
        return {"success": False, "error": self.code or self.message}


class ValidationError(CalendarIntegrationError):
    status_code = 400


class ConfigurationError(CalendarIntegrationError):
    status_code = 500


class CredentialMissingError(CalendarIntegrationError):
    """The tenant has no usable refresh credential on record."""

    status_code = 401
    code = REAUTH_ERROR_CODE

    def __init__(self, business_id: str) -> None:
        super().__init__(f"No Google Calendar connected for business {business_id}")
        self.business_id = business_id

    def to_payload(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.code,
            "message": "Google connection expired or was revoked. Please reconnect.",
        }


class ReauthRequiredError(CalendarIntegrationError):
    status_code = 401
    code = REAUTH_ERROR_CODE

    def to_payload(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.code,
            "message": "Google connection expired or was revoked. Please reconnect.",
        }


class ProviderFailure(CalendarIntegrationError):
    status_code = 500

    def __init__(self, message: str, http_status: Optional[int] = None) -> None:
        super().__init__(message)
        self.http_status = http_status


class SlotConflictError(CalendarIntegrationError):
    status_code = 409

    def __init__(self, conflicts: List[Dict[str, Any]]) -> None:
        super().__init__("Time slot already booked - please choose another time")
        self.conflicts = conflicts

    def to_payload(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message, "conflicts": self.conflicts}


class SlotLockedError(CalendarIntegrationError):
    status_code = 409
    code = "slot_locked"

    def to_payload(self) -> Dict[str, Any]:
        return {"success": False, "error": self.code, "message": self.message, "conflicts": []}


class AppointmentPersistenceError(CalendarIntegrationError):
    """The provider event exists but the local appointment record could not be written."""

    status_code = 500

    def __init__(self, message: str, event_id: str) -> None:
        super().__init__(message)
        self.event_id = event_id

    def to_payload(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message, "eventId": self.event_id}


class UnauthorizedError(CalendarIntegrationError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)
