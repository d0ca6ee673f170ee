from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError

from src.services.errors import (
    REAUTH_ERROR_CODE,
    CalendarIntegrationError,
    ProviderFailure,
    ReauthRequiredError,
)

TOKEN_PHRASES = ("expired", "revoked")


@dataclass(frozen=True)
class ProviderError:
    is_reauth_required: bool
    is_invalid_grant: bool
    http_status: Optional[int]
    message: str

    def to_exception(self) -> CalendarIntegrationError:
        """Map the classification onto the error returned to callers.

        Reauthorization always becomes a 401 with the shared error code; every
        other provider failure becomes a 500 carrying the provider message.
        """
        if self.is_reauth_required:
            return ReauthRequiredError(self.message)
        return ProviderFailure(self.message, http_status=self.http_status)


def classify(error: BaseException) -> ProviderError:
    """Classify a failed provider call. Pure function, no side effects."""
    message = str(error) or error.__class__.__name__
    status = _http_status(error)
    data = _error_payload(error)

    error_text = _error_text(data) or message
    lowered_message = message.lower()
    lowered_text = error_text.lower()

    raw_code = data.get("error") if isinstance(data.get("error"), str) else ""
    is_invalid_grant = (
        "invalid_grant" in lowered_message
        or "invalid_grant" in lowered_text
        or raw_code.lower() == "invalid_grant"
    )
    is_reauth_required = (
        is_invalid_grant
        or any(phrase in lowered_text for phrase in TOKEN_PHRASES)
        or REAUTH_ERROR_CODE in lowered_message
        or REAUTH_ERROR_CODE in lowered_text
        or getattr(error, "code", None) == REAUTH_ERROR_CODE
    )
    return ProviderError(
        is_reauth_required=is_reauth_required,
        is_invalid_grant=is_invalid_grant,
        http_status=status,
        message=error_text or "Unknown error",
    )


def _http_status(error: BaseException) -> Optional[int]:
    if isinstance(error, HttpError):
        status = getattr(error.resp, "status", None)
        return int(status) if status is not None else None
    response = getattr(error, "response", None)
    status = getattr(response, "status_code", None) or getattr(error, "status_code", None)
    if status is None:
        status = getattr(error, "http_status", None)
    return int(status) if isinstance(status, int) else None


def _error_payload(error: BaseException) -> Dict[str, Any]:
    if isinstance(error, RefreshError):
        # google-auth passes the token endpoint response body as the second arg.
        for arg in error.args[1:]:
            if isinstance(arg, dict):
                return arg
        return {}
    if isinstance(error, HttpError):
        return _decode_json(getattr(error, "content", b""))
    response = getattr(error, "response", None)
    if response is not None and hasattr(response, "json"):
        try:
            payload = response.json()
        except ValueError:
            return {}
        return payload if isinstance(payload, dict) else {}
    return {}


def _decode_json(content: Any) -> Dict[str, Any]:
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="ignore")
    if not content:
        return {}
    try:
        payload = json.loads(content)
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def _error_text(data: Dict[str, Any]) -> str:
    description = data.get("error_description")
    if description:
        return str(description)
    nested = data.get("error")
    if isinstance(nested, dict):
        return str(nested.get("message") or "")
    if nested:
        return str(nested)
    return ""
