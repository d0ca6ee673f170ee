from __future__ import annotations

import base64
from dataclasses import dataclass, field
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Any, Dict, Optional

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build


@dataclass
class EmailClient:
    """Sends mail through the Gmail API as the tenant's own Google account."""

    credentials: Credentials
    _resource: Any = field(default=None, init=False, repr=False)

    def _service(self):
        if self._resource is None:
            self._resource = build("gmail", "v1", credentials=self.credentials, cache_discovery=False)
        return self._resource

    def send(
        self,
        recipient: str,
        subject: str,
        body: str,
        sender_name: Optional[str] = None,
        sender_email: Optional[str] = None,
    ) -> Dict[str, Any]:
        message = MIMEText(body, "html", "utf-8")
        message["To"] = recipient
        message["Subject"] = subject
        if sender_email:
            message["From"] = formataddr((sender_name or "Appointment System", sender_email))

        raw = base64.urlsafe_b64encode(message.as_bytes()).decode("ascii").rstrip("=")
        result = self._service().users().messages().send(userId="me", body={"raw": raw}).execute()
        return {
            "id": result.get("id"),
            "recipient": recipient,
            "subject": subject,
        }
