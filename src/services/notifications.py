from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from html import escape
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


@dataclass
class ConfirmationEmail:
    recipient: str
    subject: str
    body: str
    sender_name: Optional[str] = None
    sender_email: Optional[str] = None


def _format_when(moment: datetime, timezone: str) -> str:
    try:
        local = moment.astimezone(ZoneInfo(timezone))
    except ZoneInfoNotFoundError:
        local = moment
    hour = local.strftime("%I").lstrip("0")
    return f"{local:%A, %B} {local.day}, {local.year} at {hour}:{local:%M %p %Z}".strip()


def build_confirmation(
    *,
    recipient: str,
    customer_name: str,
    service: str,
    start: datetime,
    end: datetime,
    timezone: str,
    business_name: Optional[str],
    meet_link: Optional[str],
    html_link: Optional[str],
    sender_email: Optional[str] = None,
) -> ConfirmationEmail:
    when = _format_when(start, timezone)
    duration = round((end - start).total_seconds() / 60)
    business = escape(business_name or "us")

    rows = [
        f"<p><strong>Service:</strong> {escape(service)}</p>",
        f"<p><strong>When:</strong> {escape(when)}</p>",
        f"<p><strong>Duration:</strong> {duration} minutes</p>",
    ]
    links = []
    if meet_link:
        rows.append("<p><strong>Where:</strong> Google Meet (video call)</p>")
        links.append(f'<p><a href="{escape(meet_link)}">Join Google Meet</a></p>')
    if html_link:
        links.append(f'<p><a href="{escape(html_link)}">View in Google Calendar</a></p>')

    body = (
        "<html><body>"
        f"<h1>Appointment Confirmed</h1>"
        f"<p>Hi {escape(customer_name)}!</p>"
        f"<p>This is to confirm your appointment with <strong>{business}</strong>.</p>"
        + "".join(rows)
        + "".join(links)
        + "<p>Need to reschedule? Just reply to this email.</p>"
        f"<p>{escape(business_name or 'Our Team')}</p>"
        "</body></html>"
    )
    return ConfirmationEmail(
        recipient=recipient,
        subject=f"Appointment Confirmation: {service} - {when}",
        body=body,
        sender_name=business_name or None,
        sender_email=sender_email,
    )
