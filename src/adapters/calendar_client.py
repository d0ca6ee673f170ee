from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build


@dataclass
class CalendarClient:
    credentials: Credentials
    default_timezone: str
    _resource: Any = field(default=None, init=False, repr=False)

    def _service(self):
        if self._resource is None:
            self._resource = build("calendar", "v3", credentials=self.credentials, cache_discovery=False)
        return self._resource

    def list_events(
        self,
        calendar_id: str,
        time_min: str,
        time_max: str,
        fields: Optional[str] = None,
        order_by: Optional[str] = "startTime",
    ) -> List[Dict[str, Any]]:
        service = self._service()
        params: Dict[str, Any] = {
            "calendarId": calendar_id,
            "timeMin": time_min,
            "timeMax": time_max,
            "singleEvents": True,
            "maxResults": 2500,
        }
        if order_by:
            params["orderBy"] = order_by
        if fields:
            # nextPageToken must stay in the projection or paging stops early.
            params["fields"] = f"nextPageToken,{fields}"

        items: List[Dict[str, Any]] = []
        page_token = None
        while True:
            if page_token:
                params["pageToken"] = page_token
            page = service.events().list(**params).execute()
            items.extend(page.get("items", []))
            page_token = page.get("nextPageToken")
            if not page_token:
                return items

    def create_event(self, calendar_id: str, body: Dict[str, Any], with_conference: bool = True) -> Dict[str, Any]:
        service = self._service()
        event = (
            service.events()
            .insert(
                calendarId=calendar_id,
                body=body,
                conferenceDataVersion=1 if with_conference else 0,
                sendUpdates="none",
            )
            .execute()
        )
        return event

    def patch_event(self, calendar_id: str, event_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        service = self._service()
        event = service.events().patch(calendarId=calendar_id, eventId=event_id, body=body).execute()
        return event

    def delete_event(self, calendar_id: str, event_id: str) -> None:
        service = self._service()
        service.events().delete(calendarId=calendar_id, eventId=event_id, sendUpdates="all").execute()

    def list_calendars(self) -> List[Dict[str, Any]]:
        service = self._service()
        items: List[Dict[str, Any]] = []
        page_token = None
        while True:
            page = service.calendarList().list(pageToken=page_token).execute()
            items.extend(page.get("items", []))
            page_token = page.get("nextPageToken")
            if not page_token:
                return items

    def create_calendar(self, summary: str, description: str, timezone: Optional[str] = None) -> Dict[str, Any]:
        service = self._service()
        body = {
            "summary": summary,
            "description": description,
            "timeZone": timezone or self.default_timezone,
        }
        return service.calendars().insert(body=body).execute()
