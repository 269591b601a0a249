"""Google Calendar access for the single target calendar."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from meeting_broker.domains.credentials.schemas import ResolvedCredential
from meeting_broker.utils.errors import ConfigurationError, GoogleCalendarAPIError

logger = logging.getLogger(__name__)


class CalendarGateway(ABC):
    """Calendar operations the booking and availability services rely on."""

    calendar_id: str

    @abstractmethod
    async def insert_event(
        self,
        body: Dict[str, Any],
        *,
        send_updates: str,
        conference_data_version: int = 0,
    ) -> Dict[str, Any]:
        """Insert an event and return the created resource."""
        ...

    @abstractmethod
    async def patch_event(
        self,
        event_id: str,
        body: Dict[str, Any],
        *,
        send_updates: str,
        conference_data_version: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Patch only the fields present in ``body``."""
        ...

    @abstractmethod
    async def get_event(self, event_id: str) -> Dict[str, Any]:
        """Get a single event."""
        ...

    @abstractmethod
    async def delete_event(self, event_id: str, *, send_updates: str) -> None:
        """Delete an event."""
        ...

    @abstractmethod
    async def list_events(
        self,
        *,
        time_min: str,
        time_max: str,
        max_results: int,
    ) -> List[Dict[str, Any]]:
        """List single-occurrence events ordered by start time."""
        ...

    @abstractmethod
    async def query_free_busy(self, *, time_min: str, time_max: str) -> List[Dict[str, Any]]:
        """Busy intervals of the calendar within the window."""
        ...


class GoogleCalendarGateway(CalendarGateway):
    """Gateway backed by the googleapiclient Calendar v3 service."""

    def __init__(
        self,
        credential: ResolvedCredential,
        calendar_id: str | None,
        *,
        service: Any = None,
    ) -> None:
        if not calendar_id:
            raise ConfigurationError("CALENDAR_ID is not configured", details=["CALENDAR_ID"])
        self.credential = credential
        self.calendar_id = calendar_id
        self._service = service

    def _get_service(self):
        """Get or create the Google Calendar API service."""
        if self._service is None:
            self._service = build(
                "calendar",
                "v3",
                credentials=self.credential.credentials,
                cache_discovery=False,
            )
        return self._service

    async def _execute_request(self, request) -> Any:
        """Execute a Google API request asynchronously."""
        try:
            # Run the synchronous API call in a thread pool
            return await asyncio.to_thread(request.execute)
        except HttpError as error:
            raise GoogleCalendarAPIError.from_http_error(error) from error

    async def insert_event(
        self,
        body: Dict[str, Any],
        *,
        send_updates: str,
        conference_data_version: int = 0,
    ) -> Dict[str, Any]:
        service = self._get_service()
        request = service.events().insert(
            calendarId=self.calendar_id,
            body=body,
            sendUpdates=send_updates,
            conferenceDataVersion=conference_data_version,
        )
        return await self._execute_request(request)

    async def patch_event(
        self,
        event_id: str,
        body: Dict[str, Any],
        *,
        send_updates: str,
        conference_data_version: Optional[int] = None,
    ) -> Dict[str, Any]:
        service = self._get_service()
        params: Dict[str, Any] = {
            "calendarId": self.calendar_id,
            "eventId": event_id,
            "body": body,
            "sendUpdates": send_updates,
        }
        if conference_data_version is not None:
            params["conferenceDataVersion"] = conference_data_version
        request = service.events().patch(**params)
        return await self._execute_request(request)

    async def get_event(self, event_id: str) -> Dict[str, Any]:
        service = self._get_service()
        request = service.events().get(calendarId=self.calendar_id, eventId=event_id)
        return await self._execute_request(request)

    async def delete_event(self, event_id: str, *, send_updates: str) -> None:
        service = self._get_service()
        request = service.events().delete(
            calendarId=self.calendar_id,
            eventId=event_id,
            sendUpdates=send_updates,
        )
        await self._execute_request(request)

    async def list_events(
        self,
        *,
        time_min: str,
        time_max: str,
        max_results: int,
    ) -> List[Dict[str, Any]]:
        service = self._get_service()
        request = service.events().list(
            calendarId=self.calendar_id,
            timeMin=time_min,
            timeMax=time_max,
            maxResults=max_results,
            singleEvents=True,
            orderBy="startTime",
        )
        result = await self._execute_request(request)
        items = result.get("items", []) if isinstance(result, dict) else []
        return items if isinstance(items, list) else []

    async def query_free_busy(self, *, time_min: str, time_max: str) -> List[Dict[str, Any]]:
        service = self._get_service()
        request = service.freebusy().query(
            body={
                "timeMin": time_min,
                "timeMax": time_max,
                "items": [{"id": self.calendar_id}],
            }
        )
        result = await self._execute_request(request)
        calendars = result.get("calendars", {}) if isinstance(result, dict) else {}
        entry = calendars.get(self.calendar_id) or {}
        for error in entry.get("errors") or []:
            # freebusy reports per-calendar failures inside a 200 response
            logger.error(
                "freebusy error for calendar=%s reason=%s", self.calendar_id, error.get("reason")
            )
            raise GoogleCalendarAPIError(
                f"freebusy failed for calendar {self.calendar_id}: {error.get('reason')}",
                status_code=404 if error.get("reason") == "notFound" else 502,
                payload={"error": {"message": str(error.get("reason"))}},
            )
        busy = entry.get("busy") or []
        return busy if isinstance(busy, list) else []


@dataclass(frozen=True)
class CalendarConnection:
    """A gateway together with the credential it was built from."""

    gateway: CalendarGateway
    credential: ResolvedCredential


# Called by services only after their input has been validated
CalendarConnector = Callable[[], Awaitable[CalendarConnection]]
