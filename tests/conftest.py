"""Pytest fixtures for broker tests."""

from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient
from google.oauth2.credentials import Credentials

from meeting_broker.core.config import CALENDAR_SCOPE, Settings
from meeting_broker.domains.bookings.gateway import CalendarGateway
from meeting_broker.domains.credentials.schemas import AuthMode, ResolvedCredential
from meeting_broker.main import app
from meeting_broker.utils.errors import GoogleCalendarAPIError
from meeting_broker.utils.timestamps import boundary_instant

MEET_LINK = "https://meet.google.com/abc-defg-hij"


class FakeCalendarGateway(CalendarGateway):
    """In-memory calendar that records calls and fails on request.

    Operation names used for ``fail_next`` and in ``calls``:
    ``insert``, ``insert_conference``, ``patch``, ``patch_conference``,
    ``get``, ``delete``, ``list``, ``freebusy``.
    """

    def __init__(self, calendar_id: str = "sessions@example.com") -> None:
        self.calendar_id = calendar_id
        self.events: Dict[str, Dict[str, Any]] = {}
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.busy: List[Dict[str, Any]] = []
        self._failures: Dict[str, List[GoogleCalendarAPIError]] = {}
        self._counter = 0

    def fail_next(
        self,
        operation: str,
        status_code: int = 400,
        message: str = "Invalid conference type value.",
    ) -> None:
        self._failures.setdefault(operation, []).append(
            GoogleCalendarAPIError(
                message,
                status_code=status_code,
                payload={"error": {"code": status_code, "message": message}},
            )
        )

    def add_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        self._counter += 1
        stored = copy.deepcopy(event)
        stored.setdefault("id", f"evt{self._counter}")
        stored.setdefault("status", "confirmed")
        self.events[stored["id"]] = stored
        return stored

    def operations(self) -> List[str]:
        return [name for name, _ in self.calls]

    def _record(self, operation: str, **kwargs: Any) -> None:
        self.calls.append((operation, copy.deepcopy(kwargs)))
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    def _not_found(self, event_id: str) -> GoogleCalendarAPIError:
        return GoogleCalendarAPIError(
            f"Event {event_id} not found",
            status_code=404,
            payload={"error": {"code": 404, "message": "Not Found"}},
        )

    @staticmethod
    def _attach_conference(event: Dict[str, Any], conference: Dict[str, Any]) -> None:
        event["hangoutLink"] = MEET_LINK
        event["conferenceData"] = {
            **conference,
            "entryPoints": [{"entryPointType": "video", "uri": MEET_LINK}],
        }

    async def insert_event(self, body, *, send_updates, conference_data_version=0):
        wants_conference = "conferenceData" in body
        operation = "insert_conference" if wants_conference else "insert"
        self._record(
            operation,
            body=body,
            send_updates=send_updates,
            conference_data_version=conference_data_version,
        )
        event = self.add_event({key: value for key, value in body.items() if key != "conferenceData"})
        if wants_conference and conference_data_version == 1:
            self._attach_conference(event, body["conferenceData"])
        return copy.deepcopy(event)

    async def patch_event(self, event_id, body, *, send_updates, conference_data_version=None):
        operation = "patch_conference" if "conferenceData" in body else "patch"
        self._record(
            operation,
            event_id=event_id,
            body=body,
            send_updates=send_updates,
            conference_data_version=conference_data_version,
        )
        if event_id not in self.events:
            raise self._not_found(event_id)
        event = self.events[event_id]
        for key, value in body.items():
            if key == "conferenceData":
                if conference_data_version == 1:
                    self._attach_conference(event, value)
            elif key == "extendedProperties":
                # Patch merges nested property maps
                stored = event.setdefault("extendedProperties", {})
                for scope, properties in value.items():
                    stored.setdefault(scope, {}).update(properties)
            else:
                event[key] = copy.deepcopy(value)
        return copy.deepcopy(event)

    async def get_event(self, event_id):
        self._record("get", event_id=event_id)
        if event_id not in self.events:
            raise self._not_found(event_id)
        return copy.deepcopy(self.events[event_id])

    async def delete_event(self, event_id, *, send_updates):
        self._record("delete", event_id=event_id, send_updates=send_updates)
        if event_id not in self.events:
            raise self._not_found(event_id)
        del self.events[event_id]

    async def list_events(self, *, time_min, time_max, max_results):
        self._record("list", time_min=time_min, time_max=time_max, max_results=max_results)
        lower = boundary_instant(time_min)
        upper = boundary_instant(time_max)
        selected = []
        for event in self.events.values():
            start = boundary_instant((event.get("start") or {}).get("dateTime"))
            if start is not None and lower <= start < upper:
                selected.append(copy.deepcopy(event))
        selected.sort(key=lambda item: item["start"]["dateTime"])
        return selected[:max_results]

    async def query_free_busy(self, *, time_min, time_max):
        self._record("freebusy", time_min=time_min, time_max=time_max)
        return copy.deepcopy(self.busy)


def make_settings(**overrides: Any) -> Settings:
    """Settings isolated from the developer's .env file."""
    values: Dict[str, Any] = {"calendar_id": "sessions@example.com"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_credential(subject: Optional[str] = None) -> ResolvedCredential:
    mode = AuthMode.KEYLESS_DELEGATED if subject else AuthMode.AMBIENT
    return ResolvedCredential(
        mode=mode,
        credentials=Credentials(token="test-access-token"),
        scopes=(CALENDAR_SCOPE,),
        subject=subject,
    )


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def gateway() -> FakeCalendarGateway:
    return FakeCalendarGateway()


@pytest.fixture
def ambient_credential() -> ResolvedCredential:
    """Credential that cannot invite attendees (no impersonated user)."""
    return make_credential()


@pytest.fixture
def delegated_credential() -> ResolvedCredential:
    """Credential acting as a real Workspace user."""
    return make_credential(subject="coach@example.com")


@pytest.fixture
def test_client():
    """Create a FastAPI test client and clear overrides afterwards."""
    yield TestClient(app)
    app.dependency_overrides.clear()
