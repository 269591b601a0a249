"""Booking domain schemas."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from meeting_broker.utils.timestamps import event_boundary

# Private extended-property keys used when attendees cannot be invited
OWNER_EMAIL_KEY = "userEmail"
OWNER_NAME_KEY = "userName"
BOOKING_MODE_KEY = "bookingMode"
BOOKING_LOCATION_KEY = "bookingLocation"


class BookingMode(StrEnum):
    VIRTUAL = "virtual"
    IN_PERSON = "in_person"


class BookingStatus(StrEnum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class BookingRequest(BaseModel):
    """Inbound request to create a booking."""

    model_config = ConfigDict(populate_by_name=True)

    start: datetime
    end: datetime
    attendee_email: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("attendee_email", "attendeeEmail", "email"),
    )
    attendee_name: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("attendee_name", "attendeeName", "name"),
    )
    mode: BookingMode = BookingMode.VIRTUAL
    location: Optional[str] = None

    @field_validator("attendee_email", "attendee_name", "location", mode="before")
    @classmethod
    def _strip_optional(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("mode", mode="before")
    @classmethod
    def _normalize_mode(cls, value: Any) -> Any:
        if value is None:
            return BookingMode.VIRTUAL
        if isinstance(value, str):
            normalized = value.strip().lower().replace("-", "_")
            if normalized in ("inperson", "in_person"):
                return BookingMode.IN_PERSON
            return normalized or BookingMode.VIRTUAL
        return value


class BookingAmendment(BaseModel):
    """Partial update of an existing booking. Only supplied fields change."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    location: Optional[str] = None

    def supplied_fields(self) -> set[str]:
        return set(self.model_dump(exclude_unset=True, exclude_none=True))


class BookingFilter(BaseModel):
    """Query options for listing bookings."""

    email: Optional[str] = None
    time_min: Optional[datetime] = None
    time_max: Optional[datetime] = None
    # None uses Settings.default_max_results
    max_results: Optional[int] = Field(default=None, ge=1, le=2500)


class Attendee(BaseModel):
    email: Optional[str] = None
    display_name: Optional[str] = None
    response_status: Optional[str] = None


class BusyInterval(BaseModel):
    start: str
    end: str


class Booking(BaseModel):
    """Normalized view of a calendar event that represents a booking."""

    id: str
    start: Optional[str] = None
    end: Optional[str] = None
    status: BookingStatus = BookingStatus.CONFIRMED
    summary: Optional[str] = None
    location: Optional[str] = None
    conference_link: Optional[str] = None
    conference_attached: bool = False
    attendees: List[Attendee] = Field(default_factory=list)
    owner_email: Optional[str] = None
    owner_name: Optional[str] = None
    mode: BookingMode = BookingMode.VIRTUAL

    @classmethod
    def from_event(cls, event: Dict[str, Any]) -> "Booking":
        """Build a booking from a Google Calendar event resource."""
        private = _private_properties(event)
        link = pick_conference_link(event)
        mode_hint = private.get(BOOKING_MODE_KEY)
        if mode_hint in (BookingMode.VIRTUAL, BookingMode.IN_PERSON):
            mode = BookingMode(mode_hint)
        elif mode_hint == "inperson":
            mode = BookingMode.IN_PERSON
        else:
            mode = BookingMode.VIRTUAL if link else BookingMode.IN_PERSON

        attendees = [
            Attendee(
                email=attendee.get("email"),
                display_name=attendee.get("displayName"),
                response_status=attendee.get("responseStatus"),
            )
            for attendee in event.get("attendees") or []
            if isinstance(attendee, dict)
        ]
        status = (
            BookingStatus.CANCELLED
            if event.get("status") == "cancelled"
            else BookingStatus.CONFIRMED
        )
        return cls(
            id=str(event.get("id") or ""),
            start=event_boundary(event.get("start")),
            end=event_boundary(event.get("end")),
            status=status,
            summary=event.get("summary"),
            location=event.get("location") or None,
            conference_link=link,
            conference_attached=link is not None,
            attendees=attendees,
            owner_email=private.get(OWNER_EMAIL_KEY) or None,
            owner_name=private.get(OWNER_NAME_KEY) or None,
            mode=mode,
        )

    def is_owned_by(self, email: str) -> bool:
        """Case-insensitive match against invited attendees or the private owner field."""
        wanted = email.strip().lower()
        if not wanted:
            return False
        if (self.owner_email or "").lower() == wanted:
            return True
        return any((attendee.email or "").lower() == wanted for attendee in self.attendees)


def pick_conference_link(event: Dict[str, Any]) -> Optional[str]:
    """Meet link of an event: ``hangoutLink``, else the first video entry point."""
    if event.get("hangoutLink"):
        return event["hangoutLink"]
    conference = event.get("conferenceData") or {}
    for entry in conference.get("entryPoints") or []:
        if isinstance(entry, dict) and entry.get("entryPointType") == "video" and entry.get("uri"):
            return entry["uri"]
    return None


def _private_properties(event: Dict[str, Any]) -> Dict[str, Any]:
    extended = event.get("extendedProperties") or {}
    private = extended.get("private") if isinstance(extended, dict) else None
    return private if isinstance(private, dict) else {}
