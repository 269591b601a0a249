"""Service for booking business logic."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from meeting_broker.core.config import ConferencePolicy, Settings
from meeting_broker.domains.availability.service import AvailabilityService
from meeting_broker.domains.bookings.gateway import CalendarConnector, CalendarGateway
from meeting_broker.domains.bookings.schemas import (
    BOOKING_LOCATION_KEY,
    BOOKING_MODE_KEY,
    OWNER_EMAIL_KEY,
    OWNER_NAME_KEY,
    Booking,
    BookingAmendment,
    BookingFilter,
    BookingMode,
    BookingRequest,
)
from meeting_broker.domains.credentials.schemas import ResolvedCredential
from meeting_broker.utils.errors import (
    BookingNotFoundError,
    ConferencingAttachError,
    GoogleCalendarAPIError,
    UpstreamBookingError,
    ValidationError,
)
from meeting_broker.utils.timestamps import (
    boundary_instant,
    event_boundary,
    parse_timestamp,
    parse_window,
    to_rfc3339,
)

MEET_SOLUTION_TYPE = "hangoutsMeet"

logger = logging.getLogger(__name__)


def build_conference_request(request_id: str) -> Dict[str, Any]:
    """Body fragment asking the calendar to create a Meet conference."""
    return {
        "conferenceData": {
            "createRequest": {
                "requestId": request_id,
                "conferenceSolutionKey": {"type": MEET_SOLUTION_TYPE},
            }
        }
    }


class BookingService:
    """Create, amend and cancel bookings on the configured calendar."""

    def __init__(
        self,
        settings: Settings,
        gateway: Optional[CalendarGateway] = None,
        credential: Optional[ResolvedCredential] = None,
        *,
        connect: Optional[CalendarConnector] = None,
    ) -> None:
        if (gateway is None or credential is None) and connect is None:
            raise TypeError("BookingService needs a gateway and credential, or a connector")
        self.settings = settings
        self.gateway = gateway
        self.credential = credential
        self._connect = connect

    async def _ensure_connected(self) -> None:
        """Resolve the credential and gateway on first use."""
        if self.gateway is None or self.credential is None:
            connection = await self._connect()
            self.gateway = connection.gateway
            self.credential = connection.credential

    @property
    def conference_policy(self) -> ConferencePolicy:
        return self.settings.use_meet

    def build_event_body(
        self,
        request: BookingRequest,
        start: datetime,
        end: datetime,
    ) -> Tuple[Dict[str, Any], str]:
        """
        Build the event resource for a booking and the matching notification policy.

        Guests can never modify the event, invite others or see each other.
        The requester is either invited (the credential acts as a real user) or
        recorded in private extended properties, which notify nobody.

        Returns:
            Tuple of (event body, sendUpdates value)
        """
        email = request.attendee_email
        name = request.attendee_name
        display_name = name or (email.split("@")[0] if email else "") or "Client"
        label = "Virtual Session" if request.mode == BookingMode.VIRTUAL else "In-Person Session"

        if name:
            description = f"Booked by {name}" + (f" ({email})" if email else "")
        else:
            description = "Booked via app" + (f" ({email})" if email else "")

        location = None
        if request.mode == BookingMode.IN_PERSON:
            location = request.location or self.settings.default_location

        body: Dict[str, Any] = {
            "summary": f"{display_name}: {label}",
            "description": description,
            "start": {"dateTime": to_rfc3339(start)},
            "end": {"dateTime": to_rfc3339(end)},
            "guestsCanModify": False,
            "guestsCanInviteOthers": False,
            "guestsCanSeeOtherGuests": False,
        }
        if location:
            body["location"] = location

        if self.credential.can_invite_attendees:
            if email:
                attendee: Dict[str, Any] = {"email": email}
                if name:
                    attendee["displayName"] = name
                body["attendees"] = [attendee]
        else:
            body["extendedProperties"] = {
                "private": {
                    OWNER_EMAIL_KEY: email or "",
                    OWNER_NAME_KEY: name or "",
                    BOOKING_MODE_KEY: request.mode.value,
                    BOOKING_LOCATION_KEY: location or "",
                }
            }

        send_updates = "all" if body.get("attendees") else "none"
        return body, send_updates

    async def create(self, request: BookingRequest) -> Booking:
        """
        Create a booking, attaching a Meet link according to the conference policy.

        Virtual bookings first try to create the conference inline. When the
        calendar rejects that, the plain event is inserted and the conference
        is patched on afterwards with the same request id, so the calendar can
        tell both attempts belong to one conference.

        Raises:
            ValidationError: If start/end are missing or out of order
            UpstreamBookingError: If the event itself cannot be created
            ConferencingAttachError: If the link cannot be attached under ``force``
        """
        start, end = parse_window(request.start, request.end)
        await self._ensure_connected()
        body, send_updates = self.build_event_body(request, start, end)
        policy = self.conference_policy
        want_conference = request.mode == BookingMode.VIRTUAL and policy != ConferencePolicy.NEVER

        if not want_conference:
            event = await self._insert(body, send_updates=send_updates)
            return self._to_booking(event, start, end)

        request_id = str(uuid.uuid4())
        conference = build_conference_request(request_id)
        try:
            event = await self.gateway.insert_event(
                {**body, **conference},
                send_updates=send_updates,
                conference_data_version=1,
            )
            return self._to_booking(event, start, end)
        except GoogleCalendarAPIError as exc:
            logger.warning(
                "Inline conference creation rejected status=%s: %s; retrying as insert then patch",
                exc.status_code,
                exc.upstream_message,
            )

        event = await self._insert(body, send_updates=send_updates)
        event_id = event["id"]
        try:
            event = await self.gateway.patch_event(
                event_id,
                conference,
                send_updates=send_updates,
                conference_data_version=1,
            )
        except GoogleCalendarAPIError as exc:
            if policy == ConferencePolicy.FORCE:
                await self._discard(event_id, send_updates=send_updates)
                raise ConferencingAttachError(
                    f"Could not attach a Meet link: {exc.upstream_message}",
                    upstream_status=exc.status_code,
                    payload=exc.payload,
                ) from exc
            logger.warning(
                "Meet link could not be attached to event=%s status=%s; keeping event without link",
                event_id,
                exc.status_code,
            )
        return self._to_booking(event, start, end)

    async def list(self, booking_filter: BookingFilter) -> List[Booking]:
        """List active bookings, see :meth:`AvailabilityService.list_bookings`."""
        reader = AvailabilityService(self.settings, self.gateway, connect=self._connect)
        return await reader.list_bookings(booking_filter)

    async def amend(self, booking_id: str, amendment: BookingAmendment) -> Booking:
        """
        Change the time and/or location of a booking.

        Only supplied fields are sent. When one bound is supplied alone, the
        current event is read to make sure the result still ends after it starts.
        Bookings owned through private metadata get their recorded location
        updated along with the event's.
        """
        booking_id = _require_booking_id(booking_id)
        supplied = amendment.supplied_fields()
        if not supplied:
            raise ValidationError(
                "Nothing to amend",
                details=["Provide at least one of start, end, location"],
            )

        body: Dict[str, Any] = {}
        if "start" in supplied and "end" in supplied:
            start, end = parse_window(amendment.start, amendment.end)
            body["start"] = {"dateTime": to_rfc3339(start)}
            body["end"] = {"dateTime": to_rfc3339(end)}
        elif "start" in supplied:
            body["start"] = {"dateTime": to_rfc3339(parse_timestamp(amendment.start, "start"))}
        elif "end" in supplied:
            body["end"] = {"dateTime": to_rfc3339(parse_timestamp(amendment.end, "end"))}

        await self._ensure_connected()
        if ("start" in supplied) != ("end" in supplied):
            current = await self._get(booking_id)
            if "start" in supplied:
                start = parse_timestamp(amendment.start, "start")
                end = boundary_instant(event_boundary(current.get("end")))
            else:
                start = boundary_instant(event_boundary(current.get("start")))
                end = parse_timestamp(amendment.end, "end")
            if start is not None and end is not None and start >= end:
                raise ValidationError(
                    "start must be before end",
                    details=[f"start={to_rfc3339(start)}", f"end={to_rfc3339(end)}"],
                )
        if "location" in supplied:
            body["location"] = amendment.location
            if not self.credential.can_invite_attendees:
                body["extendedProperties"] = {
                    "private": {BOOKING_LOCATION_KEY: amendment.location}
                }

        try:
            event = await self.gateway.patch_event(
                booking_id,
                body,
                send_updates=self.credential.send_updates,
            )
        except GoogleCalendarAPIError as exc:
            raise _booking_error("amend", exc, booking_id) from exc
        logger.info("Amended booking=%s fields=%s", booking_id, sorted(supplied))
        return Booking.from_event(event)

    async def cancel(self, booking_id: str) -> None:
        """Delete the booking's event, notifying invitees when there are any."""
        booking_id = _require_booking_id(booking_id)
        await self._ensure_connected()
        try:
            await self.gateway.delete_event(booking_id, send_updates=self.credential.send_updates)
        except GoogleCalendarAPIError as exc:
            raise _booking_error("cancel", exc, booking_id) from exc
        logger.info("Cancelled booking=%s", booking_id)

    async def _insert(self, body: Dict[str, Any], *, send_updates: str) -> Dict[str, Any]:
        try:
            event = await self.gateway.insert_event(
                body,
                send_updates=send_updates,
                conference_data_version=0,
            )
        except GoogleCalendarAPIError as exc:
            raise _booking_error("create", exc) from exc
        if not event.get("id"):
            raise UpstreamBookingError("Calendar did not return an event id", payload=event)
        return event

    async def _get(self, booking_id: str) -> Dict[str, Any]:
        try:
            return await self.gateway.get_event(booking_id)
        except GoogleCalendarAPIError as exc:
            raise _booking_error("read", exc, booking_id) from exc

    async def _discard(self, event_id: str, *, send_updates: str) -> None:
        """Remove an event created by a create() that is about to fail."""
        try:
            await self.gateway.delete_event(event_id, send_updates=send_updates)
        except GoogleCalendarAPIError as exc:
            logger.error(
                "Could not remove event=%s after failed Meet attach status=%s",
                event_id,
                exc.status_code,
            )

    def _to_booking(self, event: Dict[str, Any], start: datetime, end: datetime) -> Booking:
        booking = Booking.from_event(event)
        updates: Dict[str, Any] = {}
        if booking.start is None:
            updates["start"] = to_rfc3339(start)
        if booking.end is None:
            updates["end"] = to_rfc3339(end)
        if updates:
            booking = booking.model_copy(update=updates)
        logger.info(
            "Created booking=%s mode=%s conference_attached=%s",
            booking.id,
            booking.mode,
            booking.conference_attached,
        )
        return booking


def _require_booking_id(booking_id: str) -> str:
    booking_id = (booking_id or "").strip()
    if not booking_id:
        raise ValidationError("Booking id is required", details=["id: missing"])
    return booking_id


def _booking_error(
    action: str, exc: GoogleCalendarAPIError, booking_id: str | None = None
) -> UpstreamBookingError:
    if booking_id and exc.status_code in (404, 410):
        return BookingNotFoundError(
            f"Booking {booking_id} not found",
            upstream_status=exc.status_code,
            payload=exc.payload,
        )
    return UpstreamBookingError(
        f"Failed to {action} booking: {exc.upstream_message}",
        upstream_status=exc.status_code,
        payload=exc.payload,
    )
