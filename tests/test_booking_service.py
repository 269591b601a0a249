"""Tests for the booking orchestrator."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from meeting_broker.domains.bookings.gateway import CalendarConnection
from meeting_broker.domains.bookings.schemas import (
    BookingAmendment,
    BookingFilter,
    BookingMode,
    BookingRequest,
    BookingStatus,
)
from meeting_broker.domains.bookings.service import BookingService
from meeting_broker.utils.errors import (
    BookingNotFoundError,
    ConferencingAttachError,
    UpstreamBookingError,
    ValidationError,
)

from .conftest import MEET_LINK, make_settings


def upcoming_slot(days: int = 1, minutes: int = 60):
    start = (datetime.now(timezone.utc) + timedelta(days=days)).replace(
        minute=0, second=0, microsecond=0
    )
    return start, start + timedelta(minutes=minutes)


def virtual_request(**overrides) -> BookingRequest:
    start, end = upcoming_slot()
    values = {
        "start": start,
        "end": end,
        "attendee_email": "ada@example.com",
        "attendee_name": "Ada Lovelace",
        "mode": "virtual",
    }
    values.update(overrides)
    return BookingRequest(**values)


class TestBuildEventBody:
    """Tests for event body construction."""

    def test_metadata_instead_of_attendees_when_credential_cannot_invite(
        self, settings, gateway, ambient_credential
    ):
        service = BookingService(settings, gateway, ambient_credential)
        request = virtual_request()

        body, send_updates = service.build_event_body(request, request.start, request.end)

        assert "attendees" not in body
        assert body["extendedProperties"]["private"] == {
            "userEmail": "ada@example.com",
            "userName": "Ada Lovelace",
            "bookingMode": "virtual",
            "bookingLocation": "",
        }
        assert send_updates == "none"
        assert body["summary"] == "Ada Lovelace: Virtual Session"
        assert body["description"] == "Booked by Ada Lovelace (ada@example.com)"

    def test_attendee_invited_when_acting_as_user(self, settings, gateway, delegated_credential):
        service = BookingService(settings, gateway, delegated_credential)
        request = virtual_request()

        body, send_updates = service.build_event_body(request, request.start, request.end)

        assert body["attendees"] == [{"email": "ada@example.com", "displayName": "Ada Lovelace"}]
        assert "extendedProperties" not in body
        assert send_updates == "all"

    def test_guests_are_locked_down(self, settings, gateway, delegated_credential):
        service = BookingService(settings, gateway, delegated_credential)
        request = virtual_request()

        body, _ = service.build_event_body(request, request.start, request.end)

        assert body["guestsCanModify"] is False
        assert body["guestsCanInviteOthers"] is False
        assert body["guestsCanSeeOtherGuests"] is False

    def test_display_name_falls_back_to_email_then_client(
        self, settings, gateway, ambient_credential
    ):
        service = BookingService(settings, gateway, ambient_credential)

        by_email = virtual_request(attendee_name=None)
        body, _ = service.build_event_body(by_email, by_email.start, by_email.end)
        assert body["summary"] == "ada: Virtual Session"
        assert body["description"] == "Booked via app (ada@example.com)"

        anonymous = virtual_request(attendee_name=None, attendee_email=None)
        body, _ = service.build_event_body(anonymous, anonymous.start, anonymous.end)
        assert body["summary"] == "Client: Virtual Session"
        assert body["description"] == "Booked via app"

    def test_in_person_uses_default_location(self, settings, gateway, ambient_credential):
        service = BookingService(settings, gateway, ambient_credential)
        request = virtual_request(mode="in-person")

        body, _ = service.build_event_body(request, request.start, request.end)

        assert request.mode == BookingMode.IN_PERSON
        assert body["summary"] == "Ada Lovelace: In-Person Session"
        assert body["location"] == "Office"
        assert body["extendedProperties"]["private"]["bookingLocation"] == "Office"

    def test_virtual_has_no_location(self, settings, gateway, ambient_credential):
        service = BookingService(settings, gateway, ambient_credential)
        request = virtual_request(location="Room 4")

        body, _ = service.build_event_body(request, request.start, request.end)

        assert "location" not in body

    def test_times_are_utc_rfc3339(self, settings, gateway, ambient_credential):
        service = BookingService(settings, gateway, ambient_credential)
        request = virtual_request(
            start="2026-11-02T10:00:00-05:00", end="2026-11-02T11:00:00-05:00"
        )

        body, _ = service.build_event_body(request, request.start, request.end)

        assert body["start"] == {"dateTime": "2026-11-02T15:00:00Z"}
        assert body["end"] == {"dateTime": "2026-11-02T16:00:00Z"}


class TestCreateBooking:
    """Tests for BookingService.create."""

    @pytest.mark.asyncio
    async def test_inline_conference_success(self, settings, gateway, ambient_credential):
        service = BookingService(settings, gateway, ambient_credential)

        booking = await service.create(virtual_request())

        assert gateway.operations() == ["insert_conference"]
        _, call = gateway.calls[0]
        assert call["conference_data_version"] == 1
        create_request = call["body"]["conferenceData"]["createRequest"]
        assert create_request["conferenceSolutionKey"] == {"type": "hangoutsMeet"}
        uuid.UUID(create_request["requestId"])
        assert booking.status == BookingStatus.CONFIRMED
        assert booking.conference_attached is True
        assert booking.conference_link == MEET_LINK

    @pytest.mark.asyncio
    async def test_inline_rejection_falls_back_to_patch_with_same_request_id(
        self, settings, gateway, ambient_credential
    ):
        # Arrange
        gateway.fail_next("insert_conference")
        service = BookingService(settings, gateway, ambient_credential)

        # Act
        booking = await service.create(virtual_request())

        # Assert
        assert gateway.operations() == ["insert_conference", "insert", "patch_conference"]
        inline_id = gateway.calls[0][1]["body"]["conferenceData"]["createRequest"]["requestId"]
        plain = gateway.calls[1][1]
        assert "conferenceData" not in plain["body"]
        assert plain["conference_data_version"] == 0
        patch = gateway.calls[2][1]
        assert patch["conference_data_version"] == 1
        assert patch["body"]["conferenceData"]["createRequest"]["requestId"] == inline_id
        assert booking.status == BookingStatus.CONFIRMED
        assert booking.conference_attached is True
        assert booking.conference_link == MEET_LINK

    @pytest.mark.asyncio
    async def test_auto_keeps_event_when_patch_also_fails(
        self, settings, gateway, ambient_credential
    ):
        gateway.fail_next("insert_conference")
        gateway.fail_next("patch_conference", status_code=403, message="Forbidden")
        service = BookingService(settings, gateway, ambient_credential)
        request = virtual_request()

        booking = await service.create(request)

        assert "delete" not in gateway.operations()
        assert booking.id in gateway.events
        assert booking.conference_attached is False
        assert booking.conference_link is None
        assert booking.start == request.start.astimezone(timezone.utc).isoformat().replace(
            "+00:00", "Z"
        )
        assert booking.start < booking.end

    @pytest.mark.asyncio
    async def test_force_fails_and_removes_event_when_both_tiers_rejected(
        self, gateway, ambient_credential
    ):
        settings = make_settings(use_meet="force")
        gateway.fail_next("insert_conference")
        gateway.fail_next("patch_conference", status_code=403, message="Forbidden")
        service = BookingService(settings, gateway, ambient_credential)

        with pytest.raises(ConferencingAttachError) as exc_info:
            await service.create(virtual_request())

        assert exc_info.value.upstream_status == 403
        assert gateway.operations()[-1] == "delete"
        assert gateway.events == {}

    @pytest.mark.asyncio
    async def test_never_policy_inserts_plain_event(self, gateway, ambient_credential):
        settings = make_settings(use_meet="never")
        service = BookingService(settings, gateway, ambient_credential)

        booking = await service.create(virtual_request())

        assert gateway.operations() == ["insert"]
        assert gateway.calls[0][1]["conference_data_version"] == 0
        assert booking.conference_attached is False

    @pytest.mark.asyncio
    async def test_in_person_never_requests_conference(self, gateway, ambient_credential):
        settings = make_settings(use_meet="force")
        service = BookingService(settings, gateway, ambient_credential)

        booking = await service.create(virtual_request(mode="in_person", location="Studio B"))

        assert gateway.operations() == ["insert"]
        assert booking.mode == BookingMode.IN_PERSON
        assert booking.location == "Studio B"

    @pytest.mark.asyncio
    async def test_start_not_before_end_is_rejected_without_remote_calls(
        self, settings, gateway, ambient_credential
    ):
        start, _ = upcoming_slot()
        service = BookingService(settings, gateway, ambient_credential)

        with pytest.raises(ValidationError):
            await service.create(virtual_request(start=start, end=start))

        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_plain_insert_failure_is_upstream_error(self, gateway, ambient_credential):
        settings = make_settings(use_meet="never")
        gateway.fail_next("insert", status_code=403, message="Calendar usage limits exceeded")
        service = BookingService(settings, gateway, ambient_credential)

        with pytest.raises(UpstreamBookingError) as exc_info:
            await service.create(virtual_request())

        assert not isinstance(exc_info.value, ConferencingAttachError)
        assert exc_info.value.upstream_status == 403
        assert "Calendar usage limits exceeded" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_ambient_booking_is_found_by_owner_email(
        self, settings, gateway, ambient_credential
    ):
        service = BookingService(settings, gateway, ambient_credential)
        created = await service.create(virtual_request())

        bookings = await service.list(BookingFilter(email="ADA@example.com"))

        assert [booking.id for booking in bookings] == [created.id]
        assert bookings[0].owner_email == "ada@example.com"
        assert bookings[0].attendees == []


class TestListBookings:
    """Tests for listing through the orchestrator."""

    @pytest.mark.asyncio
    async def test_unmatched_email_returns_nothing(self, settings, gateway, delegated_credential):
        service = BookingService(settings, gateway, delegated_credential)
        await service.create(virtual_request())

        assert await service.list(BookingFilter(email="nobody@example.com")) == []

    @pytest.mark.asyncio
    async def test_attendee_match_is_case_insensitive(
        self, settings, gateway, delegated_credential
    ):
        service = BookingService(settings, gateway, delegated_credential)
        mine = await service.create(virtual_request())
        start, end = upcoming_slot(days=2)
        await service.create(
            virtual_request(start=start, end=end, attendee_email="grace@example.com")
        )

        bookings = await service.list(BookingFilter(email="Ada@Example.com"))

        assert [booking.id for booking in bookings] == [mine.id]


class TestAmendBooking:
    """Tests for BookingService.amend."""

    @pytest.mark.asyncio
    async def test_only_location_is_sent(self, settings, gateway, delegated_credential):
        service = BookingService(settings, gateway, delegated_credential)
        created = await service.create(virtual_request(mode="in_person"))

        booking = await service.amend(created.id, BookingAmendment(location="Studio C"))

        operation, call = gateway.calls[-1]
        assert operation == "patch"
        assert call["body"] == {"location": "Studio C"}
        assert call["send_updates"] == "all"
        assert booking.location == "Studio C"
        assert booking.start == created.start
        assert booking.end == created.end

    @pytest.mark.asyncio
    async def test_location_recorded_in_private_metadata(
        self, settings, gateway, ambient_credential
    ):
        service = BookingService(settings, gateway, ambient_credential)
        created = await service.create(virtual_request(mode="in_person", location="Studio B"))

        booking = await service.amend(created.id, BookingAmendment(location="Studio C"))

        _, call = gateway.calls[-1]
        assert call["body"] == {
            "location": "Studio C",
            "extendedProperties": {"private": {"bookingLocation": "Studio C"}},
        }
        private = gateway.events[created.id]["extendedProperties"]["private"]
        assert private["bookingLocation"] == "Studio C"
        assert private["userEmail"] == "ada@example.com"
        assert private["bookingMode"] == "in_person"
        assert booking.location == "Studio C"
        assert booking.owner_email == "ada@example.com"

    @pytest.mark.asyncio
    async def test_both_bounds_move_event(self, settings, gateway, ambient_credential):
        service = BookingService(settings, gateway, ambient_credential)
        created = await service.create(virtual_request())
        start, end = upcoming_slot(days=3, minutes=30)

        booking = await service.amend(created.id, BookingAmendment(start=start, end=end))

        _, call = gateway.calls[-1]
        assert set(call["body"]) == {"start", "end"}
        assert call["send_updates"] == "none"
        assert booking.start.startswith(start.strftime("%Y-%m-%dT%H:%M"))

    @pytest.mark.asyncio
    async def test_single_bound_checked_against_current_event(
        self, settings, gateway, ambient_credential
    ):
        service = BookingService(settings, gateway, ambient_credential)
        created = await service.create(virtual_request())
        late_start = datetime.now(timezone.utc) + timedelta(days=10)

        with pytest.raises(ValidationError):
            await service.amend(created.id, BookingAmendment(start=late_start))

        assert gateway.operations()[-1] == "get"

    @pytest.mark.asyncio
    async def test_empty_amendment_is_rejected(self, settings, gateway, ambient_credential):
        service = BookingService(settings, gateway, ambient_credential)

        with pytest.raises(ValidationError):
            await service.amend("evt1", BookingAmendment())

        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_unknown_booking_is_not_found(self, settings, gateway, ambient_credential):
        service = BookingService(settings, gateway, ambient_credential)

        with pytest.raises(BookingNotFoundError):
            await service.amend("missing", BookingAmendment(location="Studio C"))


class TestCancelBooking:
    """Tests for BookingService.cancel."""

    @pytest.mark.asyncio
    async def test_cancel_removes_event(self, settings, gateway, delegated_credential):
        service = BookingService(settings, gateway, delegated_credential)
        created = await service.create(virtual_request())

        await service.cancel(created.id)

        assert created.id not in gateway.events
        assert gateway.calls[-1] == ("delete", {"event_id": created.id, "send_updates": "all"})

    @pytest.mark.asyncio
    async def test_already_deleted_event_is_not_found(
        self, settings, gateway, ambient_credential
    ):
        gateway.fail_next("delete", status_code=410, message="Resource has been deleted")
        service = BookingService(settings, gateway, ambient_credential)

        with pytest.raises(BookingNotFoundError) as exc_info:
            await service.cancel("evt9")

        assert exc_info.value.upstream_status == 410

    @pytest.mark.asyncio
    async def test_blank_id_is_rejected(self, settings, gateway, ambient_credential):
        service = BookingService(settings, gateway, ambient_credential)

        with pytest.raises(ValidationError):
            await service.cancel("  ")


class TestDeferredConnection:
    """The calendar connection is opened only for valid requests."""

    @pytest.fixture
    def connect(self, gateway, ambient_credential):
        return AsyncMock(return_value=CalendarConnection(gateway, ambient_credential))

    @pytest.mark.asyncio
    async def test_invalid_window_never_connects(self, settings, connect):
        start, _ = upcoming_slot()
        service = BookingService(settings, connect=connect)

        with pytest.raises(ValidationError):
            await service.create(virtual_request(start=start, end=start))

        connect.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_amendment_never_connects(self, settings, connect):
        start, end = upcoming_slot()
        service = BookingService(settings, connect=connect)

        with pytest.raises(ValidationError):
            await service.amend("evt1", BookingAmendment())
        with pytest.raises(ValidationError):
            await service.amend("evt1", BookingAmendment(start=end, end=start))
        with pytest.raises(ValidationError):
            await service.cancel("")

        connect.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_valid_create_connects_once(self, settings, gateway, connect):
        service = BookingService(settings, connect=connect)

        await service.create(virtual_request())
        await service.list(BookingFilter())

        connect.assert_awaited_once()
        assert gateway.operations() == ["insert_conference", "list"]

    def test_needs_gateway_or_connector(self, settings, gateway):
        with pytest.raises(TypeError):
            BookingService(settings, gateway)
