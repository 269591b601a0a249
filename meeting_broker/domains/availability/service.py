"""Read-only views of the booking calendar: busy intervals and bookings."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

from meeting_broker.core.config import Settings
from meeting_broker.domains.bookings.gateway import CalendarConnector, CalendarGateway
from meeting_broker.domains.bookings.schemas import (
    Booking,
    BookingFilter,
    BookingStatus,
    BusyInterval,
)
from meeting_broker.utils.errors import GoogleCalendarAPIError, UpstreamBookingError
from meeting_broker.utils.timestamps import parse_timestamp, parse_window, to_rfc3339

logger = logging.getLogger(__name__)


class AvailabilityService:
    """Service for free/busy and booking listing queries."""

    def __init__(
        self,
        settings: Settings,
        gateway: Optional[CalendarGateway] = None,
        *,
        connect: Optional[CalendarConnector] = None,
    ) -> None:
        if gateway is None and connect is None:
            raise TypeError("AvailabilityService needs a gateway or a connector")
        self.settings = settings
        self.gateway = gateway
        self._connect = connect

    async def _get_gateway(self) -> CalendarGateway:
        """Open the calendar connection on first use."""
        if self.gateway is None:
            connection = await self._connect()
            self.gateway = connection.gateway
        return self.gateway

    async def query_free_busy(self, start: Any, end: Any) -> List[BusyInterval]:
        """
        Busy intervals of the booking calendar within ``[start, end)``.

        Args:
            start: Window start (datetime or RFC 3339 string)
            end: Window end (datetime or RFC 3339 string)

        Returns:
            Busy intervals as reported by the calendar, in its order

        Raises:
            ValidationError: If a bound is missing, unparseable or start >= end
            UpstreamBookingError: If the free/busy query fails
        """
        start_dt, end_dt = parse_window(start, end)
        gateway = await self._get_gateway()
        try:
            busy = await gateway.query_free_busy(
                time_min=to_rfc3339(start_dt),
                time_max=to_rfc3339(end_dt),
            )
        except GoogleCalendarAPIError as exc:
            raise UpstreamBookingError(
                f"Free/busy query failed: {exc.upstream_message}",
                upstream_status=exc.status_code,
                payload=exc.payload,
            ) from exc
        return [
            BusyInterval(start=str(interval.get("start")), end=str(interval.get("end")))
            for interval in busy
            if isinstance(interval, dict) and interval.get("start") and interval.get("end")
        ]

    async def list_bookings(self, booking_filter: BookingFilter) -> List[Booking]:
        """
        List active bookings, optionally only those belonging to an email.

        The window defaults to now until ``booking_window_days`` ahead. An
        email matches invited attendees or the private owner recorded when
        attendees could not be invited.
        """
        time_min, time_max = self._resolve_window(booking_filter)
        max_results = booking_filter.max_results or self.settings.default_max_results
        gateway = await self._get_gateway()
        try:
            events = await gateway.list_events(
                time_min=to_rfc3339(time_min),
                time_max=to_rfc3339(time_max),
                max_results=max_results,
            )
        except GoogleCalendarAPIError as exc:
            raise UpstreamBookingError(
                f"Failed to list bookings: {exc.upstream_message}",
                upstream_status=exc.status_code,
                payload=exc.payload,
            ) from exc

        bookings = [Booking.from_event(event) for event in events if isinstance(event, dict)]
        bookings = [booking for booking in bookings if booking.status != BookingStatus.CANCELLED]
        if booking_filter.email and booking_filter.email.strip():
            bookings = [booking for booking in bookings if booking.is_owned_by(booking_filter.email)]
        logger.debug("Listed %d bookings between %s and %s", len(bookings), time_min, time_max)
        return bookings

    def _resolve_window(self, booking_filter: BookingFilter) -> tuple[datetime, datetime]:
        if booking_filter.time_min is None and booking_filter.time_max is None:
            now = datetime.now(timezone.utc)
            return now, now + timedelta(days=self.settings.booking_window_days)
        if booking_filter.time_min is not None and booking_filter.time_max is not None:
            return parse_window(
                booking_filter.time_min,
                booking_filter.time_max,
                start_field="timeMin",
                end_field="timeMax",
            )
        window = timedelta(days=self.settings.booking_window_days)
        if booking_filter.time_min is not None:
            time_min = parse_timestamp(booking_filter.time_min, "timeMin")
            return time_min, time_min + window
        time_max = parse_timestamp(booking_filter.time_max, "timeMax")
        now = datetime.now(timezone.utc)
        if now < time_max:
            return now, time_max
        return time_max - window, time_max
