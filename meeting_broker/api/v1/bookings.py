"""Booking API routes."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel

from meeting_broker.core.dependencies import get_booking_service
from meeting_broker.domains.bookings.schemas import (
    Booking,
    BookingAmendment,
    BookingFilter,
    BookingRequest,
)
from meeting_broker.domains.bookings.service import BookingService
from meeting_broker.utils.errors import BrokerError, to_http_exception

router = APIRouter(prefix="/bookings", tags=["bookings"])
logger = logging.getLogger(__name__)


class BookingListResponse(BaseModel):
    bookings: List[Booking]


@router.post("", response_model=Booking, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingRequest,
    service: BookingService = Depends(get_booking_service),
) -> Booking:
    """Create a booking on the shared calendar."""
    try:
        return await service.create(payload)
    except BrokerError as exc:
        logger.error("Booking creation failed code=%s: %s", exc.code, exc)
        raise to_http_exception(exc) from exc


@router.get("", response_model=BookingListResponse)
async def list_bookings(
    email: Optional[str] = None,
    time_min: Optional[datetime] = Query(default=None, alias="timeMin"),
    time_max: Optional[datetime] = Query(default=None, alias="timeMax"),
    max_results: Optional[int] = Query(default=None, alias="maxResults", ge=1, le=2500),
    service: BookingService = Depends(get_booking_service),
) -> BookingListResponse:
    """List upcoming bookings, optionally only those of one email."""
    booking_filter = BookingFilter(
        email=email,
        time_min=time_min,
        time_max=time_max,
        max_results=max_results,
    )
    try:
        bookings = await service.list(booking_filter)
    except BrokerError as exc:
        raise to_http_exception(exc) from exc
    return BookingListResponse(bookings=bookings)


@router.patch("/{booking_id}", response_model=Booking)
async def amend_booking(
    booking_id: str,
    payload: BookingAmendment,
    service: BookingService = Depends(get_booking_service),
) -> Booking:
    """Move a booking and/or change its location."""
    try:
        return await service.amend(booking_id, payload)
    except BrokerError as exc:
        raise to_http_exception(exc) from exc


@router.delete("/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_booking(
    booking_id: str,
    service: BookingService = Depends(get_booking_service),
) -> Response:
    """Cancel a booking."""
    try:
        await service.cancel(booking_id)
    except BrokerError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
