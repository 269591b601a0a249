"""Availability API routes."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from meeting_broker.core.dependencies import get_availability_service
from meeting_broker.domains.availability.service import AvailabilityService
from meeting_broker.domains.bookings.schemas import BusyInterval
from meeting_broker.utils.errors import BrokerError, to_http_exception

router = APIRouter(tags=["availability"])
logger = logging.getLogger(__name__)


class AvailabilityResponse(BaseModel):
    busy: List[BusyInterval]


@router.get("/availability", response_model=AvailabilityResponse)
async def get_availability(
    start: Optional[str] = None,
    end: Optional[str] = None,
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    """Busy intervals of the booking calendar between ``start`` and ``end``."""
    try:
        busy = await service.query_free_busy(start, end)
    except BrokerError as exc:
        raise to_http_exception(exc) from exc
    return AvailabilityResponse(busy=busy)
