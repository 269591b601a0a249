"""FastAPI dependencies wiring settings, credentials and services."""

from __future__ import annotations

import logging
from functools import partial
from typing import Annotated, Awaitable, Callable, Optional

from fastapi import Depends, Header, HTTPException, Query, Request, status

from meeting_broker.core.config import Settings, get_settings
from meeting_broker.domains.availability.service import AvailabilityService
from meeting_broker.domains.bookings.gateway import (
    CalendarConnection,
    CalendarConnector,
    GoogleCalendarGateway,
)
from meeting_broker.domains.bookings.service import BookingService
from meeting_broker.domains.credentials.resolver import resolve_credential
from meeting_broker.domains.credentials.schemas import ResolvedCredential
from meeting_broker.domains.profiles.repository import ProfileRepository
from meeting_broker.utils.errors import BrokerError, ConfigurationError

logger = logging.getLogger(__name__)

SettingsDep = Annotated[Settings, Depends(get_settings)]
CredentialResolver = Callable[[], Awaitable[ResolvedCredential]]


def get_credential_resolver(settings: SettingsDep) -> CredentialResolver:
    """Resolver producing a fresh calendar credential each time it is awaited."""
    return partial(resolve_credential, settings)


def get_calendar_connector(
    settings: SettingsDep,
    resolve: Annotated[CredentialResolver, Depends(get_credential_resolver)],
) -> CalendarConnector:
    """
    Deferred calendar connection for the services.

    Nothing is resolved here: services open the connection only once their
    input is valid, so a bad request never reaches the identity provider.
    """

    async def connect() -> CalendarConnection:
        if not settings.calendar_id:
            raise ConfigurationError("CALENDAR_ID is not configured", details=["CALENDAR_ID"])
        try:
            credential = await resolve()
        except BrokerError as exc:
            logger.error("Credential resolution failed code=%s: %s", exc.code, exc)
            raise
        return CalendarConnection(
            gateway=GoogleCalendarGateway(credential, settings.calendar_id),
            credential=credential,
        )

    return connect


def get_booking_service(
    settings: SettingsDep,
    connect: Annotated[CalendarConnector, Depends(get_calendar_connector)],
) -> BookingService:
    return BookingService(settings, connect=connect)


def get_availability_service(
    settings: SettingsDep,
    connect: Annotated[CalendarConnector, Depends(get_calendar_connector)],
) -> AvailabilityService:
    return AvailabilityService(settings, connect=connect)


def get_profile_repository() -> ProfileRepository:
    return ProfileRepository()


def get_user_id(
    request: Request,
    x_user_id: Annotated[Optional[str], Header()] = None,
    user_id: Annotated[Optional[str], Query(alias="userId")] = None,
) -> str:
    """
    Identify the caller from the ``X-User-Id`` header or ``userId`` query.

    Also stores user_id in request.state for middleware access.
    """
    resolved = (x_user_id or user_id or "").strip()
    if not resolved:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "User id is required",
                "code": "VALIDATION_ERROR",
                "details": ["X-User-Id header or userId query parameter"],
            },
        )
    request.state.user_id = resolved
    return resolved
