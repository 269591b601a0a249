"""Centralized exception classes for the broker."""

from __future__ import annotations

import json
from typing import Any, List

from fastapi import HTTPException, status
from googleapiclient.errors import HttpError


class BrokerError(RuntimeError):
    """Base error for broker operations.

    ``status_code`` is the HTTP status the API layer answers with and
    ``code`` the machine-readable error code placed in the response body.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, details: List[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


# Credential resolution errors
class ConfigurationError(BrokerError):
    """Raised when authentication or calendar settings are missing or contradictory."""

    code = "CONFIGURATION_ERROR"


class MalformedKeyError(BrokerError):
    """Raised when service-account key material cannot be parsed."""

    code = "MALFORMED_KEY"


class IdentityProviderError(BrokerError):
    """Base error for calls to Google identity services."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "IDENTITY_PROVIDER_ERROR"

    def __init__(
        self,
        message: str,
        *,
        upstream_status: int | None = None,
        upstream_body: str | None = None,
    ) -> None:
        details = []
        if upstream_status is not None:
            details.append(f"upstream_status={upstream_status}")
        if upstream_body:
            details.append(upstream_body)
        super().__init__(message, details=details)
        self.upstream_status = upstream_status
        self.upstream_body = upstream_body


class SigningError(IdentityProviderError):
    """Raised when the IAM signJwt call fails or returns no assertion."""

    code = "SIGNING_FAILED"


class TokenExchangeError(IdentityProviderError):
    """Raised when the OAuth token endpoint rejects the signed assertion."""

    code = "TOKEN_EXCHANGE_FAILED"


# Request errors
class ValidationError(BrokerError):
    """Raised when request fields are missing or invalid."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


# Booking errors
class UpstreamBookingError(BrokerError):
    """Raised when the calendar backend rejects a core event operation."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "UPSTREAM_BOOKING_ERROR"

    def __init__(
        self,
        message: str,
        *,
        upstream_status: int | None = None,
        payload: Any | None = None,
    ) -> None:
        details = []
        if upstream_status is not None:
            details.append(f"upstream_status={upstream_status}")
        detail = _upstream_message(payload)
        if detail:
            details.append(detail)
        super().__init__(message, details=details)
        self.upstream_status = upstream_status
        self.payload = payload


class BookingNotFoundError(UpstreamBookingError):
    """Raised when the target event does not exist (or is already gone)."""

    status_code = status.HTTP_404_NOT_FOUND
    code = "BOOKING_NOT_FOUND"


class ConferencingAttachError(UpstreamBookingError):
    """Raised when a Meet link could not be attached under the force policy."""

    code = "CONFERENCING_ATTACH_FAILED"


# Google Calendar API errors
class GoogleCalendarAPIError(RuntimeError):
    """Raised when the Google Calendar REST API returns an error."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        payload: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload

    @classmethod
    def from_http_error(cls, error: HttpError) -> "GoogleCalendarAPIError":
        """Create a GoogleCalendarAPIError from a googleapiclient.errors.HttpError."""
        status_code = error.resp.status if hasattr(error, "resp") else 500
        try:
            payload = json.loads(error.content.decode()) if hasattr(error, "content") else None
        except (ValueError, AttributeError):
            payload = str(error)
        return cls(
            message=str(error),
            status_code=int(status_code),
            payload=payload,
        )

    @property
    def upstream_message(self) -> str:
        return _upstream_message(self.payload) or str(self)


# Supabase errors
class SupabaseStorageError(BrokerError):
    """Raised when Supabase data operations fail."""

    code = "STORAGE_ERROR"


def _upstream_message(payload: Any) -> str | None:
    """Pull the human-readable message out of a Google error payload."""
    if payload is None:
        return None
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return payload.get("error_description") or error
        return json.dumps(payload)
    return str(payload)


def to_http_exception(exc: BrokerError) -> HTTPException:
    """Map a broker error onto the HTTP error body returned by the API."""
    return HTTPException(
        status_code=exc.status_code,
        detail={"error": str(exc), "code": exc.code, "details": exc.details},
    )
