"""Timestamp parsing and formatting for calendar payloads."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, Tuple

from meeting_broker.utils.errors import ValidationError


def parse_timestamp(value: Any, field: str) -> datetime:
    """
    Parse an ISO 8601 / RFC 3339 timestamp into an aware UTC datetime.

    Naive values are taken to be UTC, matching how the calendar API reads a
    ``dateTime`` without an offset on a UTC calendar.

    Raises:
        ValidationError: If the value is missing or cannot be parsed
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field} is required", details=[f"{field}: missing"])
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        normalized = value.strip()
        if normalized.endswith(("Z", "z")):
            normalized = normalized[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(normalized)
        except ValueError as exc:
            raise ValidationError(
                f"{field} is not a valid timestamp",
                details=[f"{field}: {value!r}"],
            ) from exc
    else:
        raise ValidationError(
            f"{field} is not a valid timestamp",
            details=[f"{field}: {value!r}"],
        )
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_window(
    start: Any,
    end: Any,
    *,
    start_field: str = "start",
    end_field: str = "end",
) -> Tuple[datetime, datetime]:
    """Parse both bounds of a time window and require ``start < end``."""
    start_dt = parse_timestamp(start, start_field)
    end_dt = parse_timestamp(end, end_field)
    if start_dt >= end_dt:
        raise ValidationError(
            f"{start_field} must be before {end_field}",
            details=[f"{start_field}={to_rfc3339(start_dt)}", f"{end_field}={to_rfc3339(end_dt)}"],
        )
    return start_dt, end_dt


def to_rfc3339(value: datetime) -> str:
    """Format an aware datetime as RFC 3339 in UTC with a ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def event_boundary(payload: Dict[str, Any] | None) -> str | None:
    """Return an event start/end as the API sent it: ``dateTime`` or all-day ``date``."""
    if not isinstance(payload, dict):
        return None
    return payload.get("dateTime") or payload.get("date")


def boundary_instant(value: str | None) -> datetime | None:
    """Best-effort conversion of an event boundary string for comparisons."""
    if not value:
        return None
    try:
        if len(value) == 10:
            day = date.fromisoformat(value)
            return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
        return parse_timestamp(value, "boundary")
    except (ValueError, ValidationError):
        return None
