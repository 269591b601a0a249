"""Repository for profile and session log database operations."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from postgrest import APIError

from meeting_broker.db.session import get_service_client
from meeting_broker.domains.profiles.schemas import (
    ActivitySummary,
    ProfileUpsert,
    SessionLog,
    SessionLogCreate,
)
from meeting_broker.domains.profiles.summary import summarize_activity, summary_windows
from meeting_broker.utils.errors import SupabaseStorageError
from meeting_broker.utils.timestamps import to_rfc3339

USERS_TABLE = "users"
SESSION_LOGS_TABLE = "session_logs"
DEFAULT_LOG_LOOKBACK = timedelta(days=30)

logger = logging.getLogger(__name__)


def _utc_now() -> str:
    return to_rfc3339(datetime.now(timezone.utc))


class ProfileRepository:
    """Repository for user profiles and their session logs."""

    def __init__(self, client: Any = None) -> None:
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = get_service_client()
        return self._client

    def upsert_profile(self, profile: ProfileUpsert) -> None:
        """Create or update a user profile."""
        payload = {
            "id": profile.id,
            "email": profile.email,
            "name": profile.name,
            "avatar_url": profile.avatar_url,
            "provider": profile.provider,
            "updated_at": _utc_now(),
        }
        try:
            self.client.table(USERS_TABLE).upsert(payload).execute()
        except APIError as exc:
            logger.error("Profile upsert failed user_id=%s: %s", profile.id, exc.message)
            raise SupabaseStorageError(exc.message) from exc

    def insert_log(self, log: SessionLogCreate) -> Optional[str]:
        """
        Store a session log.

        Returns:
            The id of the new row, if the store returned one
        """
        payload = {
            "user_id": log.user_id,
            "started_at": to_rfc3339(log.started_at),
            "duration_min": log.duration_min,
            "session_id": log.session_id,
            "title": log.title,
            "created_at": _utc_now(),
        }
        try:
            result = self.client.table(SESSION_LOGS_TABLE).insert(payload).execute()
        except APIError as exc:
            logger.error("Session log insert failed user_id=%s: %s", log.user_id, exc.message)
            raise SupabaseStorageError(exc.message) from exc
        rows = result.data or []
        if rows and rows[0].get("id") is not None:
            return str(rows[0]["id"])
        return None

    def list_logs(self, user_id: str, since: Optional[datetime] = None) -> List[SessionLog]:
        """Session logs started at or after ``since`` (default 30 days ago), newest first."""
        if since is None:
            since = datetime.now(timezone.utc) - DEFAULT_LOG_LOOKBACK
        try:
            result = (
                self.client.table(SESSION_LOGS_TABLE)
                .select("id, started_at, duration_min, session_id, title")
                .eq("user_id", user_id)
                .gte("started_at", to_rfc3339(since))
                .order("started_at", desc=True)
                .execute()
            )
        except APIError as exc:
            raise SupabaseStorageError(exc.message) from exc
        return [
            SessionLog(
                id=str(row.get("id") if row.get("id") is not None else row.get("started_at")),
                started_at=str(row.get("started_at")),
                duration_min=float(row.get("duration_min") or 0),
                session_id=row.get("session_id"),
                title=row.get("title"),
            )
            for row in result.data or []
        ]

    def summarize(self, user_id: str, now: Optional[datetime] = None) -> ActivitySummary:
        """Weekly and monthly activity totals for a user."""
        now = now or datetime.now().astimezone()
        week_start, month_start = summary_windows(now if now.tzinfo else now.astimezone())
        try:
            result = (
                self.client.table(SESSION_LOGS_TABLE)
                .select("duration_min, started_at")
                .eq("user_id", user_id)
                .gte("started_at", to_rfc3339(min(week_start, month_start)))
                .execute()
            )
        except APIError as exc:
            raise SupabaseStorageError(exc.message) from exc
        return summarize_activity(result.data or [], now)
