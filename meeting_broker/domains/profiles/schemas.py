"""Profile and session log schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class ProfileUpsert(BaseModel):
    """User profile as sent by the sign-in flow."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    email: Optional[str] = None
    name: Optional[str] = None
    avatar_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("avatar_url", "avatarUrl")
    )
    provider: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value):
        if isinstance(value, (int, str)):
            return str(value).strip()
        return value


class SessionLogCreate(BaseModel):
    """A completed session reported by a client."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(min_length=1, validation_alias=AliasChoices("user_id", "userId"))
    started_at: datetime = Field(validation_alias=AliasChoices("started_at", "startedAt"))
    duration_min: float = Field(gt=0, validation_alias=AliasChoices("duration_min", "durationMin"))
    session_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("session_id", "sessionId")
    )
    title: Optional[str] = None


class SessionLog(BaseModel):
    id: str
    started_at: str
    duration_min: float
    session_id: Optional[str] = None
    title: Optional[str] = None


class SessionLogList(BaseModel):
    logs: List[SessionLog]


class MonthSummary(BaseModel):
    minutes: float
    count: int
    avg: int


class ActivitySummary(BaseModel):
    """Totals for the last seven days and the current calendar month."""

    week_minutes: float
    days_this_week: int
    month: MonthSummary


class StoreAck(BaseModel):
    ok: bool = True
    id: Optional[str] = None
