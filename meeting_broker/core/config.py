"""Application configuration using pydantic-settings."""

from __future__ import annotations

from enum import StrEnum
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Get the project root directory (two levels up from this file)
PROJECT_ROOT = Path(__file__).parent.parent.parent

CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar"
GOOGLE_TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"


class ConferencePolicy(StrEnum):
    """How hard a booking tries to attach a Meet link."""

    AUTO = "auto"
    NEVER = "never"
    FORCE = "force"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Target calendar (email or calendar id managed by this service)
    calendar_id: Optional[str] = None

    # Authentication
    # "auto" picks a mode from which credentials are present
    auth_mode: Literal["auto", "static_key", "keyless_delegated", "ambient"] = "auto"
    signer_service_account: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("DWD_SA_EMAIL", "GOOGLE_SERVICE_ACCOUNT_EMAIL"),
    )
    delegated_user: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GOOGLE_DELEGATED_USER", "IMPERSONATE_USER"),
    )
    # Legacy service-account key material (raw JSON or base64 JSON)
    google_credentials: Optional[str] = None
    google_credentials_b64: Optional[str] = None
    calendar_scopes: list[str] = [CALENDAR_SCOPE]
    token_endpoint: str = GOOGLE_TOKEN_ENDPOINT

    # Booking behaviour
    use_meet: ConferencePolicy = ConferencePolicy.AUTO
    default_location: str = "Office"
    booking_window_days: int = 90
    default_max_results: int = Field(default=50, ge=1, le=2500)

    http_timeout_seconds: float = 15.0

    # Supabase configuration (profile and session log store)
    supabase_url: Optional[str] = None
    supabase_service_role_key: Optional[str] = None

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator(
        "calendar_id",
        "signer_service_account",
        "delegated_user",
        "google_credentials",
        "google_credentials_b64",
        "supabase_url",
        "supabase_service_role_key",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("auth_mode", "use_meet", mode="before")
    @classmethod
    def _lowercase(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def scope_string(self) -> str:
        """Space-separated scopes, as expected by OAuth assertions."""
        return " ".join(self.calendar_scopes)

    @property
    def has_key_material(self) -> bool:
        return bool(self.google_credentials or self.google_credentials_b64)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
