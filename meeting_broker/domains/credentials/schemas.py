"""Credential domain types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Dict, Tuple

from google.auth.credentials import Credentials

ASSERTION_LIFETIME_SECONDS = 3600
JWT_BEARER_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"


class AuthMode(StrEnum):
    """Trust model used to obtain calendar access."""

    STATIC_KEY = "static_key"
    KEYLESS_DELEGATED = "keyless_delegated"
    AMBIENT = "ambient"


@dataclass(frozen=True)
class ResolvedCredential:
    """An authorized, scope-bound handle for calling the calendar backend."""

    mode: AuthMode
    credentials: Credentials
    scopes: Tuple[str, ...]
    subject: str | None = None
    warnings: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def can_invite_attendees(self) -> bool:
        """True when acting as a real user, so invitations come from that user."""
        return self.subject is not None

    @property
    def send_updates(self) -> str:
        """Notification policy for mutations made with this credential."""
        return "all" if self.can_invite_attendees else "none"


@dataclass(frozen=True)
class SignedAssertionClaims:
    """Claim set for a domain-wide delegation assertion."""

    issuer: str
    subject: str
    scope: str
    audience: str
    issued_at: int

    @property
    def expires_at(self) -> int:
        return self.issued_at + ASSERTION_LIFETIME_SECONDS

    def to_payload(self) -> Dict[str, Any]:
        return {
            "iss": self.issuer,
            "sub": self.subject,
            "scope": self.scope,
            "aud": self.audience,
            "iat": self.issued_at,
            "exp": self.expires_at,
        }
