"""Calendar credential resolution."""

from .resolver import resolve_credential, select_auth_mode
from .schemas import AuthMode, ResolvedCredential

__all__ = ["AuthMode", "ResolvedCredential", "resolve_credential", "select_auth_mode"]
