"""Resolve calendar credentials from configuration.

Three trust models are supported, picked in priority order:

1. ``static_key``: a service-account JSON key supplied through the
   environment (raw or base64). Optionally impersonates the delegated user.
2. ``keyless_delegated``: domain-wide delegation without a resident key,
   see :mod:`meeting_broker.domains.credentials.token_exchange`.
3. ``ambient``: Application Default Credentials of the runtime. Cannot
   impersonate, so it only works when the calendar is shared with the
   runtime service account.

Credentials are resolved per operation and never cached.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import google.auth
from google.auth.exceptions import DefaultCredentialsError, GoogleAuthError
from google.oauth2 import credentials as oauth2_credentials
from google.oauth2 import service_account

from meeting_broker.core.config import Settings
from meeting_broker.domains.credentials.schemas import AuthMode, ResolvedCredential
from meeting_broker.domains.credentials.token_exchange import DelegatedTokenExchanger
from meeting_broker.utils.errors import ConfigurationError, MalformedKeyError

logger = logging.getLogger(__name__)


def select_auth_mode(settings: Settings) -> AuthMode:
    """
    Pick the trust model for the given settings.

    Explicit key material always wins, even over an explicitly requested
    mode, because it is the most specific configuration. This is a pure
    function of the settings, so re-resolving never changes mode.
    """
    if settings.has_key_material:
        return AuthMode.STATIC_KEY
    if settings.auth_mode != "auto":
        return AuthMode(settings.auth_mode)
    if settings.signer_service_account and settings.delegated_user:
        return AuthMode.KEYLESS_DELEGATED
    return AuthMode.AMBIENT


async def resolve_credential(
    settings: Settings,
    *,
    exchanger: Optional[DelegatedTokenExchanger] = None,
) -> ResolvedCredential:
    """
    Produce a scope-bound credential for the configured calendar.

    Raises:
        ConfigurationError: If the selected mode is missing required settings
        MalformedKeyError: If static key material cannot be parsed
        SigningError: If keyless delegation cannot sign its assertion
        TokenExchangeError: If the signed assertion is not exchanged for a token
    """
    mode = select_auth_mode(settings)
    warnings: List[str] = []
    if settings.has_key_material and settings.auth_mode not in ("auto", AuthMode.STATIC_KEY):
        warnings.append(
            f"AUTH_MODE={settings.auth_mode} ignored: service-account key material is configured"
        )

    resolver = _RESOLVERS[mode]
    resolved = await resolver(settings, warnings, exchanger)
    for warning in resolved.warnings:
        logger.warning("Credential resolution: %s", warning)
    logger.debug(
        "Resolved calendar credential mode=%s impersonating=%s",
        resolved.mode,
        bool(resolved.subject),
    )
    return resolved


async def _resolve_static_key(
    settings: Settings,
    warnings: List[str],
    _exchanger: Optional[DelegatedTokenExchanger],
) -> ResolvedCredential:
    if not settings.has_key_material:
        raise ConfigurationError(
            "static_key auth requires GOOGLE_CREDENTIALS or GOOGLE_CREDENTIALS_B64",
            details=["GOOGLE_CREDENTIALS", "GOOGLE_CREDENTIALS_B64"],
        )
    info = load_key_material(settings)
    missing = [key for key in ("client_email", "private_key") if not info.get(key)]
    if missing:
        raise ConfigurationError(
            "Service-account key is missing required fields",
            details=missing,
        )
    info["private_key"] = normalize_private_key(str(info["private_key"]))
    info.setdefault("token_uri", settings.token_endpoint)

    subject = settings.delegated_user
    try:
        credentials = service_account.Credentials.from_service_account_info(
            info,
            scopes=list(settings.calendar_scopes),
            subject=subject,
        )
    except (ValueError, GoogleAuthError) as exc:
        # Never include the key itself in the message
        raise MalformedKeyError(
            f"Private key for {info['client_email']} could not be loaded: {type(exc).__name__}"
        ) from exc

    return ResolvedCredential(
        mode=AuthMode.STATIC_KEY,
        credentials=credentials,
        scopes=tuple(settings.calendar_scopes),
        subject=subject,
        warnings=tuple(warnings),
    )


async def _resolve_keyless_delegated(
    settings: Settings,
    warnings: List[str],
    exchanger: Optional[DelegatedTokenExchanger],
) -> ResolvedCredential:
    missing = []
    if not settings.signer_service_account:
        missing.append("DWD_SA_EMAIL")
    if not settings.delegated_user:
        missing.append("GOOGLE_DELEGATED_USER")
    if missing:
        raise ConfigurationError(
            "keyless_delegated auth requires a signer service account and a delegated user",
            details=missing,
        )

    exchanger = exchanger or DelegatedTokenExchanger(
        token_endpoint=settings.token_endpoint,
        timeout=settings.http_timeout_seconds,
    )
    access_token = await exchanger.exchange_for_access_token(
        settings.signer_service_account,
        settings.delegated_user,
        settings.scope_string,
    )
    credentials = oauth2_credentials.Credentials(
        token=access_token,
        scopes=list(settings.calendar_scopes),
    )
    return ResolvedCredential(
        mode=AuthMode.KEYLESS_DELEGATED,
        credentials=credentials,
        scopes=tuple(settings.calendar_scopes),
        subject=settings.delegated_user,
        warnings=tuple(warnings),
    )


async def _resolve_ambient(
    settings: Settings,
    warnings: List[str],
    _exchanger: Optional[DelegatedTokenExchanger],
) -> ResolvedCredential:
    try:
        credentials, _project = await asyncio.to_thread(
            google.auth.default, scopes=list(settings.calendar_scopes)
        )
    except DefaultCredentialsError as exc:
        raise ConfigurationError(
            f"No application default credentials available: {exc}"
        ) from exc

    if settings.delegated_user:
        warnings.append(
            f"GOOGLE_DELEGATED_USER={settings.delegated_user} ignored: ambient credentials "
            "cannot impersonate; bookings record owners as private metadata"
        )
    return ResolvedCredential(
        mode=AuthMode.AMBIENT,
        credentials=credentials,
        scopes=tuple(settings.calendar_scopes),
        subject=None,
        warnings=tuple(warnings),
    )


_RESOLVERS: Dict[
    AuthMode,
    Callable[
        [Settings, List[str], Optional[DelegatedTokenExchanger]],
        Awaitable[ResolvedCredential],
    ],
] = {
    AuthMode.STATIC_KEY: _resolve_static_key,
    AuthMode.KEYLESS_DELEGATED: _resolve_keyless_delegated,
    AuthMode.AMBIENT: _resolve_ambient,
}


def load_key_material(settings: Settings) -> Dict[str, Any]:
    """Decode the configured service-account JSON (raw wins over base64)."""
    raw = settings.google_credentials
    if raw is None and settings.google_credentials_b64:
        try:
            raw = base64.b64decode(settings.google_credentials_b64, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            raise MalformedKeyError("GOOGLE_CREDENTIALS_B64 is not valid base64 JSON") from exc
    try:
        info = json.loads(raw or "")
    except ValueError as exc:
        raise MalformedKeyError("Service-account key material is not valid JSON") from exc
    if not isinstance(info, dict):
        raise MalformedKeyError("Service-account key material must be a JSON object")
    return info


def normalize_private_key(key: str) -> str:
    """Turn literal ``\\n`` sequences from single-line env vars into line breaks."""
    if "\\n" in key:
        key = key.replace("\\n", "\n")
    return key
