"""Keyless domain-wide delegation.

No private key lives in this process. The IAM Credentials API signs a JWT
assertion on behalf of the delegated service account, using the authority of
the identity the process already runs as (Application Default Credentials),
and the assertion is then exchanged at the OAuth token endpoint for an
access token that impersonates the delegated user.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Callable, Optional
from urllib.parse import quote

import google.auth
import httpx
from google.auth.credentials import Credentials
from google.auth.exceptions import DefaultCredentialsError, GoogleAuthError
from google.auth.transport.requests import Request

from meeting_broker.core.config import GOOGLE_TOKEN_ENDPOINT
from meeting_broker.domains.credentials.schemas import (
    JWT_BEARER_GRANT_TYPE,
    SignedAssertionClaims,
)
from meeting_broker.utils.errors import SigningError, TokenExchangeError

IAM_CREDENTIALS_BASE_URL = "https://iamcredentials.googleapis.com/v1"
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"

logger = logging.getLogger(__name__)


class DelegatedTokenExchanger:
    """Two-step signJwt + JWT-bearer exchange. Nothing is cached or retried."""

    def __init__(
        self,
        *,
        token_endpoint: str = GOOGLE_TOKEN_ENDPOINT,
        timeout: float = 15.0,
        source_credentials: Optional[Credentials] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.token_endpoint = token_endpoint
        self.timeout = timeout
        self._source_credentials = source_credentials
        self._transport = transport
        self._clock = clock

    def build_claims(
        self, signer_identity: str, impersonation_subject: str, scope: str
    ) -> SignedAssertionClaims:
        """Claim set for the assertion, valid for one hour from now."""
        return SignedAssertionClaims(
            issuer=signer_identity,
            subject=impersonation_subject,
            scope=scope,
            audience=self.token_endpoint,
            issued_at=int(self._clock()),
        )

    async def exchange_for_access_token(
        self,
        signer_identity: str,
        impersonation_subject: str,
        scope: str,
    ) -> str:
        """
        Obtain an access token acting as ``impersonation_subject``.

        Args:
            signer_identity: Email of the service account with domain-wide delegation
            impersonation_subject: Workspace user to act as
            scope: Space-separated OAuth scopes

        Returns:
            The access token string (valid for about an hour)

        Raises:
            SigningError: If signJwt fails or returns no signed assertion
            TokenExchangeError: If the token endpoint does not return a token
        """
        claims = self.build_claims(signer_identity, impersonation_subject, scope)
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            assertion = await self._sign_assertion(client, claims)
            return await self._exchange_assertion(client, assertion)

    async def _sign_assertion(
        self, client: httpx.AsyncClient, claims: SignedAssertionClaims
    ) -> str:
        source_token = await self._source_access_token()
        name = f"projects/-/serviceAccounts/{quote(claims.issuer, safe='@')}"
        url = f"{IAM_CREDENTIALS_BASE_URL}/{name}:signJwt"
        try:
            response = await client.post(
                url,
                json={"payload": json.dumps(claims.to_payload())},
                headers={
                    "Authorization": f"Bearer {source_token}",
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as exc:
            raise SigningError(f"signJwt request failed: {exc}") from exc

        if response.status_code != httpx.codes.OK:
            logger.error(
                "signJwt rejected for %s: status=%s", claims.issuer, response.status_code
            )
            raise SigningError(
                f"signJwt failed with status {response.status_code}",
                upstream_status=response.status_code,
                upstream_body=response.text,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise SigningError(
                "signJwt returned a non-JSON response",
                upstream_status=response.status_code,
                upstream_body=response.text,
            ) from exc
        signed_jwt = data.get("signedJwt") if isinstance(data, dict) else None
        if not signed_jwt:
            raise SigningError(
                "signJwt did not return signedJwt",
                upstream_status=response.status_code,
                upstream_body=response.text,
            )
        return signed_jwt

    async def _exchange_assertion(self, client: httpx.AsyncClient, assertion: str) -> str:
        try:
            response = await client.post(
                self.token_endpoint,
                data={"grant_type": JWT_BEARER_GRANT_TYPE, "assertion": assertion},
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise TokenExchangeError(f"Token exchange request failed: {exc}") from exc

        if response.status_code != httpx.codes.OK:
            logger.error("Token exchange rejected: status=%s", response.status_code)
            raise TokenExchangeError(
                f"token_exchange_failed: {response.status_code} {response.text}",
                upstream_status=response.status_code,
                upstream_body=response.text,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise TokenExchangeError(
                "Token exchange returned a non-JSON response",
                upstream_status=response.status_code,
                upstream_body=response.text,
            ) from exc
        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not access_token:
            raise TokenExchangeError(
                "Token exchange response did not include an access token.",
                upstream_status=response.status_code,
            )
        return access_token

    async def _source_access_token(self) -> str:
        """Access token of the process's own identity, used to call IAM."""
        try:
            credentials = self._source_credentials
            if credentials is None:
                credentials, _ = await asyncio.to_thread(
                    google.auth.default, scopes=[CLOUD_PLATFORM_SCOPE]
                )
            if not credentials.valid:
                await asyncio.to_thread(credentials.refresh, Request())
        except DefaultCredentialsError as exc:
            raise SigningError(
                f"No ambient credentials available to call signJwt: {exc}"
            ) from exc
        except GoogleAuthError as exc:
            raise SigningError(f"Could not refresh ambient credentials: {exc}") from exc

        if not credentials.token:
            raise SigningError("Ambient credentials did not yield an access token")
        return credentials.token
