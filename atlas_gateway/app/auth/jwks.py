"""
JSON Web Key Set (JWKS) verification of dashboard sessions.

Credential management routes are called by the signed-in dashboard, not
by machine credentials. The session JWT's ``sub`` claim is the principal
that owns the credentials being managed.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

import httpx
from fastapi import Request
from jose import JWTError, jwt

from shared.errors import AuthenticationError, DependencyUnavailableError
from shared.logging import get_logger, set_principal_context


@dataclass(frozen=True)
class SessionContext:
    """Dashboard session derived from a verified JWT."""

    principal_id: str
    claims: Dict[str, Any]


class DashboardAuthenticator:
    """Validates dashboard session JWTs against a remote JWKS endpoint."""

    def __init__(
        self,
        jwks_url: str,
        audience: Optional[str] = None,
        issuer: Optional[str] = None,
        *,
        refresh_interval: int = 300,
        http_timeout: float = 5.0,
    ) -> None:
        self.jwks_url = jwks_url
        self.audience = audience
        self.issuer = issuer
        self.refresh_interval = refresh_interval
        self.logger = get_logger("gateway.auth.jwks")

        self._keys: Optional[Iterable[Dict[str, Any]]] = None
        self._last_refresh: float = 0.0
        self._lock = asyncio.Lock()
        self._client = httpx.AsyncClient(timeout=http_timeout)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def warmup(self) -> None:
        """Eagerly load the key set so the first request does not pay for it."""
        try:
            await self._refresh_keys(force=True)
        except Exception as exc:  # pragma: no cover - best-effort warmup
            self.logger.warning("JWKS warmup failed", error=str(exc))

    async def authenticate(self, request: Request) -> SessionContext:
        """Authenticate the request using its Authorization bearer token."""
        authorization = request.headers.get("Authorization")
        if not authorization or not authorization.startswith("Bearer "):
            raise AuthenticationError("Missing or invalid session token")

        token = authorization[7:].strip()
        if not token:
            raise AuthenticationError("Missing or invalid session token")

        claims = await self._validate_token(token)
        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise AuthenticationError("Missing or invalid session token")

        set_principal_context(subject)
        context = SessionContext(principal_id=subject, claims=claims)
        request.state.session_context = context
        return context

    async def _validate_token(self, token: str) -> Dict[str, Any]:
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise AuthenticationError("Missing or invalid session token") from exc

        kid = header.get("kid")
        if not isinstance(kid, str):
            raise AuthenticationError("Missing or invalid session token")

        key_data = await self._get_key(kid)
        if not key_data:
            self.logger.warning("Session signed with unknown key", kid=kid)
            raise AuthenticationError("Missing or invalid session token")

        algorithms = [key_data.get("alg", "RS256")]
        options: Dict[str, Any] = {"verify_aud": self.audience is not None}

        try:
            return jwt.decode(
                token,
                key_data,
                algorithms=algorithms,
                audience=self.audience,
                issuer=self.issuer,
                options=options,
            )
        except JWTError as exc:
            self.logger.info("Session token rejected", error=str(exc))
            raise AuthenticationError("Missing or invalid session token") from exc

    async def _get_key(self, kid: str) -> Optional[Dict[str, Any]]:
        await self._refresh_keys(force=False)
        for key in self._keys or []:
            if key.get("kid") == kid:
                return key

        # Key might be rotated; refresh once more eagerly.
        await self._refresh_keys(force=True)
        for key in self._keys or []:
            if key.get("kid") == kid:
                return key
        return None

    async def _refresh_keys(self, *, force: bool) -> None:
        """Refresh the key set if the cached copy is stale."""
        now = time.time()
        if not force and self._keys is not None and (now - self._last_refresh) < self.refresh_interval:
            return

        async with self._lock:
            if not force and self._keys is not None and (time.time() - self._last_refresh) < self.refresh_interval:
                return

            try:
                response = await self._client.get(self.jwks_url)
                response.raise_for_status()
                keys = response.json().get("keys")
            except (httpx.HTTPError, ValueError) as exc:
                self.logger.error("JWKS fetch failed", error=str(exc))
                raise DependencyUnavailableError("jwks") from exc
            if not isinstance(keys, list):
                raise AuthenticationError("JWKS response missing 'keys' array")

            self._keys = keys
            self._last_refresh = time.time()
