"""
Atlas credential verification for machine access routes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, TYPE_CHECKING

from fastapi import Request

from shared.errors import AuthenticationError
from shared.logging import get_logger, set_principal_context
from shared.tracing import add_span_attributes

from atlas_gateway.app.auth.credentials import hash_token, is_well_formed
from atlas_gateway.app.caching.cache_manager import CacheManager
from atlas_gateway.app.persistence.credential_store import CredentialStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector

_BEARER_PREFIX = "bearer "


@dataclass(frozen=True)
class CredentialContext:
    """Verified caller identity, threaded explicitly into handlers."""

    principal_id: str
    credential_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"principal_id": self.principal_id, "credential_id": self.credential_id}


def extract_token(headers: Mapping[str, str]) -> Optional[str]:
    """Pull the raw token from ``X-API-Key`` or an ``Authorization: Bearer`` header."""
    api_key = headers.get("x-api-key")
    if api_key and api_key.strip():
        return api_key.strip()

    authorization = headers.get("authorization")
    if authorization and authorization[: len(_BEARER_PREFIX)].lower() == _BEARER_PREFIX:
        token = authorization[len(_BEARER_PREFIX):].strip()
        return token or None
    return None


class CredentialVerifier:
    """Resolve a raw token to its owning principal.

    Every rejection raises the same generic ``AuthenticationError``; the
    reason is only visible in metrics. Store outages propagate as
    ``DependencyUnavailableError`` so callers can tell "bad key" from
    "retry later".
    """

    def __init__(
        self,
        store: CredentialStore,
        cache: Optional[CacheManager] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.cache = cache
        self.metrics = metrics
        self.logger = get_logger("gateway.auth.verifier")

    def _reject(self, reason: str) -> AuthenticationError:
        if self.metrics:
            self.metrics.increment_counter("auth_failures_total", reason=reason)
        self.logger.info("Credential rejected", reason=reason)
        return AuthenticationError()

    async def verify_token(self, token: Optional[str]) -> CredentialContext:
        """Verify a raw token and return the credential context."""
        if not token:
            raise self._reject("missing")
        if not is_well_formed(token):
            raise self._reject("malformed")

        digest = hash_token(token)

        if self.cache is not None:
            cached = await self.cache.get_credential_lookup(digest)
            if cached is not None:
                if await self.cache.is_credential_revoked(digest):
                    raise self._reject("revoked")
                return CredentialContext(
                    principal_id=cached["principal_id"],
                    credential_id=cached["credential_id"],
                )

        match = await self.store.find_by_hash(digest)
        if match is None:
            raise self._reject("unknown")

        if self.cache is not None:
            # A revocation may have landed while the store read was in flight.
            if await self.cache.is_credential_revoked(digest):
                raise self._reject("revoked")
            await self.cache.set_credential_lookup(digest, match.credential_id, match.principal_id)

        return CredentialContext(principal_id=match.principal_id, credential_id=match.credential_id)

    async def authenticate(self, request: Request) -> CredentialContext:
        """Authenticate an incoming request and bind log correlation fields."""
        context = await self.verify_token(extract_token(request.headers))
        set_principal_context(context.principal_id, context.credential_id)
        add_span_attributes(**{"atlas.principal_id": context.principal_id, "atlas.credential_id": context.credential_id})
        request.state.credential_context = context
        return context
