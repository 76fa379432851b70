"""
Credential lifecycle: issue, list and revoke.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from shared.errors import NotFoundError, ValidationError
from shared.logging import get_logger

from atlas_gateway.app.auth.credentials import generate_token, hash_token, visible_prefix
from atlas_gateway.app.caching.cache_manager import CacheManager
from atlas_gateway.app.persistence.credential_store import Credential, CredentialStore

MAX_LABEL_LENGTH = 100


class CredentialService:
    """Owner-scoped credential management.

    The raw token exists only in the return value of :meth:`issue`; it is
    never logged, cached or stored.
    """

    def __init__(self, store: CredentialStore, cache: Optional[CacheManager] = None):
        self.store = store
        self.cache = cache
        self.logger = get_logger("gateway.auth.lifecycle")

    @staticmethod
    def _clean_label(label: Any) -> str:
        if not isinstance(label, str) or not label.strip():
            raise ValidationError("Name is required", details={"field": "name"})
        label = label.strip()
        if len(label) > MAX_LABEL_LENGTH:
            raise ValidationError(
                f"Name must be at most {MAX_LABEL_LENGTH} characters",
                details={"field": "name"},
            )
        return label

    async def issue(self, principal_id: str, label: Any) -> Tuple[str, Credential]:
        """Create a credential and return ``(raw_token, credential)``."""
        label = self._clean_label(label)
        token = generate_token()
        credential = await self.store.insert(principal_id, label, visible_prefix(token), hash_token(token))

        if self.cache is not None:
            await self.cache.invalidate_credential_list(principal_id)

        self.logger.info(
            "Credential issued",
            principal_id=principal_id,
            credential_id=credential.id,
            visible_prefix=credential.visible_prefix,
        )
        return token, credential

    async def list_credentials(self, principal_id: str) -> Tuple[List[Dict[str, Any]], bool]:
        """Public credential rows for the principal, newest first, and whether they came from cache."""
        generation = None
        if self.cache is not None:
            cached, generation = await self.cache.get_credential_list(principal_id)
            if cached is not None:
                return cached, True

        credentials = [credential.to_public_dict() for credential in await self.store.list_for_principal(principal_id)]

        if self.cache is not None:
            await self.cache.set_credential_list(principal_id, generation, credentials)
        return credentials, False

    async def describe(self, credential_id: str, principal_id: str) -> Credential:
        """Public view of one credential owned by the principal."""
        credential = await self.store.get_owned(credential_id, principal_id)
        if credential is None:
            raise NotFoundError("Key not found")
        return credential

    async def revoke(self, credential_id: str, principal_id: str) -> None:
        """Delete a credential owned by the principal.

        Unknown ids and ids owned by another principal both raise
        ``NotFoundError``; the store is left untouched in either case.
        """
        secret_hash = await self.store.delete_owned(credential_id, principal_id)
        if secret_hash is None:
            raise NotFoundError("Key not found")

        if self.cache is not None:
            await self.cache.mark_credential_revoked(secret_hash)
            await self.cache.invalidate_credential_lookup(secret_hash)
            await self.cache.invalidate_credential_list(principal_id)

        self.logger.info("Credential revoked", principal_id=principal_id, credential_id=credential_id)
