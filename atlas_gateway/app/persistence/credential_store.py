"""
Credential persistence.

Only the SHA-256 digest of a token is stored; the raw token never reaches
this layer. Rows are read by digest on every authenticated call and by
owner for listings.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import asyncpg

from shared.errors import AccessLayerException, DependencyUnavailableError
from shared.logging import get_logger

from atlas_gateway.app.persistence.database import Database

STORE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


@dataclass(frozen=True)
class Credential:
    """One issued access token, minus the secret."""

    id: str
    principal_id: str
    label: str
    visible_prefix: str
    created_at: datetime

    def to_public_dict(self) -> Dict[str, Any]:
        """Non-secret fields only; safe to cache and return to callers."""
        return {
            "id": self.id,
            "principal_id": self.principal_id,
            "label": self.label,
            "visible_prefix": self.visible_prefix,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row: Any) -> "Credential":
        return cls(
            id=str(row["id"]),
            principal_id=row["user_id"],
            label=row["name"],
            visible_prefix=row["prefix"],
            created_at=row["created_at"],
        )


@dataclass(frozen=True)
class CredentialMatch:
    """Result of a digest lookup."""

    credential_id: str
    principal_id: str


class CredentialCollisionError(AccessLayerException):
    """Two tokens produced the same digest. Never expected in practice."""

    status_code = 500

    def __init__(self):
        super().__init__("CREDENTIAL_COLLISION", "Failed to issue credential, please retry")


def _parse_id(credential_id: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(credential_id))
    except ValueError:
        return None


class CredentialStore:
    """asyncpg-backed store for the api_keys table."""

    def __init__(self, database: Database):
        self.database = database
        self.logger = get_logger("gateway.persistence.credentials")

    async def insert(self, principal_id: str, label: str, visible_prefix: str, secret_hash: str) -> Credential:
        """Insert a new credential row and return its public view."""
        try:
            async with self.database.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    INSERT INTO api_keys (user_id, name, prefix, key_hash)
                    VALUES ($1, $2, $3, $4)
                    RETURNING id, user_id, name, prefix, created_at
                    """,
                    principal_id,
                    label,
                    visible_prefix,
                    secret_hash,
                )
        except asyncpg.UniqueViolationError as exc:
            self.logger.error("Credential digest collision", principal_id=principal_id)
            raise CredentialCollisionError() from exc
        except STORE_ERRORS as exc:
            self.logger.error("Credential insert failed", principal_id=principal_id, error=str(exc))
            raise DependencyUnavailableError("postgres") from exc

        if row is None:
            raise DependencyUnavailableError("postgres")
        return Credential.from_row(row)

    async def list_for_principal(self, principal_id: str) -> List[Credential]:
        """All credentials owned by the principal, newest first."""
        try:
            async with self.database.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT id, user_id, name, prefix, created_at
                    FROM api_keys
                    WHERE user_id = $1
                    ORDER BY created_at DESC
                    """,
                    principal_id,
                )
        except STORE_ERRORS as exc:
            self.logger.error("Credential list failed", principal_id=principal_id, error=str(exc))
            raise DependencyUnavailableError("postgres") from exc
        return [Credential.from_row(row) for row in rows]

    async def find_by_hash(self, secret_hash: str) -> Optional[CredentialMatch]:
        """Look a credential up by digest."""
        try:
            async with self.database.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT id, user_id FROM api_keys WHERE key_hash = $1",
                    secret_hash,
                )
        except STORE_ERRORS as exc:
            self.logger.error("Credential lookup failed", error=str(exc))
            raise DependencyUnavailableError("postgres") from exc

        if row is None:
            return None
        return CredentialMatch(credential_id=str(row["id"]), principal_id=row["user_id"])

    async def get_owned(self, credential_id: str, principal_id: str) -> Optional[Credential]:
        """Fetch a credential only if it belongs to the principal."""
        parsed = _parse_id(credential_id)
        if parsed is None:
            return None
        try:
            async with self.database.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    SELECT id, user_id, name, prefix, created_at
                    FROM api_keys
                    WHERE id = $1 AND user_id = $2
                    """,
                    parsed,
                    principal_id,
                )
        except STORE_ERRORS as exc:
            self.logger.error("Credential fetch failed", credential_id=credential_id, error=str(exc))
            raise DependencyUnavailableError("postgres") from exc
        return Credential.from_row(row) if row else None

    async def delete_owned(self, credential_id: str, principal_id: str) -> Optional[str]:
        """Delete a credential if owned by the principal.

        Returns the deleted row's digest so cached lookups can be dropped,
        or None when nothing matched (unknown id or someone else's).
        """
        parsed = _parse_id(credential_id)
        if parsed is None:
            return None
        try:
            async with self.database.acquire() as conn:
                row = await conn.fetchrow(
                    "DELETE FROM api_keys WHERE id = $1 AND user_id = $2 RETURNING key_hash",
                    parsed,
                    principal_id,
                )
        except STORE_ERRORS as exc:
            self.logger.error("Credential delete failed", credential_id=credential_id, error=str(exc))
            raise DependencyUnavailableError("postgres") from exc
        return row["key_hash"] if row else None
