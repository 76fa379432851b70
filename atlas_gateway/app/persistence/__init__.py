"""
Persistence package for the gateway.

Holds the asyncpg pool, idempotent schema migrations, and the two stores
of record: credentials (digest only) and append-only usage events.
"""

from .database import Database, MIGRATIONS
from .credential_store import Credential, CredentialMatch, CredentialStore, CredentialCollisionError
from .usage_store import UsageStore

__all__ = [
    "Credential",
    "CredentialCollisionError",
    "CredentialMatch",
    "CredentialStore",
    "Database",
    "MIGRATIONS",
    "UsageStore",
]
