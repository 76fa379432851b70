"""
Credential token generation and hashing.

Raw tokens look like ``atl_`` followed by 64 lowercase hex characters
(32 random bytes). Only the SHA-256 digest and a short display prefix are
ever persisted.
"""

import hashlib
import re
import secrets

TOKEN_PREFIX = "atl_"
TOKEN_ENTROPY_BYTES = 32
VISIBLE_PREFIX_LENGTH = 12

TOKEN_PATTERN = re.compile(r"^atl_[0-9a-f]{64}$")


def generate_token() -> str:
    """Generate a new raw credential token."""
    return f"{TOKEN_PREFIX}{secrets.token_hex(TOKEN_ENTROPY_BYTES)}"


def visible_prefix(token: str) -> str:
    """Display-only prefix: the literal prefix plus the first 8 random characters."""
    return token[:VISIBLE_PREFIX_LENGTH]


def hash_token(token: str) -> str:
    """One-way digest used as the lookup key for a credential."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def is_well_formed(value: str) -> bool:
    """Format check done before any store lookup: the literal prefix plus 64 hex characters."""
    return TOKEN_PATTERN.fullmatch(value) is not None
