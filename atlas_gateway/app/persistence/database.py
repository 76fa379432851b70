"""
PostgreSQL connection pool and schema bootstrap for the gateway.
"""

from typing import List, Optional, Tuple

import asyncpg

from shared.errors import DependencyUnavailableError
from shared.logging import get_logger

# Applied in order, each exactly once, tracked by name in schema_migrations.
MIGRATIONS: List[Tuple[str, str]] = [
    (
        "001_api_keys",
        """
        CREATE TABLE IF NOT EXISTS api_keys (
            id          UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id     TEXT NOT NULL,
            name        TEXT NOT NULL,
            prefix      TEXT NOT NULL,
            key_hash    TEXT NOT NULL,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        CREATE INDEX IF NOT EXISTS idx_api_keys_user_id ON api_keys (user_id);
        """,
    ),
    (
        "002_api_keys_hash_unique",
        """
        CREATE UNIQUE INDEX IF NOT EXISTS idx_api_keys_key_hash ON api_keys (key_hash);
        """,
    ),
    (
        "003_compute_usage",
        """
        CREATE TABLE IF NOT EXISTS compute_usage (
            id          UUID        PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id     TEXT        NOT NULL,
            api_key_id  UUID        REFERENCES api_keys(id) ON DELETE SET NULL,
            action      TEXT        NOT NULL,
            workflow    TEXT,
            duration_ms INTEGER,
            status      TEXT        NOT NULL DEFAULT 'success'
                                    CHECK (status IN ('success', 'error', 'pending')),
            error_msg   TEXT,
            metadata    JSONB       NOT NULL DEFAULT '{}',
            created_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
            CHECK (status <> 'error' OR error_msg IS NOT NULL)
        );
        CREATE INDEX IF NOT EXISTS idx_compute_usage_user_id    ON compute_usage(user_id);
        CREATE INDEX IF NOT EXISTS idx_compute_usage_api_key_id ON compute_usage(api_key_id);
        CREATE INDEX IF NOT EXISTS idx_compute_usage_created_at ON compute_usage(created_at DESC);
        CREATE INDEX IF NOT EXISTS idx_compute_usage_action     ON compute_usage(action);
        CREATE INDEX IF NOT EXISTS idx_compute_usage_workflow   ON compute_usage(workflow);
        """,
    ),
]


class Database:
    """Owns the asyncpg pool shared by the credential and usage stores."""

    def __init__(self, dsn: str, *, min_size: int = 2, max_size: int = 10, command_timeout: float = 30):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.logger = get_logger("gateway.persistence.database")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self) -> None:
        """Open the pool and bring the schema up to date."""
        self.pool = await asyncpg.create_pool(
            self.dsn,
            min_size=self.min_size,
            max_size=self.max_size,
            command_timeout=self.command_timeout,
        )
        await self.run_migrations()
        self.logger.info("PostgreSQL pool started", max_size=self.max_size)

    async def stop(self) -> None:
        """Close the pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL pool stopped")

    def acquire(self):
        """Acquire a connection; raises DependencyUnavailableError before startup."""
        if self.pool is None:
            raise DependencyUnavailableError("postgres")
        return self.pool.acquire()

    async def run_migrations(self) -> None:
        """Apply pending migrations. Safe to call on every boot."""
        async with self.acquire() as conn:
            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    name        TEXT PRIMARY KEY,
                    applied_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
                )
                """
            )
            for name, sql in MIGRATIONS:
                applied = await conn.fetchval("SELECT 1 FROM schema_migrations WHERE name = $1", name)
                if applied:
                    continue
                async with conn.transaction():
                    await conn.execute(sql)
                    await conn.execute("INSERT INTO schema_migrations (name) VALUES ($1)", name)
                self.logger.info("Applied migration", migration=name)

    async def ping(self) -> bool:
        """Return True when the database answers a trivial query."""
        try:
            async with self.acquire() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except Exception as exc:
            self.logger.warning("PostgreSQL ping failed", error=str(exc))
            return False
