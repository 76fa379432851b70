"""
Unit tests for the asyncpg-backed stores.
"""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest

from shared.errors import DependencyUnavailableError

from atlas_gateway.app.persistence.credential_store import CredentialCollisionError, CredentialStore
from atlas_gateway.app.persistence.database import MIGRATIONS, Database
from atlas_gateway.app.persistence.usage_store import UsageStore
from atlas_gateway.app.usage.models import UsageFilters, UsageStatus

CREATED = datetime(2026, 3, 1, tzinfo=timezone.utc)
KEY_ID = "3f1c2d9e-8b7a-4c6d-9e0f-1a2b3c4d5e6f"


def _database(conn):
    database = MagicMock()
    database.acquire.return_value.__aenter__ = AsyncMock(return_value=conn)
    database.acquire.return_value.__aexit__ = AsyncMock(return_value=False)
    return database


def _usage_row(**overrides):
    row = {
        "id": "e1",
        "user_id": "user_1",
        "api_key_id": KEY_ID,
        "action": "rpc.eth",
        "workflow": "gateway",
        "duration_ms": 12,
        "status": "success",
        "error_msg": None,
        "metadata": json.dumps({"upstream_status": 200}),
        "created_at": CREATED,
    }
    row.update(overrides)
    return row


class TestDatabase:
    """Test cases for Database."""

    def test_acquire_before_start_is_unavailable(self):
        with pytest.raises(DependencyUnavailableError):
            Database("postgresql://localhost/atlas").acquire()

    @pytest.mark.asyncio
    async def test_ping_reports_false_without_pool(self):
        assert await Database("postgresql://localhost/atlas").ping() is False

    @pytest.mark.asyncio
    async def test_migrations_skip_applied(self):
        conn = AsyncMock()
        conn.fetchval.return_value = 1
        database = Database("postgresql://localhost/atlas")
        database.pool = MagicMock()
        database.pool.acquire.return_value.__aenter__ = AsyncMock(return_value=conn)
        database.pool.acquire.return_value.__aexit__ = AsyncMock(return_value=False)

        await database.run_migrations()

        assert conn.fetchval.await_count == len(MIGRATIONS)
        assert conn.execute.await_count == 1

    def test_migration_names_unique(self):
        names = [name for name, _ in MIGRATIONS]
        assert len(names) == len(set(names))


class TestCredentialStore:
    """Test cases for CredentialStore."""

    @pytest.mark.asyncio
    async def test_insert_returns_public_view(self):
        conn = AsyncMock()
        conn.fetchrow.return_value = {
            "id": KEY_ID, "user_id": "user_1", "name": "ci", "prefix": "atl_abcdefgh", "created_at": CREATED,
        }
        store = CredentialStore(_database(conn))

        credential = await store.insert("user_1", "ci", "atl_abcdefgh", "digest")

        assert credential.id == KEY_ID
        assert credential.to_public_dict()["created_at"] == CREATED.isoformat()
        assert conn.fetchrow.await_args.args[1:] == ("user_1", "ci", "atl_abcdefgh", "digest")

    @pytest.mark.asyncio
    async def test_insert_digest_collision(self):
        conn = AsyncMock()
        conn.fetchrow.side_effect = asyncpg.UniqueViolationError("duplicate key")
        store = CredentialStore(_database(conn))

        with pytest.raises(CredentialCollisionError):
            await store.insert("user_1", "ci", "atl_abcdefgh", "digest")

    @pytest.mark.asyncio
    async def test_store_outage_is_dependency_error(self):
        conn = AsyncMock()
        conn.fetchrow.side_effect = OSError("connection reset")
        store = CredentialStore(_database(conn))

        with pytest.raises(DependencyUnavailableError) as exc_info:
            await store.find_by_hash("digest")

        assert exc_info.value.status_code == 503
        assert "connection reset" not in exc_info.value.message
        assert exc_info.value.details == {}
        assert exc_info.value.log_context == {"dependency": "postgres"}

    @pytest.mark.asyncio
    async def test_malformed_id_never_queries(self):
        conn = AsyncMock()
        store = CredentialStore(_database(conn))

        assert await store.delete_owned("not-a-uuid", "user_1") is None
        assert await store.get_owned("not-a-uuid", "user_1") is None
        conn.fetchrow.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete_scoped_to_owner(self):
        conn = AsyncMock()
        conn.fetchrow.return_value = {"key_hash": "digest"}
        store = CredentialStore(_database(conn))

        assert await store.delete_owned(KEY_ID, "user_1") == "digest"
        sql, _, principal = conn.fetchrow.await_args.args
        assert "user_id = $2" in sql
        assert principal == "user_1"


class TestUsageStore:
    """Test cases for UsageStore."""

    @pytest.mark.asyncio
    async def test_append_decodes_row(self):
        conn = AsyncMock()
        conn.fetchrow.return_value = _usage_row()
        store = UsageStore(_database(conn))

        event = await store.append("user_1", KEY_ID, "rpc.eth", UsageStatus.SUCCESS, metadata={"upstream_status": 200})

        assert event.metadata == {"upstream_status": 200}
        assert event.credential_id == KEY_ID
        assert conn.fetchrow.await_args.args[-1] == json.dumps({"upstream_status": 200})

    @pytest.mark.asyncio
    async def test_append_keeps_event_when_credential_was_revoked(self):
        conn = AsyncMock()
        conn.fetchrow.side_effect = [
            asyncpg.ForeignKeyViolationError("api_key_id"),
            _usage_row(api_key_id=None),
        ]
        store = UsageStore(_database(conn))

        event = await store.append("user_1", KEY_ID, "rpc.eth", UsageStatus.SUCCESS)

        assert event.credential_id is None
        assert conn.fetchrow.await_args_list[1].args[2] is None

    @pytest.mark.asyncio
    async def test_query_builds_filters_in_order(self):
        conn = AsyncMock()
        conn.fetch.return_value = [_usage_row()]
        conn.fetchval.return_value = 7
        store = UsageStore(_database(conn))

        events, total = await store.query(
            "user_1", UsageFilters(action="rpc.eth", status=UsageStatus.ERROR), limit=10, offset=20
        )

        assert total == 7
        assert len(events) == 1
        sql = conn.fetch.await_args.args[0]
        assert "action = $2" in sql and "status = $3" in sql
        assert "LIMIT $4 OFFSET $5" in sql
        assert conn.fetch.await_args.args[1:] == ("user_1", "rpc.eth", "error", 10, 20)

    @pytest.mark.asyncio
    async def test_summary_rows(self):
        conn = AsyncMock()
        conn.fetch.return_value = [
            {"action": "rpc.eth", "status": "success", "count": 3, "avg_duration_ms": 10.5, "last_seen": CREATED},
        ]
        store = UsageStore(_database(conn))

        summary = await store.summarize("user_1")

        assert summary == [{
            "action": "rpc.eth",
            "status": "success",
            "count": 3,
            "avg_duration_ms": 10.5,
            "last_seen": CREATED.isoformat(),
        }]
