"""
Shared fixtures and in-memory fakes for gateway tests.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from shared.config import GatewaySettings
from shared.errors import AuthenticationError

from atlas_gateway.app.auth.jwks import SessionContext
from atlas_gateway.app.caching.redis_cache import RedisCache
from atlas_gateway.app.persistence.credential_store import Credential, CredentialMatch
from atlas_gateway.app.usage.models import UsageEvent, UsageFilters, UsageStatus

PLATFORM_RECIPIENT = "0xP"
PLATFORM_BPS = 25


class DummyMetrics:
    """Minimal metrics collector stub."""

    def __init__(self):
        self.counters = []
        self.upstream_calls = []

    def increment_counter(self, metric_name: str, **labels):
        self.counters.append((metric_name, labels))

    def record_upstream_call(self, provider: str, outcome: str, duration: float):
        self.upstream_calls.append((provider, outcome))

    def counted(self, metric_name: str) -> List[Dict[str, Any]]:
        return [labels for name, labels in self.counters if name == metric_name]


class FakeRedisCache(RedisCache):
    """Dict-backed stand-in for the Redis JSON cache (TTL ignored)."""

    def __init__(self):
        super().__init__("redis://fake")
        self.data: Dict[str, Any] = {}
        self.counters: Dict[str, int] = {}
        self.fail_deletes = False
        self.fail_counter_reads = False

    async def get_json(self, key: str) -> Optional[Any]:
        return self.data.get(key)

    async def set_json(self, key: str, value: Any, ttl: int) -> bool:
        self.data[key] = value
        return True

    async def delete(self, *keys: str) -> int:
        if self.fail_deletes:
            raise ConnectionError("redis down")
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    async def read_counter(self, key: str) -> int:
        if self.fail_counter_reads:
            raise ConnectionError("redis down")
        return self.counters.get(key, 0)

    async def bump_counter(self, key: str, ttl: int) -> int:
        if self.fail_deletes:
            raise ConnectionError("redis down")
        self.counters[key] = self.counters.get(key, 0) + 1
        return self.counters[key]

    async def ping(self) -> bool:
        return True


class FakeCredentialStore:
    """In-memory credential table with the same owner scoping as the SQL store."""

    def __init__(self):
        self.rows: Dict[str, Dict[str, Any]] = {}
        self._clock = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def _credential(self, row: Dict[str, Any]) -> Credential:
        return Credential(
            id=row["id"],
            principal_id=row["user_id"],
            label=row["name"],
            visible_prefix=row["prefix"],
            created_at=row["created_at"],
        )

    async def insert(self, principal_id: str, label: str, visible_prefix: str, secret_hash: str) -> Credential:
        assert all(row["key_hash"] != secret_hash for row in self.rows.values())
        self._clock += timedelta(seconds=1)
        row = {
            "id": str(uuid.uuid4()),
            "user_id": principal_id,
            "name": label,
            "prefix": visible_prefix,
            "key_hash": secret_hash,
            "created_at": self._clock,
        }
        self.rows[row["id"]] = row
        return self._credential(row)

    async def list_for_principal(self, principal_id: str) -> List[Credential]:
        owned = [row for row in self.rows.values() if row["user_id"] == principal_id]
        owned.sort(key=lambda row: row["created_at"], reverse=True)
        return [self._credential(row) for row in owned]

    async def find_by_hash(self, secret_hash: str) -> Optional[CredentialMatch]:
        for row in self.rows.values():
            if row["key_hash"] == secret_hash:
                return CredentialMatch(credential_id=row["id"], principal_id=row["user_id"])
        return None

    async def get_owned(self, credential_id: str, principal_id: str) -> Optional[Credential]:
        row = self.rows.get(credential_id)
        if row is None or row["user_id"] != principal_id:
            return None
        return self._credential(row)

    async def delete_owned(self, credential_id: str, principal_id: str) -> Optional[str]:
        row = self.rows.get(credential_id)
        if row is None or row["user_id"] != principal_id:
            return None
        del self.rows[credential_id]
        return row["key_hash"]


class FakeUsageStore:
    """In-memory append-only usage table."""

    def __init__(self):
        self.events: List[UsageEvent] = []
        self._clock = datetime(2026, 1, 1, tzinfo=timezone.utc)

    async def append(
        self,
        principal_id: str,
        credential_id: Optional[str],
        action: str,
        status: UsageStatus,
        *,
        workflow: Optional[str] = None,
        duration_ms: Optional[int] = None,
        error_message: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> UsageEvent:
        self._clock += timedelta(seconds=1)
        event = UsageEvent(
            id=str(uuid.uuid4()),
            principal_id=principal_id,
            credential_id=credential_id,
            action=action,
            status=status,
            created_at=self._clock,
            workflow=workflow,
            duration_ms=duration_ms,
            error_message=error_message,
            metadata=metadata or {},
        )
        self.events.append(event)
        return event

    def _matching(self, principal_id: str, filters: UsageFilters) -> List[UsageEvent]:
        return [
            event
            for event in reversed(self.events)
            if event.principal_id == principal_id
            and (filters.action is None or event.action == filters.action)
            and (filters.workflow is None or event.workflow == filters.workflow)
            and (filters.status is None or event.status == filters.status)
        ]

    async def query(self, principal_id: str, filters: UsageFilters, limit: int, offset: int) -> Tuple[List[UsageEvent], int]:
        matching = self._matching(principal_id, filters)
        return matching[offset:offset + limit], len(matching)

    async def summarize(self, principal_id: str) -> List[Dict[str, Any]]:
        groups: Dict[Tuple[str, str], List[UsageEvent]] = {}
        for event in self._matching(principal_id, UsageFilters()):
            groups.setdefault((event.action, event.status.value), []).append(event)
        return [
            {"action": action, "status": status, "count": len(events)}
            for (action, status), events in sorted(groups.items())
        ]


@pytest.fixture
def settings():
    """Complete gateway settings, independent of the local environment."""
    return GatewaySettings(
        _env_file=None,
        alchemy_api_key="alchemy-test-key",
        zero_ex_api_key="zero-ex-test-key",
        zero_ex_fee_recipient=PLATFORM_RECIPIENT,
        zero_ex_fee_bps=PLATFORM_BPS,
        dashboard_jwks_url="https://dashboard.example/.well-known/jwks.json",
        rate_limit_per_minute=0,
    )


@pytest.fixture
def metrics():
    return DummyMetrics()


@pytest.fixture
def fake_redis():
    return FakeRedisCache()


@pytest.fixture
def credential_store():
    return FakeCredentialStore()


@pytest.fixture
def usage_store():
    return FakeUsageStore()


async def _session_from_header(request):
    """Dashboard sessions in tests: the principal comes from X-Test-User."""
    principal = request.headers.get("X-Test-User")
    if not principal:
        raise AuthenticationError("Missing or invalid session token")
    return SessionContext(principal_id=principal, claims={"sub": principal})


@pytest.fixture
def gateway_service(settings, fake_redis, credential_store, usage_store):
    """GatewayService wired to in-memory stores and cache."""
    from atlas_gateway.app.main import GatewayService

    service = GatewayService(settings)
    service.on_startup = AsyncMock()

    service.redis_cache = fake_redis
    service.cache_manager.cache = fake_redis
    service.rate_limiter.cache = fake_redis

    service.credential_store = credential_store
    service.credential_service.store = credential_store
    service.verifier.store = credential_store

    service.usage_store = usage_store
    service.usage_recorder.store = usage_store

    service.dashboard_authenticator.authenticate = AsyncMock(side_effect=_session_from_header)
    return service


@pytest.fixture
def client(gateway_service):
    with TestClient(gateway_service.app) as test_client:
        yield test_client
