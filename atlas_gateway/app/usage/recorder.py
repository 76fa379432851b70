"""
Usage recording and history queries.

Explicit events posted by callers are written synchronously so the caller
learns about validation and storage problems. Events describing proxied
calls are written from detached tasks whose failures are only logged and
counted; they never change the response being described.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Set, Tuple, TYPE_CHECKING

from shared.errors import ValidationError
from shared.logging import get_logger

from atlas_gateway.app.usage.models import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    UsageEvent,
    UsageEventCreate,
    UsageFilters,
    UsageStatus,
)

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector
    from atlas_gateway.app.auth.verifier import CredentialContext
    from atlas_gateway.app.caching.cache_manager import CacheManager
    from atlas_gateway.app.persistence.usage_store import UsageStore

GATEWAY_WORKFLOW = "gateway"


def _parse_non_negative(name: str, raw: Optional[str], default: int) -> int:
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"'{name}' must be an integer", details={"parameter": name}) from None
    if value < 0:
        raise ValidationError(f"'{name}' must not be negative", details={"parameter": name})
    return value


def parse_pagination(limit: Optional[str], offset: Optional[str]) -> Tuple[int, int]:
    """Validate paging parameters; limits above the maximum are clamped."""
    parsed_limit = _parse_non_negative("limit", limit, DEFAULT_PAGE_SIZE)
    if parsed_limit == 0:
        raise ValidationError("'limit' must be at least 1", details={"parameter": "limit"})
    return min(parsed_limit, MAX_PAGE_SIZE), _parse_non_negative("offset", offset, 0)


def parse_filters(action: Optional[str], workflow: Optional[str], status: Optional[str]) -> UsageFilters:
    parsed_status = None
    if status:
        try:
            parsed_status = UsageStatus(status)
        except ValueError:
            raise ValidationError(
                "'status' must be one of: success, error, pending",
                details={"parameter": "status"},
            ) from None
    return UsageFilters(action=action or None, workflow=workflow or None, status=parsed_status)


class UsageRecorder:
    """Append-only usage auditing for verified callers."""

    def __init__(
        self,
        store: "UsageStore",
        cache: Optional["CacheManager"] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.cache = cache
        self.metrics = metrics
        self.logger = get_logger("gateway.usage")
        self._pending: Set[asyncio.Task] = set()

    @staticmethod
    def validate(payload: UsageEventCreate) -> str:
        """Return the cleaned action, raising ``ValidationError`` on bad input."""
        action = (payload.action or "").strip()
        if not action:
            raise ValidationError("'action' is required", details={"field": "action"})
        if payload.status is UsageStatus.ERROR and not (payload.error_message or "").strip():
            raise ValidationError(
                "'error_msg' is required when status is 'error'",
                details={"field": "error_msg"},
            )
        return action

    async def record(self, context: CredentialContext, payload: UsageEventCreate) -> UsageEvent:
        """Validate and append one event for the verified caller."""
        action = self.validate(payload)
        event = await self.store.append(
            context.principal_id,
            context.credential_id,
            action,
            payload.status,
            workflow=payload.workflow,
            duration_ms=payload.duration_ms,
            error_message=payload.error_message,
            metadata=payload.metadata,
        )
        if self.cache is not None:
            await self.cache.invalidate_usage_summary(context.principal_id)
        return event

    def record_detached(
        self,
        context: CredentialContext,
        action: str,
        status: UsageStatus,
        *,
        duration_ms: Optional[int] = None,
        error_message: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> asyncio.Task:
        """Schedule a gateway-generated event without waiting for it.

        Never raises: bad values surface as a dropped event, not as an error
        in the request being described.
        """
        task = asyncio.create_task(
            self._record_quietly(context, action, status, duration_ms, error_message, metadata)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _record_quietly(
        self,
        context: CredentialContext,
        action: str,
        status: UsageStatus,
        duration_ms: Optional[int],
        error_message: Optional[str],
        metadata: Optional[Dict[str, Any]],
    ) -> None:
        if status is UsageStatus.ERROR and not error_message:
            error_message = "request failed"
        try:
            payload = UsageEventCreate(
                action=action,
                workflow=GATEWAY_WORKFLOW,
                duration_ms=duration_ms,
                status=status,
                error_msg=error_message,
                metadata=metadata or {},
            )
            await self.record(context, payload)
        except Exception as exc:
            if self.metrics:
                self.metrics.increment_counter("usage_record_failures_total")
            self.logger.error(
                "Usage event dropped",
                action=action,
                principal_id=context.principal_id,
                credential_id=context.credential_id,
                error=str(exc),
            )

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for in-flight detached writes, e.g. on shutdown."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def query(
        self,
        principal_id: str,
        filters: UsageFilters,
        limit: int,
        offset: int,
    ) -> Tuple[List[UsageEvent], int]:
        return await self.store.query(principal_id, filters, min(limit, MAX_PAGE_SIZE), offset)

    async def summary(self, principal_id: str) -> Tuple[List[Dict[str, Any]], bool]:
        """Per action/status aggregate for the principal and whether it was cached."""
        generation = None
        if self.cache is not None:
            cached, generation = await self.cache.get_usage_summary(principal_id)
            if cached is not None:
                return cached, True

        summary = await self.store.summarize(principal_id)
        if self.cache is not None:
            await self.cache.set_usage_summary(principal_id, generation, summary)
        return summary, False
