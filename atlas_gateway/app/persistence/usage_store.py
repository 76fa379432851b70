"""
Usage event persistence (compute_usage table).
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Tuple

import asyncpg

from shared.errors import DependencyUnavailableError
from shared.logging import get_logger

from atlas_gateway.app.persistence.credential_store import STORE_ERRORS
from atlas_gateway.app.persistence.database import Database
from atlas_gateway.app.usage.models import UsageEvent, UsageFilters, UsageStatus

_EVENT_COLUMNS = (
    "id, user_id, api_key_id, action, workflow, duration_ms, status, error_msg, metadata, created_at"
)


class UsageStore:
    """Append-only store; the gateway never updates or deletes events."""

    def __init__(self, database: Database):
        self.database = database
        self.logger = get_logger("gateway.persistence.usage")

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
        """Insert one usage event.

        If the credential was revoked while the request was in flight the
        event is kept with a null credential id, matching ON DELETE SET NULL.
        """
        values = [
            principal_id,
            credential_id,
            action,
            workflow,
            duration_ms,
            status.value,
            error_message,
            json.dumps(metadata or {}),
        ]
        sql = f"""
            INSERT INTO compute_usage
                (user_id, api_key_id, action, workflow, duration_ms, status, error_msg, metadata)
            VALUES ($1, $2::uuid, $3, $4, $5, $6, $7, $8::jsonb)
            RETURNING {_EVENT_COLUMNS}
        """
        try:
            async with self.database.acquire() as conn:
                try:
                    row = await conn.fetchrow(sql, *values)
                except asyncpg.ForeignKeyViolationError:
                    values[1] = None
                    row = await conn.fetchrow(sql, *values)
        except STORE_ERRORS as exc:
            self.logger.error("Usage insert failed", action=action, error=str(exc))
            raise DependencyUnavailableError("postgres") from exc
        return UsageEvent.from_row(row)

    @staticmethod
    def _where(principal_id: str, filters: UsageFilters) -> Tuple[str, List[Any]]:
        conditions = ["user_id = $1"]
        params: List[Any] = [principal_id]
        if filters.action:
            params.append(filters.action)
            conditions.append(f"action = ${len(params)}")
        if filters.workflow:
            params.append(filters.workflow)
            conditions.append(f"workflow = ${len(params)}")
        if filters.status:
            params.append(filters.status.value)
            conditions.append(f"status = ${len(params)}")
        return " AND ".join(conditions), params

    async def query(
        self,
        principal_id: str,
        filters: UsageFilters,
        limit: int,
        offset: int,
    ) -> Tuple[List[UsageEvent], int]:
        """Matching events newest-first plus the total match count."""
        where, params = self._where(principal_id, filters)
        limit_idx = len(params) + 1
        try:
            async with self.database.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT {_EVENT_COLUMNS}
                    FROM compute_usage
                    WHERE {where}
                    ORDER BY created_at DESC
                    LIMIT ${limit_idx} OFFSET ${limit_idx + 1}
                    """,
                    *params,
                    limit,
                    offset,
                )
                total = await conn.fetchval(
                    f"SELECT COUNT(*)::int FROM compute_usage WHERE {where}",
                    *params,
                )
        except STORE_ERRORS as exc:
            self.logger.error("Usage query failed", principal_id=principal_id, error=str(exc))
            raise DependencyUnavailableError("postgres") from exc
        return [UsageEvent.from_row(row) for row in rows], int(total or 0)

    async def summarize(self, principal_id: str) -> List[Dict[str, Any]]:
        """Per action/status counts and mean duration for the principal."""
        try:
            async with self.database.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT action,
                           status,
                           COUNT(*)::int AS count,
                           AVG(duration_ms)::float AS avg_duration_ms,
                           MAX(created_at) AS last_seen
                    FROM compute_usage
                    WHERE user_id = $1
                    GROUP BY action, status
                    ORDER BY action, status
                    """,
                    principal_id,
                )
        except STORE_ERRORS as exc:
            self.logger.error("Usage summary failed", principal_id=principal_id, error=str(exc))
            raise DependencyUnavailableError("postgres") from exc
        return [
            {
                "action": row["action"],
                "status": row["status"],
                "count": row["count"],
                "avg_duration_ms": row["avg_duration_ms"],
                "last_seen": row["last_seen"].isoformat() if row["last_seen"] else None,
            }
            for row in rows
        ]
