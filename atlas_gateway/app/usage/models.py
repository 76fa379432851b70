"""
Usage event data models.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

MAX_PAGE_SIZE = 200
DEFAULT_PAGE_SIZE = 50


class UsageStatus(str, Enum):
    """Outcome of one gateway invocation."""
    SUCCESS = "success"
    ERROR = "error"
    PENDING = "pending"


@dataclass(frozen=True)
class UsageEvent:
    """One append-only audit record."""

    id: str
    principal_id: str
    credential_id: Optional[str]
    action: str
    status: UsageStatus
    created_at: datetime
    workflow: Optional[str] = None
    duration_ms: Optional[int] = None
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "credential_id": self.credential_id,
            "action": self.action,
            "workflow": self.workflow,
            "duration_ms": self.duration_ms,
            "status": self.status.value,
            "error_message": self.error_message,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row: Any) -> "UsageEvent":
        metadata = row["metadata"]
        if isinstance(metadata, str):
            metadata = json.loads(metadata)
        api_key_id = row["api_key_id"]
        return cls(
            id=str(row["id"]),
            principal_id=row["user_id"],
            credential_id=str(api_key_id) if api_key_id is not None else None,
            action=row["action"],
            workflow=row["workflow"],
            duration_ms=row["duration_ms"],
            status=UsageStatus(row["status"]),
            error_message=row["error_msg"],
            metadata=metadata or {},
            created_at=row["created_at"],
        )


@dataclass(frozen=True)
class UsageFilters:
    """Optional equality filters for history queries."""

    action: Optional[str] = None
    workflow: Optional[str] = None
    status: Optional[UsageStatus] = None


class UsageEventCreate(BaseModel):
    """Request body for recording a usage event.

    Principal and credential ids are never accepted from the body; they come
    from the verified credential.
    """

    action: Optional[str] = Field(None, description="Operation tag, e.g. 'perp.trade'")
    workflow: Optional[str] = Field(None, description="Optional grouping tag, e.g. 'trading'")
    duration_ms: Optional[int] = Field(None, ge=0)
    status: UsageStatus = UsageStatus.SUCCESS
    error_message: Optional[str] = Field(None, alias="error_msg")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True, "extra": "ignore"}
