"""
Shared plumbing for single-shot upstream provider calls.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Dict, Optional, TYPE_CHECKING

import httpx
from fastapi import Response

from shared.errors import UpstreamUnreachableError
from shared.logging import get_logger
from shared.tracing import trace_operation

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector

DEFAULT_CONTENT_TYPE = "application/json"


@dataclass(frozen=True)
class UpstreamResponse:
    """Provider response kept as opaque bytes."""

    status_code: int
    content: bytes
    content_type: str = DEFAULT_CONTENT_TYPE
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def outcome(self) -> str:
        return f"{self.status_code // 100}xx"

    def to_response(self) -> Response:
        """Relay to the caller with the provider's status and body unchanged."""
        headers = {"X-Upstream-Status": str(self.status_code)}
        headers.update(self.headers)
        return Response(
            content=self.content,
            status_code=self.status_code,
            media_type=self.content_type,
            headers=headers,
        )


class UpstreamClient:
    """Base class for provider clients.

    One request per call and no retries; transport failures are raised as
    ``UpstreamUnreachableError`` and non-2xx responses are returned as-is.
    """

    provider = "upstream"

    def __init__(
        self,
        *,
        timeout: float = 15.0,
        metrics: Optional["MetricsCollector"] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.metrics = metrics
        self.logger = get_logger(f"gateway.adapters.{self.provider}")
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def close(self) -> None:
        await self._client.aclose()

    async def _send(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        headers: Optional[Dict[str, str]] = None,
        content: Optional[bytes] = None,
    ) -> UpstreamResponse:
        """Perform the request. ``url`` may embed secrets and is never logged."""
        start_time = time.time()
        try:
            with trace_operation(f"upstream.{self.provider}", operation=operation, method=method) as span:
                response = await self._client.request(method, url, headers=headers, content=content)
                span.set_attribute("http.status_code", response.status_code)
        except httpx.TimeoutException as exc:
            self._record("timeout", start_time)
            self.logger.warning("Upstream timed out", operation=operation)
            raise UpstreamUnreachableError(self.provider, "request timed out", timed_out=True) from exc
        except httpx.TransportError as exc:
            self._record("unreachable", start_time)
            self.logger.warning("Upstream unreachable", operation=operation, error=type(exc).__name__)
            raise UpstreamUnreachableError(self.provider, "could not reach provider") from exc

        result = UpstreamResponse(
            status_code=response.status_code,
            content=response.content,
            content_type=response.headers.get("content-type", DEFAULT_CONTENT_TYPE),
        )
        self._record(result.outcome, start_time)
        if not result.ok:
            self.logger.info("Upstream returned error status", operation=operation, status_code=result.status_code)
        return result

    def _record(self, outcome: str, start_time: float) -> None:
        if self.metrics:
            self.metrics.record_upstream_call(self.provider, outcome, time.time() - start_time)
