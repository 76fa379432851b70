"""
Per-credential rate limiter for machine access routes.
"""

import time
from typing import Any, Dict, Optional, TYPE_CHECKING

from shared.logging import get_logger

from atlas_gateway.app.caching.redis_cache import RedisCache

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector

WINDOW_SECONDS = 60


class CredentialRateLimiter:
    """Fixed one-minute window counter in Redis, keyed by credential id.

    Fails open: when Redis is unavailable the request is allowed and the
    error is logged.
    """

    def __init__(
        self,
        cache: RedisCache,
        limit_per_minute: int,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.cache = cache
        self.limit = limit_per_minute
        self.metrics = metrics
        self.logger = get_logger("gateway.rate_limiter")

    @property
    def enabled(self) -> bool:
        return self.limit > 0

    def _make_key(self, credential_id: str, window_start: int) -> str:
        return self.cache.make_key("ratelimit", credential_id, window_start)

    def _open(self, reset_in: int, error: str) -> Dict[str, Any]:
        return {
            "allowed": True,
            "current_count": 0,
            "limit": self.limit,
            "remaining": self.limit,
            "reset_in_seconds": reset_in,
            "error": error,
        }

    async def check_rate_limit(self, credential_id: str, endpoint: str, now: Optional[float] = None) -> Dict[str, Any]:
        """Count one request against the credential's current window."""
        now = time.time() if now is None else now
        window_start = int(now // WINDOW_SECONDS) * WINDOW_SECONDS
        reset_in = max(1, window_start + WINDOW_SECONDS - int(now))

        if not self.enabled:
            return {"allowed": True, "limit": 0, "remaining": 0, "reset_in_seconds": reset_in}

        key = self._make_key(credential_id, window_start)
        try:
            redis_client = await self.cache.client()
            async with redis_client.pipeline(transaction=True) as pipeline:
                pipeline.incr(key)
                pipeline.expire(key, WINDOW_SECONDS + 1)
                results = await pipeline.execute()
            current_count = int(results[0])
        except Exception as exc:
            self.logger.error("Rate limit check error", error=str(exc))
            return self._open(reset_in, "Redis unavailable")

        if current_count > self.limit:
            if self.metrics:
                self.metrics.increment_counter("rate_limit_hits_total", endpoint=endpoint)
            self.logger.warning(
                "Rate limit exceeded",
                credential_id=credential_id,
                endpoint=endpoint,
                current_count=current_count,
                limit=self.limit,
            )
            return {
                "allowed": False,
                "current_count": current_count,
                "limit": self.limit,
                "remaining": 0,
                "reset_in_seconds": reset_in,
                "retry_after": reset_in,
            }

        return {
            "allowed": True,
            "current_count": current_count,
            "limit": self.limit,
            "remaining": max(0, self.limit - current_count),
            "reset_in_seconds": reset_in,
        }


def rate_limit_headers(result: Dict[str, Any]) -> Dict[str, str]:
    """Response headers describing the caller's current window."""
    if not result.get("limit"):
        return {}
    headers = {
        "X-RateLimit-Limit": str(result["limit"]),
        "X-RateLimit-Remaining": str(result.get("remaining", 0)),
        "X-RateLimit-Reset": str(result.get("reset_in_seconds", WINDOW_SECONDS)),
    }
    if not result.get("allowed", True):
        headers["Retry-After"] = str(result.get("retry_after", WINDOW_SECONDS))
    return headers
