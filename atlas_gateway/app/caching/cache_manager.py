"""
Gateway cache manager for the different cache types.

Entries are only ever written from a fresh store read. Per-principal
entries are keyed by a generation counter that invalidation bumps, so a
fill computed before an invalidation lands under a generation nobody
reads again. Revoked digests leave a marker that outlives any lookup
entry, and lookups are never filled for a marked digest.
"""

from typing import Any, Dict, List, Optional, Tuple, TYPE_CHECKING

from shared.logging import get_logger

from .redis_cache import RedisCache

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_CREDENTIAL_LIST_TTL = 60
DEFAULT_CREDENTIAL_LOOKUP_TTL = 30
DEFAULT_USAGE_SUMMARY_TTL = 60
DEFAULT_SWAP_CHAINS_TTL = 300

GENERATION_TTL = 86400
REVOCATION_MARKER_MARGIN = 300


class CacheManager:
    """Typed accessors over the shared Redis cache."""

    CACHE_NAMESPACES = {
        "credential_list": "keys",
        "credential_lookup": "auth",
        "credential_revoked": "auth-revoked",
        "usage_summary": "usage-summary",
        "swap_chains": "0x-chains",
    }

    def __init__(
        self,
        cache: RedisCache,
        *,
        metrics: Optional["MetricsCollector"] = None,
        credential_list_ttl: int = DEFAULT_CREDENTIAL_LIST_TTL,
        credential_lookup_ttl: int = DEFAULT_CREDENTIAL_LOOKUP_TTL,
        usage_summary_ttl: int = DEFAULT_USAGE_SUMMARY_TTL,
        swap_chains_ttl: int = DEFAULT_SWAP_CHAINS_TTL,
    ):
        self.cache = cache
        self.metrics = metrics
        self.logger = get_logger("gateway.cache_manager")
        self.ttls = {
            "credential_list": credential_list_ttl,
            "credential_lookup": credential_lookup_ttl,
            "credential_revoked": credential_lookup_ttl + REVOCATION_MARKER_MARGIN,
            "usage_summary": usage_summary_ttl,
            "swap_chains": swap_chains_ttl,
        }

    def _key(self, cache_type: str, *parts: Any) -> str:
        return self.cache.make_key(self.CACHE_NAMESPACES[cache_type], *parts)

    def _generation_key(self, cache_type: str, *parts: Any) -> str:
        return self.cache.make_key(f"{self.CACHE_NAMESPACES[cache_type]}-gen", *parts)

    def _record_lookup(self, cache_type: str, hit: bool) -> None:
        if self.metrics:
            metric = "cache_hits_total" if hit else "cache_misses_total"
            self.metrics.increment_counter(metric, cache_type=cache_type)

    async def _get(self, cache_type: str, *parts: Any) -> Optional[Any]:
        value = await self.cache.get_json(self._key(cache_type, *parts))
        self._record_lookup(cache_type, value is not None)
        return value

    async def _set(self, cache_type: str, value: Any, *parts: Any) -> bool:
        return await self.cache.set_json(self._key(cache_type, *parts), value, self.ttls[cache_type])

    async def _invalidate(self, cache_type: str, *parts: Any) -> bool:
        try:
            await self.cache.delete(self._key(cache_type, *parts))
            return True
        except Exception as exc:
            # Entry expires on its own TTL; surfaced loudly because it may be stale until then.
            self.logger.error("Cache invalidation failed", cache_type=cache_type, error=str(exc))
            return False

    # Generation-keyed entries

    async def _generation(self, cache_type: str, *parts: Any) -> Optional[int]:
        try:
            return await self.cache.read_counter(self._generation_key(cache_type, *parts))
        except Exception as exc:
            self.logger.warning("Cache generation unavailable", cache_type=cache_type, error=str(exc))
            return None

    async def _get_versioned(self, cache_type: str, *parts: Any) -> Tuple[Optional[Any], Optional[int]]:
        """Return ``(value, generation)``; read the generation before the store."""
        generation = await self._generation(cache_type, *parts)
        if generation is None:
            self._record_lookup(cache_type, False)
            return None, None
        return await self._get(cache_type, *parts, generation), generation

    async def _set_versioned(
        self, cache_type: str, generation: Optional[int], value: Any, *parts: Any
    ) -> bool:
        if generation is None:
            return False
        return await self._set(cache_type, value, *parts, generation)

    async def _invalidate_versioned(self, cache_type: str, *parts: Any) -> bool:
        try:
            await self.cache.bump_counter(self._generation_key(cache_type, *parts), GENERATION_TTL)
            return True
        except Exception as exc:
            self.logger.error("Cache invalidation failed", cache_type=cache_type, error=str(exc))
            return False

    # Credential listings

    async def get_credential_list(
        self, principal_id: str
    ) -> Tuple[Optional[List[Dict[str, Any]]], Optional[int]]:
        """Cached public credential rows for a principal, plus the generation to fill under."""
        cached, generation = await self._get_versioned("credential_list", principal_id)
        return (cached if isinstance(cached, list) else None), generation

    async def set_credential_list(
        self, principal_id: str, generation: Optional[int], credentials: List[Dict[str, Any]]
    ) -> bool:
        return await self._set_versioned("credential_list", generation, credentials, principal_id)

    async def invalidate_credential_list(self, principal_id: str) -> bool:
        return await self._invalidate_versioned("credential_list", principal_id)

    # Verified digest lookups

    async def get_credential_lookup(self, secret_hash: str) -> Optional[Dict[str, str]]:
        """Cached ``{"credential_id", "principal_id"}`` for a token digest."""
        cached = await self._get("credential_lookup", secret_hash)
        if isinstance(cached, dict) and cached.get("credential_id") and cached.get("principal_id"):
            return cached
        return None

    async def set_credential_lookup(self, secret_hash: str, credential_id: str, principal_id: str) -> bool:
        return await self._set(
            "credential_lookup",
            {"credential_id": credential_id, "principal_id": principal_id},
            secret_hash,
        )

    async def invalidate_credential_lookup(self, secret_hash: str) -> bool:
        return await self._invalidate("credential_lookup", secret_hash)

    async def mark_credential_revoked(self, secret_hash: str) -> bool:
        """Leave a marker that blocks lookup fills for a revoked digest."""
        written = await self._set("credential_revoked", True, secret_hash)
        if not written:
            self.logger.error("Revocation marker not written", cache_type="credential_revoked")
        return written

    async def is_credential_revoked(self, secret_hash: str) -> bool:
        return await self.cache.get_json(self._key("credential_revoked", secret_hash)) is not None

    # Usage summaries

    async def get_usage_summary(
        self, principal_id: str
    ) -> Tuple[Optional[List[Dict[str, Any]]], Optional[int]]:
        cached, generation = await self._get_versioned("usage_summary", principal_id)
        return (cached if isinstance(cached, list) else None), generation

    async def set_usage_summary(
        self, principal_id: str, generation: Optional[int], summary: List[Dict[str, Any]]
    ) -> bool:
        return await self._set_versioned("usage_summary", generation, summary, principal_id)

    async def invalidate_usage_summary(self, principal_id: str) -> bool:
        return await self._invalidate_versioned("usage_summary", principal_id)

    # Swap chain listing (provider response body, shared by all callers)

    async def get_swap_chains(self) -> Optional[Dict[str, Any]]:
        cached = await self._get("swap_chains", "all")
        return cached if isinstance(cached, dict) else None

    async def set_swap_chains(self, payload: Dict[str, Any]) -> bool:
        return await self._set("swap_chains", payload, "all")
