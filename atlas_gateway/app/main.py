"""
Atlas OS API gateway.

Issues and verifies Atlas credentials, proxies JSON-RPC and swap requests
to upstream providers, and records per-credential usage.
"""

import json
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import Depends, Query, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from shared.base_service import BaseService
from shared.config import GatewaySettings
from shared.errors import (
    RateLimitError,
    UpstreamUnreachableError,
    ValidationError,
    success_response,
)

from atlas_gateway.app.adapters import AlchemyClient, UpstreamResponse, ZeroExClient
from atlas_gateway.app.auth import (
    CredentialContext,
    CredentialService,
    CredentialVerifier,
    DashboardAuthenticator,
    SessionContext,
)
from atlas_gateway.app.caching import CacheManager, RedisCache
from atlas_gateway.app.chains import aliases, networks, resolve
from atlas_gateway.app.persistence import CredentialStore, Database, UsageStore
from atlas_gateway.app.ratelimit import CredentialRateLimiter, rate_limit_headers
from atlas_gateway.app.swap import FeeSpec, PRICE_REQUIRED, QUOTE_REQUIRED, SWAP_MODES, require_params
from atlas_gateway.app.usage import (
    UsageEventCreate,
    UsageRecorder,
    UsageStatus,
    parse_filters,
    parse_pagination,
)


class CredentialCreateRequest(BaseModel):
    """Body for issuing a credential."""

    name: Optional[str] = None

    model_config = {"extra": "ignore"}


class GatewayService(BaseService):
    """API Gateway service implementation."""

    def __init__(self, settings: Optional[GatewaySettings] = None):
        super().__init__("gateway", settings)
        self.config.require_provider_credentials()
        self.fee_spec = FeeSpec.from_settings(self.config)

        self.database = Database(
            self.config.database_url,
            min_size=self.config.database_pool_min,
            max_size=self.config.database_pool_max,
        )
        self.redis_cache = RedisCache(self.config.redis_url)
        self.cache_manager = CacheManager(
            self.redis_cache,
            metrics=self.metrics,
            credential_list_ttl=self.config.credential_list_ttl_seconds,
            credential_lookup_ttl=self.config.credential_lookup_ttl_seconds,
            usage_summary_ttl=self.config.usage_summary_ttl_seconds,
            swap_chains_ttl=self.config.swap_chains_ttl_seconds,
        )

        self.credential_store = CredentialStore(self.database)
        self.usage_store = UsageStore(self.database)
        self.credential_service = CredentialService(self.credential_store, self.cache_manager)
        self.verifier = CredentialVerifier(self.credential_store, self.cache_manager, metrics=self.metrics)
        self.usage_recorder = UsageRecorder(self.usage_store, self.cache_manager, metrics=self.metrics)
        self.rate_limiter = CredentialRateLimiter(
            self.redis_cache,
            self.config.rate_limit_per_minute,
            metrics=self.metrics,
        )

        self.dashboard_authenticator = DashboardAuthenticator(
            self.config.dashboard_jwks_url,
            audience=self.config.dashboard_audience,
            issuer=self.config.dashboard_issuer,
        )

        timeout = self.config.upstream_timeout_seconds
        self.alchemy_client = AlchemyClient(
            self.config.alchemy_api_key.get_secret_value(),
            timeout=timeout,
            metrics=self.metrics,
        )
        self.zero_ex_client = ZeroExClient(
            self.config.zero_ex_api_key.get_secret_value(),
            self.fee_spec,
            base_url=self.config.zero_ex_base_url,
            timeout=timeout,
            metrics=self.metrics,
        )

        self._setup_rate_limit_middleware()
        self._setup_key_routes()
        self._setup_rpc_routes()
        self._setup_swap_routes()
        self._setup_usage_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.gateway_service = self

    async def on_startup(self) -> None:
        await self.database.start()
        await self.dashboard_authenticator.warmup()
        self.logger.info(
            "Gateway started",
            fee_bps=self.fee_spec.bps,
            chains=len(aliases()),
            rate_limit_per_minute=self.config.rate_limit_per_minute,
        )

    async def on_shutdown(self) -> None:
        await self.usage_recorder.drain()
        await self.alchemy_client.close()
        await self.zero_ex_client.close()
        await self.dashboard_authenticator.close()
        await self.redis_cache.close()
        await self.database.stop()

    async def _check_dependencies(self) -> Dict[str, str]:
        return {
            "postgres": "ok" if await self.database.ping() else "error",
            "redis": "ok" if await self.redis_cache.ping() else "error",
        }

    # Authentication dependencies

    async def require_session(self, request: Request) -> SessionContext:
        """Dashboard session for credential management routes."""
        return await self.dashboard_authenticator.authenticate(request)

    async def require_credential(self, request: Request) -> CredentialContext:
        """Verified Atlas credential plus a rate limit check."""
        context = await self.verifier.authenticate(request)
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)
        result = await self.rate_limiter.check_rate_limit(context.credential_id, endpoint)
        request.state.rate_limit = result
        if not result.get("allowed", True):
            raise RateLimitError(
                details={
                    "limit": result.get("limit"),
                    "reset_in_seconds": result.get("reset_in_seconds"),
                }
            )
        return context

    def _setup_rate_limit_middleware(self):
        """Attach X-RateLimit-* headers computed during authentication."""

        @self.app.middleware("http")
        async def add_rate_limit_headers(request: Request, call_next):
            response = await call_next(request)
            result = getattr(request.state, "rate_limit", None)
            if result:
                for name, value in rate_limit_headers(result).items():
                    response.headers[name] = value
            return response

    # Proxy helpers

    async def _relay(
        self,
        context: CredentialContext,
        action: str,
        call: Callable[[], Awaitable[UpstreamResponse]],
        metadata: Optional[Dict[str, Any]] = None,
        on_success: Optional[Callable[[UpstreamResponse], Awaitable[None]]] = None,
    ) -> Response:
        """Run one upstream call, audit it in the background and relay the result."""
        metadata = dict(metadata or {})
        start_time = time.monotonic()
        try:
            upstream = await call()
        except UpstreamUnreachableError as exc:
            self.usage_recorder.record_detached(
                context,
                action,
                UsageStatus.ERROR,
                duration_ms=int((time.monotonic() - start_time) * 1000),
                error_message=exc.message,
                metadata=metadata,
            )
            raise

        metadata["upstream_status"] = upstream.status_code
        self.usage_recorder.record_detached(
            context,
            action,
            UsageStatus.SUCCESS if upstream.ok else UsageStatus.ERROR,
            duration_ms=int((time.monotonic() - start_time) * 1000),
            error_message=None if upstream.ok else f"upstream returned {upstream.status_code}",
            metadata=metadata,
        )
        if upstream.ok and on_success is not None:
            await on_success(upstream)
        return upstream.to_response()

    def _setup_key_routes(self):
        """Credential management for the signed-in dashboard user."""

        @self.app.post("/keys", status_code=201)
        async def create_key(
            body: CredentialCreateRequest,
            session: SessionContext = Depends(self.require_session),
        ):
            """Issue a credential. The raw key is only ever returned here."""
            token, credential = await self.credential_service.issue(session.principal_id, body.name)
            return JSONResponse(
                status_code=201,
                content=success_response({"key": token, "record": credential.to_public_dict()}),
            )

        @self.app.get("/keys")
        async def list_keys(session: SessionContext = Depends(self.require_session)):
            keys, cached = await self.credential_service.list_credentials(session.principal_id)
            return success_response({"keys": keys, "cached": cached})

        @self.app.delete("/keys/{key_id}")
        async def revoke_key(key_id: str, session: SessionContext = Depends(self.require_session)):
            await self.credential_service.revoke(key_id, session.principal_id)
            return success_response({"id": key_id, "revoked": True})

        @self.app.get("/atlas-os/me")
        async def whoami(context: CredentialContext = Depends(self.require_credential)):
            """The verified caller and the credential used."""
            credential = await self.credential_service.describe(context.credential_id, context.principal_id)
            payload = context.to_dict()
            payload["credential"] = credential.to_public_dict()
            return success_response(payload)

    def _setup_rpc_routes(self):
        """JSON-RPC pass-through."""

        @self.app.get("/atlas-os/rpc")
        async def list_chains(context: CredentialContext = Depends(self.require_credential)):
            return success_response({"chains": aliases(), "networks": networks()})

        @self.app.post("/atlas-os/rpc/{alias}")
        async def proxy_rpc(
            alias: str,
            request: Request,
            context: CredentialContext = Depends(self.require_credential),
        ):
            """Forward the request body verbatim to the chain's RPC endpoint."""
            chain = resolve(alias)
            body = await request.body()
            content_type = request.headers.get("content-type")
            return await self._relay(
                context,
                f"rpc.{chain.alias}",
                lambda: self.alchemy_client.forward(chain, body, content_type),
                metadata={"chain": chain.upstream_slug},
            )

    def _setup_swap_routes(self):
        """Swap aggregator proxy with platform fee injection."""

        async def _swap(request: Request, context: CredentialContext, mode: str, kind: str) -> Response:
            if mode not in SWAP_MODES:
                raise ValidationError(
                    f"Unknown swap mode '{mode}'",
                    details={"parameter": "mode", "allowed": list(SWAP_MODES)},
                )
            require_params(request.query_params, PRICE_REQUIRED if kind == "price" else QUOTE_REQUIRED)
            pairs = list(request.query_params.multi_items())
            return await self._relay(
                context,
                f"swap.{mode}.{kind}",
                lambda: self.zero_ex_client.swap(mode, kind, pairs),
                metadata={"chain_id": request.query_params.get("chainId")},
            )

        @self.app.get("/atlas-os/0x/swap/chains")
        async def swap_chains(context: CredentialContext = Depends(self.require_credential)):
            """Chains supported by the swap API, cached across callers."""
            cached = await self.cache_manager.get_swap_chains()
            if cached is not None:
                return JSONResponse(content=cached, headers={"X-Upstream-Status": "200", "X-Cache": "HIT"})

            async def _store(upstream: UpstreamResponse) -> None:
                try:
                    payload = json.loads(upstream.content)
                except ValueError:
                    return
                if isinstance(payload, dict):
                    await self.cache_manager.set_swap_chains(payload)

            return await self._relay(context, "swap.chains", self.zero_ex_client.chains, on_success=_store)

        @self.app.get("/atlas-os/0x/swap/{mode}/price")
        async def swap_price(
            mode: str,
            request: Request,
            context: CredentialContext = Depends(self.require_credential),
        ):
            """Indicative price. Requires chainId, buyToken, sellToken, sellAmount."""
            return await _swap(request, context, mode, "price")

        @self.app.get("/atlas-os/0x/swap/{mode}/quote")
        async def swap_quote(
            mode: str,
            request: Request,
            context: CredentialContext = Depends(self.require_credential),
        ):
            """Firm quote. Requires the price parameters plus taker."""
            return await _swap(request, context, mode, "quote")

        @self.app.get("/atlas-os/0x/sources")
        async def swap_sources(request: Request, context: CredentialContext = Depends(self.require_credential)):
            """Liquidity sources for a chain."""
            require_params(request.query_params, ("chainId",))
            pairs = list(request.query_params.multi_items())
            return await self._relay(
                context,
                "swap.sources",
                lambda: self.zero_ex_client.sources(pairs),
                metadata={"chain_id": request.query_params.get("chainId")},
            )

    def _setup_usage_routes(self):
        """Usage recording and history."""

        @self.app.post("/atlas-os/compute/usage", status_code=201)
        async def record_usage(
            payload: UsageEventCreate,
            context: CredentialContext = Depends(self.require_credential),
        ):
            event = await self.usage_recorder.record(context, payload)
            return JSONResponse(status_code=201, content=success_response(event.to_dict()))

        @self.app.get("/atlas-os/compute/usage")
        async def usage_history(
            action: Optional[str] = Query(None),
            workflow: Optional[str] = Query(None),
            status: Optional[str] = Query(None),
            limit: Optional[str] = Query(None),
            offset: Optional[str] = Query(None),
            context: CredentialContext = Depends(self.require_credential),
        ):
            """Newest-first history with ``limit`` (max 200) and ``offset`` paging."""
            filters = parse_filters(action, workflow, status)
            page_size, page_offset = parse_pagination(limit, offset)
            events, total = await self.usage_recorder.query(context.principal_id, filters, page_size, page_offset)
            return {
                "success": True,
                "data": [event.to_dict() for event in events],
                "meta": {"total": total, "limit": page_size, "offset": page_offset},
            }

        @self.app.get("/atlas-os/compute/usage/summary")
        async def usage_summary(context: CredentialContext = Depends(self.require_credential)):
            summary, cached = await self.usage_recorder.summary(context.principal_id)
            return success_response({"summary": summary, "cached": cached})


def create_app(settings: Optional[GatewaySettings] = None):
    """Create FastAPI application."""
    service = GatewayService(settings)
    return service.app


def main():
    """Run the gateway with settings from the environment."""
    GatewayService().run()


if __name__ == "__main__":
    main()
