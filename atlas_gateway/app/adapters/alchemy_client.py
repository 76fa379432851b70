"""
JSON-RPC pass-through client for the node provider.
"""

from typing import Optional

from atlas_gateway.app.adapters.upstream import UpstreamClient, UpstreamResponse
from atlas_gateway.app.chains.registry import ChainDefinition, build_upstream_url


class AlchemyClient(UpstreamClient):
    """Forwards raw JSON-RPC bodies to the provider endpoint for a chain."""

    provider = "alchemy"

    def __init__(self, api_key: str, **kwargs):
        super().__init__(**kwargs)
        self._api_key = api_key

    async def forward(self, chain: ChainDefinition, body: bytes, content_type: Optional[str] = None) -> UpstreamResponse:
        """POST ``body`` unchanged; the body is never parsed here."""
        return await self._send(
            "POST",
            build_upstream_url(chain, self._api_key),
            operation=f"rpc.{chain.alias}",
            headers={"Content-Type": content_type or "application/json"},
            content=body,
        )
