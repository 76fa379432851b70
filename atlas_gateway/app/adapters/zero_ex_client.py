"""
Swap aggregator client (0x API v2).
"""

from typing import Dict

from atlas_gateway.app.adapters.upstream import UpstreamClient, UpstreamResponse
from atlas_gateway.app.swap.fees import FeeSpec, QueryPairs, build_swap_url, encode_query

API_VERSION = "v2"


class ZeroExClient(UpstreamClient):
    """Single-shot relay to the swap API. Price and quote requests always carry the platform fee."""

    provider = "0x"

    def __init__(self, api_key: str, fee: FeeSpec, base_url: str = "https://api.0x.org", **kwargs):
        super().__init__(**kwargs)
        self._api_key = api_key
        self.fee = fee
        self.base_url = base_url.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        return {"0x-api-key": self._api_key, "0x-version": API_VERSION}

    def swap_url(self, mode: str, kind: str, pairs: QueryPairs) -> str:
        """Upstream URL for ``/swap/{mode}/{kind}`` with fees composed in."""
        return build_swap_url(self.base_url, f"/swap/{mode}/{kind}", pairs, self.fee)

    async def swap(self, mode: str, kind: str, pairs: QueryPairs) -> UpstreamResponse:
        """Price or quote request for one allowance mode."""
        return await self._send("GET", self.swap_url(mode, kind, pairs), operation=f"swap.{mode}.{kind}", headers=self._headers())

    async def chains(self) -> UpstreamResponse:
        return await self._send("GET", f"{self.base_url}/swap/chains", operation="swap.chains", headers=self._headers())

    async def sources(self, pairs: QueryPairs) -> UpstreamResponse:
        """Liquidity sources for a chain."""
        query = encode_query(pairs)
        url = f"{self.base_url}/sources" + (f"?{query}" if query else "")
        return await self._send("GET", url, operation="sources", headers=self._headers())
