"""
Unit tests for the provider clients.
"""

import httpx
import pytest

from shared.errors import UpstreamUnreachableError

from atlas_gateway.app.adapters.alchemy_client import AlchemyClient
from atlas_gateway.app.adapters.zero_ex_client import ZeroExClient
from atlas_gateway.app.chains.registry import resolve
from atlas_gateway.app.swap.fees import FeeSpec

FEE = FeeSpec(recipient="0xP", bps=25)


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestAlchemyClient:
    """Test cases for AlchemyClient."""

    @pytest.mark.asyncio
    async def test_forwards_body_verbatim(self, metrics):
        seen = {}

        def handler(request: httpx.Request):
            seen["url"] = str(request.url)
            seen["body"] = request.content
            return httpx.Response(200, content=b'{"jsonrpc":"2.0","id":1,"result":"0x10"}')

        body = b'{"jsonrpc":"2.0","id":1,"method":"eth_blockNumber","params":[]}'
        client = AlchemyClient("secret", metrics=metrics, client=_client(handler))

        response = await client.forward(resolve("ETH"), body)

        assert seen["url"] == "https://eth-mainnet.g.alchemy.com/v2/secret"
        assert seen["body"] == body
        assert response.status_code == 200
        assert response.content == b'{"jsonrpc":"2.0","id":1,"result":"0x10"}'
        assert metrics.upstream_calls == [("alchemy", "2xx")]

    @pytest.mark.asyncio
    async def test_non_2xx_returned_not_raised(self, metrics):
        client = AlchemyClient(
            "secret",
            metrics=metrics,
            client=_client(lambda request: httpx.Response(429, content=b"slow down", headers={"content-type": "text/plain"})),
        )

        response = await client.forward(resolve("base"), b"{}")

        assert response.ok is False
        relayed = response.to_response()
        assert relayed.status_code == 429
        assert relayed.body == b"slow down"
        assert relayed.headers["X-Upstream-Status"] == "429"
        assert metrics.upstream_calls == [("alchemy", "4xx")]

    @pytest.mark.asyncio
    async def test_timeout_is_504(self, metrics):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = AlchemyClient("secret", metrics=metrics, client=_client(handler))

        with pytest.raises(UpstreamUnreachableError) as exc_info:
            await client.forward(resolve("eth"), b"{}")

        assert exc_info.value.status_code == 504
        assert "secret" not in exc_info.value.message
        assert metrics.upstream_calls == [("alchemy", "timeout")]

    @pytest.mark.asyncio
    async def test_connection_error_is_502(self, metrics):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = AlchemyClient("secret", metrics=metrics, client=_client(handler))

        with pytest.raises(UpstreamUnreachableError) as exc_info:
            await client.forward(resolve("eth"), b"{}")

        assert exc_info.value.status_code == 502
        assert exc_info.value.details == {"provider": "alchemy", "reason": "connection"}


class TestZeroExClient:
    """Test cases for ZeroExClient."""

    @pytest.mark.asyncio
    async def test_swap_sends_fee_and_headers(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["request"] = request
            return httpx.Response(200, json={"buyAmount": "1"})

        client = ZeroExClient("zx-key", FEE, client=_client(handler))
        pairs = [("chainId", "1"), ("buyToken", "0xB"), ("sellToken", "0xS"), ("sellAmount", "10")]

        response = await client.swap("permit2", "price", pairs)

        request = seen["request"]
        assert request.url.path == "/swap/permit2/price"
        assert "swapFeeRecipient=0xP&swapFeeBps=25" in str(request.url)
        assert request.headers["0x-api-key"] == "zx-key"
        assert request.headers["0x-version"] == "v2"
        assert response.ok

    @pytest.mark.asyncio
    async def test_chains_and_sources_paths(self):
        urls = []

        def handler(request: httpx.Request):
            urls.append(str(request.url))
            return httpx.Response(200, json={})

        client = ZeroExClient("zx-key", FEE, base_url="https://api.0x.org/", client=_client(handler))

        await client.chains()
        await client.sources([("chainId", "8453")])

        assert urls == ["https://api.0x.org/swap/chains", "https://api.0x.org/sources?chainId=8453"]

    def test_swap_url_is_deterministic(self):
        client = ZeroExClient("zx-key", FEE)
        pairs = [("chainId", "1"), ("swapFeeRecipient", "0xC"), ("swapFeeBps", "10")]
        assert client.swap_url("allowance-holder", "quote", pairs) == client.swap_url("allowance-holder", "quote", pairs)
