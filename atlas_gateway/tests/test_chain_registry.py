"""
Unit tests for the chain alias table.
"""

import pytest

from shared.errors import UnknownChainError

from atlas_gateway.app.chains.registry import (
    CHAINS,
    UrlTemplate,
    aliases,
    build_upstream_url,
    networks,
    resolve,
)


class TestChainRegistry:
    """Test cases for alias resolution and URL building."""

    def test_resolution_is_case_insensitive(self):
        assert resolve("ETH") == resolve("eth") == resolve("Eth")
        assert resolve("eth").upstream_slug == "eth-mainnet"

    def test_many_aliases_to_one_slug(self):
        slugs = {resolve(alias).upstream_slug for alias in ("eth", "ethereum", "eth-mainnet")}
        assert slugs == {"eth-mainnet"}
        assert resolve("matic").upstream_slug == resolve("polygon").upstream_slug

    def test_unknown_alias_names_alias_and_listing(self):
        with pytest.raises(UnknownChainError) as exc_info:
            resolve("Dogechain")

        error = exc_info.value
        assert error.status_code == 400
        assert error.code == "UNKNOWN_CHAIN"
        assert error.message == 'Unknown chain: "dogechain". GET /atlas-os/rpc for full list.'

    def test_empty_alias_is_unknown(self):
        with pytest.raises(UnknownChainError):
            resolve("")

    def test_standard_url(self):
        assert build_upstream_url(resolve("arb"), "KEY") == "https://arb-mainnet.g.alchemy.com/v2/KEY"

    def test_specialized_url(self):
        chain = resolve("starknet")
        assert chain.url_template is UrlTemplate.SPECIALIZED
        assert build_upstream_url(chain, "KEY") == (
            "https://starknet-mainnet.g.alchemy.com/starknet/version/rpc/v0_10/KEY"
        )

    def test_only_starknet_uses_specialized_template(self):
        specialized = {d.upstream_slug for d in CHAINS.values() if d.url_template is UrlTemplate.SPECIALIZED}
        assert specialized == {"starknet-mainnet", "starknet-sepolia"}

    def test_aliases_sorted_and_unique(self):
        listed = aliases()
        assert listed == sorted(set(listed))
        assert "eth" in listed and "bsc" in listed

    def test_networks_group_aliases(self):
        grouped = networks()
        assert grouped["bnb-mainnet"] == ["bnb", "bnb-mainnet", "bsc"]

    def test_table_is_read_only(self):
        with pytest.raises(TypeError):
            CHAINS["new"] = resolve("eth")
