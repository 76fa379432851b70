"""
Static chain alias table for the RPC pass-through.

Maps caller-facing aliases (``eth``, ``arb``, ``matic`` ...) to the RPC
provider's network slug and URL layout. The table is built once at import
and never mutated.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Tuple

from shared.errors import UnknownChainError

RPC_LISTING_PATH = "/atlas-os/rpc"


class UrlTemplate(str, Enum):
    """How the upstream URL is assembled for a network."""
    STANDARD = "standard"
    SPECIALIZED = "specialized"


@dataclass(frozen=True)
class ChainDefinition:
    """One alias table entry."""

    alias: str
    upstream_slug: str
    url_template: UrlTemplate = UrlTemplate.STANDARD


# upstream slug -> aliases that resolve to it
_NETWORKS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    # Ethereum
    ("eth-mainnet", ("eth", "eth-mainnet", "ethereum")),
    ("eth-sepolia", ("eth-sepolia",)),
    ("eth-holesky", ("eth-holesky",)),
    ("eth-hoodi", ("eth-hoodi",)),
    # Arbitrum
    ("arb-mainnet", ("arb", "arbitrum", "arb-mainnet")),
    ("arb-sepolia", ("arb-sepolia",)),
    ("arbnova-mainnet", ("arbnova", "arbnova-mainnet", "arbitrum-nova")),
    # Base
    ("base-mainnet", ("base", "base-mainnet")),
    ("base-sepolia", ("base-sepolia",)),
    # OP
    ("opt-mainnet", ("op", "optimism", "opt-mainnet")),
    ("opt-sepolia", ("opt-sepolia",)),
    # Polygon
    ("polygon-mainnet", ("polygon", "matic", "polygon-mainnet")),
    ("polygon-amoy", ("polygon-amoy",)),
    ("polygonzkevm-mainnet", ("polygonzkevm", "polygon-zkevm", "polygonzkevm-mainnet")),
    ("polygonzkevm-cardona", ("polygonzkevm-cardona",)),
    # Avalanche
    ("avax-mainnet", ("avax", "avalanche", "avax-mainnet")),
    ("avax-fuji", ("avax-fuji",)),
    # BNB
    ("bnb-mainnet", ("bsc", "bnb", "bnb-mainnet")),
    ("bnb-testnet", ("bnb-testnet",)),
    ("opbnb-mainnet", ("opbnb", "opbnb-mainnet")),
    ("opbnb-testnet", ("opbnb-testnet",)),
    # Solana
    ("solana-mainnet", ("solana", "solana-mainnet")),
    ("solana-devnet", ("solana-devnet",)),
    # Starknet uses the specialized layout, see _SPECIALIZED
    ("starknet-mainnet", ("starknet", "starknet-mainnet")),
    ("starknet-sepolia", ("starknet-sepolia",)),
    ("zksync-mainnet", ("zksync", "zksync-mainnet")),
    ("zksync-sepolia", ("zksync-sepolia",)),
    ("linea-mainnet", ("linea", "linea-mainnet")),
    ("linea-sepolia", ("linea-sepolia",)),
    ("blast-mainnet", ("blast", "blast-mainnet")),
    ("blast-sepolia", ("blast-sepolia",)),
    ("mantle-mainnet", ("mantle", "mantle-mainnet")),
    ("mantle-sepolia", ("mantle-sepolia",)),
    ("scroll-mainnet", ("scroll", "scroll-mainnet")),
    ("scroll-sepolia", ("scroll-sepolia",)),
    ("berachain-mainnet", ("bera", "berachain", "berachain-mainnet")),
    ("berachain-bepolia", ("berachain-bepolia",)),
    ("celo-mainnet", ("celo", "celo-mainnet")),
    ("celo-sepolia", ("celo-sepolia",)),
    ("unichain-mainnet", ("unichain", "unichain-mainnet")),
    ("unichain-sepolia", ("unichain-sepolia",)),
    ("worldchain-mainnet", ("world-chain", "worldchain", "worldchain-mainnet")),
    ("worldchain-sepolia", ("worldchain-sepolia",)),
    ("hyperliquid-mainnet", ("hyperevm", "hyperliquid", "hyperliquid-mainnet")),
    ("hyperliquid-testnet", ("hyperliquid-testnet",)),
    ("sonic-mainnet", ("sonic", "sonic-mainnet")),
    ("sonic-testnet", ("sonic-testnet",)),
    ("sonic-blaze", ("sonic-blaze",)),
    ("sei-mainnet", ("sei", "sei-mainnet")),
    ("sei-testnet", ("sei-testnet",)),
    ("monad-mainnet", ("monad", "monad-mainnet")),
    ("monad-testnet", ("monad-testnet",)),
    ("ink-mainnet", ("ink", "ink-mainnet")),
    ("ink-sepolia", ("ink-sepolia",)),
    ("lens-mainnet", ("lens", "lens-mainnet")),
    ("lens-sepolia", ("lens-sepolia",)),
    ("gnosis-mainnet", ("gnosis", "gnosis-mainnet")),
    ("gnosis-chiado", ("gnosis-chiado",)),
    ("metis-mainnet", ("metis", "metis-mainnet")),
    ("moonbeam-mainnet", ("moonbeam", "moonbeam-mainnet")),
    ("zora-mainnet", ("zora", "zora-mainnet")),
    ("zora-sepolia", ("zora-sepolia",)),
    ("mode-mainnet", ("mode", "mode-mainnet")),
    ("mode-sepolia", ("mode-sepolia",)),
    ("astar-mainnet", ("astar", "astar-mainnet")),
    ("zetachain-mainnet", ("zetachain", "zetachain-mainnet")),
    ("zetachain-testnet", ("zetachain-testnet",)),
    ("soneium-mainnet", ("soneium", "soneium-mainnet")),
    ("soneium-minato", ("soneium-minato",)),
    ("abstract-mainnet", ("abstract", "abstract-mainnet")),
    ("abstract-testnet", ("abstract-testnet",)),
    ("anime-mainnet", ("anime", "anime-mainnet")),
    ("anime-sepolia", ("anime-sepolia",)),
    ("apechain-mainnet", ("apechain", "apechain-mainnet")),
    ("apechain-curtis", ("apechain-curtis",)),
    ("aptos-mainnet", ("aptos", "aptos-mainnet")),
    ("aptos-testnet", ("aptos-testnet",)),
    ("story-mainnet", ("story", "story-mainnet")),
    ("story-aeneid", ("story-aeneid",)),
    ("superseed-mainnet", ("superseed", "superseed-mainnet")),
    ("superseed-sepolia", ("superseed-sepolia",)),
    ("flow-mainnet", ("flow", "flow-mainnet")),
    ("flow-testnet", ("flow-testnet",)),
    ("frax-mainnet", ("frax", "frax-mainnet")),
    ("frax-sepolia", ("frax-sepolia",)),
    ("bob-mainnet", ("bob", "bob-mainnet")),
    ("bob-sepolia", ("bob-sepolia",)),
    ("crossfi-mainnet", ("crossfi", "crossfi-mainnet")),
    ("crossfi-testnet", ("crossfi-testnet",)),
    ("rootstock-mainnet", ("rootstock", "rootstock-mainnet")),
    ("rootstock-testnet", ("rootstock-testnet",)),
    ("shape-mainnet", ("shape", "shape-mainnet")),
    ("shape-sepolia", ("shape-sepolia",)),
    ("botanix-mainnet", ("botanix", "botanix-mainnet")),
    ("botanix-testnet", ("botanix-testnet",)),
    ("degen-mainnet", ("degen", "degen-mainnet")),
    ("degen-sepolia", ("degen-sepolia",)),
    ("bitcoin-mainnet", ("bitcoin", "btc", "bitcoin-mainnet")),
    ("bitcoin-testnet", ("bitcoin-testnet",)),
    ("bitcoin-signet", ("bitcoin-signet",)),
    ("sui-mainnet", ("sui", "sui-mainnet")),
    ("sui-testnet", ("sui-testnet",)),
    ("ronin-mainnet", ("ronin", "ronin-mainnet")),
    ("ronin-saigon", ("ronin-saigon",)),
    ("boba-mainnet", ("boba", "boba-mainnet")),
    ("boba-sepolia", ("boba-sepolia",)),
    ("megaeth-mainnet", ("megaeth", "megaeth-mainnet")),
    ("megaeth-testnet", ("megaeth-testnet",)),
    ("polynomial-mainnet", ("polynomial", "polynomial-mainnet")),
    ("polynomial-sepolia", ("polynomial-sepolia",)),
    ("tron-mainnet", ("tron", "tron-mainnet")),
    ("tron-testnet", ("tron-testnet",)),
    ("clankermon-mainnet", ("clankermon", "clankermon-mainnet")),
    ("humanity-mainnet", ("humanity", "humanity-mainnet")),
    ("humanity-testnet", ("humanity-testnet",)),
    ("galactica-mainnet", ("galactica", "galactica-mainnet")),
    ("galactica-cassiopeia", ("galactica-cassiopeia",)),
    ("race-mainnet", ("scroll-race", "race", "race-mainnet")),
    ("race-sepolia", ("race-sepolia",)),
)

_SPECIALIZED = frozenset({"starknet-mainnet", "starknet-sepolia"})

_URL_TEMPLATES = {
    UrlTemplate.STANDARD: "https://{slug}.g.alchemy.com/v2/{key}",
    UrlTemplate.SPECIALIZED: "https://{slug}.g.alchemy.com/starknet/version/rpc/v0_10/{key}",
}


def _build_table() -> Mapping[str, ChainDefinition]:
    table: Dict[str, ChainDefinition] = {}
    for slug, aliases in _NETWORKS:
        template = UrlTemplate.SPECIALIZED if slug in _SPECIALIZED else UrlTemplate.STANDARD
        for alias in aliases:
            key = alias.lower()
            if key in table:
                raise ValueError(f"Duplicate chain alias: {alias}")
            table[key] = ChainDefinition(alias=key, upstream_slug=slug, url_template=template)
    return MappingProxyType(table)


CHAINS: Mapping[str, ChainDefinition] = _build_table()


def resolve(alias: str) -> ChainDefinition:
    """Case-insensitive exact lookup; raises ``UnknownChainError`` on a miss."""
    definition = CHAINS.get((alias or "").strip().lower())
    if definition is None:
        raise UnknownChainError((alias or "").lower(), RPC_LISTING_PATH)
    return definition


def build_upstream_url(definition: ChainDefinition, api_key: str) -> str:
    """Provider URL for a resolved chain. Embeds the provider key; never log it."""
    return _URL_TEMPLATES[definition.url_template].format(slug=definition.upstream_slug, key=api_key)


def aliases() -> List[str]:
    """All known aliases, sorted."""
    return sorted(CHAINS)


def networks() -> Dict[str, List[str]]:
    """Upstream slug to the sorted aliases that resolve to it."""
    grouped: Dict[str, List[str]] = {}
    for alias, definition in CHAINS.items():
        grouped.setdefault(definition.upstream_slug, []).append(alias)
    return {slug: sorted(names) for slug, names in sorted(grouped.items())}
