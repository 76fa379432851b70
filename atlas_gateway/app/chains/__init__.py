"""Chain alias resolution for the RPC pass-through."""

from .registry import CHAINS, ChainDefinition, UrlTemplate, aliases, build_upstream_url, networks, resolve

__all__ = [
    "CHAINS",
    "ChainDefinition",
    "UrlTemplate",
    "aliases",
    "build_upstream_url",
    "networks",
    "resolve",
]
