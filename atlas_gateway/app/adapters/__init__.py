"""
Upstream provider adapters.
"""

from .alchemy_client import AlchemyClient
from .upstream import UpstreamClient, UpstreamResponse
from .zero_ex_client import ZeroExClient

__all__ = ["AlchemyClient", "UpstreamClient", "UpstreamResponse", "ZeroExClient"]
