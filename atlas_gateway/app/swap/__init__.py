"""Swap proxy request composition."""

from .fees import (
    FeeSpec,
    PRICE_REQUIRED,
    QUOTE_REQUIRED,
    SWAP_MODES,
    build_swap_url,
    compose_fee_params,
    missing_param,
    require_params,
)

__all__ = [
    "FeeSpec",
    "PRICE_REQUIRED",
    "QUOTE_REQUIRED",
    "SWAP_MODES",
    "build_swap_url",
    "compose_fee_params",
    "missing_param",
    "require_params",
]
