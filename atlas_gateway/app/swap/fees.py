"""
Swap request composition with platform fee injection.

Every outbound price/quote request carries the platform fee. When the
caller already charges its own fee, the platform entry is appended as an
extra comma-separated recipient so both parties are paid; recipient and
bps lists stay index-aligned.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import urlencode

from shared.errors import ConfigurationError, MissingParameterError, ValidationError

FEE_RECIPIENT_PARAM = "swapFeeRecipient"
FEE_BPS_PARAM = "swapFeeBps"
SURPLUS_RECIPIENT_PARAM = "tradeSurplusRecipient"

MAX_FEE_BPS = 10_000

PRICE_REQUIRED = ("chainId", "buyToken", "sellToken", "sellAmount")
QUOTE_REQUIRED = PRICE_REQUIRED + ("taker",)

SWAP_MODES = ("allowance-holder", "permit2")

QueryPairs = Sequence[Tuple[str, str]]


@dataclass(frozen=True)
class FeeSpec:
    """Platform monetization parameters, fixed for the life of the process."""

    recipient: str
    bps: int
    surplus_recipient: Optional[str] = None

    @classmethod
    def from_settings(cls, settings) -> "FeeSpec":
        if not settings.zero_ex_fee_recipient:
            raise ConfigurationError(
                "Platform fee recipient is not configured",
                details={"missing": ["ATLAS_ZERO_EX_FEE_RECIPIENT"]},
            )
        return cls(
            recipient=settings.zero_ex_fee_recipient,
            bps=settings.zero_ex_fee_bps,
            surplus_recipient=settings.zero_ex_surplus_recipient,
        )


def missing_param(params: Mapping[str, str], required: Iterable[str]) -> Optional[str]:
    """First required parameter that is absent or empty, else None."""
    for name in required:
        if not params.get(name):
            return name
    return None


def require_params(params: Mapping[str, str], required: Iterable[str]) -> None:
    missing = missing_param(params, required)
    if missing is not None:
        raise MissingParameterError(missing)


def _single_value(pairs: QueryPairs, name: str) -> Optional[str]:
    values = [value for key, value in pairs if key == name]
    if len(values) > 1:
        raise ValidationError(f"'{name}' may only be given once", details={"parameter": name})
    return values[0] if values else None


def _parse_recipients(raw: str) -> List[str]:
    recipients = [entry.strip() for entry in raw.split(",")]
    if any(not entry for entry in recipients):
        raise ValidationError(
            f"'{FEE_RECIPIENT_PARAM}' contains an empty entry",
            details={"parameter": FEE_RECIPIENT_PARAM},
        )
    return recipients


def _parse_bps(raw: str) -> List[str]:
    entries = [entry.strip() for entry in raw.split(",")]
    for entry in entries:
        if not (entry.isascii() and entry.isdigit()) or int(entry) > MAX_FEE_BPS:
            raise ValidationError(
                f"'{FEE_BPS_PARAM}' must be a comma-separated list of integers between 0 and {MAX_FEE_BPS}",
                details={"parameter": FEE_BPS_PARAM, "value": raw},
            )
    return [str(int(entry)) for entry in entries]


def compose_fee_params(pairs: QueryPairs, fee: FeeSpec) -> List[Tuple[str, str]]:
    """Return the caller's parameters with the platform fee merged in.

    Caller pairs keep their order and values; fee fields are rewritten in
    place when the caller sent them and appended otherwise. Pure: the same
    input always yields the same output.
    """
    caller_recipient = (_single_value(pairs, FEE_RECIPIENT_PARAM) or "").strip()
    caller_bps = (_single_value(pairs, FEE_BPS_PARAM) or "").strip()
    platform_bps = str(fee.bps)

    if caller_recipient:
        recipients = _parse_recipients(caller_recipient)
        bps = _parse_bps(caller_bps) if caller_bps else [platform_bps] * len(recipients)
        if len(bps) != len(recipients):
            raise ValidationError(
                f"'{FEE_BPS_PARAM}' must have one entry per '{FEE_RECIPIENT_PARAM}' entry",
                details={"recipients": len(recipients), "bps": len(bps)},
            )
        recipients.append(fee.recipient)
        bps.append(platform_bps)
    else:
        if caller_bps:
            raise ValidationError(
                f"'{FEE_BPS_PARAM}' requires '{FEE_RECIPIENT_PARAM}'",
                details={"parameter": FEE_RECIPIENT_PARAM},
            )
        recipients = [fee.recipient]
        bps = [platform_bps]

    overrides = {
        FEE_RECIPIENT_PARAM: ",".join(recipients),
        FEE_BPS_PARAM: ",".join(bps),
    }

    composed: List[Tuple[str, str]] = []
    seen = set()
    for key, value in pairs:
        if key in overrides:
            composed.append((key, overrides[key]))
            seen.add(key)
        else:
            composed.append((key, value))

    for key in (FEE_RECIPIENT_PARAM, FEE_BPS_PARAM):
        if key not in seen:
            composed.append((key, overrides[key]))

    if fee.surplus_recipient and not any(key == SURPLUS_RECIPIENT_PARAM for key, _ in pairs):
        composed.append((SURPLUS_RECIPIENT_PARAM, fee.surplus_recipient))

    return composed


def encode_query(pairs: QueryPairs) -> str:
    """URL-encode pairs, keeping list separators literal."""
    return urlencode(list(pairs), safe=",")


def build_swap_url(base_url: str, path: str, pairs: QueryPairs, fee: FeeSpec) -> str:
    """Final upstream URL for a price/quote request."""
    return f"{base_url.rstrip('/')}{path}?{encode_query(compose_fee_params(pairs, fee))}"
