"""
Unit tests for swap fee composition.
"""

import random
from urllib.parse import parse_qsl, urlsplit

import pytest

from shared.errors import ConfigurationError, MissingParameterError, ValidationError

from atlas_gateway.app.swap.fees import (
    PRICE_REQUIRED,
    QUOTE_REQUIRED,
    FeeSpec,
    build_swap_url,
    compose_fee_params,
    missing_param,
    require_params,
)

BASE = "https://api.0x.org"
PLATFORM = FeeSpec(recipient="0xP", bps=25)

PRICE_PARAMS = [
    ("chainId", "1"),
    ("buyToken", "0xB"),
    ("sellToken", "0xS"),
    ("sellAmount", "1000"),
]


def _query(url: str):
    return parse_qsl(urlsplit(url).query, keep_blank_values=True)


class TestFeeComposition:
    """Test cases for compose_fee_params and build_swap_url."""

    def test_platform_fee_added_when_caller_has_none(self):
        url = build_swap_url(BASE, "/swap/allowance-holder/quote", PRICE_PARAMS + [("taker", "0xT")], PLATFORM)
        assert "swapFeeRecipient=0xP&swapFeeBps=25" in url
        assert url.startswith("https://api.0x.org/swap/allowance-holder/quote?chainId=1&")

    def test_platform_fee_appended_after_caller_fee(self):
        pairs = PRICE_PARAMS + [("swapFeeRecipient", "0xC"), ("swapFeeBps", "10")]
        url = build_swap_url(BASE, "/swap/allowance-holder/price", pairs, PLATFORM)
        assert "swapFeeRecipient=0xC,0xP&swapFeeBps=10,25" in url

    def test_caller_recipient_without_bps_uses_platform_bps_for_caller_slot(self):
        composed = dict(compose_fee_params(PRICE_PARAMS + [("swapFeeRecipient", "0xC")], PLATFORM))
        assert composed["swapFeeRecipient"] == "0xC,0xP"
        assert composed["swapFeeBps"] == "25,25"

    def test_multiple_caller_recipients_stay_aligned(self):
        pairs = [("swapFeeRecipient", "0xA,0xB"), ("swapFeeBps", "5,7")]
        composed = dict(compose_fee_params(pairs, PLATFORM))
        assert composed["swapFeeRecipient"].split(",") == ["0xA", "0xB", "0xP"]
        assert composed["swapFeeBps"].split(",") == ["5", "7", "25"]

    def test_fee_fields_rewritten_in_place(self):
        pairs = [("swapFeeBps", "10"), ("chainId", "1"), ("swapFeeRecipient", "0xC")]
        composed = compose_fee_params(pairs, PLATFORM)
        assert [key for key, _ in composed] == ["swapFeeBps", "chainId", "swapFeeRecipient"]

    def test_composition_is_idempotent(self):
        pairs = PRICE_PARAMS + [("swapFeeRecipient", "0xC"), ("swapFeeBps", "10"), ("slippageBps", "50")]
        first = build_swap_url(BASE, "/swap/permit2/price", pairs, PLATFORM)
        second = build_swap_url(BASE, "/swap/permit2/price", list(pairs), PLATFORM)
        assert first == second

    def test_caller_parameters_never_dropped(self):
        rng = random.Random(1234)
        keys = ["chainId", "buyToken", "sellToken", "sellAmount", "taker", "slippageBps",
                "excludedSources", "gasPrice", "recipient", "txOrigin", "customFlag", "swapFeeToken"]
        for _ in range(200):
            chosen = rng.sample(keys, rng.randint(0, len(keys)))
            pairs = [(key, f"v{rng.randint(0, 999)}") for key in chosen]
            if rng.random() < 0.5:
                pairs.append(("swapFeeRecipient", "0xC"))
                if rng.random() < 0.5:
                    pairs.append(("swapFeeBps", str(rng.randint(0, 100))))
            rng.shuffle(pairs)

            output = _query(build_swap_url(BASE, "/swap/permit2/quote", pairs, PLATFORM))
            output_keys = {key for key, _ in output}
            assert {key for key, _ in pairs} <= output_keys
            for key, value in pairs:
                if key not in ("swapFeeRecipient", "swapFeeBps"):
                    assert (key, value) in output

    def test_repeated_non_fee_params_forwarded(self):
        pairs = [("excludedSources", "A"), ("excludedSources", "B")]
        composed = compose_fee_params(pairs, PLATFORM)
        assert composed[:2] == pairs

    def test_surplus_recipient_set_when_absent(self):
        fee = FeeSpec(recipient="0xP", bps=25, surplus_recipient="0xS")
        composed = dict(compose_fee_params(PRICE_PARAMS, fee))
        assert composed["tradeSurplusRecipient"] == "0xS"

    def test_surplus_recipient_left_alone_when_caller_set_it(self):
        fee = FeeSpec(recipient="0xP", bps=25, surplus_recipient="0xS")
        pairs = PRICE_PARAMS + [("tradeSurplusRecipient", "0xCaller")]
        composed = compose_fee_params(pairs, fee)
        assert [value for key, value in composed if key == "tradeSurplusRecipient"] == ["0xCaller"]

    def test_no_surplus_when_not_configured(self):
        composed = dict(compose_fee_params(PRICE_PARAMS, PLATFORM))
        assert "tradeSurplusRecipient" not in composed

    def test_empty_caller_recipient_treated_as_absent(self):
        composed = dict(compose_fee_params([("swapFeeRecipient", "")], PLATFORM))
        assert composed["swapFeeRecipient"] == "0xP"
        assert composed["swapFeeBps"] == "25"

    @pytest.mark.parametrize("bps", ["abc", "-5", "1.5", "10,x", "20000", "１０"])
    def test_malformed_caller_bps_rejected(self, bps):
        with pytest.raises(ValidationError) as exc_info:
            compose_fee_params([("swapFeeRecipient", "0xC"), ("swapFeeBps", bps)], PLATFORM)
        assert exc_info.value.details["parameter"] == "swapFeeBps"

    def test_bps_without_recipient_rejected(self):
        with pytest.raises(ValidationError):
            compose_fee_params([("swapFeeBps", "10")], PLATFORM)

    def test_misaligned_lists_rejected(self):
        with pytest.raises(ValidationError):
            compose_fee_params([("swapFeeRecipient", "0xA,0xB"), ("swapFeeBps", "10")], PLATFORM)

    def test_duplicate_fee_param_rejected(self):
        with pytest.raises(ValidationError):
            compose_fee_params([("swapFeeRecipient", "0xA"), ("swapFeeRecipient", "0xB")], PLATFORM)

    def test_values_are_url_encoded(self):
        url = build_swap_url(BASE, "/swap/permit2/price", [("note", "a b&c")], PLATFORM)
        assert "note=a+b%26c" in url


class TestRequiredParams:
    """Test cases for required parameter checks."""

    def test_first_missing_price_param_named(self):
        assert missing_param({"chainId": "1", "buyToken": "0xB"}, PRICE_REQUIRED) == "sellToken"

    def test_quote_requires_taker(self):
        params = dict(PRICE_PARAMS)
        assert missing_param(params, PRICE_REQUIRED) is None
        assert missing_param(params, QUOTE_REQUIRED) == "taker"

    def test_empty_value_counts_as_missing(self):
        assert missing_param({"chainId": ""}, ("chainId",)) == "chainId"

    def test_require_params_raises_named_error(self):
        with pytest.raises(MissingParameterError) as exc_info:
            require_params({}, PRICE_REQUIRED)
        assert exc_info.value.code == "MISSING_PARAMETER"
        assert exc_info.value.message == "'chainId' is required"


class TestFeeSpec:
    """Test cases for FeeSpec construction from settings."""

    def test_from_settings(self, settings):
        fee = FeeSpec.from_settings(settings)
        assert fee == FeeSpec(recipient="0xP", bps=25, surplus_recipient=None)

    def test_missing_recipient_is_configuration_error(self, settings):
        with pytest.raises(ConfigurationError):
            FeeSpec.from_settings(settings.model_copy(update={"zero_ex_fee_recipient": None}))
