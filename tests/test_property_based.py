"""
Property-based tests for the ZKP2P SDK.

These tests verify that properties hold true across many random inputs.
"""
from decimal import Decimal

from hypothesis import assume, given, settings, strategies as st

from zkp2p_sdk.bytes32 import ascii_to_bytes32, bytes32_to_ascii, ensure_bytes32, is_bytes32_hex
from zkp2p_sdk.gas import calculate_gas_with_buffer, compute_gas_pricing, MIN_MAX_FEE, MIN_PRIORITY_FEE
from zkp2p_sdk.models import conversion_rate_to_onchain
from zkp2p_sdk.views import to_int

currency_strategy = st.text(
    min_size=1,
    max_size=32,
    alphabet=st.characters(whitelist_categories=('Lu', 'Ll', 'Nd')).filter(lambda c: ord(c) < 128),
)
uint256_strategy = st.integers(min_value=0, max_value=2 ** 256 - 1)


@settings(max_examples=100)
@given(code=currency_strategy)
def test_ascii_padding_properties(code):
    assume(not code.startswith("0x"))
    encoded = ascii_to_bytes32(code)
    assert is_bytes32_hex(encoded)
    assert encoded.endswith("00" * (32 - len(code)))
    assert bytes32_to_ascii(encoded) == code
    # Padding and hashing never collide
    assert encoded != ensure_bytes32(code, hash_if_ascii=True)


@given(value=uint256_strategy)
def test_to_int_accepts_every_representation(value):
    assert to_int(value, "v") == value
    assert to_int(str(value), "v") == value
    assert to_int(hex(value), "v") == value


@given(base_fee=st.integers(min_value=0, max_value=10 ** 13))
def test_gas_pricing_floors(base_fee):
    pricing = compute_gas_pricing(base_fee)
    assert pricing.priority >= MIN_PRIORITY_FEE
    assert pricing.max >= MIN_MAX_FEE
    assert pricing.max >= pricing.priority


@given(estimated=st.integers(min_value=21000, max_value=30_000_000), congested=st.booleans())
def test_gas_buffer_is_at_least_twenty_percent(estimated, congested):
    buffered = calculate_gas_with_buffer(estimated, congested)
    assert buffered >= estimated * 6 // 5
    assert buffered <= estimated * 13 // 10


@given(rate=st.decimals(min_value=Decimal("0.000001"), max_value=Decimal("100000"), places=6))
def test_conversion_rate_is_exact(rate):
    assert conversion_rate_to_onchain(str(rate)) == int(rate * 10 ** 18)
