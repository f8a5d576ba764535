"""
Canonical 32-byte encodings used as on-chain keys.

Two namespaces exist and must never be mixed: ``ascii_to_bytes32`` pads the
raw bytes (currency codes), ``ensure_bytes32(..., hash_if_ascii=True)``
hashes them (payment method names).
"""
import re

from eth_utils import keccak

from .exceptions import EncodingError, EncodingReason

_BYTES32_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


def is_bytes32_hex(value: str) -> bool:
    """True if value is a 0x-prefixed, 32-byte hex string."""
    return isinstance(value, str) and bool(_BYTES32_RE.match(value))


def ensure_bytes32(value: str, hash_if_ascii: bool = False) -> str:
    """
    Ensure a value is a 32-byte hex string.

    Args:
        value: 0x-prefixed 32-byte hex, or an ASCII name
        hash_if_ascii: Hash ASCII input with keccak-256 instead of rejecting it

    Returns:
        0x-prefixed 32-byte hex string

    Raises:
        EncodingError: NOT_BYTES32 for hex of the wrong size, or for ASCII
            input when hash_if_ascii is False
    """
    if not isinstance(value, str):
        raise EncodingError(f"Expected a string, got {type(value).__name__}", EncodingReason.NOT_BYTES32)
    if value.startswith("0x"):
        if not is_bytes32_hex(value):
            raise EncodingError(f"Expected 32-byte hex value, got {value!r}", EncodingReason.NOT_BYTES32)
        return value
    if not hash_if_ascii:
        raise EncodingError(
            "Expected 32-byte hex; received ascii string. Pass hash_if_ascii=True to hash.",
            EncodingReason.NOT_BYTES32,
        )
    return "0x" + keccak(value.encode("utf-8")).hex()


def ascii_to_bytes32(value: str) -> str:
    """
    Encode a string left-aligned and right-padded with zeros to 32 bytes.

    Raises:
        EncodingError: TOO_LONG if the UTF-8 encoding exceeds 32 bytes
    """
    raw = value.encode("utf-8")
    if len(raw) > 32:
        raise EncodingError(f"ASCII input exceeds 32 bytes ({len(raw)} bytes)", EncodingReason.TOO_LONG)
    return "0x" + raw.ljust(32, b"\x00").hex()


def bytes32_to_ascii(value: str) -> str:
    """Reverse of ascii_to_bytes32 (trailing zero bytes stripped)."""
    return bytes32_to_bytes(value).rstrip(b"\x00").decode("utf-8")


def bytes32_to_bytes(value: str) -> bytes:
    """Convert a 32-byte hex string into its 32 raw bytes."""
    return bytes.fromhex(ensure_bytes32(value)[2:])


def hex_to_bytes(value, field: str = "value") -> bytes:
    """Accept raw bytes or a 0x-prefixed hex string (``"0x"`` is empty bytes)."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        body = value[2:] if value.startswith("0x") else value
        try:
            return bytes.fromhex(body)
        except ValueError:
            raise EncodingError(f"Invalid hex for {field}: {value!r}", EncodingReason.INVALID_HEX, field=field)
    raise EncodingError(f"Expected bytes or hex string for {field}", EncodingReason.INVALID_HEX, field=field)
