"""
Payment method resolution.

Converts human-readable processor names ('wise', 'venmo') into the bytes32
identifiers stored on-chain, and fiat currency codes into their padded
bytes32 form.

Catalogs are injected: callers register one per (env, network) in a
``CatalogRegistry`` (or pass one explicitly). Two resolution paths exist on
purpose:

- ``resolve_payment_method_hash`` falls back to ``keccak256(name)`` when no
  catalog entry exists. That hash may not match the on-chain mapping, so it
  is only suitable for read-heavy call sites.
- ``resolve_payment_method_hash_from_catalog`` treats the catalog as
  authoritative and raises ``UnknownProcessorError`` on a miss. Anything that
  writes to the chain uses this path.
"""
import logging
import threading
from typing import Dict, Iterable, Mapping, Optional, Protocol, Tuple

from ._rate_limited_log import rate_limited_log
from .bytes32 import ascii_to_bytes32, ensure_bytes32
from .exceptions import ValidationError, UnknownProcessorError

logger = logging.getLogger(__name__)

DEFAULT_ENV = "production"
DEFAULT_NETWORK = "base"


class CatalogLookup(Protocol):
    """Lookup capability: processor name -> bytes32 hash, or None."""

    def get(self, name: str) -> Optional[str]:
        ...

    def keys(self) -> Iterable[str]:
        ...


class PaymentMethodCatalog:
    """
    Dict-backed catalog.

    Accepts either ``{"wise": "0x..."}`` or the contracts package shape
    ``{"wise": {"paymentMethodHash": "0x...", "currencies": [...]}}``.
    Keys are stored lower-cased.
    """

    def __init__(self, methods: Optional[Mapping[str, object]] = None):
        self._methods: Dict[str, Dict[str, object]] = {}
        for name, entry in (methods or {}).items():
            if isinstance(entry, str):
                entry = {"paymentMethodHash": entry}
            self._methods[name.lower()] = dict(entry)

    def get(self, name: str) -> Optional[str]:
        entry = self._methods.get(name.lower())
        if not entry:
            return None
        return entry.get("paymentMethodHash")

    def currencies(self, name: str) -> list:
        entry = self._methods.get(name.lower()) or {}
        return list(entry.get("currencies") or [])

    def keys(self) -> Iterable[str]:
        return self._methods.keys()

    def items(self):
        return ((name, entry.get("paymentMethodHash")) for name, entry in self._methods.items())

    def __len__(self) -> int:
        return len(self._methods)

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._methods


class CatalogRegistry:
    """Catalogs keyed by (env, network). Thread-safe."""

    def __init__(self):
        self._catalogs: Dict[Tuple[str, str], CatalogLookup] = {}
        self._lock = threading.RLock()

    def register(self, env: str, network: str, catalog) -> CatalogLookup:
        if not isinstance(catalog, PaymentMethodCatalog) and isinstance(catalog, Mapping):
            catalog = PaymentMethodCatalog(catalog)
        with self._lock:
            self._catalogs[(env, network)] = catalog
        logger.debug(f"Registered payment method catalog for {env}/{network}")
        return catalog

    def lookup(self, env: str = DEFAULT_ENV, network: str = DEFAULT_NETWORK) -> Optional[CatalogLookup]:
        with self._lock:
            catalog = self._catalogs.get((env, network))
        if catalog is None or not list(catalog.keys()):
            return None
        return catalog

    def clear(self) -> None:
        with self._lock:
            self._catalogs.clear()


default_registry = CatalogRegistry()


def register_catalog(env: str, network: str, catalog) -> CatalogLookup:
    """Register a catalog in the process-wide registry."""
    return default_registry.register(env, network, catalog)


def resolve_payment_method_hash(
    name_or_bytes: str,
    env: str = DEFAULT_ENV,
    network: str = DEFAULT_NETWORK,
    registry: Optional[CatalogRegistry] = None,
) -> str:
    """
    Resolve a payment method hash, falling back to keccak256(name).

    Warning: the fallback is not guaranteed to match the on-chain value. Use
    resolve_payment_method_hash_from_catalog for anything that writes.
    """
    if name_or_bytes.startswith("0x"):
        return ensure_bytes32(name_or_bytes)

    catalog = (registry or default_registry).lookup(env, network)
    if catalog is not None:
        found = catalog.get(name_or_bytes.lower())
        if found:
            return found

    rate_limited_log(
        f"No catalog entry for payment method '{name_or_bytes}' ({env}/{network}); "
        "using keccak256(name), which may not match the on-chain mapping",
        level="warning",
        interval=300,
        logger_instance=logger,
    )
    return ensure_bytes32(name_or_bytes, hash_if_ascii=True)


def resolve_payment_method_hash_from_catalog(processor_name: str, catalog: Optional[CatalogLookup]) -> str:
    """
    Resolve a payment method hash from an authoritative catalog.

    Raises:
        ValidationError: If processor_name is empty
        UnknownProcessorError: If the catalog has no entry (lists the keys it has)
    """
    if not processor_name:
        raise ValidationError("processorName is required to resolve paymentMethodHash", field="processorName")
    if processor_name.startswith("0x"):
        return ensure_bytes32(processor_name)

    found = catalog.get(processor_name.lower()) if catalog is not None else None
    if found:
        return found
    available = list(catalog.keys()) if catalog is not None else []
    raise UnknownProcessorError(processor_name, available)


def resolve_payment_method_name_from_hash(hash_value: str, catalog: Optional[CatalogLookup]) -> Optional[str]:
    """Reverse lookup of a payment method hash; None when not in the catalog."""
    if not hash_value or catalog is None:
        return None
    target = ensure_bytes32(hash_value).lower()
    for name in catalog.keys():
        found = catalog.get(name)
        if found and found.lower() == target:
            return name
    return None


def resolve_fiat_currency_bytes32(code_or_bytes: str) -> str:
    """Encode a fiat currency code ('usd' -> padded 'USD'); hex passes through."""
    if code_or_bytes.startswith("0x"):
        return ensure_bytes32(code_or_bytes)
    return ascii_to_bytes32(code_or_bytes.upper())
