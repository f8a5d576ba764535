"""
Gas pricing policy.

Fees are derived from the latest base fee: above 5 gwei the network counts
as congested and bids are doubled. All arithmetic is integer wei.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Optional

from cachetools import TTLCache

from ._rate_limited_log import rate_limited_log

logger = logging.getLogger(__name__)

GWEI = 10 ** 9

CONGESTION_THRESHOLD = 5 * GWEI
MIN_PRIORITY_FEE = 1 * GWEI
MIN_MAX_FEE = 2 * GWEI

FALLBACK_PRIORITY_FEE = 2 * GWEI
FALLBACK_MAX_FEE = 4 * GWEI
FALLBACK_BASE_FEE = 1 * GWEI

# Base (L2) produces a block every 2s; one window covers a handful of blocks
DEFAULT_CONGESTION_WINDOW = 12


@dataclass(frozen=True)
class GasPricing:
    priority: int
    max: int
    base_fee: int
    is_congested: bool

    def as_tx_params(self) -> dict:
        """EIP-1559 fee fields for build_transaction."""
        return {"maxPriorityFeePerGas": self.priority, "maxFeePerGas": self.max}


FALLBACK_PRICING = GasPricing(
    priority=FALLBACK_PRIORITY_FEE,
    max=FALLBACK_MAX_FEE,
    base_fee=FALLBACK_BASE_FEE,
    is_congested=False,
)


def compute_gas_pricing(base_fee: int) -> GasPricing:
    """Pure pricing rule for an observed base fee."""
    is_congested = base_fee > CONGESTION_THRESHOLD
    multiplier = 2 if is_congested else 1
    priority = max(base_fee * multiplier // 10, MIN_PRIORITY_FEE)
    max_fee = max(base_fee * multiplier * 12 // 10, MIN_MAX_FEE)
    return GasPricing(priority=priority, max=max_fee, base_fee=base_fee, is_congested=is_congested)


def calculate_gas_with_buffer(estimated: int, is_congested: bool) -> int:
    """Gas limit with a 30% (congested) or 20% buffer, rounded down."""
    return estimated * (130 if is_congested else 120) // 100


class BaseFeeCache:
    """
    Point-in-time base fee observations.

    An observation is never served past one congestion window.
    """

    def __init__(self, window_seconds: int = DEFAULT_CONGESTION_WINDOW):
        self.window_seconds = window_seconds
        self._cache = TTLCache(maxsize=16, ttl=window_seconds)
        self._lock = threading.RLock()

    def get(self, key) -> Optional[int]:
        with self._lock:
            return self._cache.get(key)

    def put(self, key, base_fee: int) -> None:
        with self._lock:
            self._cache[key] = base_fee

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()


def _read_base_fee(w3) -> Optional[int]:
    block = w3.eth.get_block("latest")
    base_fee = block.get("baseFeePerGas") if hasattr(block, "get") else getattr(block, "baseFeePerGas", None)
    return int(base_fee) if base_fee is not None else None


def get_dynamic_gas_pricing(w3, cache: Optional[BaseFeeCache] = None) -> GasPricing:
    """
    Pricing from the latest block's base fee.

    Never raises: if the observation is unavailable the conservative fallback
    pricing is returned so a transaction attempt is never blocked on it.
    """
    if w3 is None:
        rate_limited_log("Web3 not available, using fallback gas prices", logger_instance=logger)
        return FALLBACK_PRICING

    cache_key = id(w3)
    base_fee = cache.get(cache_key) if cache is not None else None
    if base_fee is None:
        try:
            base_fee = _read_base_fee(w3)
        except Exception as e:
            rate_limited_log(f"Failed to fetch base fee, using fallback gas prices: {e}", logger_instance=logger)
            return FALLBACK_PRICING
        if base_fee is None:
            # Pre-London chain or provider without baseFeePerGas
            base_fee = FALLBACK_BASE_FEE
        if cache is not None:
            cache.put(cache_key, base_fee)

    pricing = compute_gas_pricing(base_fee)
    logger.debug(
        f"Dynamic gas pricing: base_fee={pricing.base_fee} priority={pricing.priority} "
        f"max={pricing.max} congested={pricing.is_congested}"
    )
    return pricing
