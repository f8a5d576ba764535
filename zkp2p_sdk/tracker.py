"""
Transaction status tracking.

A tracker follows one attempt at one on-chain action through signing and
mining. Failed trackers are terminal: a retry always uses a new tracker.
"""
import logging
import threading
from enum import Enum
from typing import Dict, Optional, Tuple

from .exceptions import TrackerStateError

logger = logging.getLogger(__name__)


class StepStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class TransactionTracker:
    """Signing/mining state for a single submission attempt."""

    def __init__(self, action: str):
        self.action = action
        self.signing = StepStatus.IDLE
        self.mining = StepStatus.IDLE
        self.tx_hash: Optional[str] = None
        self.error: Optional[BaseException] = None
        self.discarded = False

    def __repr__(self) -> str:
        return f"TransactionTracker({self.action!r}, signing={self.signing.value}, mining={self.mining.value})"

    @property
    def is_loading(self) -> bool:
        return StepStatus.LOADING in (self.signing, self.mining)

    @property
    def is_terminal(self) -> bool:
        return self.mining in (StepStatus.SUCCESS, StepStatus.ERROR) or self.discarded

    def _check_open(self) -> None:
        if self.discarded:
            raise TrackerStateError(f"Tracker for {self.action} was discarded")
        if StepStatus.ERROR in (self.signing, self.mining):
            raise TrackerStateError(f"Tracker for {self.action} failed; start a new attempt")

    def start_signing(self) -> None:
        self._check_open()
        if self.signing != StepStatus.IDLE or self.mining != StepStatus.IDLE:
            raise TrackerStateError(
                f"Cannot start signing {self.action}: signing={self.signing.value}, mining={self.mining.value}"
            )
        self.signing = StepStatus.LOADING

    def mark_signed(self, tx_hash: str) -> None:
        self._check_open()
        if self.signing != StepStatus.LOADING:
            raise TrackerStateError(f"{self.action} is not being signed")
        self.signing = StepStatus.SUCCESS
        self.mining = StepStatus.LOADING
        self.tx_hash = tx_hash

    def mark_mined(self, tx_hash: Optional[str] = None) -> None:
        self._check_open()
        if self.mining != StepStatus.LOADING:
            raise TrackerStateError(f"{self.action} is not being mined")
        self.mining = StepStatus.SUCCESS
        if tx_hash:
            self.tx_hash = tx_hash

    def mark_failed(self, error: BaseException) -> None:
        self._check_open()
        self.signing = StepStatus.ERROR
        self.mining = StepStatus.ERROR
        self.error = error

    def discard(self) -> None:
        """Abandon the attempt; nothing completes in the background."""
        self.discarded = True


class SubmissionGuard:
    """
    Allows at most one in-flight tracker per (intent key, action).

    Prevents duplicate nonces and duplicate fulfillment attempts when a
    caller re-enters a submission while the previous one is still loading.
    """

    def __init__(self):
        self._active: Dict[Tuple[str, str], TransactionTracker] = {}
        self._lock = threading.RLock()

    def begin(self, key: str, action: str) -> TransactionTracker:
        with self._lock:
            for stale in [k for k, t in self._active.items() if t.is_terminal]:
                del self._active[stale]
            current = self._active.get((key, action))
            if current is not None and current.is_loading and not current.discarded:
                raise TrackerStateError(f"A {action} submission for {key} is already in flight")
            tracker = TransactionTracker(action)
            tracker.start_signing()
            self._active[(key, action)] = tracker
            logger.debug(f"Started {action} tracker for {key}")
            return tracker

    def active(self, key: str, action: str) -> Optional[TransactionTracker]:
        with self._lock:
            return self._active.get((key, action))

    def complete(self, key: str, action: str, tracker: TransactionTracker) -> None:
        """Forget a tracker once it has reached a terminal state."""
        with self._lock:
            if tracker.is_terminal and self._active.get((key, action)) is tracker:
                del self._active[(key, action)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._active)

    def release(self, key: str, action: str) -> None:
        with self._lock:
            tracker = self._active.pop((key, action), None)
        if tracker is not None and not tracker.is_terminal:
            tracker.discard()
