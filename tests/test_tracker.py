"""
Tests for transaction trackers and the submission guard.
"""
import pytest

from zkp2p_sdk.exceptions import TrackerStateError
from zkp2p_sdk.tracker import StepStatus, SubmissionGuard, TransactionTracker


def test_happy_path():
    tracker = TransactionTracker("fulfillIntent")
    tracker.start_signing()
    assert tracker.is_loading
    tracker.mark_signed("0xabc")
    assert tracker.signing == StepStatus.SUCCESS
    assert tracker.mining == StepStatus.LOADING
    tracker.mark_mined()
    assert tracker.mining == StepStatus.SUCCESS
    assert tracker.tx_hash == "0xabc"
    assert tracker.is_terminal
    assert not tracker.is_loading


def test_cannot_mine_before_signing():
    tracker = TransactionTracker("cancelIntent")
    tracker.start_signing()
    with pytest.raises(TrackerStateError):
        tracker.mark_mined()


def test_failed_tracker_is_terminal():
    tracker = TransactionTracker("signalIntent")
    tracker.start_signing()
    tracker.mark_failed(RuntimeError("boom"))
    assert tracker.signing == StepStatus.ERROR
    assert tracker.is_terminal
    with pytest.raises(TrackerStateError, match="start a new attempt"):
        tracker.start_signing()


def test_discarded_tracker_rejects_updates():
    tracker = TransactionTracker("signalIntent")
    tracker.start_signing()
    tracker.discard()
    with pytest.raises(TrackerStateError, match="discarded"):
        tracker.mark_signed("0x1")


def test_guard_blocks_concurrent_submission():
    guard = SubmissionGuard()
    first = guard.begin("0xintent", "fulfillIntent")
    with pytest.raises(TrackerStateError, match="already in flight"):
        guard.begin("0xintent", "fulfillIntent")
    # A different action on the same key is independent
    guard.begin("0xintent", "cancelIntent")
    assert guard.active("0xintent", "fulfillIntent") is first


def test_guard_allows_new_attempt_after_failure():
    guard = SubmissionGuard()
    first = guard.begin("0xintent", "fulfillIntent")
    first.mark_failed(RuntimeError("reverted"))
    second = guard.begin("0xintent", "fulfillIntent")
    assert second is not first
    assert second.signing == StepStatus.LOADING


def test_guard_release_discards_loading_tracker():
    guard = SubmissionGuard()
    tracker = guard.begin("deposit:1", "withdrawDeposit")
    guard.release("deposit:1", "withdrawDeposit")
    assert tracker.discarded
    assert guard.active("deposit:1", "withdrawDeposit") is None


def test_guard_blocks_submission_while_mining():
    guard = SubmissionGuard()
    first = guard.begin("0xintent", "fulfillIntent")
    first.mark_signed("0x1")
    assert first.signing == StepStatus.SUCCESS
    assert first.mining == StepStatus.LOADING
    with pytest.raises(TrackerStateError, match="already in flight"):
        guard.begin("0xintent", "fulfillIntent")
    assert guard.active("0xintent", "fulfillIntent") is first


def test_guard_complete_forgets_terminal_tracker():
    guard = SubmissionGuard()
    tracker = guard.begin("deposit:7", "withdrawDeposit")
    guard.complete("deposit:7", "withdrawDeposit", tracker)
    # Still loading, so it stays registered
    assert guard.active("deposit:7", "withdrawDeposit") is tracker
    tracker.mark_signed("0x1")
    tracker.mark_mined()
    guard.complete("deposit:7", "withdrawDeposit", tracker)
    assert guard.active("deposit:7", "withdrawDeposit") is None
    assert len(guard) == 0


def test_guard_complete_ignores_replaced_tracker():
    guard = SubmissionGuard()
    old = guard.begin("0xintent", "cancelIntent")
    old.mark_failed(RuntimeError("reverted"))
    new = guard.begin("0xintent", "cancelIntent")
    guard.complete("0xintent", "cancelIntent", old)
    assert guard.active("0xintent", "cancelIntent") is new


def test_guard_begin_prunes_terminal_trackers():
    guard = SubmissionGuard()
    for i in range(5):
        tracker = guard.begin(f"0xintent{i}", "fulfillIntent")
        tracker.mark_failed(RuntimeError("reverted"))
    guard.begin("0xother", "fulfillIntent")
    assert len(guard) == 1
