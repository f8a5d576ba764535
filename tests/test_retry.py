"""
Tests for bounded retries.
"""
import time
from unittest.mock import MagicMock

import pytest

from zkp2p_sdk.exceptions import (
    APIError,
    APIReason,
    ContractError,
    NetworkError,
    NetworkReason,
    ValidationError,
    is_retryable,
)
from zkp2p_sdk.retry import call_with_retry


def test_success_first_attempt():
    result = call_with_retry(lambda: "ok")
    assert result.ok
    assert result.value == "ok"
    assert result.attempts == 1


def test_retries_network_errors_then_succeeds():
    fn = MagicMock(side_effect=[NetworkError("t", NetworkReason.TIMEOUT), NetworkError("t"), "sig"])
    result = call_with_retry(fn, max_attempts=3)
    assert result.ok
    assert result.value == "sig"
    assert result.attempts == 3


def test_gives_up_after_max_attempts():
    fn = MagicMock(side_effect=NetworkError("t", NetworkReason.TIMEOUT))
    result = call_with_retry(fn, max_attempts=3)
    assert not result.ok
    assert result.attempts == 3
    assert fn.call_count == 3
    assert result.error.reason == NetworkReason.TIMEOUT


def test_linear_backoff(monkeypatch):
    delays = []
    monkeypatch.setattr(time, "sleep", delays.append)
    fn = MagicMock(side_effect=NetworkError("t"))
    call_with_retry(fn, max_attempts=3, backoff_seconds=0.5)
    assert delays == [0.5, 1.0]


def test_non_retryable_error_returned_immediately():
    fn = MagicMock(side_effect=APIError("bad request", status=400))
    result = call_with_retry(fn, max_attempts=5)
    assert fn.call_count == 1
    assert result.error.status == 400


def test_non_sdk_errors_propagate():
    with pytest.raises(KeyError):
        call_with_retry(MagicMock(side_effect=KeyError("x")))


def test_max_attempts_must_be_positive():
    with pytest.raises(ValueError):
        call_with_retry(lambda: 1, max_attempts=0)


@pytest.mark.parametrize("error,expected", [
    (NetworkError("x", NetworkReason.ABORTED), True),
    (APIError("x", status=500), True),
    (APIError("x", status=429), True),
    (APIError("x", status=404), False),
    (APIError("x", status=502, reason=APIReason.MALFORMED_RESPONSE), False),
    (ContractError("reverted"), False),
    (ValidationError("bad"), False),
])
def test_is_retryable(error, expected):
    assert is_retryable(error) is expected
