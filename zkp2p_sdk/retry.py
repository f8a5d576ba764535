"""
Bounded retries that return results instead of raising.

The intent flow branches on the error kind of a failed step, so retry loops
hand back a ``StepResult`` rather than letting exceptions steer control flow.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from .exceptions import Zkp2pError, is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class StepResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[Zkp2pError] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T, attempts: int = 1) -> "StepResult[T]":
        return cls(value=value, attempts=attempts)

    @classmethod
    def failure(cls, error: Zkp2pError, attempts: int = 1) -> "StepResult[T]":
        return cls(error=error, attempts=attempts)


def call_with_retry(
    fn: Callable[[], T],
    max_attempts: int = 3,
    backoff_seconds: float = 1.0,
    description: str = "request",
) -> StepResult[T]:
    """
    Call fn up to max_attempts times with linear backoff.

    Only SDK errors classed as retryable (network failures, 429 and 5xx)
    are attempted again; any other SDK error is returned at once. Errors
    that are not ``Zkp2pError`` propagate.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    attempt = 0
    while True:
        attempt += 1
        try:
            return StepResult.success(fn(), attempts=attempt)
        except Zkp2pError as e:
            if not is_retryable(e) or attempt >= max_attempts:
                logger.warning(f"{description} failed after {attempt} attempt(s): {e}")
                return StepResult.failure(e, attempts=attempt)
            delay = backoff_seconds * attempt
            logger.info(f"Retrying {description} (attempt {attempt + 1}/{max_attempts}) in {delay:.2f}s: {e}")
            time.sleep(delay)
