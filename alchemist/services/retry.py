# alchemist/services/retry.py
"""
Fixed-delay retry: the policy is a plain value, the executor is generic.
"""
from __future__ import annotations
import logging, time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _always(_: Exception) -> bool:
    return True


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 4       # first try + 3 retries
    delay: float = 1.0          # seconds between attempts
    is_retryable: Callable[[Exception], bool] = field(default=_always, compare=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.delay < 0:
            raise ValueError("delay must be >= 0")


def run_with_retry(
    fn: Callable[[int], T],
    policy: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "operation",
) -> T:
    """
    Call fn(attempt) with attempt = 1..max_attempts until it returns.
    Re-raises the last error once attempts run out or the error is not retryable.
    """
    attempt = 1
    while True:
        try:
            return fn(attempt)
        except Exception as e:
            if attempt >= policy.max_attempts or not policy.is_retryable(e):
                logger.error("%s failed after %d attempt(s): %s", label, attempt, e)
                raise
            logger.warning("%s attempt %d failed: %s", label, attempt, e)
            attempt += 1
            if policy.delay:
                sleep(policy.delay)
