"""
Retry/backoff policy for Vault operations.

Wraps a single logical operation with bounded retries using tenacity. Only
``TransientError`` is retried; every other error kind propagates on the first
attempt. When the attempt budget is exhausted the last ``TransientError`` is
re-raised unchanged (``reraise=True``), never wrapped in a new kind.

Backoff:
    delay(n) = base_delay × 2^(n-1) ± uniform(jitter), clamped to [0, max_delay]
    where n is the number of attempts made so far.

Example:
    >>> policy = RetryPolicy(max_attempts=3, base_delay=0.5)
    >>> data = policy.call(lambda: requester.get("secret/data/database"))
"""

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
)
from tenacity.wait import wait_base

from vaultkit.exceptions import TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 0.5
DEFAULT_MAX_DELAY = 10.0
DEFAULT_JITTER = 0.25


class wait_exponential_with_jitter(wait_base):  # noqa: N801 - matches tenacity naming
    """Exponential backoff with symmetric random jitter, capped at max_delay."""

    def __init__(
        self,
        base_delay: float,
        max_delay: float,
        jitter: float,
        rng: Callable[[float, float], float] = random.uniform,
    ) -> None:
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self._rng = rng

    def __call__(self, retry_state: RetryCallState) -> float:
        exponent = max(retry_state.attempt_number - 1, 0)
        delay = self.base_delay * (2**exponent)
        if self.jitter:
            delay += self._rng(-self.jitter, self.jitter)
        return min(max(delay, 0.0), self.max_delay)


def with_retry(
    operation: Callable[[], T],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    *,
    max_delay: float = DEFAULT_MAX_DELAY,
    jitter: float = DEFAULT_JITTER,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run ``operation`` retrying only on TransientError.

    Args:
        operation: Zero-argument callable performing one attempt
        max_attempts: Total attempts including the first (>= 1)
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for any single delay, in seconds
        jitter: Maximum random deviation added to or subtracted from each delay
        sleep: Sleep function (injectable for tests)

    Returns:
        The operation's result

    Raises:
        TransientError: The last transient failure once attempts are exhausted
        VaultClientError: Any non-transient failure, immediately
        ValueError: If max_attempts < 1
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    retrying = Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential_with_jitter(base_delay, max_delay, jitter),
        retry=retry_if_exception_type(TransientError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=sleep,
        reraise=True,
    )
    return retrying(operation)


@dataclass(frozen=True)
class RetryPolicy:
    """Bundled retry parameters, shared by the requester and lease manager."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_BASE_DELAY
    max_delay: float = DEFAULT_MAX_DELAY
    jitter: float = DEFAULT_JITTER

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay < 0 or self.max_delay < 0 or self.jitter < 0:
            raise ValueError("Retry delays and jitter must be non-negative")

    def call(
        self,
        operation: Callable[[], T],
        sleep: Callable[[float], None] = time.sleep,
    ) -> T:
        return with_retry(
            operation,
            self.max_attempts,
            self.base_delay,
            max_delay=self.max_delay,
            jitter=self.jitter,
            sleep=sleep,
        )
