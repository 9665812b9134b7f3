"""
Bounded retry for provider calls.

Only TransientProviderError is retried. Everything else (fatal provider
errors, programming errors) propagates on the first raise. The sleep
function is injectable so tests can run the policy without waiting.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from .errors import TransientProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-delay retry: at most ``max_attempts`` calls, ``delay`` seconds apart."""
    max_attempts: int = 3
    delay: float = 2.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay < 0:
            raise ValueError("delay must not be negative")

    @classmethod
    def from_config(cls, retry_config) -> "RetryPolicy":
        return cls(max_attempts=retry_config.max_attempts, delay=retry_config.delay)


def call_with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "provider call",
) -> T:
    """
    Call ``fn`` until it succeeds, retrying transient errors.

    Args:
        fn: Zero-argument callable performing one attempt
        policy: Attempt bound and delay
        sleep: Called with the delay between attempts
        label: Used in log messages

    Returns:
        The value returned by the first successful attempt

    Raises:
        TransientProviderError: The last transient error, once attempts are exhausted
        Exception: Any non-transient error, immediately
    """
    attempt = 1
    while True:
        try:
            return fn()
        except TransientProviderError as e:
            if attempt >= policy.max_attempts:
                logger.warning(
                    "%s failed after %d attempt(s): %s", label, attempt, e,
                )
                raise
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                label, attempt, policy.max_attempts, policy.delay, e,
            )
            if policy.delay > 0:
                sleep(policy.delay)
            attempt += 1
