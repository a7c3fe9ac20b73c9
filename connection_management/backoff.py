"""
Backoff Strategies

This module provides the jittered backoff algorithms used when retrying
connection attempts and transient query failures.

Three algorithms are supported:
- full jitter: uniform between zero and an exponentially growing ceiling
- decorrelated jitter: uniform between the base and three times the previous delay
- custom: a caller supplied function ``(previous_wait, attempt) -> milliseconds``

All delays are expressed in milliseconds, matching the ``base`` and ``cap``
settings. The tenacity adapter converts them to seconds at the boundary.
"""

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Union

from tenacity import RetryCallState

logger = logging.getLogger(__name__)

CustomBackoff = Callable[[Any, int], Any]


class BackoffAlgorithm(str, Enum):
    """
    Backoff algorithm names accepted in configuration.

    The value is also the strategy name reported to retry callbacks.
    """
    FULL = "full"  # Full jitter: randint(0, min(cap, base * 2 ** attempt))
    DECORRELATED = "decorrelated"  # Decorrelated jitter: min(cap, randint(base, previous * 3))
    CUSTOM = "custom"  # Caller supplied function


@dataclass(frozen=True)
class BackoffStrategy:
    """
    A configured backoff algorithm.

    ``function`` is only set for ``BackoffAlgorithm.CUSTOM``.
    """
    algorithm: BackoffAlgorithm = BackoffAlgorithm.FULL
    function: Optional[CustomBackoff] = None

    @property
    def name(self) -> str:
        return self.algorithm.value

    @classmethod
    def from_setting(cls, value: Union[str, CustomBackoff, "BackoffStrategy", None]) -> "BackoffStrategy":
        """
        Build a strategy from a configuration value.

        Unknown names fall back to full jitter instead of failing, so a typo
        in configuration degrades to the default algorithm.
        """
        if isinstance(value, BackoffStrategy):
            return value
        if callable(value):
            return cls(BackoffAlgorithm.CUSTOM, value)
        if isinstance(value, str):
            tag = value.strip().lower()
            if tag == BackoffAlgorithm.DECORRELATED.value:
                return cls(BackoffAlgorithm.DECORRELATED)
            if tag != BackoffAlgorithm.FULL.value:
                logger.debug(f"Unknown backoff algorithm '{value}', using full jitter")
        return cls(BackoffAlgorithm.FULL)


def _rand_range(low: int, high: int) -> int:
    return random.randint(low, high) if high >= low else low


def full_jitter(attempt: int, base: int, cap: int) -> int:
    """Uniform delay in [0, min(cap, base * 2 ** attempt)]."""
    return _rand_range(0, min(cap, base * 2 ** attempt))


def decorrelated_jitter(previous_delay: int, base: int, cap: int) -> int:
    """Uniform delay in [base, max(base, previous_delay * 3)], capped."""
    return min(cap, _rand_range(base, max(base, int(previous_delay) * 3)))


def compute_delay(
    strategy: BackoffStrategy,
    attempt: int,
    previous_delay: Any = 0,
    base: int = 2,
    cap: int = 100,
) -> Any:
    """
    Compute the delay in milliseconds before retry number ``attempt``.

    Args:
        strategy: Configured backoff strategy
        attempt: Retry number, starting at 1 for the first retry
        previous_delay: Delay used before the previous retry (or the caller's
                        wait hint on the first retry)
        base: Base delay in milliseconds
        cap: Maximum delay in milliseconds

    Returns:
        The delay in milliseconds. Custom functions are passed through
        without validation.
    """
    if strategy.algorithm is BackoffAlgorithm.CUSTOM:
        return strategy.function(previous_delay, attempt)
    if strategy.algorithm is BackoffAlgorithm.DECORRELATED:
        return decorrelated_jitter(previous_delay or 0, base, cap)
    return full_jitter(attempt, base, cap)


class BackoffWait:
    """
    tenacity ``wait`` adapter around a backoff strategy.

    Remembers the delay it produced last so decorrelated jitter and custom
    functions receive the previous wait. ``last_delay_ms`` is the raw value
    in milliseconds, for reporting to retry callbacks.

    tenacity asks for the wait before it checks the stop condition, so when
    ``max_attempts`` is given the strategy is not consulted for the final
    attempt, which is never followed by a retry.
    """

    def __init__(
        self,
        strategy: BackoffStrategy,
        base: int,
        cap: int,
        initial_delay: Any = 0,
        max_attempts: Optional[int] = None,
    ):
        self.strategy = strategy
        self.base = base
        self.cap = cap
        self.max_attempts = max_attempts
        self.last_delay_ms = initial_delay if isinstance(initial_delay, int) else 0

    def __call__(self, retry_state: RetryCallState) -> float:
        if self.max_attempts is not None and retry_state.attempt_number >= self.max_attempts:
            return 0.0
        delay = compute_delay(
            self.strategy,
            retry_state.attempt_number,
            self.last_delay_ms,
            self.base,
            self.cap,
        )
        self.last_delay_ms = delay
        try:
            return max(0.0, float(delay) / 1000.0)
        except (TypeError, ValueError):
            return 0.0
