"""Backoff strategies for the request governor.

- ExponentialBackoff: ``base * 2^(k-1)`` plus additive uniform jitter
- ConstantBackoff: Fixed delay, mostly for tests
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Callable, Protocol, runtime_checkable


@runtime_checkable
class Backoff(Protocol):
    """Protocol for backoff delay calculation.

    Retry numbers are 1-indexed: the first retry after the initial attempt
    is retry 1.
    """

    def delay(self, retry: int) -> float:
        """Calculate delay in seconds before the given retry.

        Args:
            retry: 1-indexed retry number

        Returns:
            Delay in seconds before the retry starts
        """
        ...


@dataclass(frozen=True, slots=True)
class ExponentialBackoff:
    """Exponential backoff with additive jitter.

    Delay = min(base * multiplier^(retry-1), max_delay) + uniform(0, jitter)

    Attributes:
        base: Delay before the first retry, in seconds (default: 1.0)
        jitter: Upper bound of the random term, in seconds (default: 0.5)
        multiplier: Growth factor per retry (default: 2.0)
        max_delay: Cap on the exponential term (default: 30.0)
        rng: Source of uniform randomness in ``[0, 1)``
    """

    base: float = 1.0
    jitter: float = 0.5
    multiplier: float = 2.0
    max_delay: float = 30.0
    rng: Callable[[], float] = field(default=random.random, repr=False, compare=False)

    def delay(self, retry: int) -> float:
        d = min(self.base * (self.multiplier ** (max(retry, 1) - 1)), self.max_delay)
        return d + self.jitter * self.rng() if self.jitter > 0 else d


@dataclass(frozen=True, slots=True)
class ConstantBackoff:
    """Fixed delay between retries.

    Attributes:
        delay_seconds: Fixed delay in seconds (default: 1.0)
    """

    delay_seconds: float = 1.0

    def delay(self, retry: int) -> float:
        return self.delay_seconds
