"""Backoff strategies for retry policies.

- ExponentialBackoff: base * multiplier^attempt, capped, optional jitter
- ConstantBackoff: fixed delay (tests use ConstantBackoff(0))
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@runtime_checkable
class Backoff(Protocol):
    """Delay calculation. Attempt numbers are 0-indexed (first retry = attempt 0)."""

    def delay(self, attempt: int) -> float: ...


@dataclass(frozen=True, slots=True)
class ExponentialBackoff:
    """Exponential backoff with optional jitter.

    Delay = min(base * (multiplier ^ attempt), max_delay) * jitter

    Attributes:
        base: Initial delay in seconds (default: 1.0)
        max_delay: Maximum delay cap in seconds (default: 30.0)
        multiplier: Exponential growth factor (default: 2.0)
        jitter: Add randomization 0.5-1.5x (default: False)
    """

    base: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    jitter: bool = False

    def delay(self, attempt: int) -> float:
        d = min(self.base * (self.multiplier ** attempt), self.max_delay)
        return d * (0.5 + random.random()) if self.jitter else d


@dataclass(frozen=True, slots=True)
class ConstantBackoff:
    delay_seconds: float = 1.0

    def delay(self, attempt: int) -> float:
        return self.delay_seconds
