"""Retry policy for provider calls and tool dispatch.

Exception based: an operation is retried when it raises a `PatternError`
whose code is in the policy's retryable set. Anything else (schema
violations, malformed responses, cancellation) propagates on the first
occurrence.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Annotated, Callable, Self, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from agentpatterns.foundation.errors import ErrorCode, PatternError, ProviderRateLimited
from agentpatterns.runtime.concurrency import checkpoint

from .backoff import Backoff, ExponentialBackoff

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from agentpatterns.foundation.config import RetrySettings

T = TypeVar("T")

DEFAULT_RETRYABLE: frozenset[ErrorCode] = frozenset({
    ErrorCode.RATE_LIMITED,
    ErrorCode.TIMEOUT,
    ErrorCode.NETWORK_ERROR,
})

# (attempt, error, delay) - attempt is 0-indexed
RetryCallback = Callable[[int, PatternError, float], None]


class RetryPolicy(BaseModel):
    """Bounded retry configuration.

    Attributes:
        max_retries: Retries after the first attempt (0 = no retries)
        backoff: Delay calculation between attempts
        retryable_codes: Error codes that trigger a retry
        honor_retry_after: Use a rate-limit's retry_after hint when it is larger

    Example:
        >>> policy = RetryPolicy(max_retries=2, backoff=ExponentialBackoff(base=1.0))
        >>> policy.should_retry(ErrorCode.TIMEOUT, 0)
        True
        >>> policy.should_retry(ErrorCode.MALFORMED_RESPONSE, 0)
        False
    """

    model_config = ConfigDict(
        frozen=True,
        arbitrary_types_allowed=True,  # For Backoff protocol
        validate_default=True,
        extra="forbid",
    )

    max_retries: Annotated[int, Field(ge=0, le=10)] = 2
    backoff: Backoff = Field(default_factory=ExponentialBackoff, repr=False)
    retryable_codes: frozenset[ErrorCode] = DEFAULT_RETRYABLE
    honor_retry_after: bool = True

    @field_validator("retryable_codes", mode="before")
    @classmethod
    def _normalize_codes(cls, v: frozenset[ErrorCode] | set[str] | list[str] | tuple[str, ...]) -> frozenset[ErrorCode]:
        """Accept strings and convert to ErrorCode enum."""
        return frozenset(ErrorCode(c) if isinstance(c, str) else c for c in v)

    @field_serializer("retryable_codes")
    def _serialize_codes(self, v: frozenset[ErrorCode]) -> list[str]:
        return sorted(c.value for c in v)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    @classmethod
    def from_settings(cls, settings: RetrySettings, **overrides: object) -> Self:
        backoff = ExponentialBackoff(base=settings.base_delay, max_delay=settings.max_delay,
                                     multiplier=settings.multiplier, jitter=settings.jitter)
        return cls(**{"max_retries": settings.max_retries, "backoff": backoff, **overrides})

    def should_retry(self, code: ErrorCode | str, attempt: int) -> bool:
        """Whether a failure with `code` after retry number `attempt` is retried."""
        if attempt >= self.max_retries:
            return False
        return ErrorCode(code) in self.retryable_codes

    def get_delay(self, attempt: int, error: PatternError | None = None) -> float:
        delay = self.backoff.delay(attempt)
        if self.honor_retry_after and isinstance(error, ProviderRateLimited) and error.retry_after:
            return max(delay, error.retry_after)
        return delay

    def __hash__(self) -> int:
        return hash((self.max_retries, tuple(sorted(c.value for c in self.retryable_codes))))


NO_RETRY = RetryPolicy(max_retries=0, retryable_codes=frozenset())


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    on_retry: RetryCallback | None = None,
) -> T:
    """Run `operation`, retrying retryable PatternErrors per `policy`.

    Uses cooperative cancellation points around each backoff sleep.

    Returns:
        Result of the first successful attempt

    Raises:
        The last PatternError when retries are exhausted, or the first
        non-retryable error.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except PatternError as e:
            if not policy.should_retry(e.code, attempt):
                raise
            delay = policy.get_delay(attempt, e)
            if on_retry:
                on_retry(attempt, e, delay)
            await checkpoint()
            await asyncio.sleep(delay)
            await checkpoint()
            attempt += 1
