"""Retry policies with pluggable backoff."""

from .backoff import Backoff, ConstantBackoff, ExponentialBackoff
from .policy import DEFAULT_RETRYABLE, NO_RETRY, RetryCallback, RetryPolicy, execute_with_retry

__all__ = [
    "Backoff", "ExponentialBackoff", "ConstantBackoff",
    "RetryPolicy", "RetryCallback", "NO_RETRY", "DEFAULT_RETRYABLE", "execute_with_retry",
]
