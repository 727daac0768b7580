"""Retry policy and backoff strategies for the request governor."""

from .backoff import Backoff, ConstantBackoff, ExponentialBackoff
from .policy import NO_RETRY, RetryPolicy

__all__ = ["Backoff", "ConstantBackoff", "ExponentialBackoff", "NO_RETRY", "RetryPolicy"]
