"""Runtime layer: cancellation, retry policy, request governor and observability."""

from .cancellation import CancellationToken
from .governor import AttemptEvent, AttemptHook, QueueStatus, RequestGovernor, RequestState
from .retry import Backoff, ConstantBackoff, ExponentialBackoff, RetryPolicy

__all__ = [
    "CancellationToken",
    "AttemptEvent", "AttemptHook", "QueueStatus", "RequestGovernor", "RequestState",
    "Backoff", "ConstantBackoff", "ExponentialBackoff", "RetryPolicy",
]
