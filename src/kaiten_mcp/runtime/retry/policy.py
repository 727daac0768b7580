"""Retry policy for upstream requests.

Decides whether a classified failure is retried and how long to wait. A
server-specified ``Retry-After`` on a rate-limited response always wins
over the computed backoff.
"""

from __future__ import annotations

from typing import Annotated

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_serializer,
    field_validator,
)

from kaiten_mcp.foundation.errors import RETRYABLE_KINDS, ErrorKind, KaitenError

from .backoff import Backoff, ExponentialBackoff


class RetryPolicy(BaseModel):
    """Configurable retry policy used by the request governor.

    Attributes:
        max_retries: Retries allowed after the first attempt (0 = no retries)
        backoff: Backoff strategy for computed delays
        retryable_kinds: Error kinds that trigger a retry

    Example:
        >>> policy = RetryPolicy(max_retries=3, backoff=ExponentialBackoff(base=1.0, jitter=0.5))
        >>> policy.should_retry(KaitenError.create(ErrorKind.SERVER_ERROR, "boom"), retry=1)
        True
    """

    model_config = ConfigDict(
        frozen=True,
        arbitrary_types_allowed=True,  # For Backoff protocol
        validate_default=True,
        extra="forbid",
        revalidate_instances="never",
    )

    max_retries: Annotated[int, Field(ge=0, le=10)] = 3
    backoff: Backoff = Field(default_factory=ExponentialBackoff, repr=False)
    retryable_kinds: frozenset[ErrorKind] = RETRYABLE_KINDS

    @field_validator("retryable_kinds", mode="before")
    @classmethod
    def _normalize_kinds(cls, v: frozenset[ErrorKind] | set[str] | list[str] | tuple[str, ...]) -> frozenset[ErrorKind]:
        """Accept strings and convert to ErrorKind enum."""
        return frozenset(ErrorKind(k) for k in v)

    @field_serializer("retryable_kinds")
    def _serialize_kinds(self, v: frozenset[ErrorKind]) -> list[str]:
        return sorted(k.value for k in v)

    @computed_field
    @property
    def is_disabled(self) -> bool:
        """Whether retries are effectively disabled."""
        return self.max_retries == 0 or not self.retryable_kinds

    @classmethod
    def from_millis(cls, max_retries: int, base_ms: float, jitter_ms: float) -> RetryPolicy:
        """Build the default exponential policy from millisecond settings."""
        return cls(max_retries=max_retries, backoff=ExponentialBackoff(base=base_ms / 1000, jitter=jitter_ms / 1000))

    def should_retry(self, error: KaitenError, retry: int) -> bool:
        """Whether to run retry number ``retry`` (1-indexed) after ``error``."""
        return retry <= self.max_retries and error.kind in self.retryable_kinds

    def get_delay(self, error: KaitenError, retry: int) -> float:
        """Delay in seconds before retry number ``retry``.

        A rate-limited error with a server-supplied ``retry_after`` is used
        verbatim; everything else follows the backoff strategy.
        """
        if (retry_after := error.retry_after) is not None:
            return retry_after
        return self.backoff.delay(retry)


NO_RETRY = RetryPolicy(max_retries=0, retryable_kinds=frozenset())
