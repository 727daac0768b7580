"""Value types shared by the transport, the classifier and the governor.

The transport contract is a single ``send`` operation that either returns a
``Response`` (any status code) or raises ``TransportFailure`` when no
response was received at all.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated, Protocol, runtime_checkable

import orjson
from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from kaiten_mcp.foundation.types import JsonDict, JsonValue

if TYPE_CHECKING:
    from kaiten_mcp.runtime.cancellation import CancellationToken


class Response(BaseModel):
    """HTTP response as seen by the governor. Header names are lower-cased."""

    model_config = ConfigDict(frozen=True, extra="forbid", revalidate_instances="never")

    status_code: Annotated[int, Field(ge=100, le=599)]
    headers: dict[str, str] = Field(default_factory=dict, repr=False)
    text: str = Field(default="", repr=False)
    elapsed_ms: float = 0.0

    @field_validator("headers", mode="before")
    @classmethod
    def _lower_headers(cls, v: dict[str, str] | None) -> dict[str, str]:
        return {str(k).lower(): str(val) for k, val in (v or {}).items()}

    @computed_field
    @property
    def is_success(self) -> bool:
        """Whether response indicates success (2xx)."""
        return 200 <= self.status_code < 300

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    def json_body(self) -> JsonValue:
        """Decode body as JSON. Empty bodies (e.g. 204) decode to None."""
        return orjson.loads(self.text) if self.text.strip() else None


class TransportFailure(Exception):
    """No response was received: connection refused, DNS failure, timeout.

    Attributes:
        timed_out: True when the failure is time-bound
        code: Low-level error name (exception class, errno text)
    """

    __slots__ = ("timed_out", "code")

    def __init__(self, message: str, *, timed_out: bool = False, code: str | None = None) -> None:
        self.timed_out = timed_out
        self.code = code
        super().__init__(message)


@runtime_checkable
class Transport(Protocol):
    """Outbound HTTP collaborator used by the resource client."""

    async def send(
        self,
        method: str,
        path: str,
        *,
        query: JsonDict | None = None,
        body: JsonValue = None,
        headers: dict[str, str] | None = None,
        timeout: float,
        token: CancellationToken | None = None,
    ) -> Response:
        """Perform one HTTP exchange. Raises TransportFailure when no response arrives."""
        ...

    async def aclose(self) -> None: ...
