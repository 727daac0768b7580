"""httpx-backed transport for the Kaiten REST API.

One ``httpx.AsyncClient`` is created lazily and reused for the lifetime of
the transport. Responses of every status are returned as ``Response``;
only the absence of a response raises ``TransportFailure``.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import httpx
import orjson
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_serializer

from kaiten_mcp.foundation.http import Response, TransportFailure
from kaiten_mcp.runtime.observability import mask_secret

if TYPE_CHECKING:
    from kaiten_mcp.foundation.types import JsonDict, JsonValue
    from kaiten_mcp.runtime.cancellation import CancellationToken

USER_AGENT = "kaiten-mcp"


class BearerAuth(BaseModel):
    """Kaiten API credentials. ``model_dump_json`` never exposes the token."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    token: SecretStr = Field(..., description="Kaiten API token")

    @property
    def header(self) -> tuple[str, str]:
        return "Authorization", f"Bearer {self.token.get_secret_value()}"

    def apply(self, headers: dict[str, str]) -> dict[str, str]:
        name, value = self.header
        return {**headers, name: value}

    @field_serializer("token", when_used="json")
    def _masked(self, v: SecretStr) -> str:
        return mask_secret(v.get_secret_value())


class HttpxTransport:
    """Transport performing real HTTP exchanges with httpx.

    Args:
        base_url: API root, e.g. ``https://example.kaiten.ru/api/latest``
        auth: Bearer credentials applied to every request
        timeout: Default per-request timeout in seconds
        user_agent: User-Agent header value
        client: Pre-built client (tests may pass one with ``httpx.MockTransport``)
    """

    __slots__ = ("_base_url", "_auth", "_timeout", "_user_agent", "_client")

    def __init__(
        self,
        base_url: str,
        auth: BearerAuth,
        *,
        timeout: float = 10.0,
        user_agent: str = USER_AGENT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth = auth
        self._timeout = timeout
        self._user_agent = user_agent
        self._client = client

    @property
    def base_url(self) -> str:
        return self._base_url

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers={"User-Agent": self._user_agent, "Accept": "application/json"},
            )
        return self._client

    async def send(
        self,
        method: str,
        path: str,
        *,
        query: JsonDict | None = None,
        body: JsonValue = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        token: CancellationToken | None = None,
    ) -> Response:
        """Perform one HTTP exchange.

        Cancellation is handled by the governor, which cancels the awaiting
        task; httpx aborts the in-flight request when its task is cancelled.

        Raises:
            TransportFailure: Timeout, connection or protocol error
        """
        request_headers = self._auth.apply(headers or {})
        content: bytes | None = None
        if body is not None:
            content = orjson.dumps(body)
            request_headers.setdefault("Content-Type", "application/json")

        start = time.perf_counter()
        try:
            response = await self._get_client().request(
                method=method,
                url=self._base_url + path,
                headers=request_headers,
                params=_query_params(query),
                content=content,
                timeout=timeout or self._timeout,
            )
        except httpx.TimeoutException as e:
            raise TransportFailure(
                f"Request timeout after {(timeout or self._timeout) * 1000:.0f}ms",
                timed_out=True, code=type(e).__name__,
            ) from e
        except httpx.HTTPError as e:
            raise TransportFailure(f"Network error: {e or type(e).__name__}", code=type(e).__name__) from e

        return Response(
            status_code=response.status_code,
            headers=dict(response.headers),
            text=response.text,
            elapsed_ms=(time.perf_counter() - start) * 1000,
        )

    async def aclose(self) -> None:
        """Close the httpx client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def _query_params(query: JsonDict | None) -> dict[str, str | int | float] | None:
    """Drop None values and lower-case booleans the way the API expects."""
    if not query:
        return None
    return {
        k: (str(v).lower() if isinstance(v, bool) else v)
        for k, v in query.items()
        if v is not None
    }
