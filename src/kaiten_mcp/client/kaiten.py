"""Typed facade over the Kaiten REST API.

One method per endpoint. Each builds the request (path, query, body,
headers) and hands a single-attempt ``send`` to the request governor. The
client performs no caching and no shaping: it returns the decoded upstream
representation unmodified, or raises the governor's typed error.

Mutating calls carry an ``Idempotency-Key`` header. The key is generated
once per logical call, so every retry of that call replays the same key.
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import TYPE_CHECKING, Callable

from kaiten_mcp.foundation.http import Response, Transport
from kaiten_mcp.runtime.cancellation import CancellationToken
from kaiten_mcp.runtime.governor import QueueStatus, RequestGovernor

from .params import CardCreate, CardSearch, CardUpdate, UserQuery

if TYPE_CHECKING:
    from kaiten_mcp.foundation.types import JsonDict, JsonList, JsonValue

logger = logging.getLogger("kaiten_mcp.client")

IDEMPOTENCY_HEADER = "Idempotency-Key"

# Fixed ordering for board/space card listings
_LISTING_ORDER: JsonDict = {"sort_by": "created", "sort_direction": "desc"}


def new_idempotency_key() -> str:
    """High-entropy key combining a millisecond timestamp and 8 random bytes.

    Example:
        >>> new_idempotency_key()  # doctest: +SKIP
        'mcp-1718035200000-9f86d081884c7d65'
    """
    return f"mcp-{int(time.time() * 1000)}-{secrets.token_hex(8)}"


class KaitenClient:
    """Resource client for one Kaiten account.

    Args:
        transport: Performs HTTP exchanges
        governor: Applies concurrency, rate and retry policy
        timeout: Per-attempt transport timeout in seconds
        key_factory: Generates idempotency keys for mutating calls

    Example:
        >>> client = KaitenClient(transport, RequestGovernor(concurrency=5))
        >>> card = await client.get_card(42)
        >>> card["title"]
        'Fix login'
    """

    __slots__ = ("_transport", "_governor", "_timeout", "_key_factory")

    def __init__(
        self,
        transport: Transport,
        governor: RequestGovernor,
        *,
        timeout: float = 10.0,
        key_factory: Callable[[], str] = new_idempotency_key,
    ) -> None:
        self._transport = transport
        self._governor = governor
        self._timeout = timeout
        self._key_factory = key_factory

    @property
    def governor(self) -> RequestGovernor:
        return self._governor

    def queue_status(self) -> QueueStatus:
        return self._governor.queue_status()

    # ─────────────────────────────────────────────────────────────────────────
    # Request plumbing
    # ─────────────────────────────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        *,
        query: JsonDict | None = None,
        body: JsonValue = None,
        idempotency_key: str | None = None,
        token: CancellationToken | None = None,
    ) -> JsonValue:
        headers = {IDEMPOTENCY_HEADER: idempotency_key} if idempotency_key else None

        async def send(attempt_token: CancellationToken) -> Response:
            return await self._transport.send(
                method, path, query=query, body=body, headers=headers,
                timeout=self._timeout, token=attempt_token,
            )

        response = await self._governor.execute(send, token=token, label=f"{method} {path}")
        return response.json_body()

    async def _mutate(
        self,
        method: str,
        path: str,
        *,
        body: JsonValue = None,
        idempotency_key: str | None = None,
        token: CancellationToken | None = None,
    ) -> JsonValue:
        key = idempotency_key or self._key_factory()
        logger.debug(f"{method} {path} with idempotency key {key}")
        return await self._request(method, path, body=body, idempotency_key=key, token=token)

    # ─────────────────────────────────────────────────────────────────────────
    # Cards
    # ─────────────────────────────────────────────────────────────────────────

    async def get_card(self, card_id: int, *, token: CancellationToken | None = None) -> JsonDict:
        return await self._request("GET", f"/cards/{card_id}", token=token)  # type: ignore[return-value]

    async def create_card(
        self, params: CardCreate, *, idempotency_key: str | None = None, token: CancellationToken | None = None,
    ) -> JsonDict:
        return await self._mutate("POST", "/cards", body=params.payload(),  # type: ignore[return-value]
                                  idempotency_key=idempotency_key, token=token)

    async def update_card(
        self, card_id: int, params: CardUpdate, *,
        idempotency_key: str | None = None, token: CancellationToken | None = None,
    ) -> JsonDict:
        return await self._mutate("PATCH", f"/cards/{card_id}", body=params.payload(),  # type: ignore[return-value]
                                  idempotency_key=idempotency_key, token=token)

    async def delete_card(
        self, card_id: int, *, idempotency_key: str | None = None, token: CancellationToken | None = None,
    ) -> None:
        await self._mutate("DELETE", f"/cards/{card_id}", idempotency_key=idempotency_key, token=token)

    async def get_board_cards(
        self, board_id: int, *, limit: int = 10, skip: int = 0, condition: int = 1,
        token: CancellationToken | None = None,
    ) -> JsonList:
        query = {"limit": limit, "skip": skip, **_LISTING_ORDER, "condition": condition}
        return await self._request("GET", f"/boards/{board_id}/cards", query=query, token=token)  # type: ignore[return-value]

    async def get_space_cards(
        self, space_id: int, *, limit: int = 10, skip: int = 0, condition: int = 1,
        token: CancellationToken | None = None,
    ) -> JsonList:
        query = {"limit": limit, "skip": skip, **_LISTING_ORDER, "condition": condition}
        return await self._request("GET", f"/spaces/{space_id}/cards", query=query, token=token)  # type: ignore[return-value]

    async def search_cards(self, params: CardSearch, *, token: CancellationToken | None = None) -> JsonList:
        return await self._request("GET", "/cards", query=params.payload(), token=token)  # type: ignore[return-value]

    async def get_card_children(self, card_id: int, *, token: CancellationToken | None = None) -> JsonList:
        return await self._request("GET", f"/cards/{card_id}/children", token=token)  # type: ignore[return-value]

    # ─────────────────────────────────────────────────────────────────────────
    # Comments
    # ─────────────────────────────────────────────────────────────────────────

    async def get_card_comments(self, card_id: int, *, token: CancellationToken | None = None) -> JsonList:
        return await self._request("GET", f"/cards/{card_id}/comments", token=token)  # type: ignore[return-value]

    async def create_comment(
        self, card_id: int, text: str, *, idempotency_key: str | None = None, token: CancellationToken | None = None,
    ) -> JsonDict:
        return await self._mutate("POST", f"/cards/{card_id}/comments", body={"text": text},  # type: ignore[return-value]
                                  idempotency_key=idempotency_key, token=token)

    async def update_comment(
        self, card_id: int, comment_id: int, text: str, *,
        idempotency_key: str | None = None, token: CancellationToken | None = None,
    ) -> JsonDict:
        return await self._mutate("PATCH", f"/cards/{card_id}/comments/{comment_id}",  # type: ignore[return-value]
                                  body={"text": text}, idempotency_key=idempotency_key, token=token)

    async def delete_comment(
        self, card_id: int, comment_id: int, *,
        idempotency_key: str | None = None, token: CancellationToken | None = None,
    ) -> None:
        await self._mutate("DELETE", f"/cards/{card_id}/comments/{comment_id}",
                           idempotency_key=idempotency_key, token=token)

    # ─────────────────────────────────────────────────────────────────────────
    # Spaces and boards
    # ─────────────────────────────────────────────────────────────────────────

    async def list_spaces(self, *, token: CancellationToken | None = None) -> JsonList:
        return await self._request("GET", "/spaces", token=token)  # type: ignore[return-value]

    async def get_space(self, space_id: int, *, token: CancellationToken | None = None) -> JsonDict:
        return await self._request("GET", f"/spaces/{space_id}", token=token)  # type: ignore[return-value]

    async def list_boards(self, space_id: int, *, token: CancellationToken | None = None) -> JsonList:
        return await self._request("GET", f"/spaces/{space_id}/boards", token=token)  # type: ignore[return-value]

    async def get_board(self, board_id: int, *, token: CancellationToken | None = None) -> JsonDict:
        return await self._request("GET", f"/boards/{board_id}", token=token)  # type: ignore[return-value]

    async def list_columns(self, board_id: int, *, token: CancellationToken | None = None) -> JsonList:
        return await self._request("GET", f"/boards/{board_id}/columns", token=token)  # type: ignore[return-value]

    async def list_lanes(self, board_id: int, *, token: CancellationToken | None = None) -> JsonList:
        return await self._request("GET", f"/boards/{board_id}/lanes", token=token)  # type: ignore[return-value]

    async def list_card_types(self, board_id: int, *, token: CancellationToken | None = None) -> JsonList:
        return await self._request("GET", f"/boards/{board_id}/card_types", token=token)  # type: ignore[return-value]

    # ─────────────────────────────────────────────────────────────────────────
    # Users
    # ─────────────────────────────────────────────────────────────────────────

    async def get_current_user(self, *, token: CancellationToken | None = None) -> JsonDict:
        return await self._request("GET", "/users/current", token=token)  # type: ignore[return-value]

    async def list_users(self, params: UserQuery | None = None, *, token: CancellationToken | None = None) -> JsonList:
        query = params.payload() if params else None
        return await self._request("GET", "/users", query=query or None, token=token)  # type: ignore[return-value]
