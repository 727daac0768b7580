"""Tool definitions and dispatcher.

Each tool pairs a pydantic argument model with an async handler. Handlers
call the resource client (through the read-through cache where the resource
is cacheable) and hand the result to the response shaper. ``ToolDispatcher``
validates arguments, runs the handler and renders every failure as a JSON
error payload, so callers never see a raw exception.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Annotated, Any, Awaitable, Callable, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, ValidationError

from kaiten_mcp import __version__
from kaiten_mcp.client import CardCreate, CardSearch, CardUpdate, UserQuery
from kaiten_mcp.foundation.errors import KaitenError, KaitenException, RequestCancelled, classify
from kaiten_mcp.io.cache import ALL_KEY, CacheKind, board_key, read_through, space_key
from kaiten_mcp.runtime.cancellation import CancellationToken
from kaiten_mcp.runtime.observability import current_level, mask_secret, set_level
from kaiten_mcp.shaping import ResourceKind, ResponseFormat, Verbosity, to_json

if TYPE_CHECKING:
    from kaiten_mcp.app import KaitenApp
    from kaiten_mcp.foundation.types import JsonDict

logger = logging.getLogger("kaiten_mcp.server")

T = TypeVar("T")
A = TypeVar("A", bound=BaseModel)


class ToolArgumentError(ValueError):
    """Arguments passed validation but cannot be satisfied (e.g. no space to search)."""


# ═══════════════════════════════════════════════════════════════════════════════
# Argument Models
# ═══════════════════════════════════════════════════════════════════════════════


class ToolArgs(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class Shaped(ToolArgs):
    verbosity: Verbosity = Field(
        default=Verbosity.NORMAL,
        description="'minimal' (id + label), 'normal' (essential fields), 'detailed' (full API response)",
    )
    format: ResponseFormat = Field(default=ResponseFormat.JSON, description="'json' or 'markdown'")


class Mutation(ToolArgs):
    idempotency_key: Annotated[str, Field(min_length=8, max_length=128)] | None = Field(
        default=None, description="Reuse to make a repeated call safe; generated when omitted",
    )


class NoArgs(ToolArgs):
    pass


class CardRef(ToolArgs):
    card_id: PositiveInt = Field(description="Card ID")


class GetCardArgs(Shaped):
    card_id: PositiveInt = Field(description="Card ID")
    include_children: bool = Field(default=True, description="Also list child cards")


class CreateCardArgs(Mutation, CardCreate):
    pass


class UpdateCardArgs(Mutation, CardUpdate):
    card_id: PositiveInt = Field(description="Card ID")


class DeleteCardArgs(Mutation):
    card_id: PositiveInt = Field(description="Card ID")


class CardCommentsArgs(Shaped):
    card_id: PositiveInt = Field(description="Card ID")


class CreateCommentArgs(Mutation):
    card_id: PositiveInt
    text: Annotated[str, Field(min_length=1, description="Comment text (markdown supported)")]


class UpdateCommentArgs(Mutation):
    card_id: PositiveInt
    comment_id: PositiveInt
    text: Annotated[str, Field(min_length=1)]


class DeleteCommentArgs(Mutation):
    card_id: PositiveInt
    comment_id: PositiveInt


class SearchCardsArgs(Shaped, CardSearch):
    space_id: Annotated[int, Field(ge=0)] | None = Field(  # type: ignore[assignment]
        default=None, description="Space to search; omitted = default space, 0 = all spaces",
    )
    condition: Annotated[int, Field(ge=1, le=2)] = Field(  # type: ignore[assignment]
        default=1, description="1 = active cards, 2 = archived cards",
    )


class _Listing(Shaped):
    limit: Annotated[int, Field(ge=1, le=100)] = 10
    skip: Annotated[int, Field(ge=0)] = 0
    condition: Annotated[int, Field(ge=1, le=2)] = 1


class SpaceCardsArgs(_Listing):
    space_id: PositiveInt


class BoardCardsArgs(_Listing):
    board_id: PositiveInt


class ListArgs(Shaped):
    pass


class SpaceArgs(Shaped):
    space_id: PositiveInt


class ListBoardsArgs(Shaped):
    space_id: PositiveInt | None = Field(default=None, description="Defaults to KAITEN_DEFAULT_SPACE_ID")


class BoardArgs(Shaped):
    board_id: PositiveInt


class ListUsersArgs(Shaped, UserQuery):
    pass


class SetLogLevelArgs(ToolArgs):
    level: Literal["debug", "info", "warning", "error", "critical", "off"]
    requests: bool | None = Field(default=None, description="Toggle per-request debug logging")
    metrics: bool | None = Field(default=None, description="Toggle metrics collection")


# ═══════════════════════════════════════════════════════════════════════════════
# Invocation Context
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(slots=True)
class ToolCall:
    """Per-invocation context handed to a handler."""

    app: KaitenApp
    token: CancellationToken
    cache_hit: bool | None = None

    async def cached(self, kind: CacheKind, key: str, fetch: Callable[[], Awaitable[T]]) -> T:
        value, hit = await read_through(self.app.cache, kind, key, fetch)
        self.cache_hit = hit if self.cache_hit is None else (self.cache_hit and hit)
        return value

    def shape(self, value: Any, kind: ResourceKind, args: Shaped, title: str | None = None) -> str:
        return self.app.shaper.shape(value, kind, args.verbosity, args.format, title=title)

    def text(self, payload: Any) -> str:
        return self.app.shaper.finish(to_json(payload))


Handler = Callable[[ToolCall, Any], Awaitable[str]]


@dataclass(frozen=True, slots=True)
class ToolSpec:
    name: str
    description: str
    args: type[BaseModel]
    handler: Handler = field(repr=False)


TOOLS: dict[str, ToolSpec] = {}


def tool(name: str, description: str, args: type[A]) -> Callable[[Callable[[ToolCall, A], Awaitable[str]]], Handler]:
    """Register a handler under ``name``."""
    def register(fn: Callable[[ToolCall, A], Awaitable[str]]) -> Handler:
        TOOLS[name] = ToolSpec(name, description, args, fn)  # type: ignore[arg-type]
        return fn  # type: ignore[return-value]
    return register


# ═══════════════════════════════════════════════════════════════════════════════
# Cards
# ═══════════════════════════════════════════════════════════════════════════════


@tool("kaiten_get_card", "Get a card by ID, including its child cards when available.", GetCardArgs)
async def get_card(call: ToolCall, args: GetCardArgs) -> str:
    client = call.app.client
    card = await client.get_card(args.card_id, token=call.token)
    result: Any = call.app.shaper.project(card, ResourceKind.CARD, args.verbosity)
    if args.include_children and isinstance(result, dict):
        try:
            children = await client.get_card_children(args.card_id, token=call.token)
        except KaitenException as e:
            # Children are optional; the card is still returned
            logger.warning(f"[kaiten_get_card] children of card {args.card_id} unavailable: {e.error.render()}")
            result = {**result, "children_error": e.error.kind.value}
        else:
            if children:
                result = {**result, "children": call.app.shaper.project(children, ResourceKind.CARD_SUMMARY, args.verbosity)}
    title = card.get("title") if isinstance(card, dict) else None
    return call.shape(result, ResourceKind.CARD, args.model_copy(update={"verbosity": Verbosity.DETAILED}),
                      title=f"Card: {title}" if title else None)


@tool("kaiten_create_card", "Create a card on a board. Safe to retry with the same idempotency_key.", CreateCardArgs)
async def create_card(call: ToolCall, args: CreateCardArgs) -> str:
    params = CardCreate.model_validate(args.model_dump(exclude={"idempotency_key"}))
    card = await call.app.client.create_card(params, idempotency_key=args.idempotency_key, token=call.token)
    return call.app.shaper.shape(card, ResourceKind.CARD, Verbosity.NORMAL)


@tool("kaiten_update_card", "Update fields of an existing card.", UpdateCardArgs)
async def update_card(call: ToolCall, args: UpdateCardArgs) -> str:
    params = CardUpdate.model_validate(args.model_dump(exclude={"idempotency_key", "card_id"}))
    if not params.model_dump(exclude_none=True):
        raise ToolArgumentError("Provide at least one field to update")
    card = await call.app.client.update_card(
        args.card_id, params, idempotency_key=args.idempotency_key, token=call.token,
    )
    return call.app.shaper.shape(card, ResourceKind.CARD, Verbosity.NORMAL)


@tool("kaiten_delete_card", "Delete a card permanently.", DeleteCardArgs)
async def delete_card(call: ToolCall, args: DeleteCardArgs) -> str:
    await call.app.client.delete_card(args.card_id, idempotency_key=args.idempotency_key, token=call.token)
    return call.text({"success": True, "message": f"Card {args.card_id} deleted successfully"})


@tool("kaiten_search_cards", "Search cards with filters. Defaults to the configured space; space_id=0 searches all spaces.", SearchCardsArgs)
async def search_cards(call: ToolCall, args: SearchCardsArgs) -> str:
    data = args.model_dump(exclude={"verbosity", "format", "space_id"})
    space_id = args.space_id if args.space_id is not None else call.app.settings.default_space_id
    params = CardSearch.model_validate({**data, "space_id": space_id or None})
    if params.limit > 20 and params.space_id is None and params.board_id is None:
        logger.warning(f"[kaiten_search_cards] limit={params.limit} without space_id/board_id may overflow the context")
    cards = await call.app.client.search_cards(params, token=call.token)
    return call.shape(cards, ResourceKind.CARD_SUMMARY, args, title=f"Cards ({len(cards)})")


@tool("kaiten_get_space_cards", "List cards in a space, newest first.", SpaceCardsArgs)
async def get_space_cards(call: ToolCall, args: SpaceCardsArgs) -> str:
    cards = await call.app.client.get_space_cards(
        args.space_id, limit=args.limit, skip=args.skip, condition=args.condition, token=call.token,
    )
    return call.shape(cards, ResourceKind.CARD_SUMMARY, args, title=f"Cards in space {args.space_id}")


@tool("kaiten_get_board_cards", "List cards on a board, newest first.", BoardCardsArgs)
async def get_board_cards(call: ToolCall, args: BoardCardsArgs) -> str:
    cards = await call.app.client.get_board_cards(
        args.board_id, limit=args.limit, skip=args.skip, condition=args.condition, token=call.token,
    )
    return call.shape(cards, ResourceKind.CARD_SUMMARY, args, title=f"Cards on board {args.board_id}")


# ═══════════════════════════════════════════════════════════════════════════════
# Comments
# ═══════════════════════════════════════════════════════════════════════════════


@tool("kaiten_get_card_comments", "List comments on a card.", CardCommentsArgs)
async def get_card_comments(call: ToolCall, args: CardCommentsArgs) -> str:
    comments = await call.app.client.get_card_comments(args.card_id, token=call.token)
    return call.shape(comments, ResourceKind.COMMENT, args, title=f"Comments on card {args.card_id}")


@tool("kaiten_create_comment", "Add a comment to a card.", CreateCommentArgs)
async def create_comment(call: ToolCall, args: CreateCommentArgs) -> str:
    comment = await call.app.client.create_comment(
        args.card_id, args.text, idempotency_key=args.idempotency_key, token=call.token,
    )
    return call.app.shaper.shape(comment, ResourceKind.COMMENT, Verbosity.NORMAL)


@tool("kaiten_update_comment", "Edit the text of a comment.", UpdateCommentArgs)
async def update_comment(call: ToolCall, args: UpdateCommentArgs) -> str:
    comment = await call.app.client.update_comment(
        args.card_id, args.comment_id, args.text, idempotency_key=args.idempotency_key, token=call.token,
    )
    return call.app.shaper.shape(comment, ResourceKind.COMMENT, Verbosity.NORMAL)


@tool("kaiten_delete_comment", "Delete a comment.", DeleteCommentArgs)
async def delete_comment(call: ToolCall, args: DeleteCommentArgs) -> str:
    await call.app.client.delete_comment(
        args.card_id, args.comment_id, idempotency_key=args.idempotency_key, token=call.token,
    )
    return call.text({"success": True, "message": f"Comment {args.comment_id} deleted successfully"})


# ═══════════════════════════════════════════════════════════════════════════════
# Spaces & Boards
# ═══════════════════════════════════════════════════════════════════════════════


@tool("kaiten_list_spaces", "List all spaces (cached).", ListArgs)
async def list_spaces(call: ToolCall, args: ListArgs) -> str:
    client = call.app.client
    spaces = await call.cached(CacheKind.SPACES, ALL_KEY, lambda: client.list_spaces(token=call.token))
    return call.shape(spaces, ResourceKind.SPACE, args, title="Spaces")


@tool("kaiten_get_space", "Get a space with its boards (cached).", SpaceArgs)
async def get_space(call: ToolCall, args: SpaceArgs) -> str:
    client = call.app.client
    space = await call.cached(CacheKind.SPACES, space_key(args.space_id),
                              lambda: client.get_space(args.space_id, token=call.token))
    return call.shape(space, ResourceKind.SPACE, args, title=f"Space {args.space_id}")


@tool("kaiten_list_boards", "List boards in a space (cached). Defaults to the configured space.", ListBoardsArgs)
async def list_boards(call: ToolCall, args: ListBoardsArgs) -> str:
    space_id = args.space_id or call.app.settings.default_space_id
    if space_id is None:
        raise ToolArgumentError("space_id is required when KAITEN_DEFAULT_SPACE_ID is not configured")
    client = call.app.client
    boards = await call.cached(CacheKind.BOARDS, space_key(space_id),
                               lambda: client.list_boards(space_id, token=call.token))
    return call.shape(boards, ResourceKind.BOARD, args, title=f"Boards in space {space_id}")


@tool("kaiten_get_board", "Get a board by ID (cached).", BoardArgs)
async def get_board(call: ToolCall, args: BoardArgs) -> str:
    client = call.app.client
    board = await call.cached(CacheKind.BOARDS, board_key(args.board_id),
                              lambda: client.get_board(args.board_id, token=call.token))
    return call.shape(board, ResourceKind.BOARD, args, title=f"Board {args.board_id}")


@tool("kaiten_list_columns", "List the columns of a board.", BoardArgs)
async def list_columns(call: ToolCall, args: BoardArgs) -> str:
    columns = await call.app.client.list_columns(args.board_id, token=call.token)
    return call.shape(columns, ResourceKind.ENTITY, args, title=f"Columns of board {args.board_id}")


@tool("kaiten_list_lanes", "List the lanes of a board.", BoardArgs)
async def list_lanes(call: ToolCall, args: BoardArgs) -> str:
    lanes = await call.app.client.list_lanes(args.board_id, token=call.token)
    return call.shape(lanes, ResourceKind.ENTITY, args, title=f"Lanes of board {args.board_id}")


@tool("kaiten_list_types", "List the card types available on a board.", BoardArgs)
async def list_types(call: ToolCall, args: BoardArgs) -> str:
    types = await call.app.client.list_card_types(args.board_id, token=call.token)
    return call.shape(types, ResourceKind.ENTITY, args, title=f"Card types of board {args.board_id}")


# ═══════════════════════════════════════════════════════════════════════════════
# Users
# ═══════════════════════════════════════════════════════════════════════════════


@tool("kaiten_get_current_user", "Get the user that owns the API token.", ListArgs)
async def get_current_user(call: ToolCall, args: ListArgs) -> str:
    user = await call.app.client.get_current_user(token=call.token)
    return call.shape(user, ResourceKind.USER, args, title="Current user")


@tool("kaiten_list_users", "List users. The unfiltered list is cached.", ListUsersArgs)
async def list_users(call: ToolCall, args: ListUsersArgs) -> str:
    client = call.app.client
    query = UserQuery.model_validate(args.model_dump(exclude={"verbosity", "format"}))
    if query.is_unfiltered:
        users = await call.cached(CacheKind.USERS, ALL_KEY, lambda: client.list_users(token=call.token))
    else:
        users = await client.list_users(query, token=call.token)
    return call.shape(users, ResourceKind.USER, args, title="Users")


# ═══════════════════════════════════════════════════════════════════════════════
# Cache & Diagnostics
# ═══════════════════════════════════════════════════════════════════════════════


def _invalidate(kind: CacheKind | None) -> Handler:
    async def handler(call: ToolCall, args: NoArgs) -> str:
        cache = call.app.cache
        removed = cache.invalidate_all() if kind is None else cache.invalidate(kind)
        return call.text({"success": True, "invalidated": kind.value if kind else "all", "removed": removed})
    return handler


for _kind in CacheKind:
    tool(f"kaiten_cache_invalidate_{_kind.value}", f"Drop cached {_kind.value}.", NoArgs)(_invalidate(_kind))
tool("kaiten_cache_invalidate_all", "Drop every cached resource.", NoArgs)(_invalidate(None))
del _kind


@tool("kaiten_get_status", "Server status: queue, cache, metrics and configuration.", NoArgs)
async def get_status(call: ToolCall, args: NoArgs) -> str:
    app = call.app
    settings = app.settings
    return call.text({
        "version": __version__,
        "api_url": settings.api_url,
        "token": mask_secret(settings.api_token.get_secret_value()),
        "default_space_id": settings.default_space_id,
        "queue": app.governor.queue_status().to_dict(),
        "retry": {
            "enabled": not app.governor.retry_policy.is_disabled,
            "max_retries": app.governor.retry_policy.max_retries,
        },
        "cache": app.cache.stats(),
        "logging": {"level": current_level(), "requests": app.governor.log_requests},
        "metrics": app.metrics.snapshot(),
    })


@tool("kaiten_set_log_level", "Change the log level at runtime; optionally toggle request logging and metrics.", SetLogLevelArgs)
async def set_log_level(call: ToolCall, args: SetLogLevelArgs) -> str:
    set_level(args.level)
    if args.requests is not None:
        call.app.governor.log_requests = args.requests
    if args.metrics is not None:
        call.app.metrics.enabled = args.metrics
    logger.info(f"log level set to {args.level}")
    return call.text({
        "success": True,
        "level": current_level(),
        "requests": call.app.governor.log_requests,
        "metrics": call.app.metrics.enabled,
    })


# ═══════════════════════════════════════════════════════════════════════════════
# Dispatcher
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ToolOutput:
    text: str
    is_error: bool = False

def error_output(type_: str, message: str, details: Any = None) -> ToolOutput:
    payload = {"type": type_, "message": message, "status": None, "details": details, "hint": None}
    return ToolOutput(to_json({"error": payload}), is_error=True)


def failure_output(error: KaitenError) -> ToolOutput:
    return ToolOutput(to_json({"error": error.to_payload()}), is_error=True)


class ToolDispatcher:
    """Validates arguments, runs a tool and renders its outcome.

    Example:
        >>> dispatcher = ToolDispatcher(app)
        >>> out = await dispatcher.invoke("kaiten_get_card", {"card_id": 42})
        >>> out.is_error
        False
    """

    __slots__ = ("_app", "_tools")

    def __init__(self, app: KaitenApp, tools: dict[str, ToolSpec] | None = None) -> None:
        self._app = app
        self._tools = tools if tools is not None else TOOLS

    @property
    def tools(self) -> dict[str, ToolSpec]:
        return self._tools

    async def invoke(
        self, name: str, arguments: JsonDict | None = None, *, token: CancellationToken | None = None,
    ) -> ToolOutput:
        spec = self._tools.get(name)
        if spec is None:
            return error_output("UNKNOWN_TOOL", f"Unknown tool: {name}")

        try:
            args = spec.args.model_validate(arguments or {})
        except ValidationError as e:
            return error_output("INVALID_ARGUMENTS", "Invalid request parameters", _issues(e))

        call = ToolCall(self._app, token or CancellationToken())
        start = time.perf_counter()
        output, error_kind = await self._run(spec, call, args)
        self._app.metrics.record(
            name, (time.perf_counter() - start) * 1000,
            success=not output.is_error, cache_hit=call.cache_hit, error=error_kind,
        )
        return output

    async def _run(self, spec: ToolSpec, call: ToolCall, args: BaseModel) -> tuple[ToolOutput, str | None]:
        try:
            return ToolOutput(await spec.handler(call, args)), None
        except KaitenException as e:
            logger.info(f"[{spec.name}] {e.error.render()}")
            return failure_output(e.error), e.error.kind.value
        except RequestCancelled as e:
            logger.info(f"[{spec.name}] cancelled after {e.attempts} attempt(s)")
            return error_output("CANCELLED", str(e)), "CANCELLED"
        except ToolArgumentError as e:
            return error_output("INVALID_ARGUMENTS", str(e)), "INVALID_ARGUMENTS"
        except ValidationError as e:
            return error_output("INVALID_ARGUMENTS", "Invalid request parameters", _issues(e)), "INVALID_ARGUMENTS"
        except Exception as e:
            logger.exception(f"[{spec.name}] unexpected failure")
            error = classify(e)
            return failure_output(error), error.kind.value


def _issues(e: ValidationError) -> list[JsonDict]:
    return [
        {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"], "type": err["type"]}
        for err in e.errors(include_url=False)
    ]
