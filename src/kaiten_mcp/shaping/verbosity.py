"""Verbosity projections for Kaiten resources.

``project(value, tier, kind)`` reduces a resource (or a list of them) to one
of three tiers:

- minimal: identifying key plus a human-readable label
- normal: curated fields with one level of references resolved to names
- detailed: the input, unchanged

Projections are pure, total and idempotent. Extractors read either the raw
upstream shape (``owner.full_name``) or the already-projected one
(``owner_name``), so projecting a projection is a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Callable

from kaiten_mcp.foundation.types import JsonDict


class Verbosity(StrEnum):
    MINIMAL = "minimal"
    NORMAL = "normal"
    DETAILED = "detailed"


class ResourceKind(StrEnum):
    CARD = "card"                  # single card, full normal view
    CARD_SUMMARY = "card_summary"  # card in a listing, compact normal view
    USER = "user"
    BOARD = "board"
    SPACE = "space"
    COMMENT = "comment"
    ENTITY = "entity"              # columns, lanes, card types


@dataclass(frozen=True, slots=True)
class ShapeContext:
    """Deployment facts needed to denormalize cards.

    Attributes:
        web_url: Browser base URL (API URL without ``/api/latest``)
        default_space_id: Fallback space for card links
    """

    web_url: str = ""
    default_space_id: int | None = None


_EMPTY_CONTEXT = ShapeContext()


def project(
    value: Any,
    tier: Verbosity | str = Verbosity.NORMAL,
    kind: ResourceKind | str = ResourceKind.ENTITY,
    *,
    context: ShapeContext | None = None,
) -> Any:
    """Project a resource or list of resources to ``tier``.

    Non-mapping items pass through untouched; nothing here raises.

    Example:
        >>> project({"id": 1, "title": "Fix", "owner": {"full_name": "Ann"}}, "minimal", "card")
        {'id': 1, 'title': 'Fix'}
    """
    tier = _coerce(Verbosity, tier, Verbosity.NORMAL)
    if tier is Verbosity.DETAILED:
        return value
    kind = _coerce(ResourceKind, kind, ResourceKind.ENTITY)
    fn = (_MINIMAL if tier is Verbosity.MINIMAL else _NORMAL)[kind]
    ctx = context or _EMPTY_CONTEXT
    if isinstance(value, list):
        return [fn(item, ctx) if isinstance(item, dict) else item for item in value]
    return fn(value, ctx) if isinstance(value, dict) else value


def _coerce(enum: type[Any], value: object, default: Any) -> Any:
    try:
        return enum(value)
    except ValueError:
        return default


# ─────────────────────────────────────────────────────────────────────────────
# Field helpers
# ─────────────────────────────────────────────────────────────────────────────


def _nested(obj: JsonDict, ref: str, field: str) -> Any:
    inner = obj.get(ref)
    return inner.get(field) if isinstance(inner, dict) else None


def _pick(obj: JsonDict, ref: str, field: str, flat: str) -> Any:
    """Resolve ``obj[ref][field]``, falling back to the projected key ``flat``."""
    found = _nested(obj, ref, field)
    return found if found is not None else obj.get(flat)


def _names(items: Any, field: str) -> list[Any]:
    if not isinstance(items, list):
        return []
    out: list[Any] = []
    for item in items:
        name = item.get(field) if isinstance(item, dict) else item
        if name is not None and not isinstance(name, dict | list):
            out.append(name)
    return out


def _label(obj: JsonDict) -> Any:
    title = obj.get("title")
    return title if title is not None else obj.get("name")


def _card_url(card: JsonDict, ctx: ShapeContext) -> str:
    existing = card.get("url")
    space_id = card.get("space_id") or _nested(card, "board", "space_id")
    if isinstance(existing, str) and not space_id:
        return existing
    space = space_id or ctx.default_space_id or ""
    return f"{ctx.web_url}/space/{space}/card/{card.get('id')}"


def _block_info(card: JsonDict) -> JsonDict:
    blockers = card.get("blockers")
    if card.get("blocked") and isinstance(blockers, list) and blockers and isinstance(blockers[0], dict):
        first = blockers[0]
        return {
            "blocked": True,
            "block_reason": first.get("reason") or None,
            "blocked_at": first.get("created") or None,
            "blocker_name": _nested(first, "blocker", "full_name"),
        }
    return {
        "blocked": bool(card.get("blocked")),
        "block_reason": card.get("block_reason"),
        "blocked_at": card.get("blocked_at"),
        "blocker_name": card.get("blocker_name"),
    }


# ─────────────────────────────────────────────────────────────────────────────
# Projections
# ─────────────────────────────────────────────────────────────────────────────


def _card_minimal(card: JsonDict, ctx: ShapeContext) -> JsonDict:
    return {"id": card.get("id"), "title": card.get("title")}


def _card_summary(card: JsonDict, ctx: ShapeContext) -> JsonDict:
    return {
        "id": card.get("id"),
        "title": card.get("title"),
        "url": _card_url(card, ctx),
        "board_title": _pick(card, "board", "title", "board_title"),
        "owner_name": _pick(card, "owner", "full_name", "owner_name"),
        "updated": card.get("updated"),
        "asap": bool(card.get("asap")),
        "blocked": bool(card.get("blocked")),
    }


def _card_full(card: JsonDict, ctx: ShapeContext) -> JsonDict:
    tags = card.get("tags")
    members = card.get("members")
    return {
        "id": card.get("id"),
        "title": card.get("title"),
        "url": _card_url(card, ctx),
        "description": card.get("description") or None,
        "created": card.get("created"),
        "updated": card.get("updated"),
        "state": card.get("state"),
        "owner_id": _pick(card, "owner", "id", "owner_id"),
        "owner_name": _pick(card, "owner", "full_name", "owner_name"),
        "board_id": card.get("board_id"),
        "board_title": _pick(card, "board", "title", "board_title"),
        "column_id": card.get("column_id"),
        "column_title": _pick(card, "column", "title", "column_title"),
        "lane_id": card.get("lane_id"),
        "lane_title": _pick(card, "lane", "title", "lane_title"),
        "type_id": card.get("type_id"),
        "type_name": _pick(card, "type", "name", "type_name"),
        "comments_total": card.get("comments_total") or 0,
        "last_comment_date": card.get("comment_last_added_at") or card.get("last_comment_date"),
        "tags": _names(tags, "name"),
        "members": _names(members, "full_name"),
        "asap": bool(card.get("asap")),
        **_block_info(card),
        "archived": bool(card.get("archived")),
        "size": card.get("size") or None,
        "due_date": card.get("due_date") or None,
    }


def _user_minimal(user: JsonDict, ctx: ShapeContext) -> JsonDict:
    return {"id": user.get("id"), "full_name": user.get("full_name")}


def _user_normal(user: JsonDict, ctx: ShapeContext) -> JsonDict:
    return {
        "id": user.get("id"),
        "full_name": user.get("full_name"),
        "email": user.get("email"),
        "username": user.get("username"),
        "activated": user.get("activated"),
    }


def _titled_minimal(obj: JsonDict, ctx: ShapeContext) -> JsonDict:
    return {"id": obj.get("id"), "title": _label(obj)}


def _board_normal(board: JsonDict, ctx: ShapeContext) -> JsonDict:
    return {
        "id": board.get("id"),
        "title": board.get("title"),
        "space_id": board.get("space_id"),
        "archived": board.get("archived"),
    }


def _space_normal(space: JsonDict, ctx: ShapeContext) -> JsonDict:
    boards = space.get("boards")
    return {
        "id": space.get("id"),
        "title": space.get("title"),
        "archived": space.get("archived"),
        "boards": [
            {"id": b.get("id"), "title": b.get("title")}
            for b in (boards if isinstance(boards, list) else [])
            if isinstance(b, dict)
        ],
    }


def _comment_minimal(comment: JsonDict, ctx: ShapeContext) -> JsonDict:
    return {"id": comment.get("id"), "text": comment.get("text")}


def _comment_normal(comment: JsonDict, ctx: ShapeContext) -> JsonDict:
    return {
        "id": comment.get("id"),
        "text": comment.get("text"),
        "created": comment.get("created"),
        "updated": comment.get("updated"),
        "author_id": _pick(comment, "author", "id", "author_id"),
        "author_name": _pick(comment, "author", "full_name", "author_name"),
    }


def _entity_normal(obj: JsonDict, ctx: ShapeContext) -> JsonDict:
    """Identifying fields plus every scalar; nested bulk data is dropped."""
    scalars = {k: v for k, v in obj.items() if not isinstance(v, dict | list)}
    return {"id": obj.get("id"), "title": _label(obj), **{k: v for k, v in scalars.items() if k not in ("id", "title")}}


Projector = Callable[[JsonDict, ShapeContext], JsonDict]

_MINIMAL: dict[ResourceKind, Projector] = {
    ResourceKind.CARD: _card_minimal,
    ResourceKind.CARD_SUMMARY: _card_minimal,
    ResourceKind.USER: _user_minimal,
    ResourceKind.BOARD: _titled_minimal,
    ResourceKind.SPACE: _titled_minimal,
    ResourceKind.COMMENT: _comment_minimal,
    ResourceKind.ENTITY: _titled_minimal,
}

_NORMAL: dict[ResourceKind, Projector] = {
    ResourceKind.CARD: _card_full,
    ResourceKind.CARD_SUMMARY: _card_summary,
    ResourceKind.USER: _user_normal,
    ResourceKind.BOARD: _board_normal,
    ResourceKind.SPACE: _space_normal,
    ResourceKind.COMMENT: _comment_normal,
    ResourceKind.ENTITY: _entity_normal,
}
