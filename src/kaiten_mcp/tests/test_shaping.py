"""Tests for response shaping.

Validates:
- Tier subset: minimal ⊆ normal ⊆ detailed (by key)
- Idempotence of every projection
- Totality on sparse and malformed input
- Rendering (JSON / Markdown) and truncation bounds
"""

from __future__ import annotations

import orjson
import pytest

from kaiten_mcp.shaping import (
    ResourceKind,
    ResponseFormat,
    ResponseShaper,
    ShapeContext,
    Verbosity,
    project,
    render,
    to_markdown,
    truncate,
    truncation_notice,
)

CTX = ShapeContext(web_url="https://acme.kaiten.ru", default_space_id=3)

CARD = {
    "id": 42,
    "title": "Fix login",
    "description": "Users cannot sign in",
    "created": "2024-05-01T10:00:00Z",
    "updated": "2024-05-02T10:00:00Z",
    "state": 2,
    "board_id": 10,
    "board": {"id": 10, "title": "Backend", "space_id": 5},
    "column_id": 11,
    "column": {"id": 11, "title": "In progress"},
    "lane_id": 12,
    "lane": {"id": 12, "title": "Default"},
    "type_id": 1,
    "type": {"id": 1, "name": "Bug"},
    "owner": {"id": 7, "full_name": "Ann Lee"},
    "members": [{"id": 7, "full_name": "Ann Lee"}, {"id": 8, "full_name": "Bo Kim"}],
    "tags": [{"id": 1, "name": "auth"}],
    "blocked": True,
    "blockers": [{"reason": "Waiting for SSO", "created": "2024-05-01", "blocker": {"full_name": "Cy"}}],
    "asap": True,
    "comments_total": 3,
    "comment_last_added_at": "2024-05-02T09:00:00Z",
    "size": 5,
    "custom_property_1": {"nested": True},
}

USER = {"id": 7, "full_name": "Ann Lee", "email": "ann@example.com", "username": "ann", "activated": True, "ui": {}}
BOARD = {"id": 10, "title": "Backend", "space_id": 5, "archived": False, "columns": [{"id": 1}]}
SPACE = {"id": 5, "title": "Product", "archived": False, "boards": [BOARD], "access": "private"}
COMMENT = {"id": 9, "text": "LGTM", "created": "c", "updated": "u", "author": {"id": 7, "full_name": "Ann Lee"}}
COLUMN = {"id": 11, "title": "In progress", "sort_order": 2, "board": {"id": 10}}

SAMPLES = [
    (CARD, ResourceKind.CARD),
    (CARD, ResourceKind.CARD_SUMMARY),
    (USER, ResourceKind.USER),
    (BOARD, ResourceKind.BOARD),
    (SPACE, ResourceKind.SPACE),
    (COMMENT, ResourceKind.COMMENT),
    (COLUMN, ResourceKind.ENTITY),
]


# ═════════════════════════════════════════════════════════════════════════════
# Projection Laws
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize(("resource", "kind"), SAMPLES)
def test_detailed_is_identity(resource: dict[str, object], kind: ResourceKind) -> None:
    assert project(resource, Verbosity.DETAILED, kind, context=CTX) is resource


@pytest.mark.parametrize(("resource", "kind"), SAMPLES)
def test_minimal_keys_subset_of_normal(resource: dict[str, object], kind: ResourceKind) -> None:
    minimal = project(resource, Verbosity.MINIMAL, kind, context=CTX)
    normal = project(resource, Verbosity.NORMAL, kind, context=CTX)
    assert set(minimal) <= set(normal)


@pytest.mark.parametrize(("resource", "kind"), SAMPLES)
@pytest.mark.parametrize("tier", [Verbosity.MINIMAL, Verbosity.NORMAL])
def test_idempotent(resource: dict[str, object], kind: ResourceKind, tier: Verbosity) -> None:
    once = project(resource, tier, kind, context=CTX)
    assert project(once, tier, kind, context=CTX) == once


@pytest.mark.parametrize("kind", list(ResourceKind))
@pytest.mark.parametrize("tier", list(Verbosity))
def test_total_on_sparse_input(kind: ResourceKind, tier: Verbosity) -> None:
    """Missing fields never raise."""
    project({}, tier, kind, context=CTX)
    project([{}, "not-a-dict", None], tier, kind, context=CTX)


def test_invalid_tier_falls_back_to_normal() -> None:
    assert project(USER, "verbose", ResourceKind.USER) == project(USER, Verbosity.NORMAL, ResourceKind.USER)


# ═════════════════════════════════════════════════════════════════════════════
# Field Content
# ═════════════════════════════════════════════════════════════════════════════


def test_card_minimal() -> None:
    assert project(CARD, Verbosity.MINIMAL, ResourceKind.CARD) == {"id": 42, "title": "Fix login"}


def test_card_summary_fields() -> None:
    summary = project(CARD, Verbosity.NORMAL, ResourceKind.CARD_SUMMARY, context=CTX)
    assert summary == {
        "id": 42,
        "title": "Fix login",
        "url": "https://acme.kaiten.ru/space/5/card/42",
        "board_title": "Backend",
        "owner_name": "Ann Lee",
        "updated": "2024-05-02T10:00:00Z",
        "asap": True,
        "blocked": True,
    }


def test_card_full_resolves_references() -> None:
    full = project(CARD, Verbosity.NORMAL, ResourceKind.CARD, context=CTX)
    assert full["column_title"] == "In progress"
    assert full["type_name"] == "Bug"
    assert full["members"] == ["Ann Lee", "Bo Kim"]
    assert full["tags"] == ["auth"]
    assert full["block_reason"] == "Waiting for SSO"
    assert full["blocker_name"] == "Cy"
    assert "custom_property_1" not in full


def test_card_url_uses_default_space() -> None:
    card = {"id": 1, "title": "t"}
    assert project(card, "normal", "card_summary", context=CTX)["url"] == "https://acme.kaiten.ru/space/3/card/1"


def test_user_board_space_comment() -> None:
    assert project(USER, "minimal", "user") == {"id": 7, "full_name": "Ann Lee"}
    assert project(BOARD, "normal", "board") == {"id": 10, "title": "Backend", "space_id": 5, "archived": False}
    assert project(SPACE, "normal", "space")["boards"] == [{"id": 10, "title": "Backend"}]
    assert project(COMMENT, "normal", "comment")["author_name"] == "Ann Lee"


def test_entity_normal_drops_nested() -> None:
    assert project(COLUMN, "normal", "entity") == {"id": 11, "title": "In progress", "sort_order": 2}
    assert project({"id": 2, "name": "Bug"}, "minimal", "entity") == {"id": 2, "title": "Bug"}


def test_list_projection() -> None:
    cards = [{"id": i, "title": f"Card {i}", **{f"f{j}": j for j in range(40)}} for i in range(25)]
    shaped = project(cards, Verbosity.MINIMAL, ResourceKind.CARD_SUMMARY)
    assert len(shaped) == 25
    assert all(set(c) == {"id", "title"} for c in shaped)


# ═════════════════════════════════════════════════════════════════════════════
# Rendering & Truncation
# ═════════════════════════════════════════════════════════════════════════════


def test_json_render_preserves_unicode() -> None:
    text = render({"title": "Болгария"}, ResponseFormat.JSON)
    assert "Болгария" in text
    assert orjson.loads(text) == {"title": "Болгария"}


def test_markdown_render() -> None:
    text = to_markdown([{"id": 1, "full_name": "Ann", "email": None}], "Users")
    assert text.startswith("# Users\n\nFound 1 items:")
    assert "## Item 1" in text
    assert "**Full Name:** Ann" in text
    assert "Email" not in text


def test_truncate_short_text_unchanged() -> None:
    assert truncate("abc", 1000) == "abc"


def test_truncate_bounds() -> None:
    text = "x" * 5000
    out = truncate(text, 1000)
    notice = truncation_notice(5000, 1000)
    assert out == "x" * 1000 + notice
    assert len(out) <= 1000 + len(notice)
    assert "RESPONSE TRUNCATED" in notice
    assert "Original length: 5,000 characters" in notice
    assert "~250 tokens" in notice


def test_shaper_pipeline() -> None:
    shaper = ResponseShaper(CTX, ceiling=1000)
    cards = [CARD] * 50

    minimal = shaper.shape(cards, ResourceKind.CARD_SUMMARY, Verbosity.MINIMAL)
    detailed = shaper.shape(cards, ResourceKind.CARD_SUMMARY, Verbosity.DETAILED)

    assert orjson.loads(shaper.shape([CARD], ResourceKind.CARD, "minimal")) == [{"id": 42, "title": "Fix login"}]
    assert "RESPONSE TRUNCATED" in detailed
    assert len(detailed) <= 1000 + len(truncation_notice(len(render(cards)), 1000))
    assert minimal != detailed
