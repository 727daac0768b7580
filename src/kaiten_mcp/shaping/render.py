"""Text rendering of shaped results: JSON or Markdown."""

from __future__ import annotations

import re
from enum import StrEnum
from typing import Any

import orjson

_WORD_START = re.compile(r"\b\w")


class ResponseFormat(StrEnum):
    JSON = "json"
    MARKDOWN = "markdown"


def to_json(data: Any) -> str:
    """Pretty JSON (2-space indent, non-ASCII preserved)."""
    return orjson.dumps(data, option=orjson.OPT_INDENT_2 | orjson.OPT_NON_STR_KEYS, default=str).decode()


def to_markdown(data: Any, title: str | None = None) -> str:
    """Render a resource or list as Markdown.

    Example:
        >>> print(to_markdown([{"id": 1, "full_name": "Ann"}], "Users"))
        # Users
        <BLANKLINE>
        Found 1 items:
        <BLANKLINE>
        ## Item 1
        **Id:** 1
        **Full Name:** Ann
        <BLANKLINE>
    """
    if isinstance(data, str):
        return data
    heading = f"# {title}\n\n" if title else ""
    if isinstance(data, list):
        parts = [f"{heading}Found {len(data)} items:\n\n"]
        for index, item in enumerate(data, 1):
            parts.append(f"## Item {index}\n{_object(item)}\n")
        return "".join(parts)
    return heading + _object(data)


def render(data: Any, fmt: ResponseFormat | str = ResponseFormat.JSON, title: str | None = None) -> str:
    if ResponseFormat(fmt) is ResponseFormat.MARKDOWN:
        return to_markdown(data, title)
    return to_json(data)


def _label(key: str) -> str:
    return _WORD_START.sub(lambda m: m.group(0).upper(), key.replace("_", " "))


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, dict | list):
        return orjson.dumps(value, default=str).decode()
    return str(value)


def _object(obj: Any) -> str:
    if not isinstance(obj, dict):
        return f"{_scalar(obj)}\n"
    lines: list[str] = []
    for key, value in obj.items():
        if value is None:
            continue
        label = _label(str(key))
        if isinstance(value, dict):
            lines.append(f"\n**{label}:**\n{_object(value)}")
        elif isinstance(value, list):
            lines.append(f"**{label}:** {', '.join(_scalar(v) for v in value)}\n")
        else:
            lines.append(f"**{label}:** {_scalar(value)}\n")
    return "".join(lines)
