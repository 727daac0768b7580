"""Shared JSON type aliases."""

from __future__ import annotations

from typing import Any, Union

JsonPrimitive = Union[str, int, float, bool, None]
JsonValue = Union[JsonPrimitive, list[Any], dict[str, Any]]  # Any for recursive slots
JsonDict = dict[str, Any]
JsonList = list[Any]

__all__ = ["JsonPrimitive", "JsonValue", "JsonDict", "JsonList"]
