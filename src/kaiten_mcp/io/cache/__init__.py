"""Read-through resource cache."""

from .cache import (
    ALL_KEY,
    DEFAULT_CAPACITY,
    DEFAULT_TTL,
    CacheEntry,
    CacheKind,
    ResourceCache,
    board_key,
    read_through,
    space_key,
)

__all__ = [
    "ALL_KEY", "DEFAULT_CAPACITY", "DEFAULT_TTL", "CacheEntry", "CacheKind", "ResourceCache",
    "board_key", "read_through", "space_key",
]
