"""Read-through cache for slow-changing Kaiten resources.

Each resource kind (spaces, boards, users) has its own LRU store with an
independent capacity; all kinds share one TTL. A TTL of zero disables
caching entirely. The cache never fetches: callers miss, fetch through the
resource client and ``put`` the result (see ``read_through``).
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from enum import StrEnum
from typing import Awaitable, Callable, Generic, TypeVar

from kaiten_mcp.foundation.types import JsonDict

logger = logging.getLogger("kaiten_mcp.cache")

DEFAULT_TTL: float = 300.0  # 5 minutes
DEFAULT_CAPACITY: int = 100
T = TypeVar("T")


class CacheKind(StrEnum):
    SPACES = "spaces"
    BOARDS = "boards"
    USERS = "users"


ALL_KEY = "all"


def space_key(space_id: int) -> str:
    return f"space:{space_id}"


def board_key(board_id: int) -> str:
    return f"board:{board_id}"


@dataclass(slots=True)
class CacheEntry(Generic[T]):
    """A cached value with its insertion time."""
    value: T
    inserted_at: float


class ResourceCache:
    """Thread-safe per-kind TTL + LRU cache.

    Uses an RLock so a concurrent ``get`` during a ``put`` or eviction
    observes either the state before or after, never a torn one.

    Args:
        ttl: Entry lifetime in seconds (0 disables caching)
        capacity: Maximum entries per kind
        clock: Monotonic clock in seconds

    Example:
        >>> cache = ResourceCache(ttl=60)
        >>> cache.put(CacheKind.BOARDS, board_key(7), {"id": 7})
        >>> cache.get(CacheKind.BOARDS, board_key(7))
        {'id': 7}
    """

    __slots__ = ("_ttl", "_capacity", "_clock", "_stores", "_lock", "_hits", "_misses", "_inflight")

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        capacity: int = DEFAULT_CAPACITY,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._ttl = max(ttl, 0.0)
        self._capacity = capacity
        self._clock = clock
        self._stores: dict[CacheKind, OrderedDict[str, CacheEntry[object]]] = {k: OrderedDict() for k in CacheKind}
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._inflight: dict[tuple[CacheKind, str], asyncio.Future[_Flight]] = {}

    @property
    def enabled(self) -> bool:
        return self._ttl > 0

    @property
    def ttl(self) -> float:
        return self._ttl

    @property
    def capacity(self) -> int:
        return self._capacity

    def get(self, kind: CacheKind, key: str) -> object | None:
        """Return the stored value, or None when missing or expired."""
        if not self.enabled:
            return None
        with self._lock:
            store = self._stores[kind]
            entry = store.get(key)
            if entry is None:
                self._misses += 1
                logger.debug(f"cache miss {kind}:{key}")
                return None
            if self._clock() - entry.inserted_at > self._ttl:
                del store[key]
                self._misses += 1
                logger.debug(f"cache expired {kind}:{key}")
                return None
            store.move_to_end(key)
            self._hits += 1
            logger.debug(f"cache hit {kind}:{key}")
            return entry.value

    def put(self, kind: CacheKind, key: str, value: object) -> None:
        """Store ``value`` verbatim, evicting the least recently used entry of ``kind`` when full."""
        if not self.enabled:
            return
        with self._lock:
            store = self._stores[kind]
            store[key] = CacheEntry(value, self._clock())
            store.move_to_end(key)
            while len(store) > self._capacity:
                evicted, _ = store.popitem(last=False)
                logger.debug(f"cache evicted {kind}:{evicted}")

    def invalidate(self, kind: CacheKind) -> int:
        """Drop every entry of ``kind``. Returns the number removed."""
        with self._lock:
            store = self._stores[kind]
            removed = len(store)
            store.clear()
        logger.info(f"cache invalidated {kind} ({removed} entries)")
        return removed

    def invalidate_all(self) -> int:
        with self._lock:
            removed = sum(len(s) for s in self._stores.values())
            for store in self._stores.values():
                store.clear()
        logger.info(f"cache invalidated all ({removed} entries)")
        return removed

    def size(self, kind: CacheKind) -> int:
        with self._lock:
            return len(self._stores[kind])

    def stats(self) -> JsonDict:
        """Per-kind size and capacity plus global settings, for monitoring."""
        with self._lock:
            return {
                "enabled": self.enabled,
                "ttl_seconds": self._ttl,
                "hits": self._hits,
                "misses": self._misses,
                **{kind.value: {"size": len(store), "capacity": self._capacity} for kind, store in self._stores.items()},
            }

    def close(self) -> None:
        """Release all entries. The cache stays usable afterwards."""
        with self._lock:
            for store in self._stores.values():
                store.clear()
            self._hits = self._misses = 0


# ═══════════════════════════════════════════════════════════════════════════════
# Read-Through Helper
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class _Flight:
    """Outcome of a shared fetch. ``done`` is False when the leader was cancelled."""
    done: bool
    value: object = None
    error: BaseException | None = None


async def read_through(
    cache: ResourceCache,
    kind: CacheKind,
    key: str,
    fetch: Callable[[], Awaitable[T]],
) -> tuple[T, bool]:
    """Serve from cache, or fetch and store on miss.

    Concurrent misses for the same kind and key share one ``fetch``: the
    first caller fetches, the others await its outcome. Failures propagate
    to every waiter and nothing is stored. If the fetching caller is
    cancelled, a waiter takes over.

    Args:
        cache: Cache instance to use
        kind: Resource kind
        key: Key within the kind
        fetch: Coroutine factory called on a miss

    Returns:
        Tuple of (value, served_without_fetching)

    Example:
        >>> spaces, hit = await read_through(cache, CacheKind.SPACES, ALL_KEY, client.list_spaces)
    """
    if not cache.enabled:
        return await fetch(), False

    flight_key = (kind, key)
    while True:
        cached = cache.get(kind, key)
        if cached is not None:
            return cached, True  # type: ignore[return-value]
        pending = cache._inflight.get(flight_key)
        if pending is None:
            break
        flight = await asyncio.shield(pending)
        if flight.error is not None:
            raise flight.error
        if flight.done:
            return flight.value, True  # type: ignore[return-value]

    future: asyncio.Future[_Flight] = asyncio.get_running_loop().create_future()
    cache._inflight[flight_key] = future
    try:
        value = await fetch()
    except asyncio.CancelledError:
        future.set_result(_Flight(done=False))
        raise
    except Exception as e:
        future.set_result(_Flight(done=True, error=e))
        raise
    finally:
        cache._inflight.pop(flight_key, None)
    cache.put(kind, key, value)
    future.set_result(_Flight(done=True, value=value))
    return value, False
