"""Cooperative cancellation tokens.

A ``CancellationToken`` is a plain value passed alongside each request. It
carries no event-loop state of its own: callers flip it with ``cancel()``,
workers poll ``is_cancelled`` or register callbacks with ``on_cancel``.

Example:
    >>> token = CancellationToken()
    >>> unregister = token.on_cancel(lambda: print("stop"))
    >>> token.cancel()
    stop
    >>> token.is_cancelled
    True
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from kaiten_mcp.foundation.errors import RequestCancelled

logger = logging.getLogger("kaiten_mcp.cancellation")


@dataclass(slots=True, eq=False)
class CancellationToken:
    """Advisory cancellation signal shared between a caller and the governor.

    Callbacks run synchronously inside ``cancel()`` in registration order.
    A callback registered after cancellation runs immediately.
    """

    _cancelled: bool = field(default=False, repr=False)
    _reason: str | None = field(default=None, repr=False)
    _callbacks: dict[int, Callable[[], object]] = field(default_factory=dict, repr=False)
    _next_id: int = field(default=0, repr=False)

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> bool:
        """Trigger cancellation. Returns False if already cancelled."""
        if self._cancelled:
            return False
        self._cancelled, self._reason = True, reason
        callbacks, self._callbacks = list(self._callbacks.values()), {}
        for callback in callbacks:
            _run_callback(callback)
        return True

    def on_cancel(self, callback: Callable[[], object]) -> Callable[[], None]:
        """Register ``callback`` to run on cancellation.

        Returns:
            Function that unregisters the callback (no-op once it has run)
        """
        if self._cancelled:
            _run_callback(callback)
            return _noop

        handle = self._next_id
        self._next_id += 1
        self._callbacks[handle] = callback

        def unregister() -> None:
            self._callbacks.pop(handle, None)

        return unregister

    def raise_if_cancelled(self, label: str = "") -> None:
        """Raise RequestCancelled when the token has been triggered."""
        if self._cancelled:
            raise RequestCancelled(label)

    @classmethod
    def cancelled(cls, reason: str | None = None) -> CancellationToken:
        """Create an already-cancelled token."""
        token = cls()
        token.cancel(reason)
        return token


def _run_callback(callback: Callable[[], object]) -> None:
    try:
        callback()
    except Exception:
        logger.exception("Cancellation callback failed")


def _noop() -> None:
    return None
