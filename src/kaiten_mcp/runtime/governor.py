"""Request governor: bounded, rate-limited, retrying execution of upstream calls.

Every outbound call to the Kaiten API goes through ``RequestGovernor.execute``.
Per request the lifecycle is::

    Queued -> Running -> Succeeded
                      -> Retrying -> Running ...
                      -> Failed
                      -> Cancelled

Limits:
    - at most ``concurrency`` requests hold a slot at once. A slot is held for
      the whole request, backoff pauses included, so retries of one request
      are strictly sequential.
    - at most ``rate_per_second`` attempts start within any rolling window of
      ``window`` seconds, independent of how quickly they finish.

Waiting for a slot, for the rate window and for backoff are the only
suspension points besides the transport call itself.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Awaitable, Callable, TypeVar

from kaiten_mcp.foundation.errors import KaitenError, KaitenException, RequestCancelled, classify
from kaiten_mcp.foundation.http import Response

from .cancellation import CancellationToken
from .retry import RetryPolicy

if TYPE_CHECKING:
    from kaiten_mcp.foundation.types import JsonDict

T = TypeVar("T")

logger = logging.getLogger("kaiten_mcp.governor")

Send = Callable[[CancellationToken], Awaitable[Response]]


class RequestState(StrEnum):
    QUEUED = "queued"
    RUNNING = "running"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class AttemptEvent:
    """Observation emitted after every retry or terminal transition.

    Attributes:
        request_id: Process-unique request number
        label: Human-readable request label (method and path)
        attempt: 1-indexed attempt that just finished (0 if none ran)
        state: RETRYING, SUCCEEDED, FAILED or CANCELLED
        duration: Seconds spent in the transport call of this attempt
        queue_wait: Seconds the request waited for a concurrency slot
        status_code: HTTP status of this attempt, when a response arrived
        error: Classified failure of this attempt
        delay: Backoff before the next attempt (RETRYING only)
    """

    request_id: int
    label: str
    attempt: int
    state: RequestState
    duration: float = 0.0
    queue_wait: float = 0.0
    status_code: int | None = None
    error: KaitenError | None = None
    delay: float | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state is not RequestState.RETRYING


AttemptHook = Callable[[AttemptEvent], None]


@dataclass(frozen=True, slots=True)
class QueueStatus:
    """Snapshot of governor occupancy for diagnostics."""

    pending: int
    running: int
    concurrency_limit: int

    def to_dict(self) -> JsonDict:
        return {"pending": self.pending, "running": self.running, "concurrency_limit": self.concurrency_limit}


class RequestGovernor:
    """Bounded-concurrency, rate-limited, retrying executor.

    Args:
        concurrency: Maximum requests holding a slot at once
        rate_per_second: Maximum attempts started per rolling window (default: concurrency)
        retry_policy: Retry decision and delay policy
        hook: Observer called after each retry or terminal transition
        clock: Monotonic clock in seconds
        sleep: Async sleep used for backoff and rate-window waits
        window: Rolling admission window in seconds
        log_requests: Debug-log every attempt

    Example:
        >>> governor = RequestGovernor(concurrency=5)
        >>> response = await governor.execute(
        ...     lambda token: transport.send("GET", "/spaces", timeout=10.0, token=token),
        ...     label="GET /spaces",
        ... )
    """

    __slots__ = (
        "_limit", "_rate", "_window", "_policy", "_hook", "_clock", "_sleep", "_log_requests",
        "_running", "_waiters", "_admissions", "_ids",
    )

    def __init__(
        self,
        concurrency: int = 5,
        rate_per_second: int | None = None,
        retry_policy: RetryPolicy | None = None,
        *,
        hook: AttemptHook | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        window: float = 1.0,
        log_requests: bool = False,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._limit = concurrency
        self._rate = rate_per_second or concurrency
        self._window = window
        self._policy = retry_policy or RetryPolicy()
        self._hook = hook
        self._clock = clock
        self._sleep = sleep
        self._log_requests = log_requests
        self._running = 0
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._admissions: deque[float] = deque()
        self._ids = itertools.count(1)

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._policy

    @property
    def log_requests(self) -> bool:
        return self._log_requests

    @log_requests.setter
    def log_requests(self, value: bool) -> None:
        self._log_requests = value

    def set_hook(self, hook: AttemptHook | None) -> None:
        self._hook = hook

    def queue_status(self) -> QueueStatus:
        pending = sum(1 for w in self._waiters if not w.done())
        return QueueStatus(pending=pending, running=self._running, concurrency_limit=self._limit)

    # ─────────────────────────────────────────────────────────────────────────
    # Execution
    # ─────────────────────────────────────────────────────────────────────────

    async def execute(self, send: Send, *, token: CancellationToken | None = None, label: str = "request") -> Response:
        """Run ``send`` under the concurrency, rate and retry policy.

        Args:
            send: Performs one transport attempt; called once per attempt
            token: Caller's cancellation token
            label: Request label for logs and events

        Returns:
            The first 2xx response

        Raises:
            KaitenException: Non-retryable failure, or retry budget exhausted
            RequestCancelled: Token triggered before or during execution
        """
        token = token or CancellationToken()
        request_id = next(self._ids)

        if token.is_cancelled:
            self._emit(AttemptEvent(request_id, label, 0, RequestState.CANCELLED))
            raise RequestCancelled(label)

        enqueued = self._clock()
        try:
            await self._acquire(token, label)
        except RequestCancelled:
            self._emit(AttemptEvent(request_id, label, 0, RequestState.CANCELLED, queue_wait=self._clock() - enqueued))
            raise

        try:
            return await self._run(request_id, send, token, label, self._clock() - enqueued)
        finally:
            self._release()

    async def _run(self, request_id: int, send: Send, token: CancellationToken, label: str, queue_wait: float) -> Response:
        attempt = 0
        while True:
            attempt += 1
            started = self._clock()
            try:
                await self._admit(token, label)
                started = self._clock()
                if self._log_requests:
                    logger.debug(f"[{label}] attempt {attempt} (request #{request_id})")
                response = await self._until_cancelled(send(token), token, label)
            except RequestCancelled as exc:
                exc.attempts = attempt
                self._emit(AttemptEvent(request_id, label, attempt, RequestState.CANCELLED,
                                        duration=self._clock() - started, queue_wait=queue_wait))
                raise
            except Exception as exc:
                cause: BaseException | None = exc
                error = exc.error if isinstance(exc, KaitenException) else classify(exc)
                status = error.http_status
            else:
                if response.is_success:
                    if self._log_requests:
                        logger.debug(f"[{label}] {response.status_code} in {response.elapsed_ms:.0f}ms")
                    self._emit(AttemptEvent(request_id, label, attempt, RequestState.SUCCEEDED,
                                            duration=self._clock() - started, queue_wait=queue_wait,
                                            status_code=response.status_code))
                    return response
                cause, error, status = None, classify(response), response.status_code

            duration = self._clock() - started
            if not self._policy.should_retry(error, attempt):
                logger.info(f"[{label}] failed after {attempt} attempt(s): {error.render()}")
                self._emit(AttemptEvent(request_id, label, attempt, RequestState.FAILED, duration=duration,
                                        queue_wait=queue_wait, status_code=status, error=error))
                raise KaitenException(error) from cause

            delay = self._policy.get_delay(error, attempt)
            logger.warning(
                f"[{label}] Retry {attempt}/{self._policy.max_retries} "
                f"after {delay:.2f}s ({error.kind.value}{f' {status}' if status else ''})"
            )
            self._emit(AttemptEvent(request_id, label, attempt, RequestState.RETRYING, duration=duration,
                                    queue_wait=queue_wait, status_code=status, error=error, delay=delay))
            try:
                await self._until_cancelled(self._sleep(delay), token, label)
            except RequestCancelled as exc:
                exc.attempts = attempt
                self._emit(AttemptEvent(request_id, label, attempt, RequestState.CANCELLED, queue_wait=queue_wait))
                raise

    # ─────────────────────────────────────────────────────────────────────────
    # Concurrency slots
    # ─────────────────────────────────────────────────────────────────────────

    async def _acquire(self, token: CancellationToken, label: str) -> None:
        """Take a slot, queueing FIFO behind earlier waiters when saturated."""
        if self._running < self._limit and not self._waiters:
            self._running += 1
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        unregister = token.on_cancel(lambda: waiter.done() or waiter.cancel())
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Slot was handed over just before cancellation arrived
                self._release()
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            if token.is_cancelled and not _task_cancelling():
                raise RequestCancelled(label) from None
            raise
        finally:
            unregister()

    def _release(self) -> None:
        """Hand the slot to the next live waiter, or free it."""
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._running -= 1

    # ─────────────────────────────────────────────────────────────────────────
    # Rolling admission window
    # ─────────────────────────────────────────────────────────────────────────

    async def _admit(self, token: CancellationToken, label: str) -> None:
        """Wait until starting one more attempt keeps the window under the rate cap."""
        while True:
            token.raise_if_cancelled(label)
            now = self._clock()
            cutoff = now - self._window
            while self._admissions and self._admissions[0] <= cutoff:
                self._admissions.popleft()
            if len(self._admissions) < self._rate:
                self._admissions.append(now)
                return
            wait = self._admissions[0] + self._window - now
            await self._until_cancelled(self._sleep(max(wait, 0.0)), token, label)

    # ─────────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────────

    async def _until_cancelled(self, aw: Awaitable[T], token: CancellationToken, label: str) -> T:
        """Await ``aw`` unless ``token`` fires first; a late result is discarded."""
        task = asyncio.ensure_future(aw)
        if token.is_cancelled:
            _abandon(task)
            raise RequestCancelled(label)

        stop: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        unregister = token.on_cancel(lambda: stop.done() or stop.set_result(None))
        try:
            await asyncio.wait((task, stop), return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            unregister()
            if not stop.done():
                stop.cancel()

        if token.is_cancelled:
            _abandon(task)
            raise RequestCancelled(label)
        return task.result()

    def _emit(self, event: AttemptEvent) -> None:
        if self._hook is None:
            return
        try:
            self._hook(event)
        except Exception:
            logger.exception(f"[{event.label}] attempt hook failed")


def _abandon(task: asyncio.Future[object]) -> None:
    """Cancel a task whose outcome is no longer wanted and swallow its result."""
    if not task.done():
        task.cancel()
    task.add_done_callback(_consume)


def _consume(task: asyncio.Future[object]) -> None:
    if not task.cancelled():
        task.exception()


def _task_cancelling() -> bool:
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0
