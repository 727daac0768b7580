"""Test doubles for the transport and the clock.

- MockTransport: scripted responses/failures with invocation recording
- FakeClock: virtual monotonic time whose ``sleep`` advances the clock
- json_response: build a Response from a JSON-serializable value
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, Callable, Union

import orjson

from kaiten_mcp.foundation.http import Response
from kaiten_mcp.foundation.types import JsonDict, JsonValue

if TYPE_CHECKING:
    from kaiten_mcp.runtime.cancellation import CancellationToken


@dataclass(slots=True)
class Invocation:
    """Record of a single transport call."""
    method: str
    path: str
    query: JsonDict | None = None
    body: JsonValue = None
    headers: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        return next((v for k, v in self.headers.items() if k.lower() == lowered), None)


Reply = Union[Response, BaseException, Callable[[Invocation], Union[Response, Awaitable[Response]]]]


def json_response(data: JsonValue, status: int = 200, headers: dict[str, str] | None = None) -> Response:
    """Response carrying ``data`` serialized as JSON."""
    return Response(status_code=status, headers=headers or {}, text=orjson.dumps(data).decode())


@dataclass
class MockTransport:
    """Scripted stand-in for ``HttpxTransport``.

    Replies are resolved in order: a route registered for ``"METHOD /path"``,
    then the next item of ``script``, then ``default``. A reply may be a
    Response, an exception to raise, or a callable receiving the invocation.

    Attributes:
        script: Replies consumed one per call
        routes: Replies returned for every call to a given method and path
        default: Reply once script is exhausted (404 when unset)
        latency: Real seconds each call takes (lets concurrency tests overlap)
        gate: When set, calls block until the event is set
    """
    script: deque[Reply] = field(default_factory=deque)
    routes: dict[str, Reply] = field(default_factory=dict)
    default: Reply | None = None
    latency: float = 0.0
    gate: asyncio.Event | None = None
    invocations: list[Invocation] = field(default_factory=list)
    in_flight: int = 0
    max_in_flight: int = 0
    cancelled: int = 0
    closed: bool = False

    def queue(self, *replies: Reply) -> MockTransport:
        self.script.extend(replies)
        return self

    def route(self, method: str, path: str, reply: Reply) -> MockTransport:
        self.routes[f"{method.upper()} {path}"] = reply
        return self

    @property
    def call_count(self) -> int:
        return len(self.invocations)

    @property
    def called(self) -> bool:
        return self.call_count > 0

    @property
    def last_call(self) -> Invocation | None:
        return self.invocations[-1] if self.invocations else None

    def calls_to(self, method: str, path: str) -> list[Invocation]:
        return [i for i in self.invocations if i.method == method.upper() and i.path == path]

    def assert_not_called(self) -> None:
        if self.called:
            raise AssertionError(f"Transport called {self.call_count} times")

    async def send(
        self,
        method: str,
        path: str,
        *,
        query: JsonDict | None = None,
        body: JsonValue = None,
        headers: dict[str, str] | None = None,
        timeout: float,
        token: CancellationToken | None = None,
    ) -> Response:
        invocation = Invocation(method.upper(), path, query, body, dict(headers or {}), timeout)
        self.invocations.append(invocation)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.latency:
                await asyncio.sleep(self.latency)
            return await self._resolve(invocation)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        finally:
            self.in_flight -= 1

    async def _resolve(self, invocation: Invocation) -> Response:
        key = f"{invocation.method} {invocation.path}"
        if key in self.routes:
            reply = self.routes[key]
        elif self.script:
            reply = self.script.popleft()
        elif self.default is not None:
            reply = self.default
        else:
            reply = Response(status_code=404, text='{"message": "no scripted reply"}')

        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, Response):
            return reply
        result = reply(invocation)
        return await result if asyncio.iscoroutine(result) else result  # type: ignore[return-value]

    async def aclose(self) -> None:
        self.closed = True


@dataclass(slots=True)
class FakeClock:
    """Virtual monotonic clock. ``await clock.sleep(s)`` advances time by ``s``.

    Example:
        >>> clock = FakeClock()
        >>> governor = RequestGovernor(clock=clock, sleep=clock.sleep)
    """
    now: float = 0.0
    sleeps: list[float] = field(default_factory=list)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += max(seconds, 0.0)
        await asyncio.sleep(0)
