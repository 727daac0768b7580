"""Application container: builds and owns every long-lived component.

Nothing is a module-level singleton. ``KaitenApp.create(settings)`` wires a
fresh transport, governor, cache, metrics collector, client and shaper;
``await app.aclose()`` releases them. Tests create one app per test.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from kaiten_mcp import __version__
from kaiten_mcp.client import KaitenClient
from kaiten_mcp.foundation.config import KaitenSettings
from kaiten_mcp.foundation.http import Transport
from kaiten_mcp.io.cache import ResourceCache
from kaiten_mcp.io.transport import BearerAuth, HttpxTransport
from kaiten_mcp.runtime.governor import RequestGovernor
from kaiten_mcp.runtime.observability import MetricsCollector
from kaiten_mcp.runtime.retry import NO_RETRY, RetryPolicy
from kaiten_mcp.shaping import ResponseShaper, ShapeContext

logger = logging.getLogger("kaiten_mcp.app")


@dataclass(slots=True)
class KaitenApp:
    """Wired set of components for one Kaiten account."""

    settings: KaitenSettings
    transport: Transport
    governor: RequestGovernor
    client: KaitenClient
    cache: ResourceCache
    shaper: ResponseShaper
    metrics: MetricsCollector
    closed: bool = False

    @classmethod
    def create(
        cls,
        settings: KaitenSettings,
        *,
        transport: Transport | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> KaitenApp:
        """Build all components from ``settings``.

        Args:
            settings: Validated configuration
            transport: Override the httpx transport (tests pass a MockTransport)
            clock: Monotonic clock shared by governor and cache
            sleep: Async sleep used by the governor
        """
        transport = transport or HttpxTransport(
            settings.api_url,
            BearerAuth(token=settings.api_token),
            timeout=settings.timeout_seconds,
            user_agent=f"kaiten-mcp/{__version__}",
        )
        metrics = MetricsCollector(enabled=settings.logging.metrics)
        governor = RequestGovernor(
            concurrency=settings.max_concurrent_requests,
            rate_per_second=settings.admission_rate,
            retry_policy=RetryPolicy.from_millis(
                settings.max_retries, settings.retry_base_delay_ms, settings.retry_jitter_ms,
            ) if settings.max_retries else NO_RETRY,
            hook=metrics,
            clock=clock,
            sleep=sleep,
            log_requests=settings.logging.requests,
        )
        app = cls(
            settings=settings,
            transport=transport,
            governor=governor,
            client=KaitenClient(transport, governor, timeout=settings.timeout_seconds),
            cache=ResourceCache(settings.cache_ttl_seconds, settings.cache_capacity, clock=clock),
            shaper=ResponseShaper(
                ShapeContext(web_url=settings.web_url, default_space_id=settings.default_space_id),
                settings.max_response_chars,
            ),
            metrics=metrics,
        )
        logger.info(
            f"Kaiten app ready: {settings.web_url} (concurrency={settings.max_concurrent_requests}, "
            f"rate={settings.admission_rate}/s, retries={settings.max_retries}, cache_ttl={settings.cache_ttl_seconds}s)"
        )
        return app

    async def aclose(self) -> None:
        """Close the HTTP client and drop cached data. Safe to call twice."""
        if self.closed:
            return
        self.closed = True
        self.cache.close()
        await self.transport.aclose()
        logger.info("Kaiten app closed")

    async def __aenter__(self) -> KaitenApp:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()
