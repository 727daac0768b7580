"""Shared fixtures: settings, scripted transport, virtual clock and app."""

from __future__ import annotations

from typing import Callable

import pytest

from kaiten_mcp.app import KaitenApp
from kaiten_mcp.foundation.config import KaitenSettings
from kaiten_mcp.foundation.testing import FakeClock, MockTransport

API_URL = "https://acme.kaiten.ru/api/latest"
API_TOKEN = "kt_live_0123456789abcdefXYZW"


@pytest.fixture
def make_settings() -> Callable[..., KaitenSettings]:
    """Settings factory with deterministic retry delays (no jitter)."""
    def factory(**overrides: object) -> KaitenSettings:
        values: dict[str, object] = {"api_url": API_URL, "api_token": API_TOKEN, "retry_jitter_ms": 0, **overrides}
        return KaitenSettings(_env_file=None, **values)  # type: ignore[arg-type]
    return factory


@pytest.fixture
def settings(make_settings: Callable[..., KaitenSettings]) -> KaitenSettings:
    return make_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> MockTransport:
    return MockTransport()


@pytest.fixture
def make_app(transport: MockTransport, clock: FakeClock) -> Callable[[KaitenSettings], KaitenApp]:
    def factory(settings: KaitenSettings) -> KaitenApp:
        return KaitenApp.create(settings, transport=transport, clock=clock, sleep=clock.sleep)
    return factory


@pytest.fixture
def app(settings: KaitenSettings, make_app: Callable[[KaitenSettings], KaitenApp]) -> KaitenApp:
    return make_app(settings)
