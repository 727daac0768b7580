"""Testing utilities: scripted transport and virtual clock."""

from .mock import FakeClock, Invocation, MockTransport, json_response

__all__ = ["FakeClock", "Invocation", "MockTransport", "json_response"]
