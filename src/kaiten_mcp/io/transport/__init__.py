"""HTTP transport for the Kaiten API."""

from kaiten_mcp.foundation.http import Response, Transport, TransportFailure

from .client import USER_AGENT, BearerAuth, HttpxTransport

__all__ = ["Response", "Transport", "TransportFailure", "USER_AGENT", "BearerAuth", "HttpxTransport"]
