"""kaiten_mcp - Kaiten project-management API exposed as MCP tools.

Layers:
- foundation: typed errors and classifier, settings, transport value types
- runtime: cancellation tokens, retry policy, request governor, observability
- io: httpx transport and the read-through resource cache
- client: one typed method per Kaiten endpoint
- shaping: verbosity projection, rendering and truncation
- ext.mcp: tool dispatcher and FastMCP server

Quick Start:
    >>> from kaiten_mcp import KaitenApp, get_settings
    >>> app = KaitenApp.create(get_settings())
    >>> card = await app.client.get_card(42)
    >>> await app.aclose()
"""

__version__ = "2.2.0"

from .app import KaitenApp
from .foundation.config import KaitenSettings, get_settings
from .foundation.errors import ErrorKind, KaitenError, KaitenException, RequestCancelled
from .runtime.cancellation import CancellationToken

__all__ = [
    "__version__",
    "KaitenApp",
    "KaitenSettings", "get_settings",
    "ErrorKind", "KaitenError", "KaitenException", "RequestCancelled",
    "CancellationToken",
]
