"""MCP server for Kaiten.

Registers every tool, the resource templates and the server prompt on a
FastMCP instance bound to one ``KaitenApp``.

Example - library use:
    >>> app = KaitenApp.create(get_settings())
    >>> server = KaitenMCPServer(app)
    >>> await server.run_async()

Example - console script:
    $ KAITEN_API_URL=https://acme.kaiten.ru/api/latest KAITEN_API_TOKEN=... kaiten-mcp
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Literal

from pydantic import ValidationError

from kaiten_mcp import __version__
from kaiten_mcp.foundation.config import get_settings
from kaiten_mcp.foundation.errors import KaitenException, RequestCancelled
from kaiten_mcp.runtime.observability import configure_from_settings
from kaiten_mcp.shaping import ResourceKind, Verbosity

from .bridge import tool_to_handler
from .tools import TOOLS, ToolDispatcher, error_output, failure_output

if TYPE_CHECKING:
    from fastmcp import FastMCP

    from kaiten_mcp.app import KaitenApp

logger = logging.getLogger("kaiten_mcp.server")

Transport = Literal["stdio", "sse", "streamable-http"]

SERVER_NAME = "kaiten-mcp"
PROMPT_NAME = "kaiten-server-prompt"
BOARD_RESOURCE_LIMIT = 50

SERVER_PROMPT = """\
Kaiten project management MCP server: manage cards, spaces, boards and comments.

Performance rules:
- kaiten_search_cards: filter by space_id or board_id. Omitted space_id searches the default space; space_id=0 searches ALL spaces and is slow.
- kaiten_list_users: pass query (Kaiten stores Latin names only). Without it every user is returned.
- Keep limit at 20 or below to preserve context. Use verbosity='minimal' for long lists.

Search:
- Default: configured default space, limit=10, newest first.
- query matches title, description and comments partially. For inflected languages search by word root.
- condition: 1=active (default), 2=archived.
- Results are compact; call kaiten_get_card for full details.

Cards:
- Create: title and board_id are required. Find board_id via kaiten_list_boards.
- Update: include only the fields to change.
- Assign: find the user with kaiten_list_users(query=...) and pass the id as owner_id.
- Mutations accept idempotency_key; reuse it when repeating a call that may have failed.

Diagnostics: kaiten_get_status shows queue, cache and metrics; kaiten_set_log_level adjusts logging at runtime.
"""


class KaitenMCPServer:
    """FastMCP-backed server exposing Kaiten tools, resources and a prompt.

    Example:
        >>> server = KaitenMCPServer(app)
        >>> server.run(transport="stdio")
    """

    __slots__ = ("_app", "_dispatcher", "_mcp")

    def __init__(self, app: KaitenApp, name: str = SERVER_NAME) -> None:
        self._app = app
        self._dispatcher = ToolDispatcher(app)
        self._mcp = self._create_server(name)

    @property
    def app(self) -> KaitenApp:
        return self._app

    @property
    def dispatcher(self) -> ToolDispatcher:
        return self._dispatcher

    @property
    def fastmcp(self) -> FastMCP:
        """Access underlying FastMCP instance."""
        return self._mcp

    def _create_server(self, name: str) -> FastMCP:
        from fastmcp import FastMCP

        mcp = FastMCP(name, instructions=SERVER_PROMPT)
        self._register_tools(mcp)
        self._register_resources(mcp)
        self._register_prompt(mcp)
        return mcp

    def _register_tools(self, mcp: FastMCP) -> None:
        for spec in self._dispatcher.tools.values():
            mcp.tool(name=spec.name, description=spec.description)(tool_to_handler(spec, self._dispatcher))
        logger.debug(f"registered {len(self._dispatcher.tools)} tools")

    def _register_resources(self, mcp: FastMCP) -> None:
        app = self._app

        async def read(uri: str, kind: ResourceKind, fetch: Callable[[], Awaitable[Any]]) -> str:
            return app.shaper.shape(await _read_upstream(uri, fetch), kind, Verbosity.NORMAL)

        @mcp.resource("kaiten-card://{card_id}", name="Kaiten Card", mime_type="application/json",
                      description="A Kaiten card with its details and metadata.")
        async def card_resource(card_id: int) -> str:
            return await read(f"kaiten-card://{card_id}", ResourceKind.CARD, lambda: app.client.get_card(card_id))

        @mcp.resource("kaiten-space://{space_id}", name="Kaiten Space", mime_type="application/json",
                      description="A Kaiten space including its boards.")
        async def space_resource(space_id: int) -> str:
            return await read(f"kaiten-space://{space_id}", ResourceKind.SPACE, lambda: app.client.get_space(space_id))

        @mcp.resource("kaiten-board://{board_id}/cards", name="Board Cards", mime_type="application/json",
                      description="Active cards on a Kaiten board, newest first.")
        async def board_cards_resource(board_id: int) -> str:
            return await read(
                f"kaiten-board://{board_id}/cards", ResourceKind.CARD_SUMMARY,
                lambda: app.client.get_board_cards(board_id, limit=BOARD_RESOURCE_LIMIT),
            )

        @mcp.resource("kaiten-current-user://me", name="Current User", mime_type="application/json",
                      description="The user associated with the API token.")
        async def current_user_resource() -> str:
            return await read("kaiten-current-user://me", ResourceKind.USER, app.client.get_current_user)

    def _register_prompt(self, mcp: FastMCP) -> None:
        @mcp.prompt(name=PROMPT_NAME, description="Instructions for using the Kaiten MCP server effectively")
        def server_prompt() -> str:
            return SERVER_PROMPT

    def run(self, transport: Transport = "stdio", *, host: str = "127.0.0.1", port: int = 8080) -> None:
        """Start the server (blocking). The app is closed on exit."""
        asyncio.run(self.run_async(transport, host=host, port=port))

    async def run_async(self, transport: Transport = "stdio", *, host: str = "127.0.0.1", port: int = 8080) -> None:
        logger.info(f"Kaiten MCP server v{__version__} starting on {transport} with {len(TOOLS)} tools")
        try:
            if transport == "stdio":
                await self._mcp.run_async(transport="stdio")
            else:
                await self._mcp.run_async(transport=transport, host=host, port=port)
        finally:
            await self._app.aclose()


async def _read_upstream(uri: str, fetch: Callable[[], Awaitable[Any]]) -> Any:
    """Run a resource read. Failures raise ``ResourceError`` carrying the tool error payload."""
    from fastmcp.exceptions import ResourceError

    try:
        return await fetch()
    except KaitenException as e:
        logger.info(f"[{uri}] {e.error.render()}")
        raise ResourceError(failure_output(e.error).text) from None
    except RequestCancelled as e:
        raise ResourceError(error_output("CANCELLED", str(e)).text) from None


def _settings_error(e: ValidationError) -> str:
    lines = ["Invalid Kaiten configuration:"]
    for err in e.errors(include_url=False):
        field = ".".join(str(p) for p in err["loc"])
        lines.append(f"  {field}: {err['msg']}")
    return "\n".join(lines)


def main() -> None:
    """Console entry point: load settings, configure logging, serve on stdio."""
    from kaiten_mcp.app import KaitenApp

    try:
        settings = get_settings()
    except ValidationError as e:
        print(_settings_error(e), file=sys.stderr)
        sys.exit(1)

    configure_from_settings(settings.logging, secrets=[settings.api_token.get_secret_value()])
    KaitenMCPServer(KaitenApp.create(settings)).run()


if __name__ == "__main__":
    main()
