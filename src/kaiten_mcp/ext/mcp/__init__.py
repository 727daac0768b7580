"""MCP adapter: tool dispatcher, FastMCP bridge and server.

Requires fastmcp (a core dependency of kaiten-mcp).
"""

from .bridge import get_tool_schema, model_signature, tool_to_handler
from .server import PROMPT_NAME, SERVER_PROMPT, KaitenMCPServer, main
from .tools import (
    TOOLS,
    ToolArgumentError,
    ToolCall,
    ToolDispatcher,
    ToolOutput,
    ToolSpec,
    error_output,
    failure_output,
)

__all__ = [
    "get_tool_schema", "model_signature", "tool_to_handler",
    "PROMPT_NAME", "SERVER_PROMPT", "KaitenMCPServer", "main",
    "TOOLS", "ToolArgumentError", "ToolCall", "ToolDispatcher", "ToolOutput", "ToolSpec",
    "error_output", "failure_output",
]
