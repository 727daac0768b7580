"""Bridge between the tool dispatcher and MCP tool primitives.

FastMCP derives a tool's input schema from the handler's signature, so each
handler gets an explicit keyword-only signature built from the tool's
argument model. The handler itself only forwards to ``ToolDispatcher``.
"""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Annotated, Any, Callable

from pydantic import BaseModel, Field
from pydantic_core import PydanticUndefined

if TYPE_CHECKING:
    from .tools import ToolDispatcher, ToolSpec


def tool_to_handler(spec: ToolSpec, dispatcher: ToolDispatcher) -> Callable[..., Any]:
    """Wrap a tool as an async MCP handler.

    Error outcomes raise ``fastmcp.exceptions.ToolError`` carrying the JSON
    error payload, so the client sees ``isError`` with the same text.

    Args:
        spec: Tool to expose
        dispatcher: Dispatcher that validates and runs the call

    Returns:
        Async function suitable for ``FastMCP.tool``
    """
    from fastmcp.exceptions import ToolError

    name = spec.name

    async def handler(**kwargs: Any) -> str:
        output = await dispatcher.invoke(name, {k: v for k, v in kwargs.items() if v is not None})
        if output.is_error:
            raise ToolError(output.text)
        return output.text

    handler.__name__ = name
    handler.__doc__ = spec.description
    handler.__signature__ = model_signature(spec.args)  # type: ignore[attr-defined]
    handler.__annotations__ = {**_extract_annotations(spec.args), "return": str}
    return handler


def model_signature(model: type[BaseModel]) -> inspect.Signature:
    """Keyword-only signature mirroring a pydantic model's fields."""
    annotations = _extract_annotations(model)
    params = [
        inspect.Parameter(
            name,
            inspect.Parameter.KEYWORD_ONLY,
            default=inspect.Parameter.empty if info.is_required() else _default(info.default),
            annotation=annotations[name],
        )
        for name, info in model.model_fields.items()
    ]
    return inspect.Signature(params, return_annotation=str)


def _extract_annotations(model: type[BaseModel]) -> dict[str, Any]:
    """Field annotations with their constraints and descriptions attached."""
    result: dict[str, Any] = {}
    for name, info in model.model_fields.items():
        annotation = info.annotation or str
        extra = [*info.metadata]
        if info.description:
            extra.append(Field(description=info.description))
        result[name] = Annotated[(annotation, *extra)] if extra else annotation  # type: ignore[valid-type]
    return result


def _default(value: Any) -> Any:
    return None if value is PydanticUndefined else value


def get_tool_schema(spec: ToolSpec) -> dict[str, object]:
    """JSON schema of a tool's arguments with pydantic titles stripped."""
    schema = spec.args.model_json_schema()
    schema.pop("title", None)
    for prop in schema.get("properties", {}).values():
        prop.pop("title", None)
    return schema
