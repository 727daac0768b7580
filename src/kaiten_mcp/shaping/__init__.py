"""Response shaping: verbosity projection, rendering and truncation."""

from .render import ResponseFormat, render, to_json, to_markdown
from .shaper import ResponseShaper
from .truncate import DEFAULT_CEILING, truncate, truncation_notice
from .verbosity import ResourceKind, ShapeContext, Verbosity, project

__all__ = [
    "ResponseFormat", "render", "to_json", "to_markdown",
    "ResponseShaper",
    "DEFAULT_CEILING", "truncate", "truncation_notice",
    "ResourceKind", "ShapeContext", "Verbosity", "project",
]
