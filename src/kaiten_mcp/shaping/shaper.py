"""Single entry point applied to every resource-returning tool result."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .render import ResponseFormat, render
from .truncate import DEFAULT_CEILING, truncate
from .verbosity import ResourceKind, ShapeContext, Verbosity, project


@dataclass(frozen=True, slots=True)
class ResponseShaper:
    """Project, render, then truncate.

    Attributes:
        context: Deployment facts used to build card links
        ceiling: Maximum characters before truncation

    Example:
        >>> shaper = ResponseShaper(ShapeContext(web_url="https://acme.kaiten.ru"))
        >>> shaper.shape(cards, ResourceKind.CARD_SUMMARY, Verbosity.MINIMAL)
        '[\\n  {\\n    "id": 1,\\n    "title": "Fix login"\\n  }\\n]'
    """

    context: ShapeContext = field(default_factory=ShapeContext)
    ceiling: int = DEFAULT_CEILING

    def project(self, value: Any, kind: ResourceKind, verbosity: Verbosity | str = Verbosity.NORMAL) -> Any:
        return project(value, verbosity, kind, context=self.context)

    def shape(
        self,
        value: Any,
        kind: ResourceKind,
        verbosity: Verbosity | str = Verbosity.NORMAL,
        fmt: ResponseFormat | str = ResponseFormat.JSON,
        *,
        title: str | None = None,
    ) -> str:
        return self.finish(render(self.project(value, kind, verbosity), fmt, title))

    def finish(self, text: str) -> str:
        """Apply the length ceiling to already-rendered text."""
        return truncate(text, self.ceiling)
