"""Length truncation for serialized tool output.

Truncation is textual: the cut may land inside a JSON string or object. The
consumer is a token-budgeted reader, so a clear notice matters more than
well-formed output.
"""

from __future__ import annotations

DEFAULT_CEILING = 100_000
CHARS_PER_TOKEN = 4

_RULE = "─" * 41


def truncation_notice(original_length: int, ceiling: int) -> str:
    """Trailer appended to truncated text."""
    return (
        f"\n\n{_RULE}\n"
        "RESPONSE TRUNCATED\n"
        f"Original length: {original_length:,} characters\n"
        f"Truncated: {original_length - ceiling:,} characters\n"
        f"Showing: {ceiling:,} characters (~{round(ceiling / CHARS_PER_TOKEN):,} tokens)\n\n"
        "To reduce response size:\n"
        "   - Use more specific filters (board_id, space_id, column_id)\n"
        "   - Reduce the limit parameter\n"
        "   - Use verbosity: 'minimal' for compact output\n"
        "   - Search in smaller time ranges (created_after, updated_after)\n"
        f"{_RULE}"
    )


def truncate(text: str, ceiling: int = DEFAULT_CEILING) -> str:
    """Cut ``text`` to ``ceiling`` characters and append a notice.

    Text at or under the ceiling is returned unchanged.

    Example:
        >>> truncate("short", 100)
        'short'
        >>> truncate("x" * 200, 100).startswith("x" * 100 + "\\n\\n")
        True
    """
    if len(text) <= ceiling:
        return text
    return text[:ceiling] + truncation_notice(len(text), ceiling)
