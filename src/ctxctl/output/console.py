"""Rich Console factory and theme for ctxctl output.

Creates Console instances that render to a StringIO buffer, preserving
the ``format_result() -> str`` contract. In non-TTY environments
(tests, pipes) Rich automatically disables color codes.
"""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.theme import Theme

CTX_THEME = Theme(
    {
        "ctx.ok": "bold green",
        "ctx.error": "bold red",
        "ctx.warning": "bold yellow",
        "ctx.op": "bold cyan",
        "ctx.key": "dim",
        "ctx.id": "bold blue",
        "ctx.path": "dim",
        "ctx.value": "bold",
        "ctx.omitted": "dim strike",
        "ctx.scope.global": "magenta",
        "ctx.scope.domain": "blue",
        "ctx.scope.project": "cyan",
        "ctx.scope.path": "green",
        "ctx.scope.feature": "yellow",
    }
)

_SCOPE_STYLES: dict[str, str] = {
    "global": "ctx.scope.global",
    "domain": "ctx.scope.domain",
    "project": "ctx.scope.project",
    "path": "ctx.scope.path",
    "feature": "ctx.scope.feature",
}


def create_console(*, no_color: bool = False, width: int | None = None) -> Console:
    """Create a Console that renders to a StringIO buffer.

    Args:
        no_color: Disable ANSI escape codes (used in tests).
        width: Override terminal width (useful for consistent test output).
    """
    return Console(
        file=StringIO(),
        theme=CTX_THEME,
        no_color=no_color,
        highlight=False,
        width=width or 120,
    )


def get_output(console: Console) -> str:
    """Extract rendered text from a StringIO-backed Console."""
    assert isinstance(console.file, StringIO)
    return console.file.getvalue()


def style_for_scope(scope: str) -> str:
    """Return the Rich style name for a layer scope."""
    return _SCOPE_STYLES.get(scope, "")
