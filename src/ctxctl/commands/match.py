"""Command: show which path layers match a file, in rank order."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from ctxctl.commands._options import examples_option

if TYPE_CHECKING:
    from ctxctl.commands._context import AppContext


@click.command()
@examples_option(
    """\
  ctxctl match src/handlers/user.ts
  ctxctl -q match src/handlers/user.ts
  ctxctl --json match docs/index.md"""
)
@click.argument("path")
@click.pass_obj
def match(app: AppContext, path: str) -> None:
    """List path patterns matching PATH, most specific first."""
    from ctxctl.services.context import ContextService

    app.emit(ContextService(app.engine).match(path))
