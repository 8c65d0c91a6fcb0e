"""Command group: inspect and validate layer documents."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from ctxctl.commands._options import examples_option
from ctxctl.domain.types import Scope

if TYPE_CHECKING:
    from ctxctl.commands._context import AppContext


@click.group()
@examples_option(
    """\
  ctxctl layers list
  ctxctl layers list --scope path
  ctxctl layers check
  ctxctl layers check --errors-only"""
)
@click.pass_obj
def layers(app: AppContext) -> None:
    """Inspect and validate layer documents."""


@layers.command("list")
@examples_option(
    """\
  ctxctl layers list
  ctxctl layers list --scope domain
  ctxctl -q layers list --scope path"""
)
@click.option(
    "--scope",
    type=click.Choice([s.value for s in Scope]),
    default=None,
    help="Only layers of this scope.",
)
@click.pass_obj
def list_cmd(app: AppContext, scope: str | None) -> None:
    """List loaded layers."""
    from ctxctl.services.context import ContextService

    app.emit(ContextService(app.engine).list_layers(scope))


@layers.command()
@examples_option(
    """\
  ctxctl layers check
  ctxctl layers check --errors-only
  ctxctl --json layers check"""
)
@click.option("--errors-only", is_flag=True, help="Hide warnings.")
@click.pass_obj
def check(app: AppContext, errors_only: bool) -> None:
    """Validate every layer document without loading a snapshot."""
    from ctxctl.services.check import CheckService

    svc = CheckService(app.engine)
    app.emit(svc.check(min_severity="error" if errors_only else "warning"))
