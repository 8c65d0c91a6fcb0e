"""Command: resolve the context bundle for one task."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import click

from ctxctl.commands._options import examples_option

if TYPE_CHECKING:
    from ctxctl.commands._context import AppContext


@click.command()
@examples_option(
    """\
  ctxctl resolve src/handlers/user.ts
  ctxctl resolve src/handlers/user.ts --domain payments --project checkout
  ctxctl resolve src/api/routes.py --feature dark-mode --task review
  ctxctl resolve src/api/routes.py --budget 4000
  ctxctl resolve --domain payments --as-of 2026-01-31
  ctxctl -q resolve src/handlers/user.ts
  ctxctl --json resolve src/handlers/user.ts"""
)
@click.argument("path", required=False)
@click.option("--domain", default=None, help="Domain layer name.")
@click.option("--project", default=None, help="Project layer name.")
@click.option("--feature", default=None, help="Feature layer name.")
@click.option("--task", "task_type", default=None, help="Task type (default from config).")
@click.option(
    "--budget",
    type=click.IntRange(min=1),
    default=None,
    help="Token budget (default from config).",
)
@click.option(
    "--as-of",
    type=click.DateTime(formats=["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S"]),
    default=None,
    help="Reference date for memory archival (UTC; default today).",
)
@click.pass_obj
def resolve(
    app: AppContext,
    path: str | None,
    domain: str | None,
    project: str | None,
    feature: str | None,
    task_type: str | None,
    budget: int | None,
    as_of: datetime | None,
) -> None:
    """Resolve the merged, budget-fitted context for PATH."""
    from ctxctl.services.context import ContextService

    if as_of is not None and as_of.tzinfo is None:
        as_of = as_of.replace(tzinfo=UTC)

    svc = ContextService(app.engine)
    app.emit(
        svc.resolve(
            path,
            domain=domain,
            project=project,
            feature=feature,
            task_type=task_type,
            budget=budget,
            as_of=as_of,
        )
    )
