"""Root CLI group for ctxctl with global flags and command registration."""

from __future__ import annotations

from pathlib import Path

import click
from pydantic import ValidationError

from ctxctl import __version__
from ctxctl.commands import register_commands
from ctxctl.commands._context import AppContext
from ctxctl.config.settings import ConfigFileError, CtxSettings


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="ctxctl")
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output.")
@click.option("-q", "--quiet", is_flag=True, help="Minimal output.")
@click.option("-v", "--verbose", is_flag=True, help="Detailed output with debug info.")
@click.option("--log-json", is_flag=True, help="Structured JSON log output to stderr.")
@click.option("-c", "--config", "config_path", default=None, help="Override config file path.")
@click.option(
    "--root",
    "layers_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Layer document directory (overrides [store] root).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    quiet: bool,
    verbose: bool,
    log_json: bool,
    config_path: str | None,
    layers_dir: Path | None,
) -> None:
    """ctxctl: hierarchical context resolution for coding agents."""
    ctx.ensure_object(dict)
    try:
        settings = CtxSettings.from_cli(
            config_path=config_path,
            json_output=json_output,
            quiet=quiet,
            verbose=verbose,
            log_json=log_json,
            layers_dir=layers_dir,
        )
    except ConfigFileError as exc:
        raise click.ClickException(str(exc)) from exc
    except ValidationError as exc:
        raise click.ClickException(f"Invalid configuration: {exc}") from exc
    ctx.obj = AppContext(settings)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


register_commands(cli)
