"""AppContext: shared Click context for all commands.

Created once by the root CLI group and flows to all subcommands via
``@click.pass_obj``. Provides lazy engine initialization and centralized
result emission (stdout/stderr routing + exit codes).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from ctxctl.output.formatters import OutputSettings, format_result

if TYPE_CHECKING:
    from ctxctl.config.settings import CtxSettings
    from ctxctl.services.engine import ContextEngine
    from ctxctl.services.result import ServiceResult


class AppContext:
    """Shared context flowing through Click's command hierarchy.

    Subcommands access it via ``@click.pass_obj``. The engine is created
    lazily on first use so ``--help`` and ``--version`` never read layer
    documents. Services load the layer directory on their first call.
    """

    def __init__(self, settings: CtxSettings) -> None:
        self.settings = settings
        self._engine: ContextEngine | None = None

        # Configure structured logging
        from ctxctl.config.logging import configure_logging

        configure_logging(verbose=settings.verbose, log_json=settings.log_json)

        # Enable telemetry context var when verbose
        if settings.verbose:
            from ctxctl.services.telemetry import enable_telemetry

            enable_telemetry()

    @property
    def engine(self) -> ContextEngine:
        """The resolution engine (created lazily on first access)."""
        if self._engine is None:
            from ctxctl.services.engine import ContextEngine

            self._engine = ContextEngine(self.settings)
        return self._engine

    def emit(self, result: ServiceResult) -> None:
        """Format and output a ServiceResult with correct exit semantics.

        * Success (``result.ok``): writes to stdout, returns normally.
          Warnings are emitted to stderr so they don't pollute piped output.
        * Failure: writes to stderr, exits with code 1.
        """
        settings = OutputSettings(
            json_output=self.settings.json_output,
            quiet=self.settings.quiet,
            verbose=self.settings.verbose,
        )
        output = format_result(result, settings=settings)
        if result.ok:
            click.echo(output)
            # In JSON mode, warnings are already in the serialized payload.
            if not settings.json_output:
                for warning in result.warnings:
                    click.echo(f"WARNING: {warning}", err=True)
        else:
            click.echo(output, err=True)
            raise SystemExit(1)
