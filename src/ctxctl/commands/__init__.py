"""Subcommand modules for ctxctl.

Provides register_commands() which uses deferred imports to keep
``ctxctl --help`` fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register the ``layers`` group and the standalone commands on the root group."""
    # --- Groups ---
    from ctxctl.commands.layers import layers

    cli.add_command(layers)

    # --- Standalone commands ---
    from ctxctl.commands.match import match
    from ctxctl.commands.resolve import resolve

    cli.add_command(resolve)
    cli.add_command(match)
