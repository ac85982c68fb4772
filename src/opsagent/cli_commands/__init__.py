"""CLI subcommand registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all subcommands on the CLI group."""
    from opsagent.cli_commands.config import config
    from opsagent.cli_commands.decision import decision

    cli.add_command(config)
    cli.add_command(decision)
