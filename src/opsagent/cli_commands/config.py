"""``opsagent config``: validate agent settings files."""

from __future__ import annotations

import sys
from pathlib import Path

import click
from rich.markup import escape

from opsagent.cli_commands._output import console, print_settings_summary
from opsagent.sdk.errors import SettingsValidationError
from opsagent.sdk.loader import SettingsLoader


@click.group()
def config() -> None:
    """Inspect agent settings."""


@config.command("check")
@click.argument("settings_file", type=click.Path(exists=True))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def check(settings_file: str, as_json: bool) -> None:
    """Validate a settings YAML file and print a summary.

    Environment variables (``${VAR}``) are expanded before validation.
    """
    try:
        settings = SettingsLoader(Path(settings_file)).load()
    except SettingsValidationError as exc:
        console.print(f"[red]Invalid settings:[/red] {escape(str(exc))}")
        sys.exit(1)

    print_settings_summary(settings, as_json=as_json)
