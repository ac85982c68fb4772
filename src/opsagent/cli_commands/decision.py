"""``opsagent decision``: validate model decisions offline."""

from __future__ import annotations

import sys
from pathlib import Path

import click
from rich.markup import escape

from opsagent.cli_commands._output import console, print_validation
from opsagent.core.decisions.config import DecisionEngineConfig
from opsagent.core.decisions.engine import DecisionEngine
from opsagent.sdk.errors import SettingsValidationError
from opsagent.sdk.loader import SettingsLoader, engine_config_for


@click.group()
def decision() -> None:
    """Work with model decisions."""


@decision.command("validate")
@click.argument("decision_file", type=click.Path(exists=True))
@click.option(
    "--settings",
    "settings_file",
    default=None,
    type=click.Path(exists=True),
    help="Settings YAML providing thresholds and enabled actions.",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def validate(decision_file: str, settings_file: str | None, as_json: bool) -> None:
    """Validate a decision JSON file and show its gate outcome.

    DECISION_FILE holds a model answer; a surrounding code fence is allowed.
    Exits with status 1 when the decision is invalid.
    """
    engine_config = DecisionEngineConfig()
    if settings_file:
        try:
            engine_config = engine_config_for(SettingsLoader(Path(settings_file)).load())
        except SettingsValidationError as exc:
            console.print(f"[red]Invalid settings:[/red] {escape(str(exc))}")
            sys.exit(1)

    try:
        text = Path(decision_file).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        console.print(f"[red]Cannot read {decision_file}:[/red] {escape(str(exc))}")
        sys.exit(1)

    engine = DecisionEngine(engine_config)
    result = engine.validate_decision(text)
    gate = engine.gate(result.sanitized_decision) if result.sanitized_decision else None
    print_validation(result, gate, as_json=as_json)

    if not result.is_valid:
        sys.exit(1)
