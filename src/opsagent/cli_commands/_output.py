"""Shared CLI output formatters."""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from opsagent.core.decisions.models import Gate, ValidationResult  # noqa: TC001
from opsagent.sdk.models import AgentSettings  # noqa: TC001

console = Console()


def print_settings_summary(settings: AgentSettings, *, as_json: bool = False) -> None:
    """Pretty-print a settings summary.  API keys are never printed."""
    if as_json:
        data = settings.model_dump(mode="json", exclude={"model": {"api_key"}})
        console.print_json(json.dumps(data))
        return

    agent = settings.agent
    console.print("\n[bold]Settings OK[/bold]")
    console.print(f"  Model: {settings.model.model} (provider {settings.model.provider})")
    console.print(f"  Tenant: {agent.tenant_id}")
    console.print(f"  Thresholds: auto {agent.auto_execute_threshold}, approval {agent.require_approval_threshold}")
    console.print(f"  Decision limits: {agent.max_decisions_per_minute}/min, {agent.max_decisions_per_hour}/hour")
    console.print(f"  Dry run: {agent.dry_run}")

    table = Table(title="Subscribed Events")
    table.add_column("Event", style="cyan")
    for event_name in agent.subscribed_events:
        table.add_row(event_name)
    console.print(table)


def print_validation(result: ValidationResult, gate: Gate | None, *, as_json: bool = False) -> None:
    """Pretty-print a decision validation result and its gate outcome."""
    if as_json:
        data: dict[str, Any] = {
            "is_valid": result.is_valid,
            "errors": result.errors,
            "warnings": result.warnings,
            "gate": gate.value if gate else None,
            "decision": (
                result.sanitized_decision.model_dump(mode="json", by_alias=True)
                if result.sanitized_decision
                else None
            ),
        }
        console.print_json(json.dumps(data))
        return

    if result.is_valid:
        console.print("[green]Decision is valid[/green]")
    else:
        console.print("[red]Decision is invalid[/red]")

    for error in result.errors:
        console.print(f"  [red]error:[/red] {escape(_truncate(error, 200))}")
    for warning in result.warnings:
        console.print(f"  [yellow]warning:[/yellow] {escape(_truncate(warning, 200))}")

    decision = result.sanitized_decision
    if decision is None:
        return

    table = Table(title=f"Actions ({decision.intent}, confidence {decision.confidence})")
    table.add_column("#")
    table.add_column("Type", style="cyan")
    table.add_column("Priority")
    table.add_column("Confirm")
    for index, action in enumerate(decision.actions):
        table.add_row(str(index), action.type, str(action.priority), "yes" if action.requires_confirmation else "no")
    console.print(table)
    if gate is not None:
        console.print(f"Gate: [bold]{gate.value}[/bold]")


def _truncate(text: str, max_len: int = 80) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
