"""Settings loading and agent wiring for the opsagent SDK."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from opsagent.agent.ports import ActionExecutor, EventSource, TaskStore
from opsagent.agent.task_agent import TaskAgent
from opsagent.core.decisions.config import DecisionEngineConfig
from opsagent.core.decisions.engine import DecisionEngine
from opsagent.core.interface.client import ModelClient
from opsagent.sdk.errors import SettingsValidationError
from opsagent.sdk.models import AgentSettings
from opsagent.utils.telemetry import configure_telemetry

logger = logging.getLogger(__name__)


class SettingsLoader:
    """Load and validate an agent settings YAML file into :class:`AgentSettings`."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def load(self) -> AgentSettings:
        """Read YAML, interpolate env vars, and validate.

        Environment variables in the form ``${VAR}`` or ``$VAR`` are expanded
        using :func:`os.path.expandvars` before YAML parsing.

        Raises:
            SettingsValidationError: On read errors, YAML parse errors or
                schema validation failures.
        """
        try:
            raw = self._path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise SettingsValidationError(f"Cannot read {self._path}: {exc}") from exc

        expanded = os.path.expandvars(raw)

        try:
            data: Any = yaml.safe_load(expanded)
        except yaml.YAMLError as exc:
            raise SettingsValidationError(f"YAML parse error: {exc}") from exc

        if not isinstance(data, dict):
            raise SettingsValidationError("Settings YAML must be a mapping")

        try:
            return AgentSettings.model_validate(data)
        except ValidationError as exc:
            raise SettingsValidationError(str(exc)) from exc


def engine_config_for(settings: AgentSettings) -> DecisionEngineConfig:
    """The explicit ``engine`` section, or one derived from the ``agent`` section."""
    if settings.engine is not None:
        return settings.engine
    return DecisionEngineConfig(
        auto_execute_threshold=settings.agent.auto_execute_threshold,
        require_approval_threshold=settings.agent.require_approval_threshold,
        enabled_actions=settings.agent.enabled_actions,
    )


def build_task_agent(
    settings: AgentSettings,
    *,
    store: TaskStore,
    events: EventSource,
    executor: ActionExecutor,
) -> TaskAgent:
    """Wire a :class:`TaskAgent` from *settings* and the given collaborators.

    Telemetry is configured first when the settings enable it.
    """
    telemetry = settings.telemetry
    if telemetry is not None and telemetry.enabled:
        configure_telemetry(
            service_name=telemetry.service_name,
            export_to_console=telemetry.export_to_console,
            otlp_endpoint=telemetry.otlp_endpoint,
        )

    client = ModelClient(settings.model)
    if not client.is_ready():
        logger.warning("No credentials configured for provider %s", settings.model.provider)

    return TaskAgent(
        settings.agent,
        client=client,
        store=store,
        events=events,
        executor=executor,
        engine=DecisionEngine(engine_config_for(settings)),
    )
