"""Pydantic models for the agent settings YAML consumed by ``opsagent``."""

from __future__ import annotations

from pydantic import BaseModel

from opsagent.agent.config import TaskAgentConfig
from opsagent.core.decisions.config import DecisionEngineConfig
from opsagent.core.interface.config import ModelConfig


class TelemetrySettings(BaseModel):
    """Optional telemetry configuration."""

    enabled: bool = False
    service_name: str = "opsagent"
    export_to_console: bool = False
    otlp_endpoint: str | None = None


class AgentSettings(BaseModel):
    """Top-level settings parsed from YAML.

    ``engine`` is optional; without it the decision engine is configured
    from the thresholds and enabled actions in the ``agent`` section.
    """

    version: str = "1"
    model: ModelConfig
    agent: TaskAgentConfig
    engine: DecisionEngineConfig | None = None
    telemetry: TelemetrySettings | None = None
