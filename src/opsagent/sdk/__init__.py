"""opsagent SDK: settings loading and agent wiring."""

from opsagent.sdk.errors import SettingsValidationError
from opsagent.sdk.loader import SettingsLoader, build_task_agent, engine_config_for
from opsagent.sdk.models import AgentSettings, TelemetrySettings

__all__ = [
    "AgentSettings",
    "SettingsLoader",
    "SettingsValidationError",
    "TelemetrySettings",
    "build_task_agent",
    "engine_config_for",
]
