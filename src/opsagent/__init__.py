"""opsagent: event-driven decision agents over task lifecycles."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from opsagent.sdk.loader import SettingsLoader as SettingsLoader
    from opsagent.sdk.loader import build_task_agent as build_task_agent

_SDK_EXPORTS = {
    "SettingsLoader": "opsagent.sdk.loader",
    "build_task_agent": "opsagent.sdk.loader",
}


def __getattr__(name: str) -> object:
    module_path = _SDK_EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'opsagent' has no attribute {name!r}")
