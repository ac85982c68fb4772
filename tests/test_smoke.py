"""Smoke test to verify the project scaffolding works."""

from __future__ import annotations


def test_import() -> None:
    import opsagent

    assert opsagent.__version__ == "0.1.0"


def test_cli_entrypoint() -> None:
    from opsagent.cli import main

    assert callable(main)


def test_public_imports() -> None:
    from opsagent.agent import InMemoryTaskStore, TaskAgent, TaskAgentConfig
    from opsagent.core.decisions import DecisionEngine, DecisionEngineConfig, Gate
    from opsagent.core.interface import ModelClient, ModelConfig, RetryPolicy
    from opsagent.sdk import AgentSettings, SettingsLoader, SettingsValidationError, build_task_agent

    assert TaskAgent is not None
    assert TaskAgentConfig is not None
    assert InMemoryTaskStore is not None
    assert DecisionEngine is not None
    assert DecisionEngineConfig is not None
    assert Gate is not None
    assert ModelClient is not None
    assert ModelConfig is not None
    assert RetryPolicy is not None
    assert AgentSettings is not None
    assert SettingsLoader is not None
    assert SettingsValidationError is not None
    assert build_task_agent is not None


def test_lazy_import_from_opsagent() -> None:
    import opsagent

    assert opsagent.SettingsLoader is not None
    assert opsagent.build_task_agent is not None
