"""Shared fixtures for task agent tests."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from opsagent.agent.memory import InMemoryEventBus, InMemoryTaskStore, RecordingActionExecutor
from opsagent.agent.models import (
    CompletionCriteria,
    TaskEvent,
    TaskInstance,
    TaskStep,
    TaskTemplate,
    TemplateAgentConfig,
    TemplateStep,
)
from opsagent.core.interface.models import ModelResponse, TokenUsage


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_template(**overrides: Any) -> TaskTemplate:
    data: dict[str, Any] = {
        "id": "tpl-onboarding",
        "label": "Customer onboarding",
        "category": "onboarding",
        "steps": [TemplateStep(id="kickoff", label="Kickoff call", order=1)],
        "agent_config": TemplateAgentConfig(
            system_prompt="Keep the customer informed.",
            completion_criteria=CompletionCriteria(required_steps_completed=["kickoff"]),
        ),
    }
    data.update(overrides)
    return TaskTemplate(**data)


def make_task(**overrides: Any) -> TaskInstance:
    data: dict[str, Any] = {
        "id": "task-1",
        "template_id": "tpl-onboarding",
        "tenant_id": "acme",
        "title": "Onboard Globex",
        "steps": [TaskStep(id="kickoff")],
    }
    data.update(overrides)
    return TaskInstance(**data)


def make_event(name: str = "task:created", task_id: str | None = "task-1") -> TaskEvent:
    payload = {"taskId": task_id} if task_id else {}
    return TaskEvent(name=name, payload=payload)


def model_response(decision: dict[str, Any] | str, *, model: str = "openai/gpt-4o-mini") -> ModelResponse:
    content = decision if isinstance(decision, str) else json.dumps(decision)
    return ModelResponse(
        content=content,
        usage=TokenUsage(prompt_tokens=120, completion_tokens=30, total_tokens=150),
        finish_reason="stop",
        latency_ms=42.0,
        model=model,
    )


SET_STATUS_DECISION: dict[str, Any] = {
    "reasoning": "Kickoff scheduled, work has started",
    "confidence": 0.92,
    "actions": [{"type": "SET_STATUS", "params": {"toStatus": "IN_PROGRESS"}}],
}

NO_OP_DECISION: dict[str, Any] = {
    "reasoning": "Waiting on the customer",
    "confidence": 0.8,
    "actions": [{"type": "NO_OP", "reason": "Nothing to do until the customer replies"}],
}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryTaskStore:
    store = InMemoryTaskStore()
    store.add_template(make_template())
    store.add_task(make_task())
    return store


@pytest.fixture
def bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest.fixture
def executor() -> RecordingActionExecutor:
    return RecordingActionExecutor()


@pytest.fixture
def client() -> MagicMock:
    client = MagicMock()
    client.complete = AsyncMock(return_value=model_response(SET_STATUS_DECISION))
    return client
