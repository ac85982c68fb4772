"""Tests for the in-memory collaborators."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from opsagent.agent.memory import InMemoryEventBus, InMemoryTaskStore, RecordingActionExecutor
from opsagent.agent.models import (
    ActionResult,
    DecisionLogEntry,
    DecisionStatus,
    ExecutionContext,
    ExecutionSummary,
    TaskEvent,
)
from opsagent.core.decisions.models import (
    AgentDecision,
    SetStatusAction,
    SetStatusParams,
    TagTaskAction,
    TagTaskParams,
    TaskStatus,
    no_action,
)
from tests.agent.conftest import make_event, make_task


def _entry(task_id: str = "task-1", *, minutes_ago: int = 0) -> DecisionLogEntry:
    return DecisionLogEntry(
        task_id=task_id,
        tenant_id="acme",
        template_id="tpl-onboarding",
        event_name="task:created",
        event_id="evt-1",
        agent_config_hash="abc",
        decision=AgentDecision(reasoning="r", actions=[no_action("idle")]),
        created_at=datetime(2026, 1, 1, 12, 0, tzinfo=UTC) - timedelta(minutes=minutes_ago),
    )


CONTEXT = ExecutionContext(task_id="task-1", tenant_id="acme", correlation_id="evt-1")


class TestInMemoryEventBus:
    async def test_publish_to_matching_handlers(self) -> None:
        bus = InMemoryEventBus()
        seen: list[TaskEvent] = []

        async def handler(event: TaskEvent) -> None:
            seen.append(event)

        bus.subscribe("task:created", handler)
        bus.subscribe("task:status_changed", handler)

        delivered = await bus.publish(make_event("task:created"))

        assert delivered == 1
        assert [e.name for e in seen] == ["task:created"]

    async def test_unsubscribe(self) -> None:
        bus = InMemoryEventBus()

        async def handler(event: TaskEvent) -> None:
            raise AssertionError("should not be called")

        token = bus.subscribe("task:created", handler)
        bus.unsubscribe(token)
        bus.unsubscribe("unknown-token")

        assert await bus.publish(make_event()) == 0
        assert bus.subscriber_count() == 0

    def test_subscriber_count_by_name(self) -> None:
        bus = InMemoryEventBus()

        async def handler(event: TaskEvent) -> None:
            return None

        bus.subscribe("task:created", handler)
        bus.subscribe("task:created", handler)
        bus.subscribe("task:sla_breached", handler)

        assert bus.subscriber_count() == 3
        assert bus.subscriber_count("task:created") == 2


class TestInMemoryTaskStore:
    async def test_returns_copies(self) -> None:
        store = InMemoryTaskStore()
        store.add_task(make_task())

        loaded = await store.load_task("task-1")
        assert loaded is not None
        loaded.title = "changed"

        again = await store.load_task("task-1")
        assert again is not None
        assert again.title == "Onboard Globex"

    async def test_missing_lookups(self) -> None:
        store = InMemoryTaskStore()
        assert await store.load_task("nope") is None
        assert await store.load_template("nope") is None

    async def test_recent_decisions_newest_first(self) -> None:
        store = InMemoryTaskStore()
        old = _entry(minutes_ago=30)
        new = _entry(minutes_ago=1)
        other = _entry("task-2")
        for entry in (old, new, other):
            await store.create_decision_log(entry)

        recent = await store.load_recent_decisions("task-1", 10)
        assert [e.id for e in recent] == [new.id, old.id]
        assert [e.id for e in await store.load_recent_decisions("task-1", 1)] == [new.id]
        assert await store.load_recent_decisions("task-1", 0) == []

    async def test_update_decision_log(self) -> None:
        store = InMemoryTaskStore()
        entry = _entry()
        decision_id = await store.create_decision_log(entry)
        summary = ExecutionSummary.from_results([], success=True)

        await store.update_decision_log(decision_id, status=DecisionStatus.EXECUTED, execution=summary)

        [stored] = store.decision_logs()
        assert stored.status is DecisionStatus.EXECUTED
        assert stored.execution == summary
        assert stored.applied_at is not None
        assert stored.completed_at == summary.completed_at

    async def test_failed_execution_not_applied(self) -> None:
        store = InMemoryTaskStore()
        decision_id = await store.create_decision_log(_entry())
        summary = ExecutionSummary.from_results([], success=False, error="boom")

        await store.update_decision_log(decision_id, status=DecisionStatus.FAILED, execution=summary)

        [stored] = store.decision_logs()
        assert stored.applied_at is None
        assert stored.execution is not None
        assert stored.execution.error == "boom"

    async def test_update_unknown_decision(self) -> None:
        store = InMemoryTaskStore()
        with pytest.raises(KeyError):
            await store.update_decision_log("missing", status=DecisionStatus.FAILED)

    async def test_update_task_agent_state(self) -> None:
        store = InMemoryTaskStore()
        store.add_task(make_task())

        await store.update_task_agent_state("task-1", "d-1")
        await store.update_task_agent_state("task-1", "d-2")
        await store.update_task_agent_state("unknown", "d-3")

        task = store.get_task("task-1")
        assert task is not None
        assert task.agent_state.last_decision_id == "d-2"
        assert task.agent_state.decision_ids == ["d-1", "d-2"]


class TestRecordingActionExecutor:
    async def test_records_and_succeeds(self) -> None:
        executor = RecordingActionExecutor()
        action = SetStatusAction(params=SetStatusParams(to_status=TaskStatus.DONE))

        results = await executor.execute_actions([action], CONTEXT)

        assert [r.success for r in results] == [True]
        assert executor.calls == [([action], CONTEXT)]

    async def test_fail_types(self) -> None:
        executor = RecordingActionExecutor(fail_types=["TAG_TASK"])  # type: ignore[list-item]
        actions = [
            SetStatusAction(params=SetStatusParams(to_status=TaskStatus.DONE)),
            TagTaskAction(params=TagTaskParams(add=["vip"])),
        ]

        results = await executor.execute_actions(actions, CONTEXT)

        assert [r.success for r in results] == [True, False]
        assert results[1].error == "TAG_TASK failed"

    async def test_raise_error(self) -> None:
        executor = RecordingActionExecutor(raise_error=RuntimeError("executor down"))
        with pytest.raises(RuntimeError, match="executor down"):
            await executor.execute_actions([no_action("x")], CONTEXT)
        assert len(executor.calls) == 1


class TestExecutionSummary:
    def test_from_results_counts(self) -> None:
        action = no_action("x")
        results = [ActionResult(action=action, success=True), ActionResult(action=action, success=False, error="e")]
        summary = ExecutionSummary.from_results(results, success=False, error="e")
        assert summary.total_actions == 2
        assert summary.successful_actions == 1
        assert summary.failed_actions == 1
