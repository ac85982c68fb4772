"""Tests for TaskAgent."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from opsagent.agent.config import DEFAULT_TASK_EVENTS, TaskAgentConfig
from opsagent.agent.memory import InMemoryEventBus, InMemoryTaskStore, RecordingActionExecutor
from opsagent.agent.models import DecisionStatus, TaskOverride, TemplateAgentConfig
from opsagent.agent.task_agent import TaskAgent, hash_agent_config
from opsagent.core.decisions.models import DecisionType
from opsagent.core.interface.errors import LLMError
from tests.agent.conftest import (
    NO_OP_DECISION,
    SET_STATUS_DECISION,
    FakeClock,
    make_event,
    make_task,
    make_template,
    model_response,
)


def _agent(
    client: MagicMock,
    store: InMemoryTaskStore,
    bus: InMemoryEventBus,
    executor: RecordingActionExecutor,
    clock: FakeClock,
    **config: Any,
) -> TaskAgent:
    return TaskAgent(
        TaskAgentConfig(tenant_id="acme", agent_id="agent-test", **config),
        client=client,
        store=store,
        events=bus,
        executor=executor,
        clock=clock,
    )


class TestLifecycle:
    def test_start_subscribes_to_events(
        self,
        client: MagicMock,
        store: InMemoryTaskStore,
        bus: InMemoryEventBus,
        executor: RecordingActionExecutor,
        clock: FakeClock,
    ) -> None:
        agent = _agent(client, store, bus, executor, clock)
        agent.start()

        assert agent.is_running
        assert bus.subscriber_count() == len(DEFAULT_TASK_EVENTS)
        assert bus.subscriber_count("task:created") == 1

    def test_start_is_idempotent(
        self,
        client: MagicMock,
        store: InMemoryTaskStore,
        bus: InMemoryEventBus,
        executor: RecordingActionExecutor,
        clock: FakeClock,
    ) -> None:
        agent = _agent(client, store, bus, executor, clock)
        agent.start()
        agent.start()

        assert bus.subscriber_count() == len(DEFAULT_TASK_EVENTS)

    def test_stop_unsubscribes(
        self,
        client: MagicMock,
        store: InMemoryTaskStore,
        bus: InMemoryEventBus,
        executor: RecordingActionExecutor,
        clock: FakeClock,
    ) -> None:
        agent = _agent(client, store, bus, executor, clock)
        agent.start()
        agent.stop()
        agent.stop()

        assert not agent.is_running
        assert bus.subscriber_count() == 0
        assert not agent.get_stats().is_running

    def test_generated_agent_id(
        self,
        client: MagicMock,
        store: InMemoryTaskStore,
        bus: InMemoryEventBus,
        executor: RecordingActionExecutor,
    ) -> None:
        agent = TaskAgent(TaskAgentConfig(tenant_id="acme"), client=client, store=store, events=bus, executor=executor)
        assert agent.agent_id.startswith("task-agent-")

    def test_uptime(
        self,
        client: MagicMock,
        store: InMemoryTaskStore,
        bus: InMemoryEventBus,
        executor: RecordingActionExecutor,
        clock: FakeClock,
    ) -> None:
        agent = _agent(client, store, bus, executor, clock)
        assert agent.get_stats().uptime_ms == 0.0
        agent.start()
        clock.advance(2.5)
        assert agent.get_stats().uptime_ms == pytest.approx(2500.0)


class TestHandleEvent:
    @pytest.fixture
    def agent(
        self,
        client: MagicMock,
        store: InMemoryTaskStore,
        bus: InMemoryEventBus,
        executor: RecordingActionExecutor,
        clock: FakeClock,
    ) -> TaskAgent:
        agent = _agent(client, store, bus, executor, clock)
        agent.start()
        return agent

    async def test_executes_decision(
        self,
        agent: TaskAgent,
        bus: InMemoryEventBus,
        store: InMemoryTaskStore,
        executor: RecordingActionExecutor,
    ) -> None:
        event = make_event()
        assert await bus.publish(event) == 1

        [(actions, context)] = executor.calls
        assert [a.type for a in actions] == [DecisionType.SET_STATUS]
        assert context.task_id == "task-1"
        assert context.tenant_id == "acme"
        assert context.correlation_id == event.id
        assert not context.dry_run

        [entry] = store.decision_logs("task-1")
        assert entry.status is DecisionStatus.EXECUTED
        assert entry.event_name == "task:created"
        assert entry.event_id == event.id
        assert entry.decision.confidence == 0.92
        assert entry.execution is not None
        assert entry.execution.success
        assert entry.execution.successful_actions == 1
        assert entry.applied_at is not None
        assert entry.agent_config_hash == hash_agent_config(make_template())
        assert entry.input_snapshot["status"] == "NEW"

        task = store.get_task("task-1")
        assert task is not None
        assert task.agent_state.last_decision_id == entry.id

        stats = agent.get_stats()
        assert stats.total_decisions == 1
        assert stats.successful_decisions == 1
        assert stats.total_events_processed == 1
        assert stats.rate_limit.decisions_this_minute == 1

    async def test_records_model_call(self, agent: TaskAgent, store: InMemoryTaskStore) -> None:
        await agent.handle_event(make_event())

        [entry] = store.decision_logs()
        assert entry.llm_call is not None
        assert entry.llm_call.model == "openai/gpt-4o-mini"
        assert entry.llm_call.prompt_type == "DECIDE_NEXT_ACTION"
        assert entry.llm_call.tokens_in == 120
        assert entry.llm_call.tokens_out == 30
        assert entry.llm_call.latency_ms == 42.0

    async def test_prompts_sent_to_model(self, agent: TaskAgent, client: MagicMock) -> None:
        await agent.handle_event(make_event("task:status_changed"))

        messages = client.complete.call_args.args[0]
        assert messages[0].role == "system"
        assert "Keep the customer informed." in messages[0].content
        assert messages[1].role == "user"
        assert "## Triggering event: task:status_changed" in messages[1].content

    async def test_recent_decisions_in_prompt(self, agent: TaskAgent, client: MagicMock) -> None:
        await agent.handle_event(make_event())
        await agent.handle_event(make_event("task:status_changed"))

        user_prompt = client.complete.call_args.args[0][1].content
        assert "## Recent decisions (last 1)" in user_prompt
        assert "Kickoff scheduled, work has started" in user_prompt

    async def test_no_op_decision(
        self,
        agent: TaskAgent,
        client: MagicMock,
        store: InMemoryTaskStore,
        executor: RecordingActionExecutor,
    ) -> None:
        client.complete.return_value = model_response(NO_OP_DECISION)

        await agent.handle_event(make_event())

        assert executor.calls == []
        [entry] = store.decision_logs()
        assert entry.status is DecisionStatus.NO_OP
        assert entry.execution is None
        stats = agent.get_stats()
        assert stats.no_op_decisions == 1
        assert stats.total_decisions == 1
        assert stats.rate_limit.decisions_this_minute == 0

    async def test_unparsable_response_becomes_no_op(
        self,
        agent: TaskAgent,
        client: MagicMock,
        store: InMemoryTaskStore,
        executor: RecordingActionExecutor,
    ) -> None:
        client.complete.return_value = model_response("I would set the status to done.")

        await agent.handle_event(make_event())

        assert executor.calls == []
        [entry] = store.decision_logs()
        assert entry.status is DecisionStatus.NO_OP
        assert entry.decision.reasoning.startswith("Failed to parse model response")
        assert entry.decision.actions[0].params.reason.startswith("Model response parsing failed")  # type: ignore[union-attr]
        assert agent.get_stats().total_errors == 0

    async def test_non_finite_delay_still_executes(
        self,
        agent: TaskAgent,
        client: MagicMock,
        store: InMemoryTaskStore,
        executor: RecordingActionExecutor,
    ) -> None:
        client.complete.return_value = model_response(
            '{"reasoning": "Start work", "actions": '
            '[{"type": "SET_STATUS", "params": {"toStatus": "IN_PROGRESS"}, "delayMs": Infinity}]}'
        )

        await agent.handle_event(make_event())

        [(actions, _)] = executor.calls
        assert actions[0].delay_ms is None
        [entry] = store.decision_logs()
        assert entry.status is DecisionStatus.EXECUTED
        assert agent.get_stats().total_errors == 0

    async def test_disallowed_action_becomes_no_op(
        self,
        agent: TaskAgent,
        store: InMemoryTaskStore,
        executor: RecordingActionExecutor,
    ) -> None:
        store.add_template(make_template(agent_config=TemplateAgentConfig(allowed_actions=["TAG_TASK"])))

        await agent.handle_event(make_event())

        assert executor.calls == []
        [entry] = store.decision_logs()
        assert entry.status is DecisionStatus.NO_OP

    async def test_overridden_task_skipped(
        self,
        agent: TaskAgent,
        client: MagicMock,
        store: InMemoryTaskStore,
    ) -> None:
        store.add_task(make_task(override=TaskOverride(overridden=True, reason="customer VIP")))

        await agent.handle_event(make_event())

        client.complete.assert_not_called()
        assert store.decision_logs() == []
        stats = agent.get_stats()
        assert stats.no_op_decisions == 1
        assert stats.total_decisions == 0

    async def test_missing_task_skipped(self, agent: TaskAgent, client: MagicMock, store: InMemoryTaskStore) -> None:
        await agent.handle_event(make_event(task_id="task-unknown"))

        client.complete.assert_not_called()
        assert store.decision_logs() == []
        assert agent.get_stats().total_errors == 0

    async def test_missing_template_skipped(
        self, agent: TaskAgent, client: MagicMock, store: InMemoryTaskStore
    ) -> None:
        store.add_task(make_task(id="task-2", template_id="tpl-gone"))

        await agent.handle_event(make_event(task_id="task-2"))

        client.complete.assert_not_called()
        assert store.decision_logs() == []

    async def test_event_without_task_id(self, agent: TaskAgent, client: MagicMock) -> None:
        await agent.handle_event(make_event(task_id=None))

        client.complete.assert_not_called()
        assert agent.get_stats().total_events_processed == 1

    async def test_model_error_is_contained(
        self, agent: TaskAgent, client: MagicMock, store: InMemoryTaskStore
    ) -> None:
        client.complete.side_effect = LLMError("provider down", retryable=True)

        await agent.handle_event(make_event())

        assert store.decision_logs() == []
        stats = agent.get_stats()
        assert stats.total_errors == 1
        assert stats.total_decisions == 0

    async def test_failed_actions(
        self,
        client: MagicMock,
        store: InMemoryTaskStore,
        bus: InMemoryEventBus,
        clock: FakeClock,
    ) -> None:
        executor = RecordingActionExecutor(fail_types=[DecisionType.SET_STATUS])
        agent = _agent(client, store, bus, executor, clock)

        await agent.handle_event(make_event())

        [entry] = store.decision_logs()
        assert entry.status is DecisionStatus.FAILED
        assert entry.execution is not None
        assert entry.execution.error == "SET_STATUS failed"
        assert entry.applied_at is None
        stats = agent.get_stats()
        assert stats.failed_decisions == 1
        assert stats.total_decisions == 1
        assert stats.total_errors == 0

    async def test_executor_exception(
        self,
        client: MagicMock,
        store: InMemoryTaskStore,
        bus: InMemoryEventBus,
        clock: FakeClock,
    ) -> None:
        executor = RecordingActionExecutor(raise_error=RuntimeError("executor down"))
        agent = _agent(client, store, bus, executor, clock)

        await agent.handle_event(make_event())

        [entry] = store.decision_logs()
        assert entry.status is DecisionStatus.FAILED
        assert entry.execution is not None
        assert entry.execution.error == "executor down"
        assert entry.execution.total_actions == 0
        stats = agent.get_stats()
        assert stats.failed_decisions == 1
        assert stats.total_errors == 1

    async def test_log_update_failure_is_tolerated(
        self,
        client: MagicMock,
        store: InMemoryTaskStore,
        bus: InMemoryEventBus,
        executor: RecordingActionExecutor,
        clock: FakeClock,
    ) -> None:
        store.update_decision_log = AsyncMock(side_effect=RuntimeError("db down"))  # type: ignore[method-assign]
        agent = _agent(client, store, bus, executor, clock)

        await agent.handle_event(make_event())

        [entry] = store.decision_logs()
        assert entry.status is DecisionStatus.PENDING
        stats = agent.get_stats()
        assert stats.successful_decisions == 1
        assert stats.total_errors == 0

    async def test_dry_run_passed_to_executor(
        self,
        client: MagicMock,
        store: InMemoryTaskStore,
        bus: InMemoryEventBus,
        executor: RecordingActionExecutor,
        clock: FakeClock,
    ) -> None:
        agent = _agent(client, store, bus, executor, clock, dry_run=True)

        await agent.handle_event(make_event())

        [(_, context)] = executor.calls
        assert context.dry_run

    async def test_average_decision_time(
        self,
        client: MagicMock,
        store: InMemoryTaskStore,
        bus: InMemoryEventBus,
        executor: RecordingActionExecutor,
        clock: FakeClock,
    ) -> None:
        async def _complete(*args: Any, **kwargs: Any) -> Any:
            clock.advance(0.2)
            return model_response(SET_STATUS_DECISION)

        client.complete = AsyncMock(side_effect=_complete)
        agent = _agent(client, store, bus, executor, clock)

        await agent.handle_event(make_event())

        assert agent.get_stats().average_decision_time_ms == pytest.approx(200.0)


class TestRateLimiting:
    async def test_events_dropped_when_limited(
        self,
        client: MagicMock,
        store: InMemoryTaskStore,
        bus: InMemoryEventBus,
        executor: RecordingActionExecutor,
        clock: FakeClock,
    ) -> None:
        agent = _agent(client, store, bus, executor, clock, max_decisions_per_minute=1)

        await agent.handle_event(make_event())
        await agent.handle_event(make_event("task:status_changed"))

        assert client.complete.call_count == 1
        stats = agent.get_stats()
        assert stats.total_events_processed == 2
        assert stats.rate_limit.is_limited

        clock.advance(61)
        await agent.handle_event(make_event("task:status_changed"))
        assert client.complete.call_count == 2

    async def test_no_ops_do_not_count(
        self,
        client: MagicMock,
        store: InMemoryTaskStore,
        bus: InMemoryEventBus,
        executor: RecordingActionExecutor,
        clock: FakeClock,
    ) -> None:
        client.complete.return_value = model_response(NO_OP_DECISION)
        agent = _agent(client, store, bus, executor, clock, max_decisions_per_minute=1)

        await agent.handle_event(make_event())
        await agent.handle_event(make_event())

        assert client.complete.call_count == 2


class TestConfidenceGating:
    @pytest.mark.parametrize(
        ("confidence", "status"),
        [(0.6, DecisionStatus.REQUIRES_APPROVAL), (0.3, DecisionStatus.REJECTED)],
    )
    async def test_gated_decisions_not_executed(
        self,
        client: MagicMock,
        store: InMemoryTaskStore,
        bus: InMemoryEventBus,
        executor: RecordingActionExecutor,
        clock: FakeClock,
        confidence: float,
        status: DecisionStatus,
    ) -> None:
        client.complete.return_value = model_response({**SET_STATUS_DECISION, "confidence": confidence})
        agent = _agent(client, store, bus, executor, clock, gate_on_confidence=True)

        await agent.handle_event(make_event())

        assert executor.calls == []
        [entry] = store.decision_logs()
        assert entry.status is status
        stats = agent.get_stats()
        assert stats.total_decisions == 1
        assert stats.rejected_decisions + stats.approval_required_decisions == 1

    async def test_high_confidence_executes(
        self,
        client: MagicMock,
        store: InMemoryTaskStore,
        bus: InMemoryEventBus,
        executor: RecordingActionExecutor,
        clock: FakeClock,
    ) -> None:
        agent = _agent(client, store, bus, executor, clock, gate_on_confidence=True)

        await agent.handle_event(make_event())

        assert len(executor.calls) == 1
        assert store.decision_logs()[0].status is DecisionStatus.EXECUTED

    async def test_gating_off_by_default(
        self,
        client: MagicMock,
        store: InMemoryTaskStore,
        bus: InMemoryEventBus,
        executor: RecordingActionExecutor,
        clock: FakeClock,
    ) -> None:
        client.complete.return_value = model_response({**SET_STATUS_DECISION, "confidence": 0.3})
        agent = _agent(client, store, bus, executor, clock)

        await agent.handle_event(make_event())

        assert len(executor.calls) == 1


class TestHashAgentConfig:
    def test_deterministic(self) -> None:
        assert hash_agent_config(make_template()) == hash_agent_config(make_template())
        assert len(hash_agent_config(make_template())) == 64

    def test_changes_with_config(self) -> None:
        changed = make_template(agent_config=TemplateAgentConfig(system_prompt="Be terse."))
        assert hash_agent_config(changed) != hash_agent_config(make_template())


class TestTaskAgentConfig:
    def test_thresholds_ordered(self) -> None:
        with pytest.raises(ValueError, match="require_approval_threshold"):
            TaskAgentConfig(tenant_id="acme", auto_execute_threshold=0.4, require_approval_threshold=0.6)
