"""TaskAgent: binds task lifecycle events to model decisions and executed actions.

For every subscribed event the agent loads the task, its template and
recent decisions, asks the model what to do next, records the decision in
the audit log *before* executing anything, then hands the actions to the
action executor and records the outcome.

Event handling is a hard boundary: no exception escapes
:meth:`TaskAgent.handle_event`; failures are counted and logged.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections import deque
from collections.abc import Callable
from typing import Any
from uuid import uuid4

from opentelemetry import trace

from opsagent.agent.config import TaskAgentConfig
from opsagent.agent.models import (
    ActionResult,
    AgentStats,
    DecisionLogEntry,
    DecisionStatus,
    ExecutionContext,
    ExecutionSummary,
    LLMCallInfo,
    TaskEvent,
    TaskInstance,
    TaskTemplate,
)
from opsagent.agent.ports import ActionExecutor, CompletionClient, EventSource, TaskStore
from opsagent.agent.prompts import build_system_prompt, build_user_prompt
from opsagent.agent.ratelimit import DecisionRateLimiter
from opsagent.core.decisions.config import DecisionEngineConfig
from opsagent.core.decisions.engine import DecisionEngine
from opsagent.core.decisions.errors import DecisionError
from opsagent.core.decisions.models import AgentDecision, Gate, no_action
from opsagent.core.interface.models import ChatMessage, ModelResponse
from opsagent.utils.telemetry import (
    ATTR_ACTION_COUNT,
    ATTR_AGENT_ID,
    ATTR_CORRELATION_ID,
    ATTR_DECISION_ID,
    ATTR_DECISION_STATUS,
    ATTR_EVENT_TYPE,
    ATTR_TASK_ID,
    ATTR_TENANT_ID,
    get_tracer,
    set_span_attributes,
)

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

_GATE_STATUS = {
    Gate.REJECT: DecisionStatus.REJECTED,
    Gate.REQUIRE_APPROVAL: DecisionStatus.REQUIRES_APPROVAL,
    Gate.AUTO_EXECUTE: DecisionStatus.PENDING,
}


def hash_agent_config(template: TaskTemplate) -> str:
    """SHA-256 of the template's agent configuration, for reproducibility."""
    payload = json.dumps(template.agent_config.model_dump(mode="json", by_alias=True), sort_keys=True)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class TaskAgent:
    """Event-driven agent for one tenant's tasks.

    Usage::

        agent = TaskAgent(
            TaskAgentConfig(tenant_id="acme"),
            client=ModelClient(ModelConfig(model="openai/gpt-4o-mini")),
            store=store,
            events=bus,
            executor=executor,
        )
        agent.start()

    Collaborators are injected so several agents can coexist in one process.
    """

    def __init__(
        self,
        config: TaskAgentConfig,
        *,
        client: CompletionClient,
        store: TaskStore,
        events: EventSource,
        executor: ActionExecutor,
        engine: DecisionEngine | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.agent_id = config.agent_id or f"task-agent-{uuid4().hex[:8]}"
        self._client = client
        self._store = store
        self._events = events
        self._executor = executor
        self._engine = engine or DecisionEngine(
            DecisionEngineConfig(
                auto_execute_threshold=config.auto_execute_threshold,
                require_approval_threshold=config.require_approval_threshold,
                enabled_actions=config.enabled_actions,
            )
        )
        self._clock = clock
        self._limiter = DecisionRateLimiter(
            per_minute=config.max_decisions_per_minute,
            per_hour=config.max_decisions_per_hour,
            clock=clock,
        )

        self._running = False
        self._started_at: float | None = None
        self._subscriptions: list[str] = []

        self._total_decisions = 0
        self._successful_decisions = 0
        self._failed_decisions = 0
        self._no_op_decisions = 0
        self._rejected_decisions = 0
        self._approval_required_decisions = 0
        self._events_processed = 0
        self._total_errors = 0
        self._decision_times: deque[float] = deque(maxlen=config.timing_window)

        logger.info("TaskAgent %s initialized for tenant %s", self.agent_id, config.tenant_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Subscribe to the configured task events.  Idempotent."""
        if self._running:
            logger.warning("TaskAgent %s is already running", self.agent_id)
            return

        self._running = True
        self._started_at = self._clock()
        for event_name in self.config.subscribed_events:
            token = self._events.subscribe(event_name, self.handle_event)
            self._subscriptions.append(token)
            logger.debug("Subscribed to %s (token %s)", event_name, token)

        logger.info(
            "TaskAgent %s started with %d subscriptions", self.agent_id, len(self._subscriptions)
        )

    def stop(self) -> None:
        """Remove every subscription.  Idempotent."""
        if not self._running:
            logger.warning("TaskAgent %s is not running", self.agent_id)
            return

        for token in self._subscriptions:
            self._events.unsubscribe(token)
        self._subscriptions = []
        self._running = False
        logger.info("TaskAgent %s stopped after %d decisions", self.agent_id, self._total_decisions)

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    async def handle_event(self, event: TaskEvent) -> None:
        """Process one task event.  Never raises."""
        self._events_processed += 1
        task_id = event.task_id
        extra = {"task_id": task_id, "event_type": event.name, "correlation_id": event.id}

        if not task_id:
            logger.warning("Event %s has no task id, skipping", event.name, extra=extra)
            return

        with _tracer.start_as_current_span("agent.handle_event") as span:
            set_span_attributes(
                span,
                {
                    ATTR_AGENT_ID: self.agent_id,
                    ATTR_TENANT_ID: self.config.tenant_id,
                    ATTR_TASK_ID: task_id,
                    ATTR_EVENT_TYPE: event.name,
                    ATTR_CORRELATION_ID: event.id,
                },
            )
            try:
                status = await self._process(task_id, event, extra)
            except Exception as exc:
                self._total_errors += 1
                span.record_exception(exc)
                logger.exception("Error handling task event", extra=extra)
                return
            if status is not None:
                span.set_attribute(ATTR_DECISION_STATUS, status.value)

    async def _process(self, task_id: str, event: TaskEvent, extra: dict[str, Any]) -> DecisionStatus | None:
        started = self._clock()

        if self._limiter.is_limited():
            logger.warning("Decision rate limit reached, dropping event", extra=extra)
            return None

        task = await self._store.load_task(task_id)
        if task is None:
            logger.warning("Task %s not found, skipping", task_id, extra=extra)
            return None

        if task.override.overridden:
            logger.info("Task %s is overridden by a human, skipping", task_id, extra=extra)
            self._no_op_decisions += 1
            return None

        template = await self._store.load_template(task.template_id)
        if template is None:
            logger.warning("Template %s not found, skipping", task.template_id, extra=extra)
            return None

        recent = await self._store.load_recent_decisions(task_id, self.config.recent_decisions_limit)
        messages = [
            ChatMessage.system(build_system_prompt(template)),
            ChatMessage.user(build_user_prompt(task, event, recent)),
        ]

        logger.debug("Requesting decision from model", extra=extra)
        response = await self._client.complete(messages)
        decision = self._parse_decision(response.content, template, extra)
        status = self._initial_status(decision)

        entry = DecisionLogEntry(
            task_id=task.id,
            tenant_id=task.tenant_id,
            template_id=task.template_id,
            event_name=event.name,
            event_id=event.id,
            agent_config_hash=hash_agent_config(template),
            input_snapshot=self._snapshot(task),
            llm_call=self._llm_call_info(response),
            decision=decision,
            status=status,
        )
        decision_id = await self._store.create_decision_log(entry)
        await self._store.update_task_agent_state(task.id, decision_id)
        set_span_attributes(
            trace.get_current_span(), {ATTR_DECISION_ID: decision_id, ATTR_ACTION_COUNT: len(decision.actions)}
        )

        if status is DecisionStatus.NO_OP:
            logger.info("Decision %s is a no-op: %s", decision_id, decision.reasoning, extra=extra)
            self._no_op_decisions += 1
            self._total_decisions += 1
            return status

        if status is DecisionStatus.REJECTED or status is DecisionStatus.REQUIRES_APPROVAL:
            logger.info("Decision %s not executed (%s)", decision_id, status.value, extra=extra)
            if status is DecisionStatus.REJECTED:
                self._rejected_decisions += 1
            else:
                self._approval_required_decisions += 1
            self._total_decisions += 1
            self._limiter.record()
            return status

        return await self._execute(task, event, decision, decision_id, started, extra)

    async def _execute(
        self,
        task: TaskInstance,
        event: TaskEvent,
        decision: AgentDecision,
        decision_id: str,
        started: float,
        extra: dict[str, Any],
    ) -> DecisionStatus:
        logger.info(
            "Executing %d action(s): %s",
            len(decision.actions),
            ", ".join(a.type for a in decision.actions),
            extra=extra,
        )
        context = ExecutionContext(
            task_id=task.id,
            tenant_id=task.tenant_id,
            correlation_id=event.id,
            dry_run=self.config.dry_run,
        )

        results: list[ActionResult] = []
        try:
            results = await self._executor.execute_actions(decision.actions, context)
        except Exception as exc:
            logger.exception("Action execution raised for decision %s", decision_id, extra=extra)
            self._failed_decisions += 1
            self._total_decisions += 1
            self._total_errors += 1
            self._limiter.record()
            summary = ExecutionSummary.from_results(results, success=False, error=str(exc))
            await self._finish(decision_id, DecisionStatus.FAILED, summary, extra)
            return DecisionStatus.FAILED

        failed = [r for r in results if not r.success]
        if failed:
            logger.error(
                "%d action(s) failed for decision %s: %s",
                len(failed),
                decision_id,
                "; ".join(f"{r.action.type}: {r.error}" for r in failed),
                extra=extra,
            )
            self._failed_decisions += 1
            self._total_decisions += 1
            self._limiter.record()
            summary = ExecutionSummary.from_results(results, success=False, error=failed[0].error)
            await self._finish(decision_id, DecisionStatus.FAILED, summary, extra)
            return DecisionStatus.FAILED

        summary = ExecutionSummary.from_results(results, success=True)
        await self._finish(decision_id, DecisionStatus.EXECUTED, summary, extra)
        elapsed_ms = (self._clock() - started) * 1000
        self._decision_times.append(elapsed_ms)
        self._successful_decisions += 1
        self._total_decisions += 1
        self._limiter.record()
        logger.info("Decision %s executed in %.0fms", decision_id, elapsed_ms, extra=extra)
        return DecisionStatus.EXECUTED

    async def _finish(
        self, decision_id: str, status: DecisionStatus, summary: ExecutionSummary, extra: dict[str, Any]
    ) -> None:
        try:
            await self._store.update_decision_log(decision_id, status=status, execution=summary)
        except Exception as exc:
            logger.warning("Failed to update decision log %s: %s", decision_id, exc, extra=extra)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _parse_decision(self, content: str, template: TaskTemplate, extra: dict[str, Any]) -> AgentDecision:
        allowed = template.agent_config.allowed_actions or None
        try:
            return self._engine.parse_agent_decision(content, allowed)
        except DecisionError as exc:
            logger.error("Failed to parse agent decision: %s", exc, extra=extra)
            return AgentDecision(
                reasoning=f"Failed to parse model response: {exc}",
                actions=[no_action(f"Model response parsing failed: {exc}")],
            )

    def _initial_status(self, decision: AgentDecision) -> DecisionStatus:
        if decision.is_no_op:
            return DecisionStatus.NO_OP
        if self.config.gate_on_confidence and decision.confidence is not None:
            return _GATE_STATUS[self._engine.gate(decision)]
        return DecisionStatus.PENDING

    def _llm_call_info(self, response: ModelResponse) -> LLMCallInfo:
        usage = response.usage
        return LLMCallInfo(
            model=response.model,
            prompt_type=self.config.prompt_type,
            tokens_in=usage.prompt_tokens if usage else None,
            tokens_out=usage.completion_tokens if usage else None,
            latency_ms=response.latency_ms,
            finish_reason=response.finish_reason,
        )

    @staticmethod
    def _snapshot(task: TaskInstance) -> dict[str, Any]:
        return task.model_dump(
            mode="json",
            by_alias=True,
            include={"status", "stage_key", "steps", "tags", "priority", "assigned_to_user_id"},
        )

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def get_stats(self) -> AgentStats:
        average = sum(self._decision_times) / len(self._decision_times) if self._decision_times else 0.0
        uptime = (self._clock() - self._started_at) * 1000 if self._started_at is not None else 0.0
        return AgentStats(
            agent_id=self.agent_id,
            total_decisions=self._total_decisions,
            successful_decisions=self._successful_decisions,
            failed_decisions=self._failed_decisions,
            no_op_decisions=self._no_op_decisions,
            rejected_decisions=self._rejected_decisions,
            approval_required_decisions=self._approval_required_decisions,
            total_events_processed=self._events_processed,
            total_errors=self._total_errors,
            average_decision_time_ms=average,
            rate_limit=self._limiter.occupancy(),
            uptime_ms=uptime,
            is_running=self._running,
        )
