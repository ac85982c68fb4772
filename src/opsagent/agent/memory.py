"""In-memory collaborators for tests and single-process runs.

:class:`InMemoryEventBus`, :class:`InMemoryTaskStore` and
:class:`RecordingActionExecutor` implement the protocols in
:mod:`opsagent.agent.ports`.  The store hands out copies so callers cannot
mutate stored state by accident (mimicking a real persistence layer).
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from uuid import uuid4

from opsagent.agent.models import (
    ActionResult,
    DecisionLogEntry,
    DecisionStatus,
    ExecutionContext,
    ExecutionSummary,
    TaskEvent,
    TaskInstance,
    TaskTemplate,
)
from opsagent.agent.ports import EventHandler
from opsagent.core.decisions.models import BaseAction, DecisionType

logger = logging.getLogger(__name__)


class InMemoryEventBus:
    """Named-event pub/sub.  :meth:`publish` awaits handlers one at a time."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, tuple[str, EventHandler]] = {}

    def subscribe(self, event_name: str, handler: EventHandler) -> str:
        token = uuid4().hex
        self._subscriptions[token] = (event_name, handler)
        return token

    def unsubscribe(self, token: str) -> None:
        self._subscriptions.pop(token, None)

    def subscriber_count(self, event_name: str | None = None) -> int:
        if event_name is None:
            return len(self._subscriptions)
        return sum(1 for name, _ in self._subscriptions.values() if name == event_name)

    async def publish(self, event: TaskEvent) -> int:
        """Deliver *event* to every matching handler; return how many were called."""
        handlers = [handler for name, handler in list(self._subscriptions.values()) if name == event.name]
        for handler in handlers:
            await handler(event)
        return len(handlers)


class InMemoryTaskStore:
    """Dict-backed :class:`~opsagent.agent.ports.TaskStore`."""

    def __init__(self) -> None:
        self._tasks: dict[str, TaskInstance] = {}
        self._templates: dict[str, TaskTemplate] = {}
        self._decisions: dict[str, DecisionLogEntry] = {}

    def add_task(self, task: TaskInstance) -> None:
        self._tasks[task.id] = task.model_copy(deep=True)

    def add_template(self, template: TaskTemplate) -> None:
        self._templates[template.id] = template.model_copy(deep=True)

    def get_task(self, task_id: str) -> TaskInstance | None:
        task = self._tasks.get(task_id)
        return task.model_copy(deep=True) if task else None

    def decision_logs(self, task_id: str | None = None) -> list[DecisionLogEntry]:
        """All decision log entries (oldest first), optionally for one task."""
        return [
            entry.model_copy(deep=True)
            for entry in self._decisions.values()
            if task_id is None or entry.task_id == task_id
        ]

    async def load_task(self, task_id: str) -> TaskInstance | None:
        return self.get_task(task_id)

    async def load_template(self, template_id: str) -> TaskTemplate | None:
        template = self._templates.get(template_id)
        return template.model_copy(deep=True) if template else None

    async def load_recent_decisions(self, task_id: str, limit: int) -> list[DecisionLogEntry]:
        if limit <= 0:
            return []
        entries = sorted(self.decision_logs(task_id), key=lambda e: e.created_at, reverse=True)
        return entries[:limit]

    async def create_decision_log(self, entry: DecisionLogEntry) -> str:
        self._decisions[entry.id] = entry.model_copy(deep=True)
        return entry.id

    async def update_decision_log(
        self, decision_id: str, *, status: DecisionStatus, execution: ExecutionSummary | None = None
    ) -> None:
        entry = self._decisions.get(decision_id)
        if entry is None:
            raise KeyError(f"Decision log {decision_id!r} not found")
        updates: dict[str, object] = {"status": status}
        if execution is not None:
            updates["execution"] = execution
            updates["completed_at"] = execution.completed_at
            if execution.success:
                updates["applied_at"] = datetime.now(UTC)
        self._decisions[decision_id] = entry.model_copy(update=updates)

    async def update_task_agent_state(self, task_id: str, decision_id: str) -> None:
        task = self._tasks.get(task_id)
        if task is None:
            return
        state = task.agent_state.model_copy(
            update={"last_decision_id": decision_id, "decision_ids": [*task.agent_state.decision_ids, decision_id]}
        )
        self._tasks[task_id] = task.model_copy(update={"agent_state": state})


class RecordingActionExecutor:
    """Action executor that records every call instead of acting.

    Actions whose type is in *fail_types* are reported as failed; when
    *raise_error* is set, :meth:`execute_actions` raises it instead.
    """

    def __init__(
        self,
        *,
        fail_types: Sequence[DecisionType] = (),
        raise_error: Exception | None = None,
    ) -> None:
        self.fail_types = {DecisionType(t) for t in fail_types}
        self.raise_error = raise_error
        self.calls: list[tuple[list[BaseAction], ExecutionContext]] = []

    async def execute_actions(self, actions: Sequence[BaseAction], context: ExecutionContext) -> list[ActionResult]:
        self.calls.append((list(actions), context))
        if self.raise_error is not None:
            raise self.raise_error

        results: list[ActionResult] = []
        for action in actions:
            failed = DecisionType(action.type) in self.fail_types
            results.append(
                ActionResult(
                    action=action,
                    success=not failed,
                    error=f"{action.type} failed" if failed else None,
                    data={"dry_run": context.dry_run},
                )
            )
            logger.debug("Recorded action %s for task %s", action.type, context.task_id)
        return results
