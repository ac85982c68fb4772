"""Collaborator protocols for the task agent.

The agent owns no storage, event delivery or action handlers; it talks to
them through these protocols.  In-memory implementations live in
:mod:`opsagent.agent.memory`.
"""

from collections.abc import Awaitable, Callable, Sequence
from typing import Protocol

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
from opsagent.core.decisions.models import BaseAction
from opsagent.core.interface.models import ChatMessage, CompletionOptions, ModelResponse

EventHandler = Callable[[TaskEvent], Awaitable[None]]


class EventSource(Protocol):
    """Delivers named task events to subscribers."""

    def subscribe(self, event_name: str, handler: EventHandler) -> str:
        """Register *handler* for *event_name* and return an unsubscribe token."""
        ...

    def unsubscribe(self, token: str) -> None:
        """Remove the subscription identified by *token* (no-op if unknown)."""
        ...


class TaskStore(Protocol):
    """Async access to tasks, templates and the decision log."""

    async def load_task(self, task_id: str) -> TaskInstance | None: ...

    async def load_template(self, template_id: str) -> TaskTemplate | None: ...

    async def load_recent_decisions(self, task_id: str, limit: int) -> list[DecisionLogEntry]:
        """Return up to *limit* decisions for the task, newest first."""
        ...

    async def create_decision_log(self, entry: DecisionLogEntry) -> str:
        """Persist *entry* and return its id."""
        ...

    async def update_decision_log(
        self, decision_id: str, *, status: DecisionStatus, execution: ExecutionSummary | None = None
    ) -> None: ...

    async def update_task_agent_state(self, task_id: str, decision_id: str) -> None:
        """Append *decision_id* to the task's history and mark it as the last decision."""
        ...


class ActionExecutor(Protocol):
    async def execute_actions(self, actions: Sequence[BaseAction], context: ExecutionContext) -> list[ActionResult]:
        """Run *actions* in order and report one result per action."""
        ...


class CompletionClient(Protocol):
    """The part of :class:`~opsagent.core.interface.client.ModelClient` the agent uses."""

    async def complete(
        self, messages: Sequence[ChatMessage], options: CompletionOptions | None = None
    ) -> ModelResponse: ...
