"""Task agent: event-driven decisions over task lifecycles."""

from opsagent.agent.config import DEFAULT_TASK_EVENTS, TaskAgentConfig
from opsagent.agent.memory import InMemoryEventBus, InMemoryTaskStore, RecordingActionExecutor
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
    TaskOverride,
    TaskTemplate,
)
from opsagent.agent.ports import ActionExecutor, CompletionClient, EventSource, TaskStore
from opsagent.agent.ratelimit import DecisionRateLimiter
from opsagent.agent.task_agent import TaskAgent

__all__ = [
    "DEFAULT_TASK_EVENTS",
    "ActionExecutor",
    "ActionResult",
    "AgentStats",
    "CompletionClient",
    "DecisionLogEntry",
    "DecisionRateLimiter",
    "DecisionStatus",
    "EventSource",
    "ExecutionContext",
    "ExecutionSummary",
    "InMemoryEventBus",
    "InMemoryTaskStore",
    "LLMCallInfo",
    "RecordingActionExecutor",
    "TaskAgent",
    "TaskAgentConfig",
    "TaskEvent",
    "TaskInstance",
    "TaskOverride",
    "TaskStore",
    "TaskTemplate",
]
