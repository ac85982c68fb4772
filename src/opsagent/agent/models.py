"""Task agent data models: tasks, templates, events and the decision audit log."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from opsagent.core.decisions.models import AgentAction, AgentDecision, TaskStatus, WireModel

# ---------------------------------------------------------------------------
# Tasks and templates
# ---------------------------------------------------------------------------


class TaskStep(WireModel):
    id: str
    status: TaskStatus = TaskStatus.NEW


class TaskOverride(WireModel):
    """Human override.  While ``overridden`` is set the agent never acts on the task."""

    overridden: bool = False
    reason: str | None = None
    by_user_id: str | None = None
    at: datetime | None = None


class TaskAgentState(WireModel):
    last_decision_id: str | None = None
    decision_ids: list[str] = []


class TaskInstance(WireModel):
    """A unit of work created from a :class:`TaskTemplate`."""

    id: str
    template_id: str
    tenant_id: str
    title: str
    description: str | None = None
    category: str = ""
    status: TaskStatus = TaskStatus.NEW
    priority: int = Field(default=3, ge=1, le=5)
    pipeline_key: str | None = None
    stage_key: str | None = None
    steps: list[TaskStep] = []
    tags: list[str] = []
    assigned_to_user_id: str | None = None
    data: dict[str, Any] = {}
    override: TaskOverride = Field(default_factory=TaskOverride)
    agent_state: TaskAgentState = Field(default_factory=TaskAgentState)


class TemplateStep(WireModel):
    id: str
    label: str
    order: int


class TemplatePipeline(WireModel):
    preferred_pipeline_key: str = ""
    default_stage_key: str = ""


class CompletionCriteria(WireModel):
    status: str = TaskStatus.DONE.value
    required_steps_completed: list[str] = []


class TemplateAgentConfig(WireModel):
    """How the agent behaves for tasks of one template."""

    system_prompt: str = ""
    allowed_actions: list[str] = []
    completion_criteria: CompletionCriteria = Field(default_factory=CompletionCriteria)


class TaskTemplate(WireModel):
    id: str
    label: str
    category: str = ""
    department: str = ""
    staff_role: str = ""
    typical_minutes: int = 60
    default_priority: int = Field(default=3, ge=1, le=5)
    pipeline: TemplatePipeline = Field(default_factory=TemplatePipeline)
    steps: list[TemplateStep] = []
    agent_config: TemplateAgentConfig = Field(default_factory=TemplateAgentConfig)


class TaskEvent(WireModel):
    """A lifecycle event for a task, e.g. ``task:created``."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    name: str
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    payload: dict[str, Any] = {}

    @property
    def task_id(self) -> str | None:
        value = self.payload.get("task_id") or self.payload.get("taskId")
        return str(value) if value else None


# ---------------------------------------------------------------------------
# Decision log
# ---------------------------------------------------------------------------


class DecisionStatus(str, Enum):
    PENDING = "PENDING"
    EXECUTED = "EXECUTED"
    FAILED = "FAILED"
    REJECTED = "REJECTED"
    REQUIRES_APPROVAL = "REQUIRES_APPROVAL"
    NO_OP = "NO_OP"


class LLMCallInfo(WireModel):
    """Metadata of the model call behind a decision."""

    model: str
    prompt_type: str
    tokens_in: int | None = None
    tokens_out: int | None = None
    latency_ms: float | None = None
    finish_reason: str | None = None


class ActionResult(WireModel):
    """Outcome of one action, as reported by the action executor."""

    action: AgentAction
    success: bool
    execution_time_ms: float = 0.0
    error: str | None = None
    data: dict[str, Any] | None = None


class ExecutionSummary(WireModel):
    success: bool
    total_actions: int
    successful_actions: int
    failed_actions: int
    results: list[ActionResult] = []
    error: str | None = None
    completed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_results(cls, results: list[ActionResult], *, success: bool, error: str | None = None) -> "ExecutionSummary":
        succeeded = sum(1 for r in results if r.success)
        return cls(
            success=success,
            total_actions=len(results),
            successful_actions=succeeded,
            failed_actions=len(results) - succeeded,
            results=results,
            error=error,
        )


class DecisionLogEntry(WireModel):
    """Audit record of one decision for one event on one task.

    Created before any action runs; updated once when execution finishes.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    task_id: str
    tenant_id: str
    template_id: str
    event_name: str
    event_id: str
    agent_config_hash: str
    input_snapshot: dict[str, Any] = {}
    llm_call: LLMCallInfo | None = None
    decision: AgentDecision
    status: DecisionStatus = DecisionStatus.PENDING
    execution: ExecutionSummary | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    applied_at: datetime | None = None
    completed_at: datetime | None = None


class ExecutionContext(WireModel):
    """Passed to the action executor alongside the actions."""

    task_id: str
    tenant_id: str
    correlation_id: str
    dry_run: bool = False


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


class RateLimitOccupancy(BaseModel):
    model_config = ConfigDict(frozen=True)

    decisions_this_minute: int
    decisions_this_hour: int
    is_limited: bool


class AgentStats(BaseModel):
    """Read-only snapshot of a task agent's counters."""

    model_config = ConfigDict(frozen=True)

    agent_id: str
    total_decisions: int
    successful_decisions: int
    failed_decisions: int
    no_op_decisions: int
    rejected_decisions: int
    approval_required_decisions: int
    total_events_processed: int
    total_errors: int
    average_decision_time_ms: float
    rate_limit: RateLimitOccupancy
    uptime_ms: float
    is_running: bool
