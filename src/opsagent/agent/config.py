"""Task agent configuration."""

from pydantic import BaseModel, Field, model_validator

from opsagent.core.decisions.models import DecisionType

DEFAULT_TASK_EVENTS: tuple[str, ...] = (
    "task:created",
    "task:status_changed",
    "task:stage_changed",
    "task:assignee_changed",
    "task:reprocess_requested",
    "task:sla_breached",
)


class TaskAgentConfig(BaseModel):
    """Configuration for a :class:`~opsagent.agent.task_agent.TaskAgent`.

    One agent serves one tenant.  Thresholds and ``enabled_actions`` seed the
    agent's decision engine when none is injected.
    """

    tenant_id: str
    agent_id: str | None = None
    max_decisions_per_minute: int = Field(default=30, ge=1)
    max_decisions_per_hour: int = Field(default=300, ge=1)
    dry_run: bool = False
    subscribed_events: list[str] = Field(default_factory=lambda: list(DEFAULT_TASK_EVENTS))
    recent_decisions_limit: int = Field(default=10, ge=0)
    prompt_type: str = "DECIDE_NEXT_ACTION"

    gate_on_confidence: bool = False
    auto_execute_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    require_approval_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    enabled_actions: list[DecisionType] = Field(default_factory=lambda: list(DecisionType))

    timing_window: int = Field(default=100, ge=1, description="Decisions kept for the rolling average.")

    @model_validator(mode="after")
    def _check_thresholds(self) -> "TaskAgentConfig":
        if self.require_approval_threshold > self.auto_execute_threshold:
            raise ValueError("require_approval_threshold must not exceed auto_execute_threshold")
        return self
