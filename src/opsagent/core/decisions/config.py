"""Decision engine configuration."""

from pydantic import BaseModel, Field, model_validator

from opsagent.core.decisions.models import DecisionType


class DecisionEngineConfig(BaseModel):
    """Thresholds, enabled actions and fallback behaviour for a :class:`DecisionEngine`."""

    auto_execute_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    require_approval_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    enabled_actions: list[DecisionType] = Field(default_factory=lambda: list(DecisionType))
    enable_fallback: bool = True
    fallback_pipeline_id: str | None = None
    fallback_assignee_id: str | None = None
    fallback_confidence: float = Field(default=0.3, ge=0.0, le=1.0)
    min_valid_confidence: float = Field(default=0.1, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_thresholds(self) -> "DecisionEngineConfig":
        if self.require_approval_threshold > self.auto_execute_threshold:
            raise ValueError("require_approval_threshold must not exceed auto_execute_threshold")
        return self
