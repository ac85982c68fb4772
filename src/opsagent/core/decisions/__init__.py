"""Decision engine: validation, confidence gating and rule-based fallback."""

from opsagent.core.decisions.config import DecisionEngineConfig
from opsagent.core.decisions.engine import DecisionEngine
from opsagent.core.decisions.errors import DecisionError, DecisionParseError, DecisionValidationError
from opsagent.core.decisions.models import (
    ACTION_MODELS,
    ActionCondition,
    AgentAction,
    AgentDecision,
    AgentDecisionResult,
    AgentInput,
    AlternativeDecision,
    BaseAction,
    DecisionContext,
    DecisionType,
    FallbackDecision,
    Gate,
    IntentClassification,
    PipelineSummary,
    TaskStatus,
    ValidationResult,
    no_action,
)

__all__ = [
    "ACTION_MODELS",
    "ActionCondition",
    "AgentAction",
    "AgentDecision",
    "AgentDecisionResult",
    "AgentInput",
    "AlternativeDecision",
    "BaseAction",
    "DecisionContext",
    "DecisionEngine",
    "DecisionEngineConfig",
    "DecisionError",
    "DecisionParseError",
    "DecisionType",
    "DecisionValidationError",
    "FallbackDecision",
    "Gate",
    "IntentClassification",
    "PipelineSummary",
    "TaskStatus",
    "ValidationResult",
    "no_action",
]
