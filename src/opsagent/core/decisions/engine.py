"""DecisionEngine: turns untrusted model output into decisions that are safe to act on.

Responsibilities:

* parse a raw model answer (code-fenced JSON text or a mapping),
* validate its structure and every action's parameters for its type,
* apply confidence thresholds (auto-execute / require approval / reject),
* synthesize a conservative rule-based fallback when the answer is unusable.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from opsagent.core.decisions.config import DecisionEngineConfig
from opsagent.core.decisions.errors import DecisionParseError, DecisionValidationError
from opsagent.core.decisions.fallback import build_fallback_decision, classify_intent
from opsagent.core.decisions.models import (
    ACTION_MODELS,
    ActionParams,
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
    ValidationResult,
)
from opsagent.utils.jsontext import loads_fenced
from opsagent.utils.telemetry import (
    ATTR_ACTION_COUNT,
    ATTR_DECISION_CONFIDENCE,
    ATTR_DECISION_INTENT,
    ATTR_FALLBACK,
    get_tracer,
    set_span_attributes,
)

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

# Keys of an action object that are not part of its parameters.
_ENVELOPE_KEYS = frozenset(
    {"type", "params", "priority", "requiresConfirmation", "requires_confirmation", "delayMs", "delay_ms", "condition"}
)

# Task-style answers use NO_OP for the no-action marker.
_TYPE_ALIASES = {"NO_OP": DecisionType.NO_ACTION.value}


def _get(raw: Mapping[str, Any], camel: str, snake: str) -> Any:
    return raw[camel] if camel in raw else raw.get(snake)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not math.isnan(value)


class DecisionEngine:
    """Processes model outputs into validated decisions.

    Usage::

        engine = DecisionEngine(DecisionEngineConfig(auto_execute_threshold=0.9))
        result = engine.process_llm_response(response.content, context)
        if engine.should_auto_execute(result):
            ...
    """

    def __init__(self, config: DecisionEngineConfig | None = None) -> None:
        self._config = config or DecisionEngineConfig()
        logger.info(
            "DecisionEngine initialized (auto=%.2f, approval=%.2f, %d enabled actions)",
            self._config.auto_execute_threshold,
            self._config.require_approval_threshold,
            len(self._config.enabled_actions),
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def config(self) -> DecisionEngineConfig:
        """A copy of the current configuration."""
        return self._config.model_copy(deep=True)

    def update_config(self, **changes: Any) -> None:
        """Replace configuration fields; the merged result is re-validated."""
        self._config = DecisionEngineConfig.model_validate({**self._config.model_dump(), **changes})
        logger.info(
            "DecisionEngine configuration updated (auto=%.2f, approval=%.2f)",
            self._config.auto_execute_threshold,
            self._config.require_approval_threshold,
        )

    # ------------------------------------------------------------------
    # Main processing
    # ------------------------------------------------------------------

    def process_llm_response(
        self, raw: str | Mapping[str, Any], context: DecisionContext | None = None
    ) -> AgentDecisionResult:
        """Parse, validate and gate a raw model answer.

        On failure a fallback decision is returned when fallback is enabled
        and *context* is given.

        Raises:
            DecisionParseError: If *raw* is not a JSON object and no fallback applies.
            DecisionValidationError: If validation fails and no fallback applies.
        """
        with _tracer.start_as_current_span("decision.process") as span:
            try:
                parsed = self._parse_raw(raw)
            except DecisionParseError as exc:
                logger.warning("Failed to parse model response: %s", exc)
                if self._config.enable_fallback and context is not None:
                    span.set_attribute(ATTR_FALLBACK, True)
                    return self.create_fallback_decision(context, f"Parse error: {exc}").decision
                raise

            validation = self.validate_decision(parsed, context)
            if not validation.is_valid:
                logger.warning("Decision validation failed: %s", "; ".join(validation.errors))
                if self._config.enable_fallback and context is not None:
                    span.set_attribute(ATTR_FALLBACK, True)
                    reason = f"Validation failed: {', '.join(validation.errors)}"
                    return self.create_fallback_decision(context, reason).decision
                raise DecisionValidationError(validation.errors, warnings=validation.warnings)

            if validation.warnings:
                logger.warning("Decision has warnings: %s", "; ".join(validation.warnings))

            assert validation.sanitized_decision is not None
            decision = self._apply_thresholds(validation.sanitized_decision)

            set_span_attributes(
                span,
                {
                    ATTR_FALLBACK: False,
                    ATTR_DECISION_INTENT: decision.intent,
                    ATTR_DECISION_CONFIDENCE: decision.confidence,
                    ATTR_ACTION_COUNT: len(decision.actions),
                },
            )
            logger.info(
                "Decision processed: intent=%s confidence=%.2f actions=%d requires_approval=%s",
                decision.intent,
                decision.confidence,
                len(decision.actions),
                decision.requires_approval,
            )
            return decision

    def validate_decision(
        self, raw: str | Mapping[str, Any], context: DecisionContext | None = None
    ) -> ValidationResult:
        """Check a raw decision's structure and actions.

        Never raises for bad input: every problem is reported in the result.
        """
        if not isinstance(raw, Mapping):
            try:
                raw = self._parse_raw(raw)
            except DecisionParseError as exc:
                return ValidationResult(is_valid=False, errors=[str(exc)])

        errors: list[str] = []
        warnings: list[str] = []

        intent = raw.get("intent")
        if not isinstance(intent, str) or not intent.strip():
            errors.append('Missing or empty "intent" field')

        confidence = raw.get("confidence")
        if not _is_number(confidence):
            errors.append('Missing or invalid "confidence" field')
        elif not 0.0 <= confidence <= 1.0:
            errors.append('"confidence" must be between 0 and 1')
        elif confidence < self._config.min_valid_confidence:
            warnings.append(f"Very low confidence ({confidence}), consider rejecting")

        reasoning = raw.get("reasoning")
        if not isinstance(reasoning, str):
            warnings.append('Missing "reasoning" field - audit trail may be incomplete')

        raw_actions = raw.get("actions")
        if not isinstance(raw_actions, list):
            errors.append('Missing or invalid "actions" field (expected array)')
        elif not raw_actions:
            errors.append('"actions" must not be empty')

        requires_approval = _get(raw, "requiresApproval", "requires_approval")
        if not isinstance(requires_approval, bool):
            warnings.append('Missing "requiresApproval" field, defaulting to false')

        if errors:
            return ValidationResult(is_valid=False, errors=errors, warnings=warnings)

        available = context.available_actions if context is not None else None
        actions = self._validate_actions(raw_actions, errors, warnings, available=available)
        if errors:
            return ValidationResult(is_valid=False, errors=errors, warnings=warnings)

        raw_priority = raw.get("priority")
        raw_warnings = raw.get("warnings")
        sanitized = AgentDecisionResult(
            intent=intent.strip(),
            confidence=confidence,
            reasoning=reasoning if isinstance(reasoning, str) else "No reasoning provided",
            actions=actions,
            requires_approval=requires_approval if isinstance(requires_approval, bool) else False,
            priority=int(min(5, max(1, raw_priority))) if _is_number(raw_priority) else None,
            alternatives=_sanitize_alternatives(raw.get("alternatives")),
            warnings=[*_string_items(raw_warnings), *warnings],
        )
        return ValidationResult(is_valid=True, warnings=warnings, sanitized_decision=sanitized)

    def parse_agent_decision(
        self, raw: str | Mapping[str, Any], allowed_actions: Iterable[str] | None = None
    ) -> AgentDecision:
        """Parse a task-agent answer of the form ``{"reasoning": ..., "actions": [...]}``.

        Actions may carry their fields inline instead of under ``params``,
        and ``NO_OP`` is accepted for the no-action marker.  *allowed_actions*
        narrows the enabled set further; the no-action marker is always allowed.

        Raises:
            DecisionParseError: If *raw* is not a JSON object.
            DecisionValidationError: If the decision is structurally invalid.
        """
        parsed = self._parse_raw(raw)
        errors: list[str] = []
        warnings: list[str] = []

        reasoning = parsed.get("reasoning")
        if not isinstance(reasoning, str) or not reasoning.strip():
            errors.append('Missing or invalid "reasoning" field')

        raw_actions = parsed.get("actions")
        if not isinstance(raw_actions, list) or not raw_actions:
            errors.append('Missing or invalid "actions" field (must be a non-empty array)')

        confidence = parsed.get("confidence")
        if confidence is not None:
            if not _is_number(confidence):
                errors.append('Invalid "confidence" field')
            elif not 0.0 <= confidence <= 1.0:
                errors.append('"confidence" must be between 0 and 1')

        requires_approval = _get(parsed, "requiresApproval", "requires_approval")
        if requires_approval is not None and not isinstance(requires_approval, bool):
            errors.append('Invalid "requiresApproval" field (expected boolean)')

        if errors:
            raise DecisionValidationError(errors)

        allowed: set[DecisionType] | None = None
        if allowed_actions is not None:
            allowed = {DecisionType.NO_ACTION}
            for name in allowed_actions:
                name = _TYPE_ALIASES.get(name, name)
                if name in DecisionType.__members__:
                    allowed.add(DecisionType(name))

        actions = self._validate_actions(raw_actions, errors, warnings, allowed=allowed, inline_params=True)
        if errors:
            raise DecisionValidationError(errors, warnings=warnings)
        if warnings:
            logger.debug("Agent decision has warnings: %s", "; ".join(warnings))

        return AgentDecision(
            reasoning=reasoning,
            actions=actions,
            confidence=confidence,
            requires_approval=bool(requires_approval),
        )

    # ------------------------------------------------------------------
    # Thresholds
    # ------------------------------------------------------------------

    def should_auto_execute(self, decision: AgentDecisionResult) -> bool:
        if decision.requires_approval:
            return False
        return decision.confidence >= self._config.auto_execute_threshold

    def requires_approval(self, decision: AgentDecisionResult) -> bool:
        if decision.requires_approval:
            return True
        return self._config.require_approval_threshold <= decision.confidence < self._config.auto_execute_threshold

    def should_reject(self, decision: AgentDecisionResult) -> bool:
        return decision.confidence < self._config.require_approval_threshold

    def gate(self, decision: AgentDecisionResult | AgentDecision) -> Gate:
        """Classify *decision* as auto-execute, require-approval or reject.

        Raises:
            ValueError: If *decision* carries no confidence.
        """
        if decision.confidence is None:
            raise ValueError("Cannot gate a decision without a confidence")
        if decision.confidence < self._config.require_approval_threshold:
            return Gate.REJECT
        if decision.requires_approval or any(a.requires_confirmation for a in decision.actions):
            return Gate.REQUIRE_APPROVAL
        if decision.confidence >= self._config.auto_execute_threshold:
            return Gate.AUTO_EXECUTE
        return Gate.REQUIRE_APPROVAL

    def _apply_thresholds(self, decision: AgentDecisionResult) -> AgentDecisionResult:
        if decision.requires_approval:
            return decision
        if any(a.requires_confirmation for a in decision.actions):
            return decision.model_copy(update={"requires_approval": True})
        if decision.confidence < self._config.auto_execute_threshold:
            return decision.model_copy(update={"requires_approval": True})
        return decision

    # ------------------------------------------------------------------
    # Fallback
    # ------------------------------------------------------------------

    def create_fallback_decision(self, context: DecisionContext, reason: str) -> FallbackDecision:
        logger.info("Creating fallback decision: %s", reason)
        return build_fallback_decision(context, reason, self._config)

    def classify_intent_basic(self, agent_input: AgentInput) -> IntentClassification:
        """Keyword-based intent and urgency classification."""
        return classify_intent(agent_input, self._config.fallback_confidence)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _parse_raw(self, raw: str | Mapping[str, Any]) -> dict[str, Any]:
        if isinstance(raw, Mapping):
            return dict(raw)
        if not isinstance(raw, str):
            raise DecisionParseError(f"Unsupported response type: {type(raw).__name__}", raw=raw)
        try:
            parsed = loads_fenced(raw)
        except json.JSONDecodeError as exc:
            raise DecisionParseError(f"Failed to parse model response as JSON: {exc.msg}", raw=raw) from exc
        if not isinstance(parsed, dict):
            raise DecisionParseError("Model response is not a JSON object", raw=raw)
        return parsed

    def _validate_actions(
        self,
        raw_actions: list[Any],
        errors: list[str],
        warnings: list[str],
        *,
        available: list[DecisionType] | None = None,
        allowed: set[DecisionType] | None = None,
        inline_params: bool = False,
    ) -> list[BaseAction]:
        actions: list[BaseAction] = []
        for index, raw_action in enumerate(raw_actions):
            action = self._validate_action(
                raw_action, index, errors, warnings, available=available, allowed=allowed, inline_params=inline_params
            )
            if action is not None:
                actions.append(action)
        return actions

    def _validate_action(
        self,
        raw_action: Any,
        index: int,
        errors: list[str],
        warnings: list[str],
        *,
        available: list[DecisionType] | None,
        allowed: set[DecisionType] | None,
        inline_params: bool,
    ) -> BaseAction | None:
        prefix = f"Action {index}:"
        if not isinstance(raw_action, Mapping):
            errors.append(f"{prefix} Invalid action format")
            return None

        type_name = raw_action.get("type")
        if not isinstance(type_name, str):
            errors.append(f'{prefix} Missing or invalid "type" field')
            return None
        if inline_params:
            type_name = _TYPE_ALIASES.get(type_name, type_name)
        if type_name not in DecisionType.__members__:
            errors.append(f'{prefix} Unknown action type "{type_name}"')
            return None
        action_type = DecisionType(type_name)

        if action_type not in self._config.enabled_actions:
            errors.append(f'{prefix} Action type "{type_name}" is not enabled')
            return None
        if allowed is not None and action_type not in allowed:
            errors.append(f'{prefix} Action type "{type_name}" is not allowed')
            return None
        if available is not None and action_type not in available:
            warnings.append(f'{prefix} Action type "{type_name}" may not be available in current context')

        raw_params = raw_action.get("params")
        if raw_params is None and inline_params:
            raw_params = {k: v for k, v in raw_action.items() if k not in _ENVELOPE_KEYS}
        if not isinstance(raw_params, Mapping):
            errors.append(f'{prefix} Missing or invalid "params" field')
            return None

        model = ACTION_MODELS[action_type]
        params_model: type[ActionParams] = model.model_fields["params"].annotation  # type: ignore[assignment]
        try:
            params = params_model.model_validate(dict(raw_params))
        except ValidationError as exc:
            errors.extend(_describe_param_errors(prefix, type_name, exc))
            return None

        for name in params_model.recommended:
            if name not in raw_params:
                warnings.append(f'{prefix} {type_name} missing "{name}"')

        try:
            return model.model_validate(
                {
                    "type": type_name,
                    "params": params,
                    "priority": raw_action.get("priority"),
                    "requires_confirmation": _get(raw_action, "requiresConfirmation", "requires_confirmation"),
                    "delay_ms": _get(raw_action, "delayMs", "delay_ms"),
                    "condition": raw_action.get("condition"),
                }
            )
        except ValidationError as exc:
            errors.extend(_describe_param_errors(prefix, type_name, exc))
            return None


def _describe_param_errors(prefix: str, type_name: str, exc: ValidationError) -> list[str]:
    messages = []
    for error in exc.errors():
        loc = ".".join(str(part) for part in error["loc"])
        msg = error["msg"].removeprefix("Value error, ")
        if error["type"] == "missing":
            messages.append(f'{prefix} {type_name} requires "{loc}"')
        elif loc:
            messages.append(f'{prefix} {type_name} invalid "{loc}": {msg}')
        else:
            messages.append(f"{prefix} {type_name} {msg}")
    return messages


def _sanitize_alternatives(raw: Any) -> list[AlternativeDecision]:
    if not isinstance(raw, list):
        return []
    return [
        AlternativeDecision(
            intent=alt["intent"],
            confidence=float(alt["confidence"]),
            reason=str(alt.get("reason") or "No reason provided"),
        )
        for alt in raw
        if isinstance(alt, Mapping) and isinstance(alt.get("intent"), str) and _is_number(alt.get("confidence"))
    ]


def _string_items(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        return []
    return [item for item in raw if isinstance(item, str)]
