"""Rule-based fallback when the model's answer cannot be used.

Deterministic keyword matching over the triggering content: an intent, an
urgency level, and a conservative routing decision that always requires
human approval.
"""

from __future__ import annotations

from opsagent.core.decisions.config import DecisionEngineConfig
from opsagent.core.decisions.models import (
    AgentDecisionResult,
    AgentInput,
    AssignPipelineAction,
    AssignPipelineParams,
    BaseAction,
    DecisionContext,
    DecisionType,
    EscalateAction,
    EscalateParams,
    FallbackDecision,
    IntentClassification,
    no_action,
)

GENERAL_INTENT = "GENERAL"

# Checked in order; the first intent with a matching keyword wins.
INTENT_KEYWORDS: dict[str, tuple[str, ...]] = {
    "SALES_INQUIRY": ("price", "pricing", "cost", "quote", "buy", "purchase", "demo", "trial"),
    "SUPPORT_REQUEST": ("help", "support", "issue", "problem", "error", "bug", "not working", "broken"),
    "BILLING_QUESTION": ("billing", "invoice", "payment", "charge", "subscription", "refund"),
    "PARTNERSHIP": ("partnership", "partner", "reseller", "affiliate", "integrate", "api"),
    "SCHEDULING": ("schedule", "meeting", "appointment", "calendar", "book", "slot", "availability"),
}

URGENCY_KEYWORDS: tuple[tuple[int, tuple[str, ...]], ...] = (
    (5, ("urgent", "emergency", "asap", "immediately", "critical", "down", "outage")),
    (3, ("important", "soon", "priority", "deadline")),
    (1, ("whenever", "no rush", "low priority", "when possible")),
)

DEFAULT_URGENCY = 2
ESCALATION_URGENCY = 4


def detect_intent(content: str) -> str:
    lowered = content.lower()
    for intent, keywords in INTENT_KEYWORDS.items():
        if any(keyword in lowered for keyword in keywords):
            return intent
    return GENERAL_INTENT


def detect_urgency(content: str) -> int:
    """Return an urgency level from 1 (low) to 5 (high)."""
    lowered = content.lower()
    for level, keywords in URGENCY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return level
    return DEFAULT_URGENCY


def extract_keywords(content: str) -> list[str]:
    lowered = content.lower()
    return [kw for keywords in INTENT_KEYWORDS.values() for kw in keywords if kw in lowered]


def classify_intent(agent_input: AgentInput, confidence: float) -> IntentClassification:
    return IntentClassification(
        intent=detect_intent(agent_input.raw_content),
        confidence=confidence,
        urgency=detect_urgency(agent_input.raw_content),
        keywords=extract_keywords(agent_input.raw_content),
    )


def select_fallback_pipeline(
    context: DecisionContext, intent: str, configured: str | None = None
) -> str | None:
    """Pick a destination pipeline for a fallback routing action.

    Order: the configured fallback, the first pipeline whose name, category
    or description mentions the intent, the context default, then the first
    active pipeline.
    """
    if configured:
        return configured

    needles = {intent.lower(), intent.lower().replace("_", " ")}
    for pipeline in context.pipelines:
        haystack = " ".join((pipeline.name, pipeline.category, pipeline.description)).lower()
        if any(needle in haystack for needle in needles):
            return pipeline.id

    if context.default_pipeline_id:
        return context.default_pipeline_id

    for pipeline in context.pipelines:
        if pipeline.is_active:
            return pipeline.id
    return None


def build_fallback_decision(
    context: DecisionContext, reason: str, config: DecisionEngineConfig
) -> FallbackDecision:
    content = context.input.raw_content
    intent = detect_intent(content)
    urgency = detect_urgency(content)
    enabled = set(config.enabled_actions)

    actions: list[BaseAction] = []
    if DecisionType.ASSIGN_PIPELINE in enabled:
        pipeline_id = select_fallback_pipeline(context, intent, config.fallback_pipeline_id)
        if pipeline_id:
            data = context.input.structured_data
            intake_id = data.get("intakeId") or data.get("intake_id") or "unknown"
            actions.append(
                AssignPipelineAction(
                    params=AssignPipelineParams(
                        intake_id=str(intake_id),
                        pipeline_id=pipeline_id,
                        assignee_id=config.fallback_assignee_id,
                        priority=urgency,
                        notes=f"[FALLBACK] {reason}. Intent detected: {intent}",
                    ),
                    priority=urgency,
                    requires_confirmation=True,
                )
            )

    if urgency >= ESCALATION_URGENCY and DecisionType.ESCALATE in enabled:
        actions.append(
            EscalateAction(
                params=EscalateParams(
                    reason=f"High urgency item routed via fallback: {reason}",
                    level=1,
                    priority="high",
                ),
                priority=5,
            )
        )

    if not actions:
        actions.append(no_action(f"Fallback with no suitable action: {reason}"))

    decision = AgentDecisionResult(
        intent=intent,
        confidence=config.fallback_confidence,
        reasoning=f"[FALLBACK] {reason}. Rule-based detection used.",
        actions=actions,
        requires_approval=True,
        priority=urgency,
        warnings=[f"Decision made via fallback logic: {reason}"],
    )
    return FallbackDecision(decision=decision, reason=reason)
