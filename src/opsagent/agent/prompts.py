"""Prompt builders for the task agent."""

from __future__ import annotations

import json
from collections.abc import Sequence

from opsagent.agent.models import DecisionLogEntry, TaskEvent, TaskInstance, TaskTemplate

ACTION_REFERENCE: dict[str, str] = {
    "SET_STATUS": '{"type": "SET_STATUS", "params": {"toStatus": "NEW" | "IN_PROGRESS" | "NEEDS_REVIEW" | "BLOCKED" | "DONE" | "CANCELLED"}}',
    "SET_STAGE": '{"type": "SET_STAGE", "params": {"toStageKey": "stage-key"}}',
    "ASSIGN_STAFF": '{"type": "ASSIGN_STAFF", "params": {"strategy": "LEAST_BUSY_IN_ROLE" | "KEEP_EXISTING" | "UNASSIGN", "role"?: "role"}}',
    "TAG_TASK": '{"type": "TAG_TASK", "params": {"add": ["tag"], "remove"?: ["tag"]}}',
    "PING_CUSTOMER": '{"type": "PING_CUSTOMER", "params": {"channel": "EMAIL" | "SMS" | "CHAT", "templateHint": "template-name"}}',
    "ADD_INTERNAL_NOTE": '{"type": "ADD_INTERNAL_NOTE", "params": {"note": "text"}}',
    "ESCALATE": '{"type": "ESCALATE", "params": {"reason": "why", "level"?: 1, "priority"?: "high", "targetRole"?: "role"}}',
    "ASSIGN_PIPELINE": '{"type": "ASSIGN_PIPELINE", "params": {"intakeId": "id", "pipelineId": "id", "stageId"?: "id"}}',
    "CREATE_TASK": '{"type": "CREATE_TASK", "params": {"templateId": "id", "title": "text"}}',
    "CREATE_EVENT": '{"type": "CREATE_EVENT", "params": {"title": "text", "startTime": "ISO-8601", "endTime": "ISO-8601", "attendees": ["email"]}}',
    "UPDATE_EVENT": '{"type": "UPDATE_EVENT", "params": {"eventId": "id"}}',
    "CANCEL_EVENT": '{"type": "CANCEL_EVENT", "params": {"eventId": "id", "reason"?: "text"}}',
    "SEND_NOTIFICATION": '{"type": "SEND_NOTIFICATION", "params": {"recipientIds": ["id"], "type": "kind", "subject": "text", "body": "text"}}',
    "TRIGGER_AUTOMATION": '{"type": "TRIGGER_AUTOMATION", "params": {"workflowId": "id", "payload": {}}}',
    "NO_ACTION": '{"type": "NO_ACTION", "params": {"reason": "why nothing should happen"}}',
}

_SYSTEM_PROMPT = """\
You are a task operations agent.

You manage business tasks represented as JSON. Each task is created from a
template and carries metadata, workflow steps, status, stage, assignment
and override flags. You do not talk to end users; you only decide what the
automation system should do next for the task.

Completion target: status "{target_status}"{required_steps}

Rules:
1. Prefer small, safe, incremental steps.
2. Only use these action types: {allowed}.
3. If the task is overridden by a human, return a single NO_ACTION.
4. Tasks in DONE or CANCELLED usually need nothing; BLOCKED tasks need investigation first.
5. React to the triggering event and stay consistent with recent decisions.

Respond with a single JSON object:
{{"reasoning": "short explanation", "confidence": 0.0-1.0, "actions": [ ... ]}}

To do nothing, return exactly one NO_ACTION with a reason.

Available actions:
{reference}"""


def build_system_prompt(template: TaskTemplate) -> str:
    config = template.agent_config
    allowed = config.allowed_actions or list(ACTION_REFERENCE)
    required = config.completion_criteria.required_steps_completed
    prompt = _SYSTEM_PROMPT.format(
        target_status=config.completion_criteria.status,
        required_steps=f"\nRequired steps: {', '.join(required)}" if required else "",
        allowed=", ".join(allowed),
        reference="\n".join(f"- {name}: {ACTION_REFERENCE[name]}" for name in allowed if name in ACTION_REFERENCE),
    )
    if config.system_prompt:
        prompt += f"\n\nTemplate instructions:\n{config.system_prompt}"
    return prompt


def build_user_prompt(task: TaskInstance, event: TaskEvent, recent_decisions: Sequence[DecisionLogEntry]) -> str:
    task_json = task.model_dump_json(by_alias=True, indent=2)
    payload_json = json.dumps(event.payload, indent=2, default=str)
    return (
        f"## Task\n```json\n{task_json}\n```\n\n"
        f"## Triggering event: {event.name}\n```json\n{payload_json}\n```\n\n"
        f"## Recent decisions (last {len(recent_decisions)})\n{_summarize_decisions(recent_decisions)}\n\n"
        "Decide what should happen next for this task. Return only the JSON decision."
    )


def _summarize_decisions(entries: Sequence[DecisionLogEntry]) -> str:
    if not entries:
        return "No previous decisions for this task."
    lines = []
    for index, entry in enumerate(entries, start=1):
        action_types = ", ".join(a.type for a in entry.decision.actions)
        lines.append(
            f"{index}. Decision {entry.id[:8]} ({entry.created_at.isoformat()}, {entry.status.value}):\n"
            f"   - Reasoning: {entry.decision.reasoning}\n"
            f"   - Actions: {action_types}"
        )
    return "\n\n".join(lines)
