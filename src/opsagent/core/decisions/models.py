"""Decision data models: action vocabulary, decisions and validation results.

Actions are a closed set of tagged variants keyed on ``type``.  Each variant
carries a typed ``params`` payload, so required-field checks happen when the
payload is constructed.  On the wire (model output, executor input, audit
log) field names are camelCase; in Python they are snake_case.
"""

import math
from enum import Enum
from typing import Annotated, Any, ClassVar, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class DecisionType(str, Enum):
    """Every action kind the agent may propose."""

    ASSIGN_PIPELINE = "ASSIGN_PIPELINE"
    CREATE_TASK = "CREATE_TASK"
    CREATE_EVENT = "CREATE_EVENT"
    UPDATE_EVENT = "UPDATE_EVENT"
    CANCEL_EVENT = "CANCEL_EVENT"
    SEND_NOTIFICATION = "SEND_NOTIFICATION"
    TRIGGER_AUTOMATION = "TRIGGER_AUTOMATION"
    ESCALATE = "ESCALATE"
    SET_STATUS = "SET_STATUS"
    SET_STAGE = "SET_STAGE"
    ASSIGN_STAFF = "ASSIGN_STAFF"
    TAG_TASK = "TAG_TASK"
    PING_CUSTOMER = "PING_CUSTOMER"
    ADD_INTERNAL_NOTE = "ADD_INTERNAL_NOTE"
    NO_ACTION = "NO_ACTION"


class TaskStatus(str, Enum):
    NEW = "NEW"
    IN_PROGRESS = "IN_PROGRESS"
    NEEDS_REVIEW = "NEEDS_REVIEW"
    BLOCKED = "BLOCKED"
    DONE = "DONE"
    CANCELLED = "CANCELLED"


class Gate(str, Enum):
    """Outcome of applying confidence thresholds to a decision."""

    AUTO_EXECUTE = "AUTO_EXECUTE"
    REQUIRE_APPROVAL = "REQUIRE_APPROVAL"
    REJECT = "REJECT"


class WireModel(BaseModel):
    """Base for models exchanged as camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Action parameter payloads
# ---------------------------------------------------------------------------


class ActionParams(WireModel):
    """Base for per-action parameters.

    ``recommended`` lists wire names that are optional but produce a
    validation warning when absent.  Unknown keys are kept.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    recommended: ClassVar[tuple[str, ...]] = ()


class AssignPipelineParams(ActionParams):
    intake_id: str
    pipeline_id: str
    stage_id: str | None = None
    assignee_id: str | None = None
    priority: int | None = None
    notes: str | None = None


class CreateTaskParams(ActionParams):
    template_id: str
    title: str
    org_id: str | None = None
    source: str | None = None
    description: str | None = None
    intake_id: str | None = None
    priority: int | None = None


class CreateEventParams(ActionParams):
    recommended: ClassVar[tuple[str, ...]] = ("attendees",)

    title: str
    start_time: str = Field(min_length=1)
    end_time: str = Field(min_length=1)
    attendees: list[str] | None = None
    description: str | None = None
    location: str | None = None


class EventRefParams(ActionParams):
    """Parameters for UPDATE_EVENT and CANCEL_EVENT."""

    event_id: str
    reason: str | None = None


class SendNotificationParams(ActionParams):
    recipient_ids: list[str] | None = None
    recipient_emails: list[str] | None = None
    type: str
    subject: str
    body: str

    @model_validator(mode="after")
    def _require_recipients(self) -> "SendNotificationParams":
        if not self.recipient_ids and not self.recipient_emails:
            raise ValueError('requires "recipientIds" or "recipientEmails"')
        return self


class TriggerAutomationParams(ActionParams):
    recommended: ClassVar[tuple[str, ...]] = ("payload",)

    workflow_id: str
    payload: dict[str, Any] | None = None


class EscalateParams(ActionParams):
    recommended: ClassVar[tuple[str, ...]] = ("level", "priority")

    reason: str
    level: int = 1
    priority: str = "normal"
    target_role: str | None = None
    escalate_to_user_id: str | None = None
    escalate_to_email: str | None = None


class SetStatusParams(ActionParams):
    to_status: TaskStatus


class SetStageParams(ActionParams):
    to_stage_key: str


class AssignStaffParams(ActionParams):
    strategy: Literal["LEAST_BUSY_IN_ROLE", "KEEP_EXISTING", "UNASSIGN"]
    role: str | None = None


class TagTaskParams(ActionParams):
    add: list[str]
    remove: list[str] = []


class PingCustomerParams(ActionParams):
    channel: Literal["EMAIL", "SMS", "CHAT"]
    template_hint: str


class AddInternalNoteParams(ActionParams):
    note: str


class NoActionParams(ActionParams):
    reason: str | None = None


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class ActionCondition(WireModel):
    """Precondition that must hold before an action runs."""

    type: Literal["time_range", "user_available", "slot_available", "custom"]
    params: dict[str, Any] = {}


class BaseAction(WireModel):
    """Fields shared by every action variant.

    ``priority`` is clamped to 1-5 (non-numbers become 3), non-positive
    or non-finite delays are dropped and a malformed condition is discarded.
    """

    type: str
    priority: int = 3
    requires_confirmation: bool = False
    delay_ms: int | None = None
    condition: ActionCondition | None = None

    @field_validator("priority", mode="before")
    @classmethod
    def _clamp_priority(cls, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
            return 3
        return int(min(5, max(1, value)))

    @field_validator("requires_confirmation", mode="before")
    @classmethod
    def _coerce_confirmation(cls, value: Any) -> bool:
        return value if isinstance(value, bool) else False

    @field_validator("delay_ms", mode="before")
    @classmethod
    def _positive_delay(cls, value: Any) -> int | None:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        if not math.isfinite(value) or value <= 0:
            return None
        return int(value)

    @field_validator("condition", mode="before")
    @classmethod
    def _well_formed_condition(cls, value: Any) -> Any:
        if isinstance(value, ActionCondition):
            return value
        if not isinstance(value, dict) or not isinstance(value.get("type"), str):
            return None
        if value["type"] not in ("time_range", "user_available", "slot_available", "custom"):
            return None
        if not isinstance(value.get("params"), dict):
            return None
        return value


class AssignPipelineAction(BaseAction):
    type: Literal["ASSIGN_PIPELINE"] = "ASSIGN_PIPELINE"
    params: AssignPipelineParams


class CreateTaskAction(BaseAction):
    type: Literal["CREATE_TASK"] = "CREATE_TASK"
    params: CreateTaskParams


class CreateEventAction(BaseAction):
    type: Literal["CREATE_EVENT"] = "CREATE_EVENT"
    params: CreateEventParams


class UpdateEventAction(BaseAction):
    type: Literal["UPDATE_EVENT"] = "UPDATE_EVENT"
    params: EventRefParams


class CancelEventAction(BaseAction):
    type: Literal["CANCEL_EVENT"] = "CANCEL_EVENT"
    params: EventRefParams


class SendNotificationAction(BaseAction):
    type: Literal["SEND_NOTIFICATION"] = "SEND_NOTIFICATION"
    params: SendNotificationParams


class TriggerAutomationAction(BaseAction):
    type: Literal["TRIGGER_AUTOMATION"] = "TRIGGER_AUTOMATION"
    params: TriggerAutomationParams


class EscalateAction(BaseAction):
    type: Literal["ESCALATE"] = "ESCALATE"
    params: EscalateParams


class SetStatusAction(BaseAction):
    type: Literal["SET_STATUS"] = "SET_STATUS"
    params: SetStatusParams


class SetStageAction(BaseAction):
    type: Literal["SET_STAGE"] = "SET_STAGE"
    params: SetStageParams


class AssignStaffAction(BaseAction):
    type: Literal["ASSIGN_STAFF"] = "ASSIGN_STAFF"
    params: AssignStaffParams


class TagTaskAction(BaseAction):
    type: Literal["TAG_TASK"] = "TAG_TASK"
    params: TagTaskParams


class PingCustomerAction(BaseAction):
    type: Literal["PING_CUSTOMER"] = "PING_CUSTOMER"
    params: PingCustomerParams


class AddInternalNoteAction(BaseAction):
    type: Literal["ADD_INTERNAL_NOTE"] = "ADD_INTERNAL_NOTE"
    params: AddInternalNoteParams


class NoAction(BaseAction):
    type: Literal["NO_ACTION"] = "NO_ACTION"
    params: NoActionParams = Field(default_factory=NoActionParams)


AgentAction = Annotated[
    Union[
        AssignPipelineAction,
        CreateTaskAction,
        CreateEventAction,
        UpdateEventAction,
        CancelEventAction,
        SendNotificationAction,
        TriggerAutomationAction,
        EscalateAction,
        SetStatusAction,
        SetStageAction,
        AssignStaffAction,
        TagTaskAction,
        PingCustomerAction,
        AddInternalNoteAction,
        NoAction,
    ],
    Field(discriminator="type"),
]

ACTION_MODELS: dict[DecisionType, type[BaseAction]] = {
    DecisionType.ASSIGN_PIPELINE: AssignPipelineAction,
    DecisionType.CREATE_TASK: CreateTaskAction,
    DecisionType.CREATE_EVENT: CreateEventAction,
    DecisionType.UPDATE_EVENT: UpdateEventAction,
    DecisionType.CANCEL_EVENT: CancelEventAction,
    DecisionType.SEND_NOTIFICATION: SendNotificationAction,
    DecisionType.TRIGGER_AUTOMATION: TriggerAutomationAction,
    DecisionType.ESCALATE: EscalateAction,
    DecisionType.SET_STATUS: SetStatusAction,
    DecisionType.SET_STAGE: SetStageAction,
    DecisionType.ASSIGN_STAFF: AssignStaffAction,
    DecisionType.TAG_TASK: TagTaskAction,
    DecisionType.PING_CUSTOMER: PingCustomerAction,
    DecisionType.ADD_INTERNAL_NOTE: AddInternalNoteAction,
    DecisionType.NO_ACTION: NoAction,
}


def no_action(reason: str) -> NoAction:
    """Build the explicit no-action marker."""
    return NoAction(params=NoActionParams(reason=reason))


def _reject_bool(value: Any) -> Any:
    if isinstance(value, bool):
        raise ValueError("confidence must be a number, not a boolean")
    return value


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


class AgentDecision(WireModel):
    """A decision as produced by the model for the task agent."""

    reasoning: str = Field(min_length=1)
    actions: list[AgentAction] = Field(min_length=1)
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    requires_approval: bool = False

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence_not_bool(cls, value: Any) -> Any:
        return _reject_bool(value)

    @property
    def is_no_op(self) -> bool:
        """``True`` when the decision is exactly one no-action marker."""
        return len(self.actions) == 1 and self.actions[0].type == DecisionType.NO_ACTION


class AlternativeDecision(WireModel):
    intent: str
    confidence: float
    reason: str = "No reason provided"


class AgentDecisionResult(WireModel):
    """A validated, sanitized decision ready for gating."""

    intent: str = Field(min_length=1)
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str
    actions: list[AgentAction] = Field(min_length=1)
    requires_approval: bool = False
    priority: int | None = Field(default=None, ge=1, le=5)
    alternatives: list[AlternativeDecision] = []
    warnings: list[str] = []

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence_not_bool(cls, value: Any) -> Any:
        return _reject_bool(value)

    @property
    def is_no_op(self) -> bool:
        return len(self.actions) == 1 and self.actions[0].type == DecisionType.NO_ACTION


class ValidationResult(BaseModel):
    is_valid: bool
    errors: list[str] = []
    warnings: list[str] = []
    sanitized_decision: AgentDecisionResult | None = None


class FallbackDecision(BaseModel):
    """Conservative rule-based decision used when the model output is unusable."""

    decision: AgentDecisionResult
    reason: str
    is_partial_failure: bool = True


class IntentClassification(BaseModel):
    intent: str
    confidence: float
    urgency: int = Field(ge=1, le=5)
    keywords: list[str] = []
    entities: list[str] = []


# ---------------------------------------------------------------------------
# Decision context
# ---------------------------------------------------------------------------


class AgentInput(WireModel):
    """The content that triggered a decision (an intake, message, form...)."""

    source: str
    type: str = ""
    raw_content: str = ""
    structured_data: dict[str, Any] = {}
    metadata: dict[str, Any] = {}


class PipelineSummary(WireModel):
    id: str
    name: str
    category: str = ""
    description: str = ""
    is_active: bool = True


class DecisionContext(WireModel):
    """What the engine may consult when validating or falling back."""

    input: AgentInput
    pipelines: list[PipelineSummary] = []
    default_pipeline_id: str | None = None
    available_actions: list[DecisionType] | None = None
    session_id: str | None = None
