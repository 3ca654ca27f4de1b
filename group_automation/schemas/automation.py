from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from typing import Dict, Any, Optional, Type
from datetime import datetime

from group_automation.models.automation_rule import ActionType, DataType, AggregateOperation
from group_automation.utils.dates import to_naive_utc
from group_automation.utils.patterns import is_valid_pattern


# ---------------------------------------------------------------------------
# Action configuration: one model per action type
# ---------------------------------------------------------------------------

class ActionConfig(BaseModel):
    """Fields shared by every action type. Unknown keys are dropped."""
    model_config = ConfigDict(extra="ignore")

    data_type: Optional[DataType] = None


class CollectDataConfig(ActionConfig):
    reply_template: Optional[str] = None


class AutoReplyConfig(ActionConfig):
    reply_template: Optional[str] = None


class WebhookConfig(ActionConfig):
    url: Optional[str] = None
    method: str = "POST"
    headers: Dict[str, str] = Field(default_factory=dict)
    success_reply: Optional[str] = None


class AggregateConfig(ActionConfig):
    operation: AggregateOperation = AggregateOperation.COUNT
    field: Optional[str] = None
    reply_template: Optional[str] = None


class AiProcessConfig(ActionConfig):
    prompt: Optional[str] = None


ACTION_CONFIG_MODELS: Dict[ActionType, Type[ActionConfig]] = {
    ActionType.COLLECT_DATA: CollectDataConfig,
    ActionType.AUTO_REPLY: AutoReplyConfig,
    ActionType.WEBHOOK: WebhookConfig,
    ActionType.AGGREGATE: AggregateConfig,
    ActionType.AI_PROCESS: AiProcessConfig,
}

WEBHOOK_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


def parse_action_config(action_type: ActionType, config: Optional[Dict[str, Any]]) -> ActionConfig:
    """Parse a stored config blob into the model for its action type (lenient)."""
    model = ACTION_CONFIG_MODELS[ActionType(action_type)]
    return model.model_validate(config or {})


def validate_action_config(action_type: ActionType, config: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Strict validation used when a rule is created or edited.
    Returns the normalized config dict to store; raises ValueError on problems.
    """
    try:
        parsed = parse_action_config(action_type, config)
    except ValidationError as e:
        raise ValueError(f"Invalid action config: {e}") from e

    if isinstance(parsed, WebhookConfig):
        if not parsed.url or not parsed.url.startswith(("http://", "https://")):
            raise ValueError("Webhook rules need an http(s) url")
        parsed.method = parsed.method.upper()
        if parsed.method not in WEBHOOK_METHODS:
            raise ValueError(f"Unsupported webhook method: {parsed.method}")
    elif isinstance(parsed, AggregateConfig):
        if parsed.operation == AggregateOperation.SUM and not parsed.field:
            raise ValueError("Sum aggregation needs a field")
    elif isinstance(parsed, AiProcessConfig):
        if not parsed.prompt or not parsed.prompt.strip():
            raise ValueError("AI process rules need a prompt")

    return parsed.model_dump(mode="json", exclude_none=True)


# ---------------------------------------------------------------------------
# Rule management
# ---------------------------------------------------------------------------

class AutomationRuleCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str | None = None
    group_remote_jid: str | None = None
    group_name_match: str | None = None
    capture_pattern: str | None = None
    action_type: ActionType
    action_config: Dict[str, Any] = Field(default_factory=dict)
    starts_at: datetime | None = None
    expires_at: datetime | None = None
    priority: int = 0
    should_reply: bool = True
    reply_only_once: bool = False
    skip_ai_after: bool = True
    is_active: bool = True

    @field_validator("starts_at", "expires_at")
    @classmethod
    def normalize_window(cls, value):
        return to_naive_utc(value)

    @model_validator(mode="after")
    def check_rule(self):
        if not self.group_remote_jid and not self.group_name_match:
            raise ValueError("Either group_remote_jid or group_name_match is required")
        if self.capture_pattern and not is_valid_pattern(self.capture_pattern):
            raise ValueError(f"Invalid capture pattern: {self.capture_pattern}")
        if self.starts_at and self.expires_at and self.expires_at <= self.starts_at:
            raise ValueError("expires_at must be after starts_at")
        self.action_config = validate_action_config(self.action_type, self.action_config)
        return self


class AutomationRuleUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    group_remote_jid: str | None = None
    group_name_match: str | None = None
    capture_pattern: str | None = None
    action_type: ActionType | None = None
    action_config: Dict[str, Any] | None = None
    starts_at: datetime | None = None
    expires_at: datetime | None = None
    priority: int | None = None
    should_reply: bool | None = None
    reply_only_once: bool | None = None
    skip_ai_after: bool | None = None
    is_active: bool | None = None

    @field_validator("starts_at", "expires_at")
    @classmethod
    def normalize_window(cls, value):
        return to_naive_utc(value)

    @model_validator(mode="after")
    def check_pattern(self):
        if self.capture_pattern and not is_valid_pattern(self.capture_pattern):
            raise ValueError(f"Invalid capture pattern: {self.capture_pattern}")
        return self


class AutomationRuleResponse(BaseModel):
    id: int
    company_id: str
    name: str
    description: str | None = None
    group_remote_jid: str | None = None
    group_name_match: str | None = None
    capture_pattern: str | None = None
    action_type: str
    action_config: Dict[str, Any]
    starts_at: datetime | None = None
    expires_at: datetime | None = None
    priority: int
    should_reply: bool
    reply_only_once: bool
    skip_ai_after: bool
    is_active: bool
    created_at: datetime
    collected_count: int = 0

    class Config:
        from_attributes = True


class CollectedDatumResponse(BaseModel):
    id: int
    rule_id: int
    group_remote_jid: str
    participant_jid: str
    participant_name: str | None = None
    message_id: str | None = None
    captured_data: Dict[str, Any]
    created_at: datetime

    class Config:
        from_attributes = True


# ---------------------------------------------------------------------------
# Message processing
# ---------------------------------------------------------------------------

class MessageContext(BaseModel):
    """Everything the engine knows about one inbound group message."""
    company_id: str
    group_remote_jid: str
    group_name: str | None = None
    participant_jid: str
    participant_name: str | None = None
    content: str = ""
    message_id: str | None = None
    instance_key: str | None = None


class ActionResult(BaseModel):
    response: str | None = None


class MatchResult(BaseModel):
    """
    Outcome of processing one message. The caller sends `response` (if any)
    back to the group and skips its AI responder when `skip_ai` is set.
    """
    matched: bool = False
    rule: Any = None
    captured_data: Dict[str, Any] | None = None
    response: str | None = None
    skip_ai: bool = False

    def summary(self) -> Dict[str, Any]:
        return {
            "matched": self.matched,
            "rule_id": getattr(self.rule, "id", None),
            "rule_name": getattr(self.rule, "name", None),
            "captured_data": self.captured_data,
            "response": self.response,
            "skip_ai": self.skip_ai,
        }
