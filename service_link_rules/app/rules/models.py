"""
Rule data models for the Link Rules service.
"""

from typing import Dict, Any, Optional, List, Tuple, Union
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class MatchType(str, Enum):
    """How a rule combines its conditions."""
    AND = "AND"
    OR = "OR"


class ConditionField(str, Enum):
    """Request attributes a condition can test."""
    ALWAYS = "always"
    COUNTRY = "country"
    DEVICE = "device"
    IP = "ip"
    IS_BOT = "is_bot"
    IS_VPN = "is_vpn"
    DATE = "date"
    ACCESS_COUNT = "access_count"


class ConditionOperator(str, Enum):
    """Condition operators."""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    IN = "in"
    NOT_IN = "not_in"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    BEFORE = "before"
    AFTER = "after"


class DeviceClass(str, Enum):
    """Device classes recognised by device conditions."""
    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"


class ActionType(str, Enum):
    """Action types."""
    REDIRECT = "redirect"
    BLOCK_ACCESS = "block_access"
    PASSWORD_GATE = "password_gate"
    NOTIFY = "notify"


class EvaluationBranch(str, Enum):
    """Which branch of evaluation produced the result."""
    ACTION = "action"
    ELSE = "else"
    DEFAULT = "default"


VALID_OPERATORS: Dict[ConditionField, Tuple[ConditionOperator, ...]] = {
    ConditionField.ALWAYS: (ConditionOperator.EQUALS,),
    ConditionField.COUNTRY: (ConditionOperator.IN, ConditionOperator.NOT_IN),
    ConditionField.DEVICE: (ConditionOperator.EQUALS, ConditionOperator.NOT_EQUALS),
    ConditionField.IP: (ConditionOperator.EQUALS, ConditionOperator.NOT_EQUALS),
    ConditionField.IS_BOT: (ConditionOperator.EQUALS,),
    ConditionField.IS_VPN: (ConditionOperator.EQUALS,),
    ConditionField.DATE: (ConditionOperator.BEFORE, ConditionOperator.AFTER),
    ConditionField.ACCESS_COUNT: (
        ConditionOperator.EQUALS,
        ConditionOperator.GREATER_THAN,
        ConditionOperator.LESS_THAN,
    ),
}


def _coerce_enum(enum_cls, value):
    """Return the enum member for value, or value unchanged if unknown."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return value


@dataclass(frozen=True)
class RuleCondition:
    """A single predicate over one request-context field.

    ``field`` and ``operator`` hold the raw string when it is not a known
    member; such conditions never match.
    """
    field: Union[ConditionField, str]
    operator: Union[ConditionOperator, str] = ConditionOperator.EQUALS
    value: Any = None

    def __post_init__(self):
        object.__setattr__(self, "field", _coerce_enum(ConditionField, self.field))
        object.__setattr__(self, "operator", _coerce_enum(ConditionOperator, self.operator))

    @property
    def is_always(self) -> bool:
        return self.field == ConditionField.ALWAYS

    @classmethod
    def always(cls) -> "RuleCondition":
        return cls(ConditionField.ALWAYS, ConditionOperator.EQUALS, True)


@dataclass(frozen=True)
class RedirectSettings:
    url: str = ""


@dataclass(frozen=True)
class BlockAccessSettings:
    reason: Optional[str] = None


@dataclass(frozen=True)
class PasswordGateSettings:
    password_hash: str = ""
    hint: Optional[str] = None


@dataclass(frozen=True)
class NotifySettings:
    webhook_url: Optional[str] = None
    message: Optional[str] = None


ActionSettings = Union[RedirectSettings, BlockAccessSettings, PasswordGateSettings, NotifySettings]

SETTINGS_TYPES = {
    ActionType.REDIRECT: RedirectSettings,
    ActionType.BLOCK_ACCESS: BlockAccessSettings,
    ActionType.PASSWORD_GATE: PasswordGateSettings,
    ActionType.NOTIFY: NotifySettings,
}


@dataclass(frozen=True)
class Action:
    """An action type paired with the settings shape fixed for that type."""
    type: ActionType
    settings: ActionSettings

    def __post_init__(self):
        action_type = ActionType(self.type)
        object.__setattr__(self, "type", action_type)
        expected = SETTINGS_TYPES[action_type]
        if not isinstance(self.settings, expected):
            raise TypeError(
                f"{action_type.value} action requires {expected.__name__}, "
                f"got {type(self.settings).__name__}"
            )

    @classmethod
    def redirect(cls, url: str) -> "Action":
        return cls(ActionType.REDIRECT, RedirectSettings(url=url))

    @classmethod
    def block(cls, reason: Optional[str] = None) -> "Action":
        return cls(ActionType.BLOCK_ACCESS, BlockAccessSettings(reason=reason))

    @classmethod
    def password_gate(cls, password_hash: str, hint: Optional[str] = None) -> "Action":
        return cls(ActionType.PASSWORD_GATE, PasswordGateSettings(password_hash=password_hash, hint=hint))

    @classmethod
    def notify(cls, webhook_url: Optional[str] = None, message: Optional[str] = None) -> "Action":
        return cls(ActionType.NOTIFY, NotifySettings(webhook_url=webhook_url, message=message))

    @classmethod
    def default_for(cls, action_type: ActionType) -> "Action":
        """An action of the given type with empty settings, as the editor creates it."""
        action_type = ActionType(action_type)
        return cls(action_type, SETTINGS_TYPES[action_type]())


@dataclass(frozen=True)
class Rule:
    """Conditional redirect rule attached to a short link."""
    rule_id: str
    priority: int
    action: Action
    conditions: Tuple[RuleCondition, ...] = ()
    match: MatchType = MatchType.AND
    enabled: bool = True
    else_action: Optional[Action] = None
    name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        object.__setattr__(self, "rule_id", str(self.rule_id))
        object.__setattr__(self, "conditions", tuple(self.conditions))
        object.__setattr__(self, "match", _coerce_enum(MatchType, self.match))

    @property
    def effective_conditions(self) -> Tuple[RuleCondition, ...]:
        """Conditions with ``always`` sentinels removed."""
        return tuple(c for c in self.conditions if not c.is_always)


@dataclass(frozen=True)
class Link:
    """The short link a rule set belongs to."""
    short_url: str
    long_url: str


@dataclass(frozen=True)
class RequestContext:
    """Per-visit request attributes used by conditions."""
    country: Optional[str] = None
    device_class: Optional[str] = DeviceClass.DESKTOP.value
    ip: Optional[str] = None
    is_bot: bool = False
    is_vpn: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    prior_access_count: int = 0

    @classmethod
    def from_user_agent(cls, user_agent: Optional[str], **kwargs) -> "RequestContext":
        """Build a context whose device class is detected from a user agent."""
        from .device import detect_device
        return cls(device_class=detect_device(user_agent).value, **kwargs)


@dataclass(frozen=True)
class ActionOutcome:
    """A resolved action, ready for the redirect layer to execute."""
    type: ActionType
    url: Optional[str] = None
    reason: Optional[str] = None
    short_url: Optional[str] = None
    password_hash: Optional[str] = None
    hint: Optional[str] = None
    webhook_url: Optional[str] = None
    message: Optional[str] = None


@dataclass
class EvaluationResult:
    """Result of rule evaluation."""
    allowed: bool
    outcome: ActionOutcome
    branch: EvaluationBranch = EvaluationBranch.DEFAULT
    matched_rule_id: Optional[str] = None
    evaluation_time_ms: float = 0.0


# Wire models

class ConditionPayload(BaseModel):
    """Condition as transmitted to and from the dashboard API."""
    field: str
    operator: str
    value: Any = None


class ActionPayload(BaseModel):
    """Action as transmitted to and from the dashboard API."""
    type: ActionType
    settings: Dict[str, Any] = Field(default_factory=dict)


class RulePayload(BaseModel):
    """Rule as transmitted to and from the dashboard API.

    The API stores actions flattened (``actionType``/``actionSettings``);
    both shapes are accepted when parsing.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[Union[int, str]] = None
    name: Optional[str] = None
    priority: int = 0
    enabled: bool = True
    match: str = MatchType.AND.value
    conditions: List[ConditionPayload] = Field(default_factory=list)
    action: ActionPayload
    else_action: Optional[ActionPayload] = Field(None, alias="elseAction")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")

    @model_validator(mode="before")
    @classmethod
    def _unflatten_actions(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "action" not in data and "actionType" in data:
            data["action"] = {
                "type": data.pop("actionType"),
                "settings": data.pop("actionSettings", None) or {},
            }
        if "elseAction" not in data and "else_action" not in data and data.get("elseActionType"):
            data["elseAction"] = {
                "type": data.pop("elseActionType"),
                "settings": data.pop("elseActionSettings", None) or {},
            }
        return data


class EvaluateRequest(BaseModel):
    """Request model for evaluating a link's rules against one visit."""
    long_url: str = Field(..., description="Destination used when no rule is terminal")
    user_agent: Optional[str] = Field(None, description="Raw user agent, used to detect the device")
    country: Optional[str] = Field(None, description="ISO country code of the visitor")
    device: Optional[DeviceClass] = Field(None, description="Overrides user-agent detection")
    ip: Optional[str] = Field(None, description="Visitor IP address")
    is_bot: bool = Field(False, description="Bot detection flag")
    is_vpn: bool = Field(False, description="VPN detection flag")
    timestamp: Optional[datetime] = Field(None, description="Visit time; defaults to now")
    prior_access_count: int = Field(0, ge=0, description="Accesses before this one")
    skip_action_types: List[ActionType] = Field(default_factory=list)


class EvaluateResponse(BaseModel):
    """Response model for rule evaluation."""
    allowed: bool
    branch: EvaluationBranch
    matched_rule_id: Optional[str] = None
    action: Dict[str, Any]
    evaluation_time_ms: float


class PreviewRequest(BaseModel):
    """Request model for previewing a reconciliation without applying it."""
    rules: List[RulePayload]
    plan: Optional[str] = None


class PreviewResponse(BaseModel):
    """Response model for a reconciliation preview."""
    creates: List[str]
    updates: List[str]
    deletes: List[str]
    summaries: Dict[str, str] = Field(default_factory=dict)
