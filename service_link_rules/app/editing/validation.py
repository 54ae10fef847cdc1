"""
Validation of a whole working copy before anything is persisted.
"""

import ipaddress
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from shared.errors import ValidationError
from ..rules.actions import is_safe_redirect_url
from ..rules.conditions import normalize_country_codes, parse_instant
from ..rules.models import (
    Rule, RuleCondition, Action, ActionType, ConditionField, DeviceClass, MatchType,
    RedirectSettings, BlockAccessSettings, PasswordGateSettings, NotifySettings,
    VALID_OPERATORS
)
from .limits import LimitPolicy, PlanLimits
from .normalize import normalize_rule, strip_always
from .reorder import PriorityReorderer

MAX_BLOCK_REASON_LENGTH = 500
MAX_NOTIFY_MESSAGE_LENGTH = 1000
MAX_HINT_LENGTH = 200
MAX_CONDITIONS_PER_RULE = 10
MAX_PRIORITY = 999

_COUNTRY_CODE = re.compile(r"^[A-Z]{2}$")
_TEMPLATE_ONLY_URLS = ("{{longUrl}}", "{{shortUrl}}")
_DEVICE_VALUES = frozenset(d.value for d in DeviceClass)


@dataclass(frozen=True)
class ValidationIssue:
    """One problem found in one rule."""
    rule_index: int
    field: str
    message: str

    def to_dict(self):
        return {"rule_index": self.rule_index, "field": self.field, "message": self.message}


@dataclass(frozen=True)
class ValidPlan:
    """A working copy that passed validation.

    Rules are normalized and their priorities are their list positions.
    """
    rules: Tuple[Rule, ...]
    limits: PlanLimits


def _validate_condition(condition: RuleCondition, index: int, path: str) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []

    def issue(suffix: str, message: str):
        issues.append(ValidationIssue(index, f"{path}.{suffix}", message))

    if not isinstance(condition.field, ConditionField):
        issue("field", f"Unknown condition field: {condition.field}")
        return issues
    if condition.operator not in VALID_OPERATORS[condition.field]:
        issue("operator", f"Operator {getattr(condition.operator, 'value', condition.operator)} "
                          f"is not valid for {condition.field.value}")
        return issues

    field, value = condition.field, condition.value

    if field == ConditionField.COUNTRY:
        codes = normalize_country_codes(value)
        if not codes:
            issue("value", "At least one country code is required")
        else:
            invalid = [c for c in codes if not _COUNTRY_CODE.match(c)]
            if invalid:
                issue("value", f"Invalid country codes: {', '.join(invalid)}")

    elif field == ConditionField.DEVICE:
        if getattr(value, "value", value) not in _DEVICE_VALUES:
            issue("value", "Device must be one of mobile, tablet, desktop")

    elif field == ConditionField.IP:
        if not isinstance(value, str) or not value.strip():
            issue("value", "IP address is required")
        else:
            try:
                ipaddress.ip_address(value.strip())
            except ValueError:
                issue("value", f"Invalid IP address: {value}")

    elif field in (ConditionField.IS_BOT, ConditionField.IS_VPN):
        if not isinstance(value, bool):
            issue("value", "A true/false value is required")

    elif field == ConditionField.DATE:
        if parse_instant(value) is None:
            issue("value", "A valid ISO-8601 date is required")

    elif field == ConditionField.ACCESS_COUNT:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            issue("value", "Access count must be a non-negative integer")

    return issues


def _validate_action(action: Action, index: int, path: str) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    settings = action.settings

    def issue(suffix: str, message: str):
        issues.append(ValidationIssue(index, f"{path}.settings.{suffix}", message))

    if action.type == ActionType.REDIRECT and isinstance(settings, RedirectSettings):
        url = (settings.url or "").strip()
        if not url:
            issue("url", "Redirect URL is required")
        elif url not in _TEMPLATE_ONLY_URLS and not url.startswith(("http://", "https://")):
            issue("url", "Redirect URL must start with http:// or https://")

    elif action.type == ActionType.PASSWORD_GATE and isinstance(settings, PasswordGateSettings):
        if not (settings.password_hash or "").strip():
            issue("passwordHash", "Password is required for password gate")
        if settings.hint and len(settings.hint) > MAX_HINT_LENGTH:
            issue("hint", f"Hint must be at most {MAX_HINT_LENGTH} characters")

    elif action.type == ActionType.BLOCK_ACCESS and isinstance(settings, BlockAccessSettings):
        if settings.reason and len(settings.reason) > MAX_BLOCK_REASON_LENGTH:
            issue("reason", f"Reason must be at most {MAX_BLOCK_REASON_LENGTH} characters")

    elif action.type == ActionType.NOTIFY and isinstance(settings, NotifySettings):
        if settings.webhook_url:
            if not settings.webhook_url.startswith("https://"):
                issue("webhookUrl", "Webhook URL must use HTTPS")
            elif not is_safe_redirect_url(settings.webhook_url):
                issue("webhookUrl", "Webhook URL must not target a private or local host")
        if settings.message and len(settings.message) > MAX_NOTIFY_MESSAGE_LENGTH:
            issue("message", f"Message must be at most {MAX_NOTIFY_MESSAGE_LENGTH} characters")

    return issues


def validate_rule(rule: Rule, index: int) -> List[ValidationIssue]:
    """All problems with one rule; an empty list means the rule is valid."""
    issues: List[ValidationIssue] = []

    if not isinstance(rule.match, MatchType):
        issues.append(ValidationIssue(index, "match", "Match type must be AND or OR"))

    if isinstance(rule.priority, bool) or not isinstance(rule.priority, int) \
            or not 0 <= rule.priority <= MAX_PRIORITY:
        issues.append(ValidationIssue(index, "priority", f"Priority must be between 0 and {MAX_PRIORITY}"))

    if len(strip_always(rule.conditions)) > MAX_CONDITIONS_PER_RULE:
        issues.append(ValidationIssue(
            index, "conditions", f"A rule can have at most {MAX_CONDITIONS_PER_RULE} conditions"
        ))

    for position, condition in enumerate(rule.conditions):
        if condition.is_always:
            continue
        issues.extend(_validate_condition(condition, index, f"conditions[{position}]"))

    issues.extend(_validate_action(rule.action, index, "action"))
    if rule.else_action is not None:
        issues.extend(_validate_action(rule.else_action, index, "elseAction"))

    return issues


def validate_rule_set(rules: Sequence[Rule], limits: Optional[PlanLimits] = None) -> ValidPlan:
    """Validate an entire working copy.

    Raises:
        ValidationError: naming the first offending rule and field, with
            every issue found under ``details["issues"]``.
        LimitExceededError: if the set exceeds a plan ceiling.
    """
    issues: List[ValidationIssue] = []
    for index, rule in enumerate(rules):
        issues.extend(validate_rule(rule, index))

    if issues:
        first = issues[0]
        raise ValidationError(
            f"Rule {first.rule_index + 1}: {first.message}",
            details={
                "rule_index": first.rule_index,
                "field": first.field,
                "issues": [i.to_dict() for i in issues],
            }
        )

    limits = limits or PlanLimits()
    LimitPolicy(limits).check_rule_set(rules)

    normalized = PriorityReorderer.reindex([normalize_rule(rule) for rule in rules])
    return ValidPlan(rules=tuple(normalized), limits=limits)
