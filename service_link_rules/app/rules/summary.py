"""
Human-readable summaries of rules, used in logs and rule listings.
"""

from typing import Sequence

from .conditions import normalize_country_codes, parse_instant
from .models import (
    RuleCondition, Rule, Action, ActionType, MatchType,
    ConditionField, ConditionOperator, RedirectSettings
)

_COUNT_SYMBOLS = {
    ConditionOperator.EQUALS: "=",
    ConditionOperator.GREATER_THAN: ">",
    ConditionOperator.LESS_THAN: "<",
}


def condition_summary(condition: RuleCondition) -> str:
    field, operator, value = condition.field, condition.operator, condition.value

    if field == ConditionField.ALWAYS:
        return "Always"
    if field == ConditionField.COUNTRY:
        verb = "is" if operator == ConditionOperator.IN else "is not"
        return f"Country {verb} {', '.join(normalize_country_codes(value))}"
    if field in (ConditionField.DEVICE, ConditionField.IP):
        verb = "is" if operator == ConditionOperator.EQUALS else "is not"
        label = "Device" if field == ConditionField.DEVICE else "IP"
        return f"{label} {verb} {getattr(value, 'value', value)}"
    if field == ConditionField.IS_BOT:
        return "Is a bot" if value else "Is not a bot"
    if field == ConditionField.IS_VPN:
        return "Using VPN" if value else "Not using VPN"
    if field == ConditionField.DATE:
        instant = parse_instant(value)
        shown = instant.isoformat() if instant else value
        return f"Date {'before' if operator == ConditionOperator.BEFORE else 'after'} {shown}"
    if field == ConditionField.ACCESS_COUNT:
        return f"Accesses {_COUNT_SYMBOLS.get(operator, operator)} {value}"

    return f"{getattr(field, 'value', field)} {getattr(operator, 'value', operator)} {value}"


def action_summary(action: Action) -> str:
    if action.type == ActionType.REDIRECT and isinstance(action.settings, RedirectSettings):
        url = action.settings.url
        shown = url[:22] + "..." if len(url) > 25 else url
        return f"Redirect → {shown}"
    return {
        ActionType.BLOCK_ACCESS: "Block access",
        ActionType.PASSWORD_GATE: "Password gate",
        ActionType.NOTIFY: "Notify",
    }.get(action.type, action.type.value)


def conditions_summary(conditions: Sequence[RuleCondition], match: MatchType) -> str:
    if not conditions:
        return "No conditions"
    if any(c.is_always for c in conditions):
        return "Always"
    return f" {getattr(match, 'value', match)} ".join(condition_summary(c) for c in conditions)


def rule_summary(rule: Rule) -> str:
    """One line: ``If <conditions> then <action> [else <action>]``."""
    text = f"If {conditions_summary(rule.conditions, rule.match)} then {action_summary(rule.action)}"
    if rule.else_action is not None:
        text += f" else {action_summary(rule.else_action)}"
    if not rule.enabled:
        text += " (disabled)"
    return text
