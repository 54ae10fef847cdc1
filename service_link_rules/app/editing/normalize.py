"""
Normalization and wire codec for link rules.

Rules are compared and transmitted in one canonical shape: ``always``
conditions dropped, country codes as a list of trimmed uppercase codes,
dates as ISO strings, and action settings with camelCase keys and empty
values removed.
"""

from dataclasses import fields, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from ..rules.conditions import normalize_country_codes, parse_instant
from ..rules.models import (
    Rule, RuleCondition, Action, ActionType, ActionSettings, ConditionField,
    RulePayload, SETTINGS_TYPES
)

_SETTINGS_KEYS = {
    "url": "url",
    "reason": "reason",
    "password_hash": "passwordHash",
    "hint": "hint",
    "webhook_url": "webhookUrl",
    "message": "message",
}
_SETTINGS_ATTRS = {wire: attr for attr, wire in _SETTINGS_KEYS.items()}


def country_from_text(text: str) -> List[str]:
    """Editor text to persisted codes: ``"us, mx , ca"`` -> ``["US", "MX", "CA"]``."""
    return normalize_country_codes(text)


def country_to_text(codes: Any) -> str:
    """Persisted codes to editor text: ``["US", "MX"]`` -> ``"US, MX"``."""
    return ", ".join(normalize_country_codes(codes))


def strip_always(conditions: Iterable[RuleCondition]) -> Tuple[RuleCondition, ...]:
    return tuple(c for c in conditions if not c.is_always)


def normalize_condition(condition: RuleCondition) -> RuleCondition:
    value = condition.value
    if condition.field == ConditionField.COUNTRY:
        value = normalize_country_codes(value)
    elif condition.field == ConditionField.DATE or isinstance(value, datetime):
        # "...000Z" from the API and a datetime built locally compare equal
        instant = parse_instant(value)
        if instant is not None:
            value = instant.isoformat()
    elif hasattr(value, "value") and isinstance(getattr(value, "value"), str):
        value = value.value
    return replace(condition, value=value)


def normalize_rule(rule: Rule) -> Rule:
    """Canonical form of a rule, as it is persisted."""
    return replace(
        rule,
        conditions=tuple(normalize_condition(c) for c in strip_always(rule.conditions))
    )


def settings_to_dict(settings: ActionSettings) -> Dict[str, Any]:
    """Settings with camelCase keys; empty optional values are omitted."""
    data = {}
    for f in fields(settings):
        value = getattr(settings, f.name)
        if value is None or value == "":
            continue
        data[_SETTINGS_KEYS[f.name]] = value
    return data


def settings_from_dict(action_type: ActionType, data: Optional[Dict[str, Any]]) -> ActionSettings:
    settings_cls = SETTINGS_TYPES[ActionType(action_type)]
    allowed = {f.name for f in fields(settings_cls)}
    kwargs = {}
    for key, value in (data or {}).items():
        attr = _SETTINGS_ATTRS.get(key, key)
        if attr in allowed and value is not None:
            kwargs[attr] = value
    return settings_cls(**kwargs)


def action_to_payload(action: Action) -> Dict[str, Any]:
    return {"type": action.type.value, "settings": settings_to_dict(action.settings)}


def action_from_payload(data: Union[Dict[str, Any], Any]) -> Action:
    if not isinstance(data, dict):
        data = data.model_dump()
    action_type = ActionType(data["type"])
    return Action(action_type, settings_from_dict(action_type, data.get("settings")))


def condition_to_payload(condition: RuleCondition) -> Dict[str, Any]:
    return {
        "field": getattr(condition.field, "value", condition.field),
        "operator": getattr(condition.operator, "value", condition.operator),
        "value": condition.value,
    }


def rule_content(rule: Rule) -> Dict[str, Any]:
    """Everything about a rule except its id and timestamps, normalized.

    Two rules with equal content need no update call.
    """
    rule = normalize_rule(rule)
    return {
        "name": rule.name,
        "priority": rule.priority,
        "enabled": rule.enabled,
        "match": getattr(rule.match, "value", rule.match),
        "conditions": [condition_to_payload(c) for c in rule.conditions],
        "action": action_to_payload(rule.action),
        "elseAction": action_to_payload(rule.else_action) if rule.else_action else None,
    }


def build_create_payload(rule: Rule) -> Dict[str, Any]:
    payload = rule_content(rule)
    if payload["elseAction"] is None:
        del payload["elseAction"]
    if payload["name"] is None:
        del payload["name"]
    return payload


def build_update_patch(original: Rule, local: Rule) -> Dict[str, Any]:
    """Patch for an existing rule.

    ``elseAction`` is only sent when it changed: the new action, or None to
    remove the else branch.
    """
    before, after = rule_content(original), rule_content(local)
    patch = {k: v for k, v in after.items() if k != "elseAction"}
    if after["name"] is None and before["name"] is None:
        del patch["name"]
    if before["elseAction"] != after["elseAction"]:
        patch["elseAction"] = after["elseAction"]
    return patch


def rule_from_payload(data: Union[RulePayload, Dict[str, Any]]) -> Rule:
    """Parse a rule as returned by the dashboard API."""
    payload = data if isinstance(data, RulePayload) else RulePayload.model_validate(data)
    conditions = tuple(
        normalize_condition(RuleCondition(c.field, c.operator, c.value))
        for c in payload.conditions
    )
    return Rule(
        rule_id=str(payload.id) if payload.id is not None else "",
        priority=payload.priority,
        enabled=payload.enabled,
        match=payload.match,
        conditions=conditions,
        action=action_from_payload(payload.action.model_dump()),
        else_action=action_from_payload(payload.else_action.model_dump()) if payload.else_action else None,
        name=payload.name,
        created_at=payload.created_at,
        updated_at=payload.updated_at,
    )
