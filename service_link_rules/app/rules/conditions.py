"""
Condition evaluation for link rules.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from shared.logging import get_logger
from .models import (
    RuleCondition, ConditionField, ConditionOperator, DeviceClass,
    RequestContext, VALID_OPERATORS
)

_DEVICE_VALUES = frozenset(d.value for d in DeviceClass)


def parse_instant(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 instant; naive values are taken as UTC.

    Returns None when the value is not a datetime or parsable string.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize_country_codes(value: Any) -> List[str]:
    """Turn ``"us, mx , ca"`` or ``["us", " mx"]`` into ``["US", "MX", ...]``."""
    if isinstance(value, str):
        parts = value.split(",")
    elif isinstance(value, (list, tuple, set, frozenset)):
        parts = [p for p in value if isinstance(p, str)]
    else:
        return []
    return [p.strip().upper() for p in parts if p.strip()]


def _label(value: Any) -> Any:
    return getattr(value, "value", value)


class ConditionEvaluator:
    """Evaluates one condition against a request context.

    Evaluation never raises: unknown fields, operators not valid for the
    field, and values of the wrong type all evaluate to False.
    """

    def __init__(self):
        self.logger = get_logger("link_rules.conditions")
        self._handlers: Dict[ConditionField, Callable[[ConditionOperator, Any, RequestContext], bool]] = {
            ConditionField.ALWAYS: self._evaluate_always,
            ConditionField.COUNTRY: self._evaluate_country,
            ConditionField.DEVICE: self._evaluate_device,
            ConditionField.IP: self._evaluate_ip,
            ConditionField.IS_BOT: self._evaluate_is_bot,
            ConditionField.IS_VPN: self._evaluate_is_vpn,
            ConditionField.DATE: self._evaluate_date,
            ConditionField.ACCESS_COUNT: self._evaluate_access_count,
        }

    def evaluate(self, condition: RuleCondition, ctx: RequestContext) -> bool:
        """Evaluate a single condition."""
        handler = self._handlers.get(condition.field)
        if handler is None:
            self.logger.warning("Unknown condition field", field=_label(condition.field))
            return False

        if condition.operator not in VALID_OPERATORS[condition.field]:
            self.logger.warning(
                "Operator not valid for field",
                field=_label(condition.field),
                operator=_label(condition.operator)
            )
            return False

        try:
            return bool(handler(condition.operator, condition.value, ctx))
        except Exception as e:
            self.logger.error(
                "Error evaluating condition",
                field=_label(condition.field),
                error=str(e)
            )
            return False

    def _evaluate_always(self, operator: ConditionOperator, value: Any, ctx: RequestContext) -> bool:
        return True

    def _evaluate_country(self, operator: ConditionOperator, value: Any, ctx: RequestContext) -> bool:
        if not isinstance(value, (str, list, tuple, set, frozenset)):
            return False
        codes = normalize_country_codes(value)
        country = ctx.country.strip().upper() if isinstance(ctx.country, str) else None
        is_member = country is not None and country in codes

        if operator == ConditionOperator.IN:
            return is_member
        return not is_member

    def _evaluate_device(self, operator: ConditionOperator, value: Any, ctx: RequestContext) -> bool:
        expected = _label(value)
        if expected not in _DEVICE_VALUES:
            return False
        actual = _label(ctx.device_class)

        if operator == ConditionOperator.EQUALS:
            return actual == expected
        return actual != expected

    def _evaluate_ip(self, operator: ConditionOperator, value: Any, ctx: RequestContext) -> bool:
        if not isinstance(value, str) or not value:
            return False

        if operator == ConditionOperator.EQUALS:
            return ctx.ip == value
        return ctx.ip != value

    def _evaluate_is_bot(self, operator: ConditionOperator, value: Any, ctx: RequestContext) -> bool:
        return isinstance(value, bool) and bool(ctx.is_bot) == value

    def _evaluate_is_vpn(self, operator: ConditionOperator, value: Any, ctx: RequestContext) -> bool:
        return isinstance(value, bool) and bool(ctx.is_vpn) == value

    def _evaluate_date(self, operator: ConditionOperator, value: Any, ctx: RequestContext) -> bool:
        target = parse_instant(value)
        current = parse_instant(ctx.timestamp)
        if target is None or current is None:
            return False

        if operator == ConditionOperator.BEFORE:
            return current < target
        return current > target

    def _evaluate_access_count(self, operator: ConditionOperator, value: Any, ctx: RequestContext) -> bool:
        # bool is an int subclass; True is not a count
        if isinstance(value, bool) or not isinstance(value, int):
            return False
        count = ctx.prior_access_count
        if isinstance(count, bool) or not isinstance(count, int):
            return False

        if operator == ConditionOperator.EQUALS:
            return count == value
        if operator == ConditionOperator.GREATER_THAN:
            return count > value
        return count < value


_default_evaluator = ConditionEvaluator()


def evaluate_condition(condition: RuleCondition, ctx: RequestContext) -> bool:
    """Evaluate one condition with the module-level evaluator."""
    return _default_evaluator.evaluate(condition, ctx)
