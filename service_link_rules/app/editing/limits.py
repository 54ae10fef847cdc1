"""
Plan-based ceilings on rule and condition counts.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from shared.errors import LimitExceededError
from ..rules.models import Rule

RULES_PER_LINK = "rules_per_link"
CONDITIONS_PER_RULE = "conditions_per_rule"


@dataclass(frozen=True)
class PlanLimits:
    """Ceilings for the acting identity; None means unlimited."""
    max_rules_per_link: Optional[int] = None
    max_conditions_per_rule: Optional[int] = None


PLAN_LIMITS: Dict[str, PlanLimits] = {
    "guest": PlanLimits(max_rules_per_link=1, max_conditions_per_rule=1),
    "user": PlanLimits(max_rules_per_link=3, max_conditions_per_rule=2),
    "pro": PlanLimits(max_rules_per_link=None, max_conditions_per_rule=None),
}


def limits_for_plan(plan: str) -> PlanLimits:
    """Look up a named plan preset."""
    try:
        return PLAN_LIMITS[plan.lower()]
    except KeyError:
        raise ValueError(f"Unknown plan: {plan}") from None


def _within(limit: Optional[int], count: int) -> bool:
    return limit is None or count < limit


class LimitPolicy:
    """Applies PlanLimits at edit time and, authoritatively, at save time."""

    def __init__(self, limits: Optional[PlanLimits] = None):
        self.limits = limits or PlanLimits()

    def can_add_rule(self, current_count: int) -> bool:
        return _within(self.limits.max_rules_per_link, current_count)

    def can_add_condition(self, current_count: int) -> bool:
        return _within(self.limits.max_conditions_per_rule, current_count)

    def ensure_can_add_rule(self, current_count: int) -> None:
        if not self.can_add_rule(current_count):
            limit = self.limits.max_rules_per_link
            raise LimitExceededError(
                RULES_PER_LINK, limit,
                message=f"You can only create {limit} rules per link"
            )

    def ensure_can_add_condition(self, current_count: int, rule_index: Optional[int] = None) -> None:
        if not self.can_add_condition(current_count):
            limit = self.limits.max_conditions_per_rule
            raise LimitExceededError(
                CONDITIONS_PER_RULE, limit, rule_index=rule_index,
                message=f"You can only add {limit} conditions per rule"
            )

    def check_rule_set(self, rules: Sequence[Rule]) -> None:
        """Raise LimitExceededError if the rule set exceeds either ceiling.

        Conditions are counted after ``always`` sentinels are dropped, i.e.
        as they would be persisted.
        """
        max_rules = self.limits.max_rules_per_link
        if max_rules is not None and len(rules) > max_rules:
            raise LimitExceededError(
                RULES_PER_LINK, max_rules,
                message=f"This would exceed the limit of {max_rules} rules per link "
                        f"(requested: {len(rules)})"
            )

        max_conditions = self.limits.max_conditions_per_rule
        if max_conditions is None:
            return
        for index, rule in enumerate(rules):
            count = len(rule.effective_conditions)
            if count > max_conditions:
                raise LimitExceededError(
                    CONDITIONS_PER_RULE, max_conditions, rule_index=index,
                    message=f"Rule {index + 1}: at most {max_conditions} conditions allowed "
                            f"(has {count})"
                )
