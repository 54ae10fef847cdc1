"""
Combines a rule's conditions according to its match type.
"""

from typing import Optional

from shared.logging import get_logger
from .conditions import ConditionEvaluator
from .models import Rule, MatchType, RequestContext


class RuleMatcher:
    """AND/OR combination of a rule's effective conditions."""

    def __init__(self, evaluator: Optional[ConditionEvaluator] = None):
        self.evaluator = evaluator or ConditionEvaluator()
        self.logger = get_logger("link_rules.matcher")

    def matches(self, rule: Rule, ctx: RequestContext) -> bool:
        """Return True if the rule's conditions hold for ctx.

        ``always`` sentinels are dropped first; a rule left with no
        conditions matches unconditionally.
        """
        conditions = rule.effective_conditions
        if not conditions:
            return True

        if rule.match == MatchType.AND:
            return all(self.evaluator.evaluate(c, ctx) for c in conditions)

        if rule.match == MatchType.OR:
            return any(self.evaluator.evaluate(c, ctx) for c in conditions)

        self.logger.warning("Unknown match type", rule_id=rule.rule_id, match=str(rule.match))
        return False
