"""
Rule evaluation engine for the Link Rules service.
"""

import time
from typing import Iterable, List, Optional

from shared.logging import get_logger
from shared.errors import UnsafeRedirectError
from shared.metrics import MetricsCollector
from .actions import resolve_action, default_outcome
from .matcher import RuleMatcher
from .models import (
    Rule, Link, RequestContext, ActionType, ActionOutcome,
    EvaluationBranch, EvaluationResult
)


class RuleEngine:
    """Walks a link's rules in priority order and selects a terminal action.

    For each enabled rule, lowest priority first:

    - conditions match: the rule's action is terminal;
    - no match but an else action is set: the else action is terminal;
    - otherwise evaluation falls through to the next rule.

    If nothing is terminal the visitor is redirected to the link's long URL.
    """

    def __init__(self, matcher: Optional[RuleMatcher] = None,
                 metrics: Optional[MetricsCollector] = None):
        self.matcher = matcher or RuleMatcher()
        self.metrics = metrics
        self.logger = get_logger("link_rules.rule_engine")

    @staticmethod
    def order_rules(rules: Iterable[Rule]) -> List[Rule]:
        """Rules sorted ascending by priority; ties keep their input order."""
        return sorted(rules, key=lambda r: r.priority)

    def evaluate(self, rules: Iterable[Rule], link: Link, ctx: RequestContext,
                 skip_action_types: Iterable[ActionType] = ()) -> EvaluationResult:
        """Evaluate rules against one visit.

        ``skip_action_types`` lists action types already satisfied for this
        visit (e.g. a password gate the visitor has passed); a rule whose
        selected action has one of these types is passed over.
        """
        start_time = time.time()
        skipped = {ActionType(t) for t in skip_action_types}

        for rule in self.order_rules(rules):
            if not rule.enabled:
                continue

            if self.matcher.matches(rule, ctx):
                action, branch = rule.action, EvaluationBranch.ACTION
            elif rule.else_action is not None:
                action, branch = rule.else_action, EvaluationBranch.ELSE
            else:
                continue

            if action.type in skipped:
                continue

            try:
                outcome = resolve_action(action, link)
            except UnsafeRedirectError as e:
                self.logger.warning(
                    "Rule action rejected, falling through",
                    rule_id=rule.rule_id,
                    short_url=link.short_url,
                    error=e.message
                )
                continue

            return self._finish(outcome, branch, rule.rule_id, start_time)

        return self._finish(default_outcome(link), EvaluationBranch.DEFAULT, None, start_time)

    def _finish(self, outcome: ActionOutcome, branch: EvaluationBranch,
                rule_id: Optional[str], start_time: float) -> EvaluationResult:
        duration = time.time() - start_time
        result = EvaluationResult(
            allowed=outcome.type != ActionType.BLOCK_ACCESS,
            outcome=outcome,
            branch=branch,
            matched_rule_id=rule_id,
            evaluation_time_ms=duration * 1000
        )

        if self.metrics is not None:
            self.metrics.record_evaluation(branch.value, outcome.type.value, duration)

        self.logger.debug(
            "Rule evaluation result",
            rule_id=rule_id,
            branch=branch.value,
            outcome=outcome.type.value,
            allowed=result.allowed
        )
        return result
