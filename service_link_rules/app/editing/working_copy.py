"""
Client-local working copy of a link's rules.

Edits never touch storage. The working copy is compared against the last
committed snapshot at save time; ``discard`` reverts to that snapshot.
"""

import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from shared.logging import get_logger
from ..rules.models import (
    Rule, RuleCondition, Action, ConditionField, ConditionOperator, DeviceClass, MatchType
)
from .limits import LimitPolicy
from .normalize import country_from_text, country_to_text, rule_content
from .reorder import PriorityReorderer

TEMPORARY_ID_PREFIX = "tmp-"


def new_temporary_id() -> str:
    return f"{TEMPORARY_ID_PREFIX}{uuid.uuid4().hex[:12]}"


def is_temporary_id(rule_id: str) -> bool:
    return str(rule_id).startswith(TEMPORARY_ID_PREFIX)


def default_condition() -> RuleCondition:
    """Condition added by "add condition": an empty country list."""
    return RuleCondition(ConditionField.COUNTRY, ConditionOperator.IN, [])


def default_rule(rule_id: str, priority: int) -> Rule:
    """Rule added by "add rule": mobile visitors go to the long URL."""
    now = datetime.now(timezone.utc)
    return Rule(
        rule_id=rule_id,
        priority=priority,
        match=MatchType.AND,
        conditions=(RuleCondition(ConditionField.DEVICE, ConditionOperator.EQUALS, DeviceClass.MOBILE.value),),
        action=Action.redirect("{{longUrl}}"),
        created_at=now,
        updated_at=now,
    )


class WorkingCopy:
    """Editable rule list for one link."""

    def __init__(self, committed: Sequence[Rule] = (), policy: Optional[LimitPolicy] = None):
        self.policy = policy or LimitPolicy()
        self.logger = get_logger("link_rules.working_copy")
        self._committed: Tuple[Rule, ...] = ()
        self._rules: List[Rule] = []
        self.commit(committed)

    @property
    def rules(self) -> List[Rule]:
        return list(self._rules)

    @property
    def committed(self) -> Tuple[Rule, ...]:
        return self._committed

    @property
    def has_changes(self) -> bool:
        if [r.rule_id for r in self._rules] != [r.rule_id for r in self._committed]:
            return True
        return any(
            rule_content(a) != rule_content(b)
            for a, b in zip(self._rules, self._committed)
        )

    def commit(self, rules: Sequence[Rule]) -> None:
        """Make ``rules`` the committed snapshot and reset edits to it.

        The snapshot keeps the persisted priorities. The editable rules are
        reindexed to ``0..N-1``, so a gapped snapshot shows up as a change
        and the next save repairs it.
        """
        ordered = sorted(rules, key=lambda r: r.priority)
        self._committed = tuple(ordered)
        self._rules = PriorityReorderer.reindex(ordered)

    def discard(self) -> None:
        """Throw away all edits since the last commit."""
        self._rules = PriorityReorderer.reindex(self._committed)
        self.logger.debug("Working copy discarded", rules=len(self._rules))

    def index_of(self, rule_id: str) -> int:
        rule_id = str(rule_id)
        for index, rule in enumerate(self._rules):
            if rule.rule_id == rule_id:
                return index
        raise KeyError(f"Rule {rule_id} is not in the working copy")

    def get(self, rule_id: str) -> Rule:
        return self._rules[self.index_of(rule_id)]

    def _put(self, index: int, rule: Rule) -> Rule:
        rule = replace(rule, updated_at=datetime.now(timezone.utc))
        self._rules[index] = rule
        return rule

    # Rules

    def add_rule(self, rule: Optional[Rule] = None) -> Rule:
        """Append a rule under a temporary id.

        Raises:
            LimitExceededError: if the plan's rules-per-link ceiling is reached.
        """
        self.policy.ensure_can_add_rule(len(self._rules))

        rule_id = new_temporary_id()
        priority = len(self._rules)
        if rule is None:
            rule = default_rule(rule_id, priority)
        else:
            rule = replace(rule, rule_id=rule_id, priority=priority)

        self._rules.append(rule)
        return rule

    def remove_rule(self, rule_id: str) -> None:
        index = self.index_of(rule_id)
        del self._rules[index]
        self._rules = PriorityReorderer.reindex(self._rules)

    def replace_rule(self, rule_id: str, rule: Rule) -> Rule:
        """Replace a rule's content, keeping its id and position."""
        index = self.index_of(rule_id)
        current = self._rules[index]
        return self._put(index, replace(rule, rule_id=current.rule_id, priority=current.priority))

    def set_enabled(self, rule_id: str, enabled: bool) -> Rule:
        index = self.index_of(rule_id)
        return self._put(index, replace(self._rules[index], enabled=enabled))

    def set_match(self, rule_id: str, match: MatchType) -> Rule:
        index = self.index_of(rule_id)
        return self._put(index, replace(self._rules[index], match=MatchType(match)))

    def set_name(self, rule_id: str, name: Optional[str]) -> Rule:
        index = self.index_of(rule_id)
        return self._put(index, replace(self._rules[index], name=name or None))

    def set_action(self, rule_id: str, action: Action) -> Rule:
        index = self.index_of(rule_id)
        return self._put(index, replace(self._rules[index], action=action))

    def set_else_action(self, rule_id: str, action: Optional[Action]) -> Rule:
        """Set the else branch; None removes it."""
        index = self.index_of(rule_id)
        return self._put(index, replace(self._rules[index], else_action=action))

    # Conditions

    def add_condition(self, rule_id: str, condition: Optional[RuleCondition] = None) -> Rule:
        """Append a condition to a rule.

        Raises:
            LimitExceededError: if the plan's conditions-per-rule ceiling is reached.
        """
        index = self.index_of(rule_id)
        rule = self._rules[index]
        self.policy.ensure_can_add_condition(len(rule.conditions), rule_index=index)
        conditions = rule.conditions + (condition or default_condition(),)
        return self._put(index, replace(rule, conditions=conditions))

    def update_condition(self, rule_id: str, position: int, condition: RuleCondition) -> Rule:
        index = self.index_of(rule_id)
        rule = self._rules[index]
        conditions = list(rule.conditions)
        conditions[position] = condition
        return self._put(index, replace(rule, conditions=tuple(conditions)))

    def remove_condition(self, rule_id: str, position: int) -> Rule:
        index = self.index_of(rule_id)
        rule = self._rules[index]
        conditions = list(rule.conditions)
        del conditions[position]
        return self._put(index, replace(rule, conditions=tuple(conditions)))

    def set_country_text(self, rule_id: str, position: int, text: str) -> Rule:
        """Set a country condition from comma-separated editor text."""
        condition = self.get(rule_id).conditions[position]
        return self.update_condition(rule_id, position, replace(condition, value=country_from_text(text)))

    def country_text(self, rule_id: str, position: int) -> str:
        """Render a country condition for the editor, e.g. ``"US, MX, CA"``."""
        return country_to_text(self.get(rule_id).conditions[position].value)

    # Ordering

    def move_rule(self, rule_id: str, new_index: int) -> None:
        self._rules = PriorityReorderer.move(self._rules, self.index_of(rule_id), new_index)

    def reorder(self, ordered_ids: Sequence[str]) -> None:
        self._rules = PriorityReorderer.reorder(self._rules, ordered_ids)
