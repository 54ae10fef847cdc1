"""
Priority bookkeeping for a link's rule list.

A rule's priority is its position in the list. These helpers return new
lists whose priorities are exactly 0..N-1; inputs are never modified.
"""

from dataclasses import replace
from typing import List, Sequence

from ..rules.models import Rule


class PriorityReorderer:
    """Pure list transforms that keep priorities contiguous."""

    @staticmethod
    def reindex(rules: Sequence[Rule]) -> List[Rule]:
        """Set every rule's priority to its index."""
        return [
            rule if rule.priority == index else replace(rule, priority=index)
            for index, rule in enumerate(rules)
        ]

    @staticmethod
    def move(rules: Sequence[Rule], old_index: int, new_index: int) -> List[Rule]:
        """Move one rule to ``new_index``, shifting the rules in between."""
        size = len(rules)
        if not (0 <= old_index < size and 0 <= new_index < size):
            raise IndexError(f"Cannot move rule {old_index} to {new_index} in a list of {size}")

        reordered = list(rules)
        reordered.insert(new_index, reordered.pop(old_index))
        return PriorityReorderer.reindex(reordered)

    @staticmethod
    def reorder(rules: Sequence[Rule], ordered_ids: Sequence[str]) -> List[Rule]:
        """Arrange rules in the order given by their ids."""
        by_id = {rule.rule_id: rule for rule in rules}
        ordered_ids = [str(rule_id) for rule_id in ordered_ids]
        if len(ordered_ids) != len(by_id) or set(ordered_ids) != set(by_id):
            raise ValueError("ordered_ids must list every rule id exactly once")
        return PriorityReorderer.reindex([by_id[rule_id] for rule_id in ordered_ids])

    @staticmethod
    def is_contiguous(rules: Sequence[Rule]) -> bool:
        """True if priorities are exactly {0, ..., N-1}."""
        return sorted(rule.priority for rule in rules) == list(range(len(rules)))
