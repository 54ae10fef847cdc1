"""
In-memory rule store for local runs and tests.
"""

import itertools
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from shared.errors import PersistenceError
from shared.logging import get_logger
from ..editing.normalize import rule_content, rule_from_payload
from ..rules.models import Rule
from .base import RuleStore


class InMemoryRuleStore(RuleStore):
    """Stores rules per short URL and assigns sequential integer ids.

    ``max_rules_per_link`` mimics the server-side ceiling; a create beyond
    it is rejected like the dashboard API would.
    """

    def __init__(self, max_rules_per_link: Optional[int] = None):
        self.max_rules_per_link = max_rules_per_link
        self._rules: Dict[str, Dict[str, Rule]] = {}
        self._ids = itertools.count(1)
        self.logger = get_logger("link_rules.memory_store")

    def seed(self, short_url: str, rules: List[Rule]) -> None:
        """Replace a link's rules without going through create()."""
        self._rules[short_url] = {rule.rule_id: rule for rule in rules}

    async def list(self, short_url: str) -> List[Rule]:
        return sorted(self._rules.get(short_url, {}).values(), key=lambda r: r.priority)

    async def create(self, short_url: str, payload: Dict[str, Any]) -> Rule:
        link_rules = self._rules.setdefault(short_url, {})
        if self.max_rules_per_link is not None and len(link_rules) >= self.max_rules_per_link:
            raise PersistenceError(
                "create",
                f"Limit of {self.max_rules_per_link} rules per link reached",
                status_code=403
            )

        now = datetime.now(timezone.utc)
        data = dict(payload, id=next(self._ids), createdAt=now, updatedAt=now)
        rule = self._parse("create", data)
        link_rules[rule.rule_id] = rule
        self.logger.debug("Rule created", short_url=short_url, rule_id=rule.rule_id)
        return rule

    async def update(self, short_url: str, rule_id: str, patch: Dict[str, Any]) -> Rule:
        rule_id = str(rule_id)
        current = self._get("update", short_url, rule_id)

        data = rule_content(current)
        data.update(patch)
        data.update(id=rule_id, createdAt=current.created_at, updatedAt=datetime.now(timezone.utc))
        rule = self._parse("update", data, rule_id)
        self._rules[short_url][rule_id] = rule
        return rule

    async def delete(self, short_url: str, rule_id: str) -> None:
        rule_id = str(rule_id)
        self._get("delete", short_url, rule_id)
        del self._rules[short_url][rule_id]

    def _get(self, operation: str, short_url: str, rule_id: str) -> Rule:
        try:
            return self._rules[short_url][rule_id]
        except KeyError:
            raise PersistenceError(operation, "Rule not found", rule_id=rule_id, status_code=404) from None

    def _parse(self, operation: str, data: Dict[str, Any], rule_id: Optional[str] = None) -> Rule:
        try:
            return rule_from_payload(data)
        except (PydanticValidationError, ValueError, TypeError, KeyError) as e:
            raise PersistenceError(operation, f"Invalid rule: {e}", rule_id=rule_id, status_code=400) from e
