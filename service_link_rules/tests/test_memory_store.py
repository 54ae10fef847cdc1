"""
Unit tests for the in-memory rule store.
"""

import pytest

from shared.errors import PersistenceError
from service_link_rules.app.adapters.memory_store import InMemoryRuleStore


class TestInMemoryRuleStore:
    """Test cases for InMemoryRuleStore."""

    @pytest.fixture
    def store(self):
        return InMemoryRuleStore(max_rules_per_link=2)

    @pytest.fixture
    def payload(self):
        return {
            "priority": 0,
            "enabled": True,
            "match": "AND",
            "conditions": [{"field": "is_bot", "operator": "equals", "value": True}],
            "action": {"type": "block_access", "settings": {"reason": "bots"}},
        }

    @pytest.mark.asyncio
    async def test_create_assigns_ids(self, store, payload):
        """Test that created rules get sequential ids."""
        first = await store.create("promo", payload)
        second = await store.create("promo", dict(payload, priority=1))

        assert (first.rule_id, second.rule_id) == ("1", "2")
        assert [r.rule_id for r in await store.list("promo")] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_create_over_limit(self, store, payload):
        """Test the server-side rules-per-link ceiling."""
        await store.create("promo", payload)
        await store.create("promo", payload)

        with pytest.raises(PersistenceError) as exc_info:
            await store.create("promo", payload)
        assert exc_info.value.http_status == 403

    @pytest.mark.asyncio
    async def test_update_patch(self, store, payload):
        """Test that a patch merges into the stored rule."""
        rule = await store.create("promo", dict(payload, elseAction={"type": "redirect", "settings": {"url": "https://x.example"}}))
        updated = await store.update("promo", rule.rule_id, {"enabled": False, "elseAction": None})

        assert updated.enabled is False
        assert updated.else_action is None
        assert updated.action.settings.reason == "bots"
        assert updated.created_at == rule.created_at

    @pytest.mark.asyncio
    async def test_missing_rule(self, store):
        """Test update and delete of an unknown rule."""
        with pytest.raises(PersistenceError):
            await store.update("promo", "42", {"enabled": False})
        with pytest.raises(PersistenceError):
            await store.delete("promo", "42")

    @pytest.mark.asyncio
    async def test_delete(self, store, payload):
        rule = await store.create("promo", payload)
        await store.delete("promo", rule.rule_id)
        assert await store.list("promo") == []

    @pytest.mark.asyncio
    async def test_links_are_isolated(self, store, payload):
        await store.create("promo", payload)
        assert await store.list("other") == []
