"""
Unit tests for the rule editor session.
"""

import pytest
from unittest.mock import AsyncMock

from shared.errors import PersistenceError, ValidationError
from service_link_rules.app.adapters.memory_store import InMemoryRuleStore
from service_link_rules.app.adapters.plan_client import StaticPlanLimitsProvider
from service_link_rules.app.editing.limits import PlanLimits
from service_link_rules.app.editing.reconciler import OperationKind
from service_link_rules.app.editing.session import RuleEditorSession
from service_link_rules.app.editing.working_copy import is_temporary_id
from service_link_rules.app.rules.models import Action, Rule, RuleCondition, ConditionField, ConditionOperator


class TestRuleEditorSession:
    """Test cases for RuleEditorSession."""

    @pytest.fixture
    def store(self):
        return InMemoryRuleStore()

    @pytest.fixture
    def session(self, store):
        """Session on the standard user plan."""
        return RuleEditorSession("promo", store, plan_provider=StaticPlanLimitsProvider("user"))

    def test_not_loaded(self, session):
        with pytest.raises(RuntimeError):
            session.working_copy

    @pytest.mark.asyncio
    async def test_load_applies_plan_limits(self, session):
        """Test that load fetches limits from the provider."""
        await session.load()

        assert session.loaded
        assert session.limits == PlanLimits(3, 2)
        assert session.working_copy.rules == []

    @pytest.mark.asyncio
    async def test_save_creates_and_reloads(self, session, store):
        """Test that saved rules come back with server ids."""
        await session.load()
        session.working_copy.add_rule()

        report = await session.save()

        assert report.ok
        rules = session.working_copy.rules
        assert len(rules) == 1
        assert not is_temporary_id(rules[0].rule_id)
        assert report.created_ids[next(iter(report.created_ids))] == rules[0].rule_id
        assert session.working_copy.has_changes is False
        assert len(await store.list("promo")) == 1

    @pytest.mark.asyncio
    async def test_save_without_changes(self, session, store):
        """Test that an unchanged working copy issues no calls."""
        await session.load()
        store.create = AsyncMock()

        report = await session.save()

        assert report.results == []
        store.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_save_keeps_edits(self, session):
        """Test that a validation failure leaves the working copy untouched."""
        await session.load()
        rule = session.working_copy.add_rule()
        session.working_copy.add_condition(rule.rule_id)

        with pytest.raises(ValidationError):
            await session.save()

        assert len(session.working_copy.rules) == 1
        assert session.working_copy.has_changes is True

    @pytest.mark.asyncio
    async def test_partial_failure_reloads(self, store):
        """Test that a partly failed save still refreshes from storage."""
        store.max_rules_per_link = 1
        session = RuleEditorSession("promo", store, limits=PlanLimits(max_rules_per_link=5))
        await session.load()
        session.working_copy.add_rule()
        session.working_copy.add_rule(session.working_copy.rules[0])

        report = await session.save()

        assert report.ok is False
        assert len(report.failures) == 1
        assert len(session.working_copy.rules) == 1
        assert session.working_copy.has_changes is False

    @pytest.mark.asyncio
    async def test_refresh_failure_is_reported(self, session, store):
        """Test that a failed reload is attached to the report."""
        await session.load()
        session.working_copy.add_rule()
        store.list = AsyncMock(side_effect=PersistenceError("list", "unavailable"))

        report = await session.save()

        assert report.ok
        assert report.refresh_error is not None
        assert session.working_copy.has_changes is True

    @pytest.mark.asyncio
    async def test_edit_existing_rule(self, session, store):
        """Test updating and deleting persisted rules."""
        await session.load()
        session.working_copy.add_rule()
        session.working_copy.add_rule()
        await session.save()

        first, second = session.working_copy.rules
        session.working_copy.update_condition(
            first.rule_id, 0, RuleCondition(ConditionField.COUNTRY, ConditionOperator.IN, ["GB"])
        )
        session.working_copy.set_else_action(first.rule_id, Action.block("uk only"))
        session.working_copy.remove_rule(second.rule_id)

        report = await session.save()

        assert report.ok
        stored = await store.list("promo")
        assert [r.rule_id for r in stored] == [first.rule_id]
        assert stored[0].conditions[0].value == ["GB"]
        assert stored[0].else_action.settings.reason == "uk only"

    @pytest.mark.asyncio
    async def test_discard(self, session):
        await session.load()
        session.working_copy.add_rule()
        session.discard()
        assert session.working_copy.rules == []

    @pytest.mark.asyncio
    async def test_save_repairs_gapped_priorities(self, session, store):
        """Test that a gapped stored set is renumbered by the next save."""
        store.seed("promo", [
            Rule(rule_id="5", priority=1, action=Action.block()),
            Rule(rule_id="7", priority=2, action=Action.block()),
        ])
        await session.load()
        assert session.working_copy.has_changes is True

        report = await session.save()

        assert report.ok
        assert [r.kind for r in report.results] == [OperationKind.UPDATE, OperationKind.UPDATE]
        assert [r.priority for r in await store.list("promo")] == [0, 1]
        assert session.working_copy.has_changes is False
