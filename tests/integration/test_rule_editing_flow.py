"""
Integration tests for the rule editing and evaluation flow.
"""

import pytest
from fastapi.testclient import TestClient

from shared.errors import LimitExceededError
from service_link_rules.app.main import create_app
from service_link_rules.app.adapters.memory_store import InMemoryRuleStore
from service_link_rules.app.adapters.plan_client import StaticPlanLimitsProvider
from service_link_rules.app.editing.session import RuleEditorSession
from service_link_rules.app.rules.engine import RuleEngine
from service_link_rules.app.rules.models import (
    Action, ActionType, ConditionField, ConditionOperator, Link, MatchType,
    RequestContext, RuleCondition
)


class TestRuleEditingFlow:
    """Integration tests for editing rules and evaluating the saved set."""

    @pytest.fixture
    def store(self):
        return InMemoryRuleStore()

    @pytest.fixture
    def link(self):
        return Link(short_url="launch", long_url="https://example.com/launch")

    @pytest.mark.asyncio
    async def test_edit_save_evaluate(self, store, link):
        """Test that rules built in a session drive evaluation once saved."""
        session = RuleEditorSession(link.short_url, store, plan_provider=StaticPlanLimitsProvider("user"))
        copy = await session.load()

        geo = copy.add_rule()
        copy.update_condition(geo.rule_id, 0, RuleCondition(ConditionField.COUNTRY, ConditionOperator.IN, []))
        copy.set_country_text(geo.rule_id, 0, "fr, be")
        copy.set_action(geo.rule_id, Action.redirect("https://example.fr/?from={{shortUrl}}"))
        copy.set_else_action(geo.rule_id, Action.redirect("{{longUrl}}"))

        bots = copy.add_rule()
        copy.update_condition(bots.rule_id, 0, RuleCondition(ConditionField.IS_BOT, ConditionOperator.EQUALS, True))
        copy.set_action(bots.rule_id, Action.block("no bots"))

        # Bots should be checked first
        copy.move_rule(bots.rule_id, 0)

        report = await session.save()
        assert report.ok
        assert copy.has_changes is False
        assert copy.country_text(copy.rules[1].rule_id, 0) == "FR, BE"

        engine = RuleEngine()
        rules = await store.list(link.short_url)

        bot = engine.evaluate(rules, link, RequestContext(country="FR", is_bot=True))
        assert bot.allowed is False
        assert bot.outcome.reason == "no bots"

        french = engine.evaluate(rules, link, RequestContext(country="fr"))
        assert french.outcome.url == "https://example.fr/?from=launch"

        german = engine.evaluate(rules, link, RequestContext(country="DE"))
        assert german.outcome.type == ActionType.REDIRECT
        assert german.outcome.url == link.long_url
        assert german.branch.value == "else"

    @pytest.mark.asyncio
    async def test_plan_ceiling_stops_editing(self, store, link):
        """Test that the guest plan allows a single one-condition rule."""
        session = RuleEditorSession(link.short_url, store, plan_provider=StaticPlanLimitsProvider("guest"))
        copy = await session.load()

        rule = copy.add_rule()
        with pytest.raises(LimitExceededError):
            copy.add_rule()
        with pytest.raises(LimitExceededError):
            copy.add_condition(rule.rule_id)

        copy.set_match(rule.rule_id, MatchType.OR)
        report = await session.save()
        assert report.ok
        assert len(await store.list(link.short_url)) == 1

    @pytest.mark.asyncio
    async def test_saved_rules_served_by_api(self, store, link):
        """Test that the service evaluates what a session saved."""
        session = RuleEditorSession(link.short_url, store)
        copy = await session.load()
        rule = copy.add_rule()
        copy.set_action(rule.rule_id, Action.password_gate("$2b$10$hash", hint="team name"))
        await session.save()

        client = TestClient(create_app(store=store))
        mobile_ua = "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 Mobile Safari/537.36"

        gated = client.post(f"/links/{link.short_url}/evaluate", json={
            "long_url": link.long_url,
            "user_agent": mobile_ua
        }).json()
        assert gated["action"]["type"] == "password_gate"
        assert gated["action"]["hint"] == "team name"

        passed = client.post(f"/links/{link.short_url}/evaluate", json={
            "long_url": link.long_url,
            "user_agent": mobile_ua,
            "skip_action_types": ["password_gate"]
        }).json()
        assert passed["branch"] == "default"
        assert passed["action"]["url"] == link.long_url
