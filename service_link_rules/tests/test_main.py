"""
Unit tests for the Link Rules service API.
"""

import pytest
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient

from shared.errors import PersistenceError
from service_link_rules.app.main import LinkRulesService, create_app
from service_link_rules.app.adapters.memory_store import InMemoryRuleStore
from service_link_rules.app.adapters.http_store import HttpRuleStore
from service_link_rules.app.rules.models import (
    Rule, RuleCondition, Action, ConditionField, ConditionOperator
)


class TestLinkRulesService:
    """Test cases for LinkRulesService."""

    @pytest.fixture
    def store(self):
        """In-memory store seeded with a French redirect and a bot block."""
        store = InMemoryRuleStore()
        store.seed("promo", [
            Rule(
                rule_id="1",
                priority=0,
                conditions=(RuleCondition(ConditionField.COUNTRY, ConditionOperator.IN, ["FR"]),),
                action=Action.redirect("https://example.fr/")
            ),
            Rule(
                rule_id="2",
                priority=1,
                conditions=(RuleCondition(ConditionField.IS_BOT, ConditionOperator.EQUALS, True),),
                action=Action.block("no bots")
            ),
        ])
        return store

    @pytest.fixture
    def app(self, store):
        """Create FastAPI app instance."""
        return create_app(store=store)

    @pytest.fixture
    def client(self, app):
        """Create test client."""
        return TestClient(app)

    def test_root(self, client):
        """Test root endpoint."""
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "link-rules"

    def test_health(self, client):
        """Test health endpoint."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_metrics(self, client):
        """Test metrics endpoint."""
        client.post("/links/promo/evaluate", json={"long_url": "https://example.com/"})
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "rule_evaluations_total" in response.text

    def test_evaluate_match(self, client):
        """Test evaluation selecting a rule action."""
        response = client.post("/links/promo/evaluate", json={
            "long_url": "https://example.com/",
            "country": "FR"
        })

        assert response.status_code == 200
        data = response.json()
        assert data["allowed"] is True
        assert data["branch"] == "action"
        assert data["matched_rule_id"] == "1"
        assert data["action"] == {"type": "redirect", "url": "https://example.fr/"}

    def test_evaluate_block(self, client):
        """Test evaluation denying a bot."""
        response = client.post("/links/promo/evaluate", json={
            "long_url": "https://example.com/",
            "country": "DE",
            "is_bot": True
        })

        data = response.json()
        assert data["allowed"] is False
        assert data["action"]["reason"] == "no bots"

    def test_evaluate_default(self, client):
        """Test evaluation with no terminal rule."""
        response = client.post("/links/unknown/evaluate", json={"long_url": "https://example.com/"})

        data = response.json()
        assert data["branch"] == "default"
        assert data["action"]["url"] == "https://example.com/"

    def test_evaluate_detects_device(self, store):
        """Test that the device is detected from the user agent."""
        store.seed("mobile", [Rule(
            rule_id="9",
            priority=0,
            conditions=(RuleCondition(ConditionField.DEVICE, ConditionOperator.EQUALS, "mobile"),),
            action=Action.redirect("https://m.example.com/")
        )])
        client = TestClient(create_app(store=store))

        response = client.post("/links/mobile/evaluate", json={
            "long_url": "https://example.com/",
            "user_agent": "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile/15E148"
        })

        assert response.json()["matched_rule_id"] == "9"

    def test_evaluate_rejects_negative_count(self, client):
        """Test request validation."""
        response = client.post("/links/promo/evaluate", json={
            "long_url": "https://example.com/",
            "prior_access_count": -1
        })
        assert response.status_code == 422

    def test_evaluate_persistence_error(self):
        """Test that storage failures map to 502."""
        store = InMemoryRuleStore()
        store.list = AsyncMock(side_effect=PersistenceError("list", "unavailable", status_code=503))
        client = TestClient(create_app(store=store))

        response = client.post("/links/promo/evaluate", json={"long_url": "https://example.com/"})

        assert response.status_code == 502
        assert response.json()["code"] == "PERSISTENCE_ERROR"

    def test_preview(self, client):
        """Test previewing a save."""
        response = client.post("/links/promo/rules/preview", json={
            "plan": "pro",
            "rules": [
                {
                    "id": 1,
                    "priority": 0,
                    "match": "AND",
                    "conditions": [{"field": "country", "operator": "in", "value": ["FR", "BE"]}],
                    "action": {"type": "redirect", "settings": {"url": "https://example.fr/"}}
                },
                {
                    "priority": 1,
                    "conditions": [{"field": "always", "operator": "equals", "value": True}],
                    "action": {"type": "redirect", "settings": {"url": "{{longUrl}}"}}
                }
            ]
        })

        assert response.status_code == 200
        data = response.json()
        assert data["updates"] == ["1"]
        assert data["deletes"] == ["2"]
        assert len(data["creates"]) == 1
        assert data["creates"][0].startswith("tmp-")
        assert data["summaries"]["1"] == "If Country is FR, BE then Redirect → https://example.fr/"

    def test_preview_limit_exceeded(self, client):
        """Test that plan ceilings are enforced in previews."""
        rule = {"conditions": [], "action": {"type": "block_access", "settings": {}}}
        response = client.post("/links/promo/rules/preview", json={
            "plan": "guest",
            "rules": [rule, rule]
        })

        assert response.status_code == 422
        assert response.json()["code"] == "LIMIT_EXCEEDED"

    def test_preview_invalid_rule(self, client):
        """Test that validation errors name the rule and field."""
        response = client.post("/links/promo/rules/preview", json={
            "rules": [{"conditions": [], "action": {"type": "redirect", "settings": {}}}]
        })

        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["details"]["field"] == "action.settings.url"

    def test_preview_duplicate_ids(self, client):
        """Test that a rule id may appear only once in a preview."""
        rule = {"id": 1, "conditions": [], "action": {"type": "block_access", "settings": {}}}
        response = client.post("/links/promo/rules/preview", json={
            "plan": "pro",
            "rules": [rule, dict(rule, priority=1)]
        })

        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["details"] == {"rule_index": 1, "field": "id"}

    def test_preview_unknown_plan(self, client):
        response = client.post("/links/promo/rules/preview", json={"plan": "platinum", "rules": []})
        assert response.status_code == 422

    def test_default_store_is_http(self):
        """Test that the dashboard API store is used by default."""
        service = LinkRulesService()
        assert isinstance(service.store, HttpRuleStore)
