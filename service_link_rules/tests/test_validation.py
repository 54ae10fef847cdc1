"""
Unit tests for rule set validation.
"""

import pytest

from shared.errors import ValidationError, LimitExceededError
from service_link_rules.app.editing.limits import PlanLimits
from service_link_rules.app.editing.validation import validate_rule, validate_rule_set
from service_link_rules.app.rules.models import (
    Rule, RuleCondition, Action, ConditionField, ConditionOperator
)


def _rule(index=0, conditions=(), action=None, else_action=None):
    return Rule(
        rule_id=str(index),
        priority=index,
        conditions=conditions,
        action=action or Action.redirect("https://example.com"),
        else_action=else_action
    )


class TestValidateRule:
    """Test cases for single-rule validation."""

    def test_valid_rule(self):
        """Test a rule with no problems."""
        rule = _rule(conditions=(
            RuleCondition(ConditionField.COUNTRY, ConditionOperator.IN, ["US", "CA"]),
            RuleCondition(ConditionField.IP, ConditionOperator.NOT_EQUALS, "2001:db8::1"),
        ))
        assert validate_rule(rule, 0) == []

    def test_empty_country_list(self):
        """Test that the default empty country condition is not saveable."""
        rule = _rule(conditions=(RuleCondition(ConditionField.COUNTRY, ConditionOperator.IN, []),))
        issues = validate_rule(rule, 0)

        assert len(issues) == 1
        assert issues[0].field == "conditions[0].value"

    def test_bad_country_code(self):
        rule = _rule(conditions=(RuleCondition(ConditionField.COUNTRY, ConditionOperator.IN, ["USA"]),))
        assert "USA" in validate_rule(rule, 0)[0].message

    @pytest.mark.parametrize("condition", [
        RuleCondition(ConditionField.DEVICE, ConditionOperator.EQUALS, "watch"),
        RuleCondition(ConditionField.IP, ConditionOperator.EQUALS, "999.1.1.1"),
        RuleCondition(ConditionField.IS_BOT, ConditionOperator.EQUALS, "yes"),
        RuleCondition(ConditionField.DATE, ConditionOperator.AFTER, "soon"),
        RuleCondition(ConditionField.ACCESS_COUNT, ConditionOperator.GREATER_THAN, -1),
        RuleCondition(ConditionField.ACCESS_COUNT, ConditionOperator.GREATER_THAN, True),
        RuleCondition(ConditionField.COUNTRY, ConditionOperator.EQUALS, ["US"]),
        RuleCondition("referrer", "equals", "x"),
    ])
    def test_invalid_conditions(self, condition):
        assert len(validate_rule(_rule(conditions=(condition,)), 0)) == 1

    def test_always_is_not_validated(self):
        """Test that always sentinels are skipped."""
        assert validate_rule(_rule(conditions=(RuleCondition.always(),)), 0) == []

    @pytest.mark.parametrize("action,field", [
        (Action.redirect(""), "action.settings.url"),
        (Action.redirect("example.com"), "action.settings.url"),
        (Action.password_gate(""), "action.settings.passwordHash"),
        (Action.password_gate("h", hint="x" * 201), "action.settings.hint"),
        (Action.block("x" * 501), "action.settings.reason"),
        (Action.notify("http://hooks.example.com"), "action.settings.webhookUrl"),
        (Action.notify(message="x" * 1001), "action.settings.message"),
    ])
    def test_invalid_actions(self, action, field):
        issues = validate_rule(_rule(action=action), 0)
        assert [i.field for i in issues] == [field]

    def test_template_redirects_allowed(self):
        """Test that link variables are accepted as redirect targets."""
        assert validate_rule(_rule(action=Action.redirect("{{longUrl}}")), 0) == []
        assert validate_rule(_rule(action=Action.redirect("{{shortUrl}}")), 0) == []

    def test_else_action_validated(self):
        """Test that the else action is validated too."""
        issues = validate_rule(_rule(else_action=Action.redirect("")), 0)
        assert issues[0].field == "elseAction.settings.url"


class TestValidateRuleSet:
    """Test cases for whole working copy validation."""

    def test_returns_normalized_plan(self):
        """Test that a valid set is normalized and reindexed."""
        rules = [
            Rule(rule_id="a", priority=4, action=Action.block(),
                 conditions=(RuleCondition(ConditionField.COUNTRY, ConditionOperator.IN, "us, ca"),)),
            Rule(rule_id="b", priority=9, action=Action.block(), conditions=(RuleCondition.always(),)),
        ]
        plan = validate_rule_set(rules)

        assert [r.priority for r in plan.rules] == [0, 1]
        assert plan.rules[0].conditions[0].value == ["US", "CA"]
        assert plan.rules[1].conditions == ()

    def test_names_first_offending_rule(self):
        """Test that the error names the rule and field."""
        rules = [_rule(0), _rule(1, action=Action.redirect("")), _rule(2, action=Action.password_gate(""))]

        with pytest.raises(ValidationError) as exc_info:
            validate_rule_set(rules)

        error = exc_info.value
        assert error.message.startswith("Rule 2:")
        assert error.rule_index == 1
        assert error.field == "action.settings.url"
        assert len(error.details["issues"]) == 2

    def test_limits_checked(self):
        """Test that plan ceilings are applied to the whole set."""
        with pytest.raises(LimitExceededError):
            validate_rule_set([_rule(i) for i in range(4)], PlanLimits(max_rules_per_link=3))

    @pytest.mark.parametrize("webhook_url", [
        "https://169.254.169.254/latest/meta-data",
        "https://127.0.0.1/hook",
        "https://10.0.0.8/hook",
        "https://localhost/hook",
        "https://hooks.internal.local/hook",
    ])
    def test_webhook_to_private_host_rejected(self, webhook_url):
        """Test that notify webhooks cannot target internal addresses."""
        with pytest.raises(ValidationError) as exc_info:
            validate_rule_set([_rule(action=Action.notify(webhook_url=webhook_url))])

        assert exc_info.value.field == "action.settings.webhookUrl"

    def test_public_webhook_accepted(self):
        plan = validate_rule_set([_rule(action=Action.notify(webhook_url="https://hooks.example.com/x"))])
        assert plan.rules[0].action.settings.webhook_url == "https://hooks.example.com/x"

    def test_condition_count_capped(self):
        """Test that a rule holds at most ten conditions regardless of plan."""
        conditions = tuple(
            RuleCondition(ConditionField.IS_BOT, ConditionOperator.EQUALS, True) for _ in range(11)
        )
        with pytest.raises(ValidationError) as exc_info:
            validate_rule_set([_rule(conditions=conditions)], PlanLimits())

        assert exc_info.value.field == "conditions"

    def test_priority_capped(self):
        issues = validate_rule(Rule(rule_id="1", priority=1000, action=Action.block()), 0)
        assert [i.field for i in issues] == ["priority"]
