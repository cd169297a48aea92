"""Tests for condition evaluation."""

import math

import pytest

from models.nodes import ConditionRule, RuleSet
from services.execution.conditions import (
    compare_values,
    describe_condition,
    evaluate,
    get_available_operators,
    parse_number,
)
from services.execution.models import ExecutionContext


def order_context(total) -> ExecutionContext:
    return ExecutionContext.build("wf", "run", "ws", "order.created", {"total": total, "status": "Paid"})


class TestEvaluate:
    """Rule-set evaluation and branch selection."""

    def test_greater_than_selects_yes(self):
        rules = {"rules": [{"field": "order.total", "operator": "greater_than", "value": "100"}], "logic": "and"}
        result = evaluate(rules, order_context("150"))
        assert result.success is True
        assert result.branch == "yes"
        assert result.output == {"result": True, "logic": "and", "ruleResults": [True]}

    def test_greater_than_selects_no(self):
        rules = {"rules": [{"field": "order.total", "operator": "greater_than", "value": "100"}], "logic": "and"}
        assert evaluate(rules, order_context("50")).branch == "no"

    def test_and_requires_all(self):
        rule_set = RuleSet(rules=[
            ConditionRule(field="order.total", operator="greater_than", value=100),
            ConditionRule(field="order.status", operator="equals", value="pending"),
        ], logic="and")
        result = evaluate(rule_set, order_context("150"))
        assert result.branch == "no"
        assert result.output["ruleResults"] == [True, False]

    def test_or_requires_any(self):
        rule_set = RuleSet(rules=[
            ConditionRule(field="order.total", operator="greater_than", value=1000),
            ConditionRule(field="order.status", operator="equals", value="paid"),
        ], logic="OR")
        assert evaluate(rule_set, order_context("150")).branch == "yes"

    def test_empty_rules_always_yes(self):
        result = evaluate({"rules": []}, order_context("1"))
        assert result.branch == "yes"
        assert result.output == {"result": True, "reason": "no rules"}

    def test_value_is_resolved_too(self):
        ctx = ExecutionContext.build("wf", "run", "ws", "order.created", {"total": "80", "limit": "75"})
        rules = {"rules": [{"field": "order.total", "operator": "greater_than", "value": "{{order.limit}}"}]}
        assert evaluate(rules, ctx).branch == "yes"

    def test_malformed_rule_set_fails_to_no(self):
        result = evaluate({"rules": [{"operator": "equals"}]}, order_context("1"))
        assert result.success is False
        assert result.branch == "no"
        assert result.error.startswith("Invalid condition configuration")


class TestCompareValues:
    """Operator semantics on resolved strings."""

    @pytest.mark.parametrize("actual,operator,expected,outcome", [
        ("Paid", "equals", " paid ", True),
        ("Paid", "not_equals", "pending", True),
        ("VIP Customer", "contains", "vip", True),
        ("VIP Customer", "not_contains", "gold", True),
        ("ORD-100", "starts_with", "ord", True),
        ("ORD-100", "ends_with", "100", True),
        ("150.5 USD", "greater_than", "150", True),
        ("10", "less_than", "9", False),
        ("10", "greater_than_or_equal", "10", True),
        ("10", "less_than_or_equal", "10.0", True),
        ("", "is_empty", "", True),
        ("x", "is_not_empty", "", True),
        ("gold", "in_list", "silver, Gold ,bronze", True),
        ("gold", "not_in_list", "silver,bronze", True),
        ("abc", "greater_than", "1", False),
        ("1", "between", "2", False),
    ])
    def test_operators(self, actual, operator, expected, outcome):
        assert compare_values(actual, operator, expected) is outcome

    def test_parse_number(self):
        assert parse_number("42abc") == 42.0
        assert parse_number(" -3.5") == -3.5
        assert math.isnan(parse_number("abc"))
        assert math.isnan(parse_number(True))


class TestDescriptions:
    """Human-readable labels for the editor."""

    def test_describe_condition(self):
        rule_set = RuleSet(rules=[
            ConditionRule(field="order.total", operator="greater_than", value=100),
            ConditionRule(field="order.note", operator="is_empty"),
        ], logic="or")
        assert describe_condition(rule_set) == 'order.total is greater than "100" OR order.note is empty'

    def test_describe_empty(self):
        assert describe_condition(RuleSet()) == "Always true (no conditions)"

    def test_operator_catalog(self):
        operators = get_available_operators()
        assert "in_list" in operators
        assert operators["is_empty"]["requires_value"] is False
