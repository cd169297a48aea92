"""Condition evaluation for condition nodes.

A rule-set is a list of {field, operator, value} rules combined with AND/OR
logic. Both sides of every rule go through the variable resolver first, so
``value`` may itself hold {{...}} expressions. The result selects the "yes"
or "no" edge handle of the condition node.

Supported operators:
- equals / not_equals: case-insensitive, trimmed string compare
- contains / not_contains / starts_with / ends_with: case-insensitive substring
- greater_than / less_than / greater_than_or_equal / less_than_or_equal:
  numeric parse of both sides (unparseable sides never match)
- is_empty / is_not_empty: empty resolved value
- in_list / not_in_list: value is a comma-separated list
Unknown operators evaluate to False.
"""

import math
import re
from typing import Any, Dict, List, Mapping, Union

from pydantic import ValidationError

from constants import BRANCH_NO, BRANCH_YES
from core.logging import get_logger
from models.nodes import ConditionRule, RuleSet
from .models import ConditionResult, ExecutionContext
from .resolver import resolve, stringify

logger = get_logger(__name__)

# Leading numeric prefix, the way lenient float parsing reads "150.5 USD"
_NUMBER_PREFIX = re.compile(r'^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?')


def evaluate(rule_set: Union[RuleSet, Mapping[str, Any]], context: ExecutionContext) -> ConditionResult:
    """Evaluate a rule-set and pick the branch to follow.

    Never raises: malformed rule-sets come back as branch "no" with
    success=False and the problem in ``error``.
    """
    try:
        if not isinstance(rule_set, RuleSet):
            rule_set = RuleSet.model_validate(rule_set or {})

        if not rule_set.rules:
            return ConditionResult(
                success=True,
                branch=BRANCH_YES,
                output={"result": True, "reason": "no rules"},
            )

        results = [evaluate_rule(rule, context) for rule in rule_set.rules]
        passed = all(results) if rule_set.logic == "and" else any(results)

        logger.debug("Condition evaluated",
                    logic=rule_set.logic,
                    rule_results=results,
                    passed=passed)

        return ConditionResult(
            success=True,
            branch=BRANCH_YES if passed else BRANCH_NO,
            output={
                "result": passed,
                "logic": rule_set.logic,
                "ruleResults": results,
            },
        )
    except ValidationError as e:
        logger.warning("Malformed condition rule-set", error=str(e))
        return ConditionResult(success=False, branch=BRANCH_NO,
                               error=f"Invalid condition configuration: {e.error_count()} error(s)")
    except Exception as e:
        logger.warning("Condition evaluation error", error=str(e))
        return ConditionResult(success=False, branch=BRANCH_NO,
                               error=str(e) or "Condition evaluation failed")


def evaluate_rule(rule: ConditionRule, context: ExecutionContext) -> bool:
    """Resolve both sides of a rule and compare them."""
    field = rule.field.strip()
    template = field if '{{' in field else f"{{{{{field}}}}}"
    actual = resolve(template, context)
    expected = resolve(stringify(rule.value), context)
    return compare_values(actual, rule.operator, expected)


def compare_values(actual: str, operator: str, expected: str) -> bool:
    """Compare two resolved strings with an operator."""
    actual_norm = (actual or "").strip().lower()
    expected_norm = (expected or "").strip().lower()

    # Equality operators
    if operator == "equals":
        return actual_norm == expected_norm

    elif operator == "not_equals":
        return actual_norm != expected_norm

    # Substring operators
    elif operator == "contains":
        return expected_norm in actual_norm

    elif operator == "not_contains":
        return expected_norm not in actual_norm

    elif operator == "starts_with":
        return actual_norm.startswith(expected_norm)

    elif operator == "ends_with":
        return actual_norm.endswith(expected_norm)

    # Numeric operators
    elif operator == "greater_than":
        return parse_number(actual) > parse_number(expected)

    elif operator == "less_than":
        return parse_number(actual) < parse_number(expected)

    elif operator == "greater_than_or_equal":
        return parse_number(actual) >= parse_number(expected)

    elif operator == "less_than_or_equal":
        return parse_number(actual) <= parse_number(expected)

    # Empty checks
    elif operator == "is_empty":
        return actual_norm == ""

    elif operator == "is_not_empty":
        return actual_norm != ""

    # List membership
    elif operator == "in_list":
        return actual_norm in _split_list(expected_norm)

    elif operator == "not_in_list":
        return actual_norm not in _split_list(expected_norm)

    else:
        logger.warning("Unknown operator", operator=operator)
        return False


def parse_number(value: Any) -> float:
    """Parse the leading number of a value; NaN when there is none.

    NaN compares False against everything, so a non-numeric side makes any
    numeric comparison fail instead of raising.
    """
    if isinstance(value, bool):
        return math.nan
    if isinstance(value, (int, float)):
        return float(value)
    match = _NUMBER_PREFIX.match(str(value or ""))
    if not match:
        return math.nan
    return float(match.group(0))


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",")]


# =============================================================================
# DESCRIPTIONS
# =============================================================================

# Operator metadata for the editor UI
OPERATORS: Dict[str, Dict[str, Any]] = {
    "equals": {"label": "equals", "requires_value": True},
    "not_equals": {"label": "does not equal", "requires_value": True},
    "contains": {"label": "contains", "requires_value": True},
    "not_contains": {"label": "does not contain", "requires_value": True},
    "starts_with": {"label": "starts with", "requires_value": True},
    "ends_with": {"label": "ends with", "requires_value": True},
    "greater_than": {"label": "is greater than", "requires_value": True},
    "less_than": {"label": "is less than", "requires_value": True},
    "greater_than_or_equal": {"label": "is at least", "requires_value": True},
    "less_than_or_equal": {"label": "is at most", "requires_value": True},
    "is_empty": {"label": "is empty", "requires_value": False},
    "is_not_empty": {"label": "is not empty", "requires_value": False},
    "in_list": {"label": "is one of", "requires_value": True},
    "not_in_list": {"label": "is not one of", "requires_value": True},
}


def describe_rule(rule: ConditionRule) -> str:
    """Human-readable label for one rule, e.g. 'order.total is greater than "100"'."""
    meta = OPERATORS.get(rule.operator)
    label = meta["label"] if meta else rule.operator
    if meta and not meta["requires_value"]:
        return f"{rule.field} {label}"
    return f'{rule.field} {label} "{stringify(rule.value)}"'


def describe_condition(rule_set: RuleSet) -> str:
    """Human-readable label for a whole rule-set."""
    if not rule_set.rules:
        return "Always true (no conditions)"
    connector = " AND " if rule_set.logic == "and" else " OR "
    return connector.join(describe_rule(rule) for rule in rule_set.rules)


def get_available_operators() -> Dict[str, Dict[str, Any]]:
    """Get operator metadata for the editor UI."""
    return OPERATORS.copy()
