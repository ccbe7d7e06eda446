"""
Condition Evaluator — interprets a Condition tree against an EvaluationContext.

Pure and total: unknown condition types, operators or malformed values never
raise; they evaluate to False and log a warning.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from .models import (
    CompositeCondition,
    Condition,
    ConditionType,
    EvaluationContext,
    LogicalOperator,
    Operator,
    SimpleCondition,
)

logger = logging.getLogger(__name__)


def evaluate_condition(condition: Condition, context: EvaluationContext) -> bool:
    if isinstance(condition, CompositeCondition):
        return _evaluate_composite(condition, context)
    if isinstance(condition, SimpleCondition):
        try:
            return _evaluate_simple(condition, context)
        except (TypeError, ValueError, re.error) as exc:
            logger.warning("Malformed %s condition value %r: %s",
                           condition.type, condition.value, exc)
            return False
    logger.warning("Unsupported condition node: %r", condition)
    return False


def _evaluate_composite(condition: CompositeCondition, context: EvaluationContext) -> bool:
    if condition.operator == LogicalOperator.AND:
        return all(evaluate_condition(c, context) for c in condition.conditions)
    if condition.operator == LogicalOperator.OR:
        return any(evaluate_condition(c, context) for c in condition.conditions)
    logger.warning("Unknown logical operator: %s", condition.operator)
    return False


def _evaluate_simple(condition: SimpleCondition, context: EvaluationContext) -> bool:
    ctype = condition.type

    if ctype == ConditionType.DOMAIN:
        return _domain(condition, context.domain)
    if ctype == ConditionType.CATEGORY:
        return _category(condition, context.category or "other")
    if ctype == ConditionType.TIME:
        return _numeric(condition, context.current_time.hour)
    if ctype == ConditionType.TAB_COUNT:
        return _numeric(condition, context.tab_count)
    if ctype == ConditionType.DAY_OF_WEEK:
        return _day_of_week(condition, context.current_time.isoweekday() % 7)
    if ctype == ConditionType.FOCUS_MODE:
        return _focus_mode(condition, context.focus_mode_active)

    logger.warning("Unknown condition type: %s", ctype)
    return False


# ---------------------------------------------------------------------------
# Per-type evaluators
# ---------------------------------------------------------------------------

def _domain(condition: SimpleCondition, domain: str) -> bool:
    op, value = condition.operator, condition.value

    if op == Operator.EQUALS:
        return domain == value
    if op == Operator.NOT_EQUALS:
        return domain != value
    if op == Operator.CONTAINS:
        value = str(value)
        if value == "*":
            return True
        if "*" in value:
            return wildcard_to_regex(value).match(domain) is not None
        return value in domain or domain.endswith("." + value)

    return _unknown_operator(condition)


def _category(condition: SimpleCondition, category: str) -> bool:
    op, value = condition.operator, condition.value

    if op == Operator.EQUALS:
        return category == value
    if op == Operator.NOT_EQUALS:
        return category != value
    if op == Operator.CONTAINS:
        # "social, entertainment" reads as category-in-list
        return category in [c.strip() for c in str(value).split(",")]

    return _unknown_operator(condition)


def _numeric(condition: SimpleCondition, actual: int) -> bool:
    """Shared by hour-of-day and tab-count conditions."""
    op, value = condition.operator, condition.value

    if op == Operator.GREATER_THAN:
        return actual > _number(value)
    if op == Operator.LESS_THAN:
        return actual < _number(value)
    if op == Operator.EQUALS:
        return actual == _number(value)
    if op == Operator.NOT_EQUALS:
        return actual != _number(value)
    if op == Operator.IN_RANGE:
        low, high = _pair(value)
        return low <= actual <= high

    return _unknown_operator(condition)


def _day_of_week(condition: SimpleCondition, day: int) -> bool:
    # 0 = Sunday … 6 = Saturday; in_range does not wrap past Saturday
    op, value = condition.operator, condition.value

    if op == Operator.EQUALS:
        return day == _number(value)
    if op == Operator.NOT_EQUALS:
        return day != _number(value)
    if op == Operator.IN_RANGE:
        low, high = _pair(value)
        return low <= day <= high

    return _unknown_operator(condition)


def _focus_mode(condition: SimpleCondition, active: bool) -> bool:
    if condition.operator != Operator.EQUALS:
        return _unknown_operator(condition)

    value = condition.value
    if isinstance(value, bool):
        expected = value
    elif isinstance(value, str):
        expected = value.lower() == "true"
    elif isinstance(value, (int, float)):
        expected = value != 0
    else:
        expected = False
    return active == expected


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def wildcard_to_regex(pattern: str) -> "re.Pattern[str]":
    """
    Anchored regex for a domain pattern: "." is literal and "*" matches
    anything. A "*." label is optional, so "*.example.com" also covers the
    apex "example.com".
    """
    escaped = re.escape(pattern)
    escaped = escaped.replace(r"\*\.", r"(?:.*\.)?").replace(r"\*", ".*")
    return re.compile(f"^{escaped}$")


def _number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise TypeError(f"expected a number, got {type(value).__name__}")
    return float(value)


def _pair(value: Any) -> tuple[float, float]:
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise ValueError("in_range expects a [low, high] pair")
    return _number(value[0]), _number(value[1])


def _unknown_operator(condition: SimpleCondition) -> bool:
    logger.warning("Unknown operator %r for %s condition",
                   condition.operator, condition.type)
    return False
