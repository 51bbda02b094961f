"""Predicate evaluation for condition steps."""

from typing import Any

from docflow.schemas.workflow import ConditionConfig, ConditionPredicate
from docflow.services.workflow.context import ExecutionContext


def _as_number(value: Any):
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _contains(value: Any, expected: Any) -> bool:
    if isinstance(value, (list, tuple)):
        return expected in value
    haystack = "" if value is None else str(value)
    return str(expected) in haystack


def evaluate_predicate(value: Any, operator: str, expected: Any) -> bool:
    """Apply one operator. Numeric comparisons on non-numbers are False."""
    if operator == "equals":
        return value == expected
    if operator == "not_equals":
        return value != expected
    if operator == "contains":
        return _contains(value, expected)
    if operator == "not_contains":
        return not _contains(value, expected)
    if operator == "exists":
        return value is not None
    if operator == "not_exists":
        return value is None
    if operator in ("greater_than", "less_than"):
        left, right = _as_number(value), _as_number(expected)
        if left is None or right is None:
            return False
        return left > right if operator == "greater_than" else left < right
    return False


def evaluate_condition(context: ExecutionContext, predicate: ConditionPredicate) -> bool:
    return evaluate_predicate(context.resolve_field(predicate.field), predicate.operator, predicate.value)


def evaluate_conditions(context: ExecutionContext, config: ConditionConfig) -> bool:
    """Combine predicates with AND/OR. An empty list is True under AND, False under OR."""
    results = [evaluate_condition(context, predicate) for predicate in config.conditions]
    if config.logic == "AND":
        return all(results)
    return any(results)
