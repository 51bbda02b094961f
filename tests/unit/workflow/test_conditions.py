"""Unit tests for condition evaluation."""

import pytest

from docflow.schemas.workflow import ConditionConfig
from docflow.services.workflow.conditions import evaluate_conditions, evaluate_predicate
from docflow.services.workflow.context import ExecutionContext


@pytest.mark.parametrize(
    "value,operator,expected,result",
    [
        ("gas", "equals", "gas", True),
        ("gas", "not_equals", "gas", False),
        ("Electric Ireland", "contains", "Ireland", True),
        (None, "contains", "x", False),
        (["a", "b"], "contains", "b", True),
        ("abc", "not_contains", "z", True),
        (0, "exists", None, True),
        (None, "not_exists", None, True),
        ("12.5", "greater_than", 10, True),
        (3, "less_than", "4", True),
        ("n/a", "greater_than", 1, False),
        (True, "greater_than", 0, False),
        ("x", "matches", "x", False),
    ],
)
def test_evaluate_predicate(value, operator, expected, result):
    assert evaluate_predicate(value, operator, expected) is result


class TestEvaluateConditions:
    def context(self):
        return ExecutionContext({
            "document_type": "Invoice",
            "confidence_score": 0.93,
            "parsed_data": {"total": 120, "supplier": {"name": "Acme"}},
        })

    def test_and_requires_every_predicate(self):
        config = ConditionConfig(
            conditions=[
                {"field": "document_type", "operator": "equals", "value": "Invoice"},
                {"field": "total", "operator": "greater_than", "value": 100},
            ],
            logic="AND",
        )

        assert evaluate_conditions(self.context(), config) is True

    def test_or_needs_one_predicate(self):
        config = ConditionConfig(
            conditions=[
                {"field": "supplier.name", "operator": "equals", "value": "Other"},
                {"field": "confidence_score", "operator": "greater_than", "value": 0.9},
            ],
            logic="or",
        )

        assert config.logic == "OR"
        assert evaluate_conditions(self.context(), config) is True

    def test_and_fails_on_one_false(self):
        config = ConditionConfig(
            conditions=[
                {"field": "document_type", "operator": "equals", "value": "Invoice"},
                {"field": "missing_field", "operator": "exists"},
            ],
        )

        assert evaluate_conditions(self.context(), config) is False

    def test_empty_conditions(self):
        assert evaluate_conditions(self.context(), ConditionConfig(logic="AND")) is True
        assert evaluate_conditions(self.context(), ConditionConfig(logic="OR")) is False
