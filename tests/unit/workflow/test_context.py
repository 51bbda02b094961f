"""Unit tests for the execution context and placeholder rendering."""

from docflow.services.workflow.context import ExecutionContext, lookup_path
from docflow.services.workflow.templating import render, render_string


def test_lookup_path_through_lists():
    data = {"bills": {"gas": [{"gprn": "1234567"}]}}

    assert lookup_path(data, "bills.gas.0.gprn") == "1234567"
    assert lookup_path(data, "bills.gas.3.gprn", "none") == "none"
    assert lookup_path(data, "bills.gas.x") is None


class TestExecutionContext:
    def test_initial_shape(self):
        context = ExecutionContext.initial("att-1", None)

        assert context.snapshot() == {
            "attachment_id": "att-1",
            "message_id": None,
            "parsed_data": {},
            "document_type": None,
        }

    def test_resolve_field_prefers_top_level_keys(self):
        context = ExecutionContext({"document_type": "Invoice", "parsed_data": {"document_type": "inner", "total": 5}})

        assert context.resolve_field("document_type") == "Invoice"
        assert context.resolve_field("total") == 5
        assert context.resolve_field("parsed_data.total") == 5

    def test_set_creates_nested_objects(self):
        context = ExecutionContext()

        context.set("transformed_data.customer.phone", "1")

        assert context.get("transformed_data") == {"customer": {"phone": "1"}}
        assert "transformed_data" in context

    def test_snapshot_is_a_copy(self):
        context = ExecutionContext({"parsed_data": {"a": 1}})

        snapshot = context.snapshot()
        snapshot["parsed_data"]["a"] = 2

        assert context.get("parsed_data.a") == 1


class TestRendering:
    def context(self):
        return ExecutionContext({
            "document_type": "Invoice",
            "confidence_score": 0.9,
            "parsed_data": {"total": 120, "lines": [1, 2]},
        })

    def test_render_string(self):
        rendered = render_string("/docs/{{ document_type }}?total={{parsed_data.total}}&x={{missing}}", self.context())

        assert rendered == "/docs/Invoice?total=120&x="

    def test_render_nested_structure(self):
        body = {"type": "{{document_type}}", "items": ["{{parsed_data.lines}}"], "count": 3}

        assert render(body, self.context()) == {"type": "Invoice", "items": ["[1, 2]"], "count": 3}
