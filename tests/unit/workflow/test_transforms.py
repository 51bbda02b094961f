"""Unit tests for transform mappings."""

from docflow.schemas.workflow import FieldMapping
from docflow.services.workflow.context import ExecutionContext
from docflow.services.workflow.transforms import apply_mappings, apply_transformation


def test_format_phone_keeps_digits_only():
    assert apply_transformation("+353 87 123 4567", "format_phone") == "353871234567"


def test_phone_mapping_into_transformed_data():
    context = ExecutionContext({"parsed_data": {"phone": "+353 87 123 4567"}})
    mapping = FieldMapping(
        source_field="parsed_data.phone", output_field="transformed_data.phone", transformation="format_phone"
    )

    assert apply_mappings(context, [mapping]) == {"phone": "353871234567"}


def test_string_transformations():
    assert apply_transformation("  Acme ", "trim") == "Acme"
    assert apply_transformation("acme", "uppercase") == "ACME"
    assert apply_transformation("ACME", "lowercase") == "acme"
    assert apply_transformation(42, None) == 42


def test_none_is_left_untouched():
    assert apply_transformation(None, "uppercase") is None


def test_apply_mappings_reads_parsed_data_and_strips_prefix():
    context = ExecutionContext({
        "document_type": "Invoice",
        "parsed_data": {"customer": {"phone": "+353 87 123 4567", "name": " Aoife "}},
    })
    mappings = [
        FieldMapping(source_field="customer.phone", output_field="transformed_data.phone", transformation="format_phone"),
        FieldMapping(sourceField="customer.name", outputField="name", transformation="trim"),
        FieldMapping(source_field="document_type", output_field="kind", transformation="uppercase"),
        FieldMapping(source_field="customer.email", output_field="email"),
    ]

    result = apply_mappings(context, mappings)

    assert result == {"phone": "353871234567", "name": "Aoife", "kind": "INVOICE", "email": None}
    assert context.get("parsed_data.customer.phone") == "+353 87 123 4567"
