"""Field mapping for transform steps."""

from typing import Any, Optional

from docflow.schemas.workflow import FieldMapping
from docflow.services.workflow.context import ExecutionContext
from docflow.utils.phone import digits_only

OUTPUT_ROOT = "transformed_data"


def apply_transformation(value: Any, transformation: Optional[str]) -> Any:
    """Apply a string transformation; None stays None."""
    if transformation is None or value is None:
        return value
    text = str(value)
    if transformation == "uppercase":
        return text.upper()
    if transformation == "lowercase":
        return text.lower()
    if transformation == "trim":
        return text.strip()
    if transformation == "format_phone":
        return digits_only(text)
    return value


def output_key(output_field: str) -> str:
    prefix = OUTPUT_ROOT + "."
    return output_field[len(prefix):] if output_field.startswith(prefix) else output_field


def apply_mappings(context: ExecutionContext, mappings: list[FieldMapping]) -> dict[str, Any]:
    """Build the transformed values without touching ``parsed_data``."""
    transformed: dict[str, Any] = {}
    for mapping in mappings:
        value = context.resolve_field(mapping.source_field)
        transformed[output_key(mapping.output_field)] = apply_transformation(value, mapping.transformation)
    return transformed
