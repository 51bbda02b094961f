"""``{{dot.path}}`` placeholder rendering for api_action steps."""

import json
import re
from typing import Any

from docflow.services.workflow.context import ExecutionContext

PLACEHOLDER = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list, bool)):
        return json.dumps(value, default=str)
    return str(value)


def render_string(template: str, context: ExecutionContext) -> str:
    """Replace every placeholder with the resolved value; missing paths become ``""``."""
    return PLACEHOLDER.sub(lambda match: _stringify(context.get(match.group(1))), template)


def render(value: Any, context: ExecutionContext) -> Any:
    """Render strings inside any JSON-compatible structure."""
    if isinstance(value, str):
        return render_string(value, context)
    if isinstance(value, dict):
        return {key: render(item, context) for key, item in value.items()}
    if isinstance(value, list):
        return [render(item, context) for item in value]
    return value
