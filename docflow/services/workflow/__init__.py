"""Workflow engine and the step helpers it drives."""

from docflow.services.workflow.context import ExecutionContext
from docflow.services.workflow.engine import WorkflowEngine, load_steps

__all__ = [
    "ExecutionContext",
    "WorkflowEngine",
    "load_steps",
]
