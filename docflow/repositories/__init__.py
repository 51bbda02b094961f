"""Repository layer modules."""

from docflow.repositories.base_repository import BaseRepository
from docflow.repositories.business_repository import (
    AttachmentRepository,
    CustomerRepository,
    DocumentTypeRepository,
    MessageRepository,
    PipelineProfileRepository,
    WebhookEndpointRepository,
)
from docflow.repositories.parse_result_repository import ParseResultRepository
from docflow.repositories.submission_repository import SubmissionRepository
from docflow.repositories.workflow_repository import (
    WorkflowAuditRepository,
    WorkflowExecutionRepository,
    WorkflowRepository,
)

__all__ = [
    "AttachmentRepository",
    "BaseRepository",
    "CustomerRepository",
    "DocumentTypeRepository",
    "MessageRepository",
    "ParseResultRepository",
    "PipelineProfileRepository",
    "SubmissionRepository",
    "WebhookEndpointRepository",
    "WorkflowAuditRepository",
    "WorkflowExecutionRepository",
    "WorkflowRepository",
]
