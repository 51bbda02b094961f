"""Auto-submission models."""

from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from docflow.schemas.parsing import RouteOutcome

SubmissionType = Literal["electricity", "gas", "meter"]


class AttachmentTrigger(BaseModel):
    """Inbound hand-off from a channel webhook once an attachment is stored."""

    attachment_id: UUID
    message_id: UUID
    attachment_url: str
    attachment_type: Optional[str] = None


class SubEntity(BaseModel):
    """One submittable utility unit detected in a parsed document."""

    type: SubmissionType
    mprn: Optional[str] = None
    mcc_type: Optional[str] = None
    dg_type: Optional[str] = None
    gprn: Optional[str] = None
    utility: Optional[str] = None
    read_value: Optional[str] = None
    unit: Optional[str] = None
    meter_make: Optional[str] = None
    meter_model: Optional[str] = None
    raw_text: Optional[str] = None


class SkippedEntity(BaseModel):
    """A detected sub-entity dropped for lacking its mandatory identifier."""

    type: SubmissionType
    reason: str


class SubmissionOutcome(BaseModel):
    type: SubmissionType
    success: bool
    submission_id: Optional[UUID] = None
    data: Optional[dict[str, Any]] = None
    error: Optional[str] = None


class ProcessOutcome(BaseModel):
    """Per-entity result of the auto-submission pipeline."""

    success: bool
    message: Optional[str] = None
    submissions: list[SubmissionOutcome] = Field(default_factory=list)
    skipped_entities: list[SkippedEntity] = Field(default_factory=list)
    parsed_data: Optional[dict[str, Any]] = None
    cached: bool = False
    error: Optional[str] = None
    error_kind: Optional[str] = None
    status_code: int = 200


class IntegrationResult(BaseModel):
    """Outcome of one downstream submission call."""

    success: bool
    http_status: Optional[int] = None
    response: Optional[dict[str, Any]] = None
    error: Optional[str] = None


class RetryRunResult(BaseModel):
    processed: int = 0
    successful: int = 0
    failed: int = 0
    max_retries_reached: int = 0


class WorkflowRun(BaseModel):
    workflow_id: UUID
    execution_id: Optional[UUID] = None
    success: bool
    error: Optional[str] = None


class IngestOutcome(BaseModel):
    """Which path an inbound attachment took and what it produced."""

    mode: Literal["auto_submission", "workflows", "parse_only"]
    success: bool
    process: Optional[ProcessOutcome] = None
    workflows: list[WorkflowRun] = Field(default_factory=list)
    parse: Optional[RouteOutcome] = None
    error: Optional[str] = None
