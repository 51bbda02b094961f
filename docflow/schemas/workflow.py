"""Workflow step definitions and API models.

Steps are a discriminated union on ``type``; each variant carries only the
configuration that step type understands.
"""

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

ConditionOperator = Literal[
    "equals",
    "not_equals",
    "contains",
    "not_contains",
    "exists",
    "not_exists",
    "greater_than",
    "less_than",
]
Transformation = Literal["uppercase", "lowercase", "trim", "format_phone"]
DelayUnit = Literal["seconds", "minutes", "hours", "days"]


class _StepConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class ParseConfig(_StepConfig):
    provider: Optional[str] = None
    model: Optional[str] = None
    extraction_schema: Optional[dict[str, Any]] = Field(
        default=None,
        validation_alias=AliasChoices("extraction_schema", "extractionSchema"),
    )


class DocumentTypeConfig(_StepConfig):
    document_type_ids: list[UUID] = Field(
        default_factory=list,
        validation_alias=AliasChoices("document_type_ids", "documentTypeIds"),
    )
    min_confidence: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        validation_alias=AliasChoices("min_confidence", "minConfidence"),
    )
    provider: Optional[str] = None
    model: Optional[str] = None


class ConditionPredicate(_StepConfig):
    field: str
    operator: ConditionOperator
    value: Any = None


class ConditionConfig(_StepConfig):
    conditions: list[ConditionPredicate] = Field(default_factory=list)
    logic: Literal["AND", "OR"] = "AND"

    @field_validator("logic", mode="before")
    @classmethod
    def _upper_logic(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class FieldMapping(_StepConfig):
    source_field: str = Field(validation_alias=AliasChoices("source_field", "sourceField"))
    output_field: str = Field(validation_alias=AliasChoices("output_field", "outputField"))
    transformation: Optional[Transformation] = None


class TransformConfig(_StepConfig):
    mapping: list[FieldMapping] = Field(
        default_factory=list,
        validation_alias=AliasChoices("mapping", "mappings"),
    )


class ApiActionConfig(_StepConfig):
    endpoint_url: str
    http_method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "POST"
    headers: dict[str, str] = Field(default_factory=dict)
    body_template: Optional[Union[dict[str, Any], list[Any], str]] = None
    max_retries: Optional[int] = Field(
        default=None, ge=1, description="Maximum attempts; WORKFLOW_API_MAX_ATTEMPTS when unset"
    )
    backoff_seconds: Optional[float] = Field(default=None, ge=0)

    @field_validator("http_method", mode="before")
    @classmethod
    def _upper_method(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class DelayConfig(_StepConfig):
    duration: float = Field(default=5, ge=0)
    unit: DelayUnit = "seconds"

    @property
    def seconds(self) -> float:
        multiplier = {"seconds": 1, "minutes": 60, "hours": 3600, "days": 86400}[self.unit]
        return self.duration * multiplier


class EndConfig(_StepConfig):
    pass


class _StepBase(BaseModel):
    id: str
    order: int = 0
    next_on_success: Optional[str] = None
    next_on_failure: Optional[str] = None


class ParseStep(_StepBase):
    type: Literal["parse"]
    config: ParseConfig = Field(default_factory=ParseConfig)


class DocumentTypeStep(_StepBase):
    type: Literal["document_type"]
    config: DocumentTypeConfig = Field(default_factory=DocumentTypeConfig)


class ConditionStep(_StepBase):
    type: Literal["condition"]
    config: ConditionConfig = Field(default_factory=ConditionConfig)


class TransformStep(_StepBase):
    type: Literal["transform"]
    config: TransformConfig = Field(default_factory=TransformConfig)


class ApiActionStep(_StepBase):
    type: Literal["api_action"]
    config: ApiActionConfig


class DelayStep(_StepBase):
    type: Literal["delay"]
    config: DelayConfig = Field(default_factory=DelayConfig)


class EndStep(_StepBase):
    type: Literal["end"]
    config: EndConfig = Field(default_factory=EndConfig)


StepDefinition = Annotated[
    Union[
        ParseStep,
        DocumentTypeStep,
        ConditionStep,
        TransformStep,
        ApiActionStep,
        DelayStep,
        EndStep,
    ],
    Field(discriminator="type"),
]


class WorkflowTriggerRequest(BaseModel):
    workflow_id: UUID = Field(validation_alias=AliasChoices("workflow_id", "workflowId"))
    attachment_id: Optional[UUID] = Field(
        default=None, validation_alias=AliasChoices("attachment_id", "attachmentId")
    )
    message_id: Optional[UUID] = Field(
        default=None, validation_alias=AliasChoices("message_id", "messageId")
    )
    trigger_type: Optional[str] = Field(
        default="manual", validation_alias=AliasChoices("trigger_type", "triggerType")
    )


class WorkflowExecuteResponse(BaseModel):
    success: bool = True
    execution_id: UUID


class AuditEntry(BaseModel):
    action: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


class ExecutionDetail(BaseModel):
    id: UUID
    workflow_id: UUID
    status: str
    attachment_id: Optional[UUID] = None
    message_id: Optional[UUID] = None
    current_step_id: Optional[UUID] = None
    context: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    audit: list[AuditEntry] = Field(default_factory=list)
