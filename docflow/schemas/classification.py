"""Classifier input/output models."""

from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

UtilityClassification = Literal["meter", "electricity", "gas"]
UTILITY_CLASSIFICATIONS = ("meter", "electricity", "gas")


class FileMeta(BaseModel):
    """What is known about a file before it is read."""

    file_name: Optional[str] = None
    content_type: Optional[str] = None
    size_bytes: Optional[int] = Field(
        default=None, description="Reported size, checked before any model call"
    )


class BusinessContext(BaseModel):
    """Tenant-level knobs that shape a classification call."""

    business_id: Optional[UUID] = None
    provider: Optional[str] = None
    model: Optional[str] = None
    extraction_schema: Optional[dict[str, Any]] = Field(
        default=None, description="field -> {type, description, required}"
    )


class ClassificationResult(BaseModel):
    """Structured, confidence-scored classification of a utility document."""

    classification: UtilityClassification
    confidence: float = Field(ge=0.0, le=1.0)
    fields: dict[str, Any] = Field(default_factory=dict)
    field_confidence: dict[str, float] = Field(default_factory=dict)
    low_confidence_fields: list[str] = Field(default_factory=list)
    provider: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "classification": "electricity",
                "confidence": 0.93,
                "fields": {"mprn": "10001234567", "phone": "353871234567"},
                "field_confidence": {"mprn": 0.95, "phone": 0.62},
                "low_confidence_fields": ["phone"],
            }
        }


class DocumentTypeMatch(BaseModel):
    """Result of classifying against a business's document type catalog."""

    document_type_id: Optional[UUID] = None
    document_type: str
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: Optional[str] = None


class ClassifyRequest(BaseModel):
    file_url: str
    file_name: Optional[str] = None
    business_id: Optional[UUID] = None


class ClassificationErrorResponse(BaseModel):
    """Failure body shared by classifier-facing endpoints."""

    error: str
    classification: str = "unknown"
    confidence: float = 0
    fields: dict[str, Any] = Field(default_factory=dict)
    field_confidence: dict[str, float] = Field(default_factory=dict)
    low_confidence_fields: list[str] = Field(default_factory=list)
