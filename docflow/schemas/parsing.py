"""Parse router request/outcome models."""

from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class FetchedFile(BaseModel):
    """Downloaded attachment bytes plus resolved metadata."""

    url: str
    content: bytes
    content_type: Optional[str] = None
    file_name: Optional[str] = None

    @property
    def size_bytes(self) -> int:
        return len(self.content)


class RouteOutcome(BaseModel):
    """Structured result of routing one attachment through extraction.

    ``cached`` marks an idempotent short-circuit: the stored success was
    returned and no model was called.
    """

    success: bool
    attachment_id: Optional[UUID] = None
    parse_result_id: Optional[UUID] = None
    classification: Optional[str] = None
    confidence: float = 0
    fields: dict[str, Any] = Field(default_factory=dict)
    field_confidence: dict[str, float] = Field(default_factory=dict)
    low_confidence_fields: list[str] = Field(default_factory=list)
    provider: Optional[str] = None
    cached: bool = False
    error: Optional[str] = None
    error_kind: Optional[str] = None
    status_code: int = 200
    router: dict[str, Any] = Field(default_factory=dict)


class ParseRequest(BaseModel):
    attachment_url: str
    attachment_id: Optional[UUID] = None
    message_id: Optional[UUID] = None
    business_id: Optional[UUID] = None
    force: bool = False
