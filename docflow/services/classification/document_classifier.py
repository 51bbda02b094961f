"""Utility document classifier.

Classifies an image or PDF as an electricity bill, a gas bill or a meter
reading and extracts a confidence-scored field set. PDFs are sent as text
from the first pages only; images are sent inline.
"""

from dataclasses import dataclass
from io import BytesIO
from typing import Any, Callable, Optional

import pdfplumber

from docflow.core.config import settings
from docflow.core.exceptions import (
    FileTooLargeError,
    MalformedResponseError,
    UnsupportedFileTypeError,
    ValidationError,
)
from docflow.core.llm_client import create_llm_client
from docflow.schemas.classification import (
    UTILITY_CLASSIFICATIONS,
    BusinessContext,
    ClassificationResult,
    FileMeta,
)
from docflow.services.classification.prompts import (
    IMAGE_USER_PROMPT,
    PDF_USER_PROMPT_TEMPLATE,
    UTILITY_SYSTEM_PROMPT,
    extraction_schema_instructions,
)
from docflow.utils.file_detection import IMAGE, PDF, file_kind, resolve_content_type
from docflow.utils.json_parser import extract_json_object
from docflow.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class PreparedDocument:
    """Model-ready form of a file: either extracted text or raw image bytes."""

    kind: str
    content_type: str
    text: Optional[str] = None
    image: Optional[bytes] = None


def check_size(size_bytes: Optional[int]) -> None:
    """Reject files above the configured ceiling.

    Raises:
        FileTooLargeError: If ``size_bytes`` exceeds ``MAX_FILE_SIZE_MB``
    """
    limit = settings.classifier.max_file_size_bytes
    if size_bytes is not None and size_bytes > limit:
        raise FileTooLargeError(
            f"File size {size_bytes / (1024 * 1024):.1f}MB exceeds the "
            f"{settings.classifier.max_file_size_mb}MB limit"
        )


def extract_pdf_text(
    pdf_bytes: bytes,
    max_pages: Optional[int] = None,
    max_chars: Optional[int] = None,
) -> str:
    """Extract text from the first pages of a PDF, truncated to a character budget."""
    max_pages = max_pages or settings.classifier.pdf_max_pages
    max_chars = max_chars or settings.classifier.pdf_max_chars

    try:
        with pdfplumber.open(BytesIO(pdf_bytes)) as pdf:
            pages = []
            for page in pdf.pages[:max_pages]:
                pages.append(page.extract_text() or "")
    except Exception as e:
        raise ValidationError(f"Could not read PDF: {e}", original_error=e)

    text = "\n\n".join(p.strip() for p in pages if p.strip())
    return text[:max_chars]


def prepare_document(content: bytes, meta: FileMeta) -> PreparedDocument:
    """Validate a file and turn it into model input.

    Raises:
        FileTooLargeError: If the file is above the size ceiling
        UnsupportedFileTypeError: If the file is neither an image nor a PDF
        ValidationError: If the file is empty or a PDF has no text layer
    """
    check_size(meta.size_bytes)
    if not content:
        raise ValidationError("File is empty")
    check_size(len(content))

    content_type = resolve_content_type(meta.content_type, content, meta.file_name)
    kind = file_kind(content_type)
    if kind is None:
        raise UnsupportedFileTypeError(f"Unsupported file type: {content_type or 'unknown'}")

    if kind == PDF:
        text = extract_pdf_text(content)
        if not text:
            raise ValidationError("PDF contains no extractable text")
        return PreparedDocument(kind=PDF, content_type=content_type, text=text)

    return PreparedDocument(kind=IMAGE, content_type=content_type, image=content)


def _clamp(value: Any, default: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return max(0.0, min(1.0, number))


def normalize_classification(raw: Any) -> ClassificationResult:
    """Validate and normalise a decoded model response.

    Raises:
        MalformedResponseError: If the response is not an object or carries a
            classification outside the permitted set
    """
    if not isinstance(raw, dict):
        raise MalformedResponseError("Invalid response format from classification service")

    classification = raw.get("classification")
    if isinstance(classification, str):
        classification = classification.strip().lower()
    if classification not in UTILITY_CLASSIFICATIONS:
        raise MalformedResponseError(f"Invalid classification type returned: {raw.get('classification')!r}")

    fields = raw.get("fields") if isinstance(raw.get("fields"), dict) else {}
    field_confidence = {}
    raw_scores = raw.get("field_confidence")
    if isinstance(raw_scores, dict):
        for name, score in raw_scores.items():
            if isinstance(score, (int, float)) and not isinstance(score, bool):
                field_confidence[str(name)] = _clamp(score)

    low_confidence = raw.get("low_confidence_fields")
    if isinstance(low_confidence, list):
        low_confidence = [str(name) for name in low_confidence]
    else:
        threshold = settings.classifier.low_confidence_threshold
        low_confidence = sorted(name for name, score in field_confidence.items() if score < threshold)

    return ClassificationResult(
        classification=classification,
        confidence=_clamp(raw.get("confidence")),
        fields=fields,
        field_confidence=field_confidence,
        low_confidence_fields=low_confidence,
    )


class DocumentClassifier:
    """Calls a vision-capable model to classify utility documents.

    Has no side effects beyond the outbound model call; persisting the result
    is the caller's job.
    """

    def __init__(self, client_factory: Callable[..., Any] = create_llm_client):
        self.client_factory = client_factory

    async def classify(
        self,
        content: bytes,
        meta: FileMeta,
        context: Optional[BusinessContext] = None,
    ) -> ClassificationResult:
        """Classify a document and extract its fields.

        Args:
            content: Raw file bytes
            meta: Reported file name, content type and size
            context: Business provider selection and optional extraction schema

        Returns:
            ClassificationResult with the provider that produced it

        Raises:
            FileTooLargeError: Oversized input; no model call is made
            UnsupportedFileTypeError: Input is neither image nor PDF
            RateLimitedError: The provider signalled rate limiting
            APIClientError: Transient provider failure
            MalformedResponseError: The model output was unusable
        """
        context = context or BusinessContext()
        # Size and type are checked before any client is built
        document = prepare_document(content, meta)

        client = self.client_factory(context.provider, context.model)
        system_prompt = UTILITY_SYSTEM_PROMPT + extraction_schema_instructions(context.extraction_schema)

        LOGGER.info(
            "Classifying document",
            extra={
                "file_name": meta.file_name,
                "kind": document.kind,
                "provider": getattr(client, "provider", None),
                "business_id": str(context.business_id) if context.business_id else None,
            },
        )

        if document.kind == PDF:
            response_text = await client.generate_content(
                PDF_USER_PROMPT_TEMPLATE.format(text=document.text),
                system_instruction=system_prompt,
            )
        else:
            response_text = await client.generate_content(
                IMAGE_USER_PROMPT,
                system_instruction=system_prompt,
                image=document.image,
                image_mime_type=document.content_type,
            )

        parsed = extract_json_object(response_text)
        if parsed is None:
            LOGGER.error(
                "Failed to parse classifier response",
                extra={"response_preview": (response_text or "")[:300]},
            )
            raise MalformedResponseError("Invalid response format from classification service")

        result = normalize_classification(parsed)
        result.provider = getattr(client, "provider", None)

        LOGGER.info(
            f"Classification successful: {result.classification}",
            extra={"confidence": result.confidence, "low_confidence_fields": result.low_confidence_fields},
        )
        return result
