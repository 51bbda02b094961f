"""Classification against a business's own document type catalog."""

from typing import Any, Callable, Optional, Sequence

from docflow.core.exceptions import MalformedResponseError, ValidationError
from docflow.core.llm_client import create_llm_client
from docflow.database.models import DocumentType
from docflow.schemas.classification import DocumentTypeMatch, FileMeta
from docflow.services.classification.document_classifier import prepare_document
from docflow.services.classification.prompts import DOCUMENT_TYPE_SYSTEM_PROMPT, document_type_prompt
from docflow.utils.file_detection import PDF
from docflow.utils.json_parser import extract_json_object
from docflow.utils.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_CONFIDENCE = 0.8


class DocumentTypeClassifier:
    """Matches a document to one entry of a business-defined catalog."""

    def __init__(self, client_factory: Callable[..., Any] = create_llm_client):
        self.client_factory = client_factory

    async def classify(
        self,
        content: bytes,
        meta: FileMeta,
        document_types: Sequence[DocumentType],
        min_confidence: float = DEFAULT_CONFIDENCE,
        provider: Optional[str] = None,
        model: Optional[str] = None,
    ) -> DocumentTypeMatch:
        """Pick the best catalog entry for the document.

        Raises:
            ValidationError: If the catalog is empty, the model names a type
                outside the catalog, or confidence is below ``min_confidence``
            MalformedResponseError: If the model output has no JSON object
        """
        if not document_types:
            raise ValidationError("No document types configured")

        document = prepare_document(content, meta)
        catalog = [
            {
                "name": doc_type.name,
                "description": doc_type.description,
                "keywords": doc_type.ai_detection_keywords or [],
            }
            for doc_type in document_types
        ]
        prompt = document_type_prompt(catalog, document.text if document.kind == PDF else None)

        client = self.client_factory(provider, model)
        response_text = await client.generate_content(
            prompt,
            system_instruction=DOCUMENT_TYPE_SYSTEM_PROMPT,
            image=document.image,
            image_mime_type=document.content_type,
        )

        parsed = extract_json_object(response_text)
        if parsed is None:
            raise MalformedResponseError("Invalid JSON response from document type classifier")

        name = parsed.get("document_type")
        matched = next((dt for dt in document_types if dt.name == name), None)
        if matched is None:
            raise ValidationError(f"Unknown document type: {name!r}")

        confidence = parsed.get("confidence")
        if not isinstance(confidence, (int, float)) or isinstance(confidence, bool):
            confidence = DEFAULT_CONFIDENCE
        confidence = max(0.0, min(1.0, float(confidence)))

        if confidence < min_confidence:
            LOGGER.warning(
                f"Low confidence document type match: {confidence}",
                extra={"document_type": matched.name, "min_confidence": min_confidence},
            )
            raise ValidationError(
                f"Confidence {confidence:.2f} below threshold {min_confidence:.2f} for {matched.name}"
            )

        return DocumentTypeMatch(
            document_type_id=matched.id,
            document_type=matched.name,
            confidence=confidence,
            reasoning=parsed.get("reasoning"),
        )
