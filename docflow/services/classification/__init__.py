"""Document classification against the built-in utility rubric or a business catalog."""

from docflow.services.classification.document_classifier import DocumentClassifier
from docflow.services.classification.document_type_classifier import DocumentTypeClassifier

__all__ = [
    "DocumentClassifier",
    "DocumentTypeClassifier",
]
