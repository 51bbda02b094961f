"""Unit tests for catalog-based document type classification."""

import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from docflow.core.exceptions import MalformedResponseError, ValidationError
from docflow.schemas.classification import FileMeta
from docflow.services.classification.document_type_classifier import DocumentTypeClassifier


def catalog():
    return [
        SimpleNamespace(id=uuid.uuid4(), name="Invoice", description="Supplier invoices", ai_detection_keywords=["invoice", "vat"]),
        SimpleNamespace(id=uuid.uuid4(), name="Contract", description="Signed contracts", ai_detection_keywords=["agreement"]),
    ]


def classifier_returning(text: str):
    client = MagicMock()
    client.generate_content = AsyncMock(return_value=text)
    return DocumentTypeClassifier(client_factory=MagicMock(return_value=client)), client


class TestDocumentTypeClassifier:
    @pytest.mark.asyncio
    async def test_matches_catalog_entry(self, sample_png_content):
        types = catalog()
        classifier, client = classifier_returning(
            '{"document_type": "Invoice", "confidence": 0.91, "reasoning": "VAT number present"}'
        )

        match = await classifier.classify(sample_png_content, FileMeta(content_type="image/png"), types)

        assert match.document_type == "Invoice"
        assert match.document_type_id == types[0].id
        assert match.confidence == 0.91
        assert "Contract" in client.generate_content.await_args.args[0]

    @pytest.mark.asyncio
    async def test_missing_confidence_defaults(self, sample_png_content):
        classifier, _ = classifier_returning('{"document_type": "Contract"}')

        match = await classifier.classify(sample_png_content, FileMeta(content_type="image/png"), catalog())

        assert match.confidence == 0.8

    @pytest.mark.asyncio
    async def test_below_threshold_fails(self, sample_png_content):
        classifier, _ = classifier_returning('{"document_type": "Invoice", "confidence": 0.5}')

        with pytest.raises(ValidationError, match="below threshold"):
            await classifier.classify(
                sample_png_content, FileMeta(content_type="image/png"), catalog(), min_confidence=0.8
            )

    @pytest.mark.asyncio
    async def test_unknown_type_fails(self, sample_png_content):
        classifier, _ = classifier_returning('{"document_type": "Passport", "confidence": 0.99}')

        with pytest.raises(ValidationError, match="Unknown document type"):
            await classifier.classify(sample_png_content, FileMeta(content_type="image/png"), catalog())

    @pytest.mark.asyncio
    async def test_empty_catalog_makes_no_call(self, sample_png_content):
        factory = MagicMock()
        classifier = DocumentTypeClassifier(client_factory=factory)

        with pytest.raises(ValidationError):
            await classifier.classify(sample_png_content, FileMeta(content_type="image/png"), [])
        factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_non_json_is_malformed(self, sample_png_content):
        classifier, _ = classifier_returning("It looks like an invoice")

        with pytest.raises(MalformedResponseError):
            await classifier.classify(sample_png_content, FileMeta(content_type="image/png"), catalog())
