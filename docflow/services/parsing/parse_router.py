"""Attachment parse router.

Chooses the extraction backend for an attachment, records every attempt in
the parse-result ledger, and short-circuits attachments that already have a
successful parse.
"""

import uuid
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from docflow.core.config import settings
from docflow.core.exceptions import AppError, ConfigurationError, ProviderError
from docflow.database.models import AttachmentParseResult
from docflow.repositories.business_repository import PipelineProfileRepository
from docflow.repositories.parse_result_repository import ParseResultRepository
from docflow.schemas.classification import BusinessContext, ClassificationResult, FileMeta
from docflow.schemas.parsing import FetchedFile, ParseRequest, RouteOutcome
from docflow.services.base_service import BaseService
from docflow.services.classification.document_classifier import DocumentClassifier
from docflow.services.parsing.attachment_fetcher import AttachmentFetcher
from docflow.utils.file_detection import file_kind
from docflow.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class ProviderChoice:
    provider: str
    model: Optional[str] = None


@dataclass
class Extraction:
    """A classification plus the file it came from and how it was routed."""

    result: ClassificationResult
    file: FetchedFile
    router: dict[str, Any]


def outcome_from_row(row: AttachmentParseResult, cached: bool = False) -> RouteOutcome:
    return RouteOutcome(
        success=row.parse_status == "success",
        attachment_id=row.attachment_id,
        parse_result_id=row.id,
        classification=row.document_type,
        confidence=row.confidence or 0,
        fields=row.parsed_data or {},
        field_confidence=row.field_confidence or {},
        low_confidence_fields=row.low_confidence_fields or [],
        provider=row.provider,
        cached=cached,
        error=row.error_message,
    )


def error_outcome(error: AppError, attachment_id=None, parse_result_id=None) -> RouteOutcome:
    return RouteOutcome(
        success=False,
        attachment_id=attachment_id,
        parse_result_id=parse_result_id,
        error=error.message,
        error_kind=error.kind,
        status_code=error.status_code,
    )


class ParseRouter(BaseService):
    """Routes attachments to a model provider and keeps the parse ledger."""

    def __init__(
        self,
        session: AsyncSession,
        classifier: Optional[DocumentClassifier] = None,
        fetcher: Optional[AttachmentFetcher] = None,
    ):
        super().__init__()
        self.parse_results = ParseResultRepository(session)
        self.profiles = PipelineProfileRepository(session)
        self.classifier = classifier or DocumentClassifier()
        self.fetcher = fetcher or AttachmentFetcher()

    async def provider_chain(self, business_id: Optional[uuid.UUID]) -> list[ProviderChoice]:
        """Primary then fallback provider, business profile first, platform defaults second."""
        profile = await self.profiles.get_for_business(business_id) if business_id else None

        primary = ProviderChoice(
            provider=(profile.primary_provider if profile and profile.primary_provider else settings.llm.provider),
            model=profile.primary_model if profile else None,
        )
        chain = [primary]

        fallback_provider = (
            profile.fallback_provider if profile and profile.fallback_provider else settings.llm.fallback_provider
        )
        if fallback_provider:
            fallback = ProviderChoice(
                provider=fallback_provider,
                model=profile.fallback_model if profile else None,
            )
            if fallback != primary:
                chain.append(fallback)
        return chain

    async def extract(
        self,
        attachment_url: str,
        business_id: Optional[uuid.UUID] = None,
        extraction_schema: Optional[dict] = None,
        providers: Optional[list[ProviderChoice]] = None,
        file_name: Optional[str] = None,
    ) -> Extraction:
        """Fetch and classify an attachment without touching the ledger.

        Tries each provider in turn. Only :class:`ProviderError` moves on to
        the next provider; validation errors fail immediately.

        Raises:
            AppError: The last provider error, or the first non-provider error
        """
        fetched = await self.fetcher.fetch(attachment_url, file_name=file_name)
        meta = FileMeta(
            file_name=fetched.file_name,
            content_type=fetched.content_type,
            size_bytes=fetched.size_bytes,
        )
        chain = providers or await self.provider_chain(business_id)
        if not chain:
            raise ConfigurationError("No model provider configured")

        last_error: Optional[ProviderError] = None
        for index, choice in enumerate(chain):
            context = BusinessContext(
                business_id=business_id,
                provider=choice.provider,
                model=choice.model,
                extraction_schema=extraction_schema,
            )
            try:
                result = await self.classifier.classify(fetched.content, meta, context)
            except ProviderError as e:
                last_error = e
                LOGGER.warning(
                    f"Provider {choice.provider} failed: {e.message}",
                    extra={
                        "provider": choice.provider,
                        "error_kind": e.kind,
                        "has_fallback": index < len(chain) - 1,
                    },
                )
                continue

            router = {
                "decision": f"{file_kind(fetched.content_type)}:{result.provider or choice.provider}",
                "content_type": fetched.content_type,
                "file_size": fetched.size_bytes,
                "fallback_used": index > 0,
            }
            return Extraction(result=result, file=fetched, router=router)

        raise last_error

    async def route(
        self,
        attachment_url: str,
        attachment_id: Optional[uuid.UUID] = None,
        message_id: Optional[uuid.UUID] = None,
        business_id: Optional[uuid.UUID] = None,
        force: bool = False,
    ) -> RouteOutcome:
        """Parse an attachment once.

        With an ``attachment_id`` the call is idempotent: an existing
        successful parse is returned with ``cached=True`` unless ``force`` is
        set. Every attempt is written ``pending`` then ``processing`` before
        any work and finalised to ``success`` or ``failed``. Without an
        ``attachment_id`` nothing is persisted.

        Errors are returned as a failed :class:`RouteOutcome`, never raised.
        """
        if attachment_id and not force:
            existing = await self.parse_results.get_successful(attachment_id)
            if existing:
                LOGGER.info(
                    "Attachment already parsed, returning cached result",
                    extra={"attachment_id": str(attachment_id), "parse_result_id": str(existing.id)},
                )
                return outcome_from_row(existing, cached=True)

        attempt = None
        if attachment_id:
            attempt = await self.parse_results.start_attempt(attachment_id, message_id, business_id)

        try:
            extraction = await self.extract(attachment_url, business_id=business_id)
        except AppError as e:
            LOGGER.error(
                f"Attachment parse failed: {e.message}",
                extra={"attachment_id": str(attachment_id), "error_kind": e.kind},
            )
            if attempt:
                await self.parse_results.mark_failed(attempt.id, e.message)
            return error_outcome(e, attachment_id, attempt.id if attempt else None)
        except Exception as e:
            LOGGER.error(
                "Unexpected error while parsing attachment",
                exc_info=True,
                extra={"attachment_id": str(attachment_id)},
            )
            wrapped = AppError(f"Parse failed: {e}", original_error=e)
            if attempt:
                await self.parse_results.mark_failed(attempt.id, wrapped.message)
            return error_outcome(wrapped, attachment_id, attempt.id if attempt else None)

        result = extraction.result
        if attempt:
            await self.parse_results.mark_success(
                attempt.id,
                document_type=result.classification,
                parsed_data=result.fields,
                confidence=result.confidence,
                field_confidence=result.field_confidence,
                low_confidence_fields=result.low_confidence_fields,
                provider=result.provider,
            )

        return RouteOutcome(
            success=True,
            attachment_id=attachment_id,
            parse_result_id=attempt.id if attempt else None,
            classification=result.classification,
            confidence=result.confidence,
            fields=result.fields,
            field_confidence=result.field_confidence,
            low_confidence_fields=result.low_confidence_fields,
            provider=result.provider,
            router=extraction.router,
        )

    async def run(self, request: ParseRequest) -> RouteOutcome:
        return await self.route(
            request.attachment_url,
            attachment_id=request.attachment_id,
            message_id=request.message_id,
            business_id=request.business_id,
            force=request.force,
        )
