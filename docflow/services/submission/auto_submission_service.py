"""Auto-submission pipeline.

Turns one parsed attachment into independent utility submissions:

1. short-circuit if the attachment already has a successful parse
2. extract, resolve the routing phone, detect sub-entities
3. create one submission row per valid sub-entity
4. submit each one on its own and report a per-entity outcome
"""

import uuid
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from docflow.core.exceptions import AppError, MissingIdentifierError, NotFoundError, ValidationError
from docflow.database.models import UtilitySubmission
from docflow.repositories.business_repository import (
    CustomerRepository,
    MessageRepository,
    PipelineProfileRepository,
)
from docflow.repositories.parse_result_repository import ParseResultRepository
from docflow.repositories.submission_repository import SubmissionRepository
from docflow.schemas.parsing import FetchedFile
from docflow.schemas.submissions import AttachmentTrigger, ProcessOutcome, SubEntity, SubmissionOutcome
from docflow.services.base_service import BaseService
from docflow.services.parsing.parse_router import ParseRouter
from docflow.services.submission.detection import detect_sub_entities, document_phone
from docflow.services.submission.sender import SubmissionSender
from docflow.utils.logging import get_logger
from docflow.utils.phone import normalize_phone

LOGGER = get_logger(__name__)

NO_VALID_DATA = "No valid utility data found"
MISSING_SUBMISSION_ID = "Missing submission ID"

_IDENTIFIERS = {
    "electricity": ("mprn",),
    "gas": ("gprn",),
    "meter": ("read_value",),
}


def validate_identifiers(entity: SubEntity) -> None:
    """Raises MissingIdentifierError if the entity lacks its mandatory identifier."""
    missing = [name for name in _IDENTIFIERS[entity.type] if not getattr(entity, name)]
    if missing:
        raise MissingIdentifierError(
            f"{entity.type} submission is missing {', '.join(missing)}"
        )


def failure(error: AppError, parsed_data: Optional[dict] = None, **extra) -> ProcessOutcome:
    return ProcessOutcome(
        success=False,
        message=error.message,
        error=error.message,
        error_kind=error.kind,
        status_code=error.status_code,
        parsed_data=parsed_data,
        **extra,
    )


class AutoSubmissionService(BaseService):
    """Business-specific orchestration from parsed attachment to downstream submissions."""

    def __init__(
        self,
        session: AsyncSession,
        router: Optional[ParseRouter] = None,
        sender: Optional[SubmissionSender] = None,
    ):
        super().__init__()
        self.router = router or ParseRouter(session)
        self.sender = sender or SubmissionSender(session)
        self.parse_results = ParseResultRepository(session)
        self.submissions = SubmissionRepository(session)
        self.messages = MessageRepository(session)
        self.customers = CustomerRepository(session)
        self.profiles = PipelineProfileRepository(session)

    async def resolve_phone(self, fields: dict[str, Any], customer_id: Optional[uuid.UUID]) -> Optional[str]:
        """Document phone, then the customer's WhatsApp phone, then their general phone."""
        phone = document_phone(fields)
        if phone:
            return phone
        if not customer_id:
            return None
        customer = await self.customers.get_by_id(customer_id)
        if customer is None:
            return None
        return normalize_phone(customer.whatsapp_phone) or normalize_phone(customer.phone)

    async def _cached_outcome(self, attachment_id: uuid.UUID, parse_row) -> ProcessOutcome:
        rows = await self.submissions.get_for_attachment(attachment_id)
        outcomes = [
            SubmissionOutcome(
                type=row.document_type,
                success=row.status == "submitted",
                submission_id=row.id,
                data=row.integration_response if row.status == "submitted" else None,
                error=row.error_message if row.status == "failed" else None,
            )
            for row in rows
        ]
        return ProcessOutcome(
            success=True,
            message="Already processed",
            submissions=outcomes,
            parsed_data=parse_row.parsed_data,
            cached=True,
        )

    async def create_submission(
        self,
        entity: SubEntity,
        trigger: AttachmentTrigger,
        phone: str,
        parsed_data: dict[str, Any],
        business_id: uuid.UUID,
        customer_id: Optional[uuid.UUID] = None,
    ) -> Optional[UtilitySubmission]:
        """Insert the row for one sub-entity.

        A unique-constraint clash means a concurrent run already created it;
        the existing row is returned instead.
        """
        validate_identifiers(entity)
        try:
            return await self.submissions.create(
                business_id=business_id,
                customer_id=customer_id,
                attachment_id=trigger.attachment_id,
                message_id=trigger.message_id,
                document_type=entity.type,
                phone=phone,
                mprn=entity.mprn,
                mcc_type=entity.mcc_type,
                dg_type=entity.dg_type,
                gprn=entity.gprn,
                utility=entity.utility,
                read_value=entity.read_value,
                unit=entity.unit,
                meter_make=entity.meter_make,
                meter_model=entity.meter_model,
                raw_text=entity.raw_text,
                file_url=trigger.attachment_url,
                extracted_payload=parsed_data,
                status="pending",
            )
        except IntegrityError:
            LOGGER.warning(
                "Submission already exists for attachment, reusing it",
                extra={"attachment_id": str(trigger.attachment_id), "document_type": entity.type},
            )
            existing = await self.submissions.get_for_attachment(trigger.attachment_id, entity.type)
            return existing[0] if existing else None

    async def submit(self, row: Optional[UtilitySubmission], entity_type: str, file: FetchedFile) -> SubmissionOutcome:
        if row is None or row.id is None:
            LOGGER.error(f"Skipping {entity_type}: missing submission ID")
            return SubmissionOutcome(type=entity_type, success=False, error=MISSING_SUBMISSION_ID)

        if row.status == "submitted":
            return SubmissionOutcome(
                type=entity_type,
                success=True,
                submission_id=row.id,
                data=row.integration_response,
            )

        try:
            return await self.sender.send(row, file)
        except Exception as e:
            LOGGER.error(
                f"Error submitting {entity_type}: {e}",
                exc_info=True,
                extra={"submission_id": str(row.id)},
            )
            return SubmissionOutcome(type=entity_type, success=False, submission_id=row.id, error=str(e))

    async def process(self, trigger: AttachmentTrigger) -> ProcessOutcome:
        """Run the pipeline for one attachment. Errors are returned, not raised."""
        attachment_id = trigger.attachment_id
        log_extra = {"attachment_id": str(attachment_id), "message_id": str(trigger.message_id)}

        message = await self.messages.get_by_id(trigger.message_id)
        if message is None:
            return failure(NotFoundError("Message not found"))
        business_id = message.business_id
        customer_id = message.customer_id

        profile = await self.profiles.get_for_business(business_id)
        if profile is None or not profile.auto_submission_enabled:
            return failure(ValidationError("Auto-submission is not enabled for this business"))

        existing = await self.parse_results.get_successful(attachment_id)
        if existing:
            LOGGER.info("Attachment already processed successfully, skipping", extra=log_extra)
            return await self._cached_outcome(attachment_id, existing)

        attempt = await self.parse_results.start_attempt(attachment_id, trigger.message_id, business_id)
        attempt_id = attempt.id

        try:
            return await self._process_attempt(trigger, attempt_id, business_id, customer_id, log_extra)
        except AppError as e:
            LOGGER.error(f"Auto-submission failed: {e.message}", extra={**log_extra, "error_kind": e.kind})
            await self.parse_results.mark_failed(attempt_id, e.message)
            return failure(e)
        except Exception as e:
            LOGGER.error("Unexpected error during auto-submission", exc_info=True, extra=log_extra)
            wrapped = AppError(f"Processing failed: {e}", original_error=e)
            await self.parse_results.mark_failed(attempt_id, wrapped.message)
            return failure(wrapped)

    async def _process_attempt(
        self,
        trigger: AttachmentTrigger,
        attempt_id: uuid.UUID,
        business_id: uuid.UUID,
        customer_id: Optional[uuid.UUID],
        log_extra: dict[str, str],
    ) -> ProcessOutcome:
        extraction = await self.router.extract(trigger.attachment_url, business_id=business_id)
        result = extraction.result
        parsed_data = result.fields

        phone = await self.resolve_phone(parsed_data, customer_id)
        if not phone:
            error = ValidationError("Phone number not found in parsed data or customer record")
            await self.parse_results.mark_failed(attempt_id, error.message, parsed_data=parsed_data, provider=result.provider)
            return failure(error, parsed_data)

        detection = detect_sub_entities(parsed_data, result.classification)
        for skipped in detection.skipped:
            LOGGER.warning(
                f"Dropping {skipped.type} sub-entity: {skipped.reason}",
                extra={**log_extra, "low_confidence_fields": result.low_confidence_fields},
            )

        if not detection.entities:
            LOGGER.info(NO_VALID_DATA, extra=log_extra)
            await self.parse_results.mark_failed(attempt_id, NO_VALID_DATA, parsed_data=parsed_data, provider=result.provider)
            return failure(ValidationError(NO_VALID_DATA), parsed_data, skipped_entities=detection.skipped)

        created = []
        try:
            for entity in detection.entities:
                row = await self.create_submission(entity, trigger, phone, parsed_data, business_id, customer_id)
                created.append((entity.type, row))
        except AppError as e:
            LOGGER.error(f"Failed to create submissions: {e.message}", extra=log_extra)
            await self.parse_results.mark_failed(attempt_id, e.message, parsed_data=parsed_data, provider=result.provider)
            return failure(e, parsed_data)

        await self.parse_results.mark_success(
            attempt_id,
            document_type=result.classification,
            parsed_data=parsed_data,
            confidence=result.confidence,
            field_confidence=result.field_confidence,
            low_confidence_fields=result.low_confidence_fields,
            provider=result.provider,
        )

        outcomes = []
        for entity_type, row in created:
            outcomes.append(await self.submit(row, entity_type, extraction.file))

        return ProcessOutcome(
            success=True,
            message=f"Processed {len(created)} submission(s)",
            submissions=outcomes,
            skipped_entities=detection.skipped,
            parsed_data=parsed_data,
        )

    async def run(self, trigger: AttachmentTrigger) -> ProcessOutcome:
        return await self.process(trigger)
