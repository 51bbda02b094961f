"""Attachment classification, parsing and ingestion endpoints."""

from typing import Annotated, Union

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from docflow.core.database import get_async_session as get_session
from docflow.core.exceptions import AppError
from docflow.schemas.classification import ClassificationErrorResponse, ClassificationResult, ClassifyRequest
from docflow.schemas.parsing import ParseRequest, RouteOutcome
from docflow.schemas.submissions import AttachmentTrigger, IngestOutcome, ProcessOutcome
from docflow.services.parsing.parse_router import ParseRouter
from docflow.services.submission.auto_submission_service import AutoSubmissionService
from docflow.services.triggers.attachment_trigger_service import AttachmentTriggerService
from docflow.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()


async def get_parse_router(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> ParseRouter:
    return ParseRouter(db_session)


async def get_auto_submission_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> AutoSubmissionService:
    return AutoSubmissionService(db_session)


async def get_trigger_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> AttachmentTriggerService:
    return AttachmentTriggerService(db_session)


def classification_error(message: str, status_code: int) -> JSONResponse:
    body = ClassificationErrorResponse(error=message)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@router.post(
    "/classify",
    response_model=ClassificationResult,
    responses={400: {"model": ClassificationErrorResponse}, 413: {"model": ClassificationErrorResponse}},
    summary="Classify a utility document",
    operation_id="classify_attachment",
)
async def classify_attachment(
    payload: ClassifyRequest,
    parse_router: Annotated[ParseRouter, Depends(get_parse_router)],
) -> Union[ClassificationResult, JSONResponse]:
    """Classify a document by URL without recording a parse result."""
    try:
        extraction = await parse_router.extract(
            payload.file_url,
            business_id=payload.business_id,
            file_name=payload.file_name,
        )
    except AppError as e:
        LOGGER.warning(f"Classification failed: {e.message}", extra={"file_url": payload.file_url})
        return classification_error(e.message, e.status_code)
    return extraction.result


@router.post(
    "/parse",
    response_model=RouteOutcome,
    summary="Parse an attachment once",
    operation_id="parse_attachment",
)
async def parse_attachment(
    payload: ParseRequest,
    parse_router: Annotated[ParseRouter, Depends(get_parse_router)],
) -> Union[RouteOutcome, JSONResponse]:
    outcome = await parse_router.run(payload)
    if not outcome.success:
        return classification_error(outcome.error or "Parse failed", outcome.status_code)
    return outcome


@router.post(
    "/auto-submit",
    response_model=ProcessOutcome,
    summary="Run the auto-submission pipeline for an attachment",
    operation_id="auto_submit_attachment",
)
async def auto_submit_attachment(
    payload: AttachmentTrigger,
    service: Annotated[AutoSubmissionService, Depends(get_auto_submission_service)],
) -> Union[ProcessOutcome, JSONResponse]:
    outcome = await service.execute(payload)
    if not outcome.success:
        return JSONResponse(status_code=outcome.status_code, content=outcome.model_dump(mode="json"))
    return outcome


@router.post(
    "/ingest",
    response_model=IngestOutcome,
    status_code=status.HTTP_200_OK,
    summary="Dispatch a newly stored attachment",
    operation_id="ingest_attachment",
)
async def ingest_attachment(
    payload: AttachmentTrigger,
    service: Annotated[AttachmentTriggerService, Depends(get_trigger_service)],
) -> IngestOutcome:
    """Auto-submission, attachment workflows, or a plain parse, depending on the business."""
    return await service.execute(payload)
