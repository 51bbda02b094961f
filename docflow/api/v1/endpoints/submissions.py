"""Submission retry endpoints."""

from typing import Annotated, Optional, Union
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from docflow.core.database import get_async_session as get_session
from docflow.schemas.submissions import RetryRunResult, SubmissionOutcome
from docflow.services.submission.retry_service import SubmissionRetryService

router = APIRouter()


async def get_retry_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> SubmissionRetryService:
    return SubmissionRetryService(db_session)


@router.post(
    "/retry",
    response_model=RetryRunResult,
    summary="Re-drive failed submissions that are due",
    operation_id="retry_due_submissions",
)
async def retry_due_submissions(
    service: Annotated[SubmissionRetryService, Depends(get_retry_service)],
    limit: Optional[int] = Query(None, ge=1, le=500),
) -> RetryRunResult:
    return await service.process_due(limit=limit)


@router.post(
    "/{submission_id}/reprocess",
    response_model=SubmissionOutcome,
    summary="Re-send one submission now",
    operation_id="reprocess_submission",
)
async def reprocess_submission(
    submission_id: UUID,
    service: Annotated[SubmissionRetryService, Depends(get_retry_service)],
) -> Union[SubmissionOutcome, JSONResponse]:
    outcome = await service.reprocess(submission_id)
    if not outcome.success:
        return JSONResponse(status_code=502, content=outcome.model_dump(mode="json"))
    return outcome
