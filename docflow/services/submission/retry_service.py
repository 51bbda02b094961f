"""Scheduled re-drive of failed submissions."""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from docflow.core.config import settings
from docflow.core.exceptions import NotFoundError
from docflow.repositories.submission_repository import SubmissionRepository
from docflow.schemas.submissions import RetryRunResult, SubmissionOutcome
from docflow.services.base_service import BaseService
from docflow.services.submission.sender import SubmissionSender
from docflow.utils.logging import get_logger

LOGGER = get_logger(__name__)


def next_retry_delay(retry_count: int, base_delay_seconds: Optional[int] = None) -> timedelta:
    """``2 ** retry_count * base`` seconds."""
    base = base_delay_seconds if base_delay_seconds is not None else settings.integration.retry_base_delay_seconds
    return timedelta(seconds=(2 ** retry_count) * base)


class SubmissionRetryService(BaseService):
    """Retries failed submissions on an exponential schedule and on operator request."""

    def __init__(self, session: AsyncSession, sender: Optional[SubmissionSender] = None):
        super().__init__()
        self.submissions = SubmissionRepository(session)
        self.sender = sender or SubmissionSender(session)

    async def process_due(self, limit: Optional[int] = None) -> RetryRunResult:
        """Re-drive every failed submission whose next attempt is due."""
        limit = limit or settings.integration.retry_batch_size
        due = await self.submissions.get_due_for_retry(limit)
        results = RetryRunResult()

        LOGGER.info(f"Found {len(due)} submission(s) due for retry")

        for row in due:
            results.processed += 1
            retry_count = row.retry_count + 1
            outcome = await self.sender.send(row)

            if outcome.success:
                results.successful += 1
                await self.submissions.update(row.id, retry_count=retry_count)
                continue

            results.failed += 1
            if retry_count >= row.max_retries:
                results.max_retries_reached += 1
                await self.submissions.update(row.id, retry_count=retry_count, next_retry_at=None)
                LOGGER.warning(
                    "Submission reached max retries",
                    extra={"submission_id": str(row.id), "retry_count": retry_count},
                )
            else:
                next_at = datetime.now(timezone.utc) + next_retry_delay(retry_count)
                await self.submissions.update(row.id, retry_count=retry_count, next_retry_at=next_at)

        return results

    async def reprocess(self, submission_id: uuid.UUID) -> SubmissionOutcome:
        """Re-drive one submission now, regardless of status or schedule.

        Raises:
            NotFoundError: If the submission does not exist
        """
        row = await self.submissions.get_by_id(submission_id)
        if row is None:
            raise NotFoundError(f"Submission {submission_id} not found")

        LOGGER.info(
            "Reprocessing submission on operator request",
            extra={"submission_id": str(submission_id), "previous_status": row.status},
        )
        return await self.sender.send(row)

    async def run(self, limit: Optional[int] = None) -> RetryRunResult:
        return await self.process_due(limit)
