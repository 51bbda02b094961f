import uuid
from typing import Optional, List
from datetime import datetime, timezone

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from docflow.database.models import UtilitySubmission
from docflow.repositories.base_repository import BaseRepository


class SubmissionRepository(BaseRepository[UtilitySubmission]):
    """Repository for utility submissions."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, UtilitySubmission)

    async def get_for_attachment(
        self,
        attachment_id: uuid.UUID,
        document_type: Optional[str] = None,
    ) -> List[UtilitySubmission]:
        query = select(UtilitySubmission).where(UtilitySubmission.attachment_id == attachment_id)
        if document_type:
            query = query.where(UtilitySubmission.document_type == document_type)
        query = query.order_by(UtilitySubmission.created_at)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_due_for_retry(self, limit: int = 50) -> List[UtilitySubmission]:
        """Failed submissions with retries left whose next attempt is due."""
        now = datetime.now(timezone.utc)
        query = (
            select(UtilitySubmission)
            .where(
                UtilitySubmission.status == "failed",
                UtilitySubmission.retry_count < UtilitySubmission.max_retries,
                or_(
                    UtilitySubmission.next_retry_at.is_(None),
                    UtilitySubmission.next_retry_at <= now,
                ),
            )
            .order_by(UtilitySubmission.created_at)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def mark_submitted(
        self,
        submission_id: uuid.UUID,
        http_status: Optional[int],
        response: Optional[dict],
    ) -> Optional[UtilitySubmission]:
        return await self.update(
            submission_id,
            status="submitted",
            http_status=http_status,
            integration_response=response,
            error_message=None,
            next_retry_at=None,
            submitted_at=datetime.now(timezone.utc),
        )

    async def mark_failed(
        self,
        submission_id: uuid.UUID,
        error_message: str,
        http_status: Optional[int] = None,
        response: Optional[dict] = None,
        **extra,
    ) -> Optional[UtilitySubmission]:
        return await self.update(
            submission_id,
            status="failed",
            error_message=error_message,
            http_status=http_status,
            integration_response=response,
            **extra,
        )
