import uuid
from typing import Optional, List

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from docflow.database.models import AttachmentParseResult
from docflow.repositories.base_repository import BaseRepository


class ParseResultRepository(BaseRepository[AttachmentParseResult]):
    """Ledger of attachment parse attempts.

    Each attempt is its own row. At most one row per attachment reaches
    ``success``; that row is the idempotency record for the attachment.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, AttachmentParseResult)

    async def get_successful(self, attachment_id: uuid.UUID) -> Optional[AttachmentParseResult]:
        """Return the successful parse for an attachment, if any."""
        query = (
            select(AttachmentParseResult)
            .where(
                AttachmentParseResult.attachment_id == attachment_id,
                AttachmentParseResult.parse_status == "success",
            )
            .order_by(AttachmentParseResult.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_for_attachment(self, attachment_id: uuid.UUID) -> List[AttachmentParseResult]:
        query = (
            select(AttachmentParseResult)
            .where(AttachmentParseResult.attachment_id == attachment_id)
            .order_by(AttachmentParseResult.attempt)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def start_attempt(
        self,
        attachment_id: uuid.UUID,
        message_id: Optional[uuid.UUID] = None,
        business_id: Optional[uuid.UUID] = None,
    ) -> AttachmentParseResult:
        """Open a new attempt: insert at ``pending`` then move to ``processing``.

        A crash after this returns leaves a ``processing`` row for operators
        to requeue.
        """
        query = select(func.coalesce(func.max(AttachmentParseResult.attempt), 0)).where(
            AttachmentParseResult.attachment_id == attachment_id
        )
        previous = (await self.session.execute(query)).scalar_one()

        row = await self.create(
            attachment_id=attachment_id,
            message_id=message_id,
            business_id=business_id,
            attempt=previous + 1,
            parse_status="pending",
        )
        return await self.update(row.id, parse_status="processing")

    async def mark_success(
        self,
        parse_result_id: uuid.UUID,
        document_type: Optional[str],
        parsed_data: dict,
        confidence: Optional[float] = None,
        field_confidence: Optional[dict] = None,
        low_confidence_fields: Optional[list] = None,
        provider: Optional[str] = None,
    ) -> Optional[AttachmentParseResult]:
        return await self.update(
            parse_result_id,
            parse_status="success",
            document_type=document_type,
            parsed_data=parsed_data,
            confidence=confidence,
            field_confidence=field_confidence or {},
            low_confidence_fields=low_confidence_fields or [],
            provider=provider,
            error_message=None,
        )

    async def mark_failed(
        self,
        parse_result_id: uuid.UUID,
        error_message: str,
        parsed_data: Optional[dict] = None,
        provider: Optional[str] = None,
    ) -> Optional[AttachmentParseResult]:
        fields = {"parse_status": "failed", "error_message": error_message}
        if parsed_data is not None:
            fields["parsed_data"] = parsed_data
        if provider is not None:
            fields["provider"] = provider
        return await self.update(parse_result_id, **fields)
