import uuid
from typing import Optional, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from docflow.database.models import (
    Customer,
    DocumentType,
    Message,
    MessageAttachment,
    PipelineProfile,
    WebhookEndpoint,
)
from docflow.repositories.base_repository import BaseRepository


class PipelineProfileRepository(BaseRepository[PipelineProfile]):
    """Per-business pipeline configuration lookup."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, PipelineProfile)

    async def get_for_business(self, business_id: uuid.UUID) -> Optional[PipelineProfile]:
        query = select(PipelineProfile).where(PipelineProfile.business_id == business_id)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()


class CustomerRepository(BaseRepository[Customer]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, Customer)


class MessageRepository(BaseRepository[Message]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, Message)


class AttachmentRepository(BaseRepository[MessageAttachment]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, MessageAttachment)


class DocumentTypeRepository(BaseRepository[DocumentType]):
    """Business-scoped document type catalog."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, DocumentType)

    async def get_active(
        self,
        business_id: uuid.UUID,
        ids: Optional[List[uuid.UUID]] = None,
    ) -> List[DocumentType]:
        query = select(DocumentType).where(
            DocumentType.business_id == business_id,
            DocumentType.is_active.is_(True),
        )
        if ids:
            query = query.where(DocumentType.id.in_(ids))
        result = await self.session.execute(query.order_by(DocumentType.name))
        return list(result.scalars().all())


class WebhookEndpointRepository(BaseRepository[WebhookEndpoint]):
    """Registered webhook endpoints."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, WebhookEndpoint)

    async def get_active_for_business(self, business_id: uuid.UUID) -> List[WebhookEndpoint]:
        query = select(WebhookEndpoint).where(
            WebhookEndpoint.business_id == business_id,
            WebhookEndpoint.is_active.is_(True),
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())
