import uuid
from typing import Optional, List
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from docflow.database.models import (
    DocumentWorkflow,
    WorkflowAuditLog,
    WorkflowExecution,
    WorkflowStep,
)
from docflow.repositories.base_repository import BaseRepository


class WorkflowRepository(BaseRepository[DocumentWorkflow]):
    """Repository for workflow definitions and their steps."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, DocumentWorkflow)

    async def get_by_id(self, id: uuid.UUID) -> Optional[DocumentWorkflow]:
        """Get a workflow with its steps eagerly loaded in step order."""
        query = (
            select(DocumentWorkflow)
            .where(DocumentWorkflow.id == id)
            .options(selectinload(DocumentWorkflow.steps))
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_steps(self, workflow_id: uuid.UUID) -> List[WorkflowStep]:
        query = (
            select(WorkflowStep)
            .where(WorkflowStep.workflow_id == workflow_id)
            .order_by(WorkflowStep.step_order)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_active_by_trigger(
        self,
        business_id: uuid.UUID,
        trigger_type: str,
    ) -> List[DocumentWorkflow]:
        query = select(DocumentWorkflow).where(
            DocumentWorkflow.business_id == business_id,
            DocumentWorkflow.trigger_type == trigger_type,
            DocumentWorkflow.is_active.is_(True),
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())


class WorkflowExecutionRepository(BaseRepository[WorkflowExecution]):
    """Repository for workflow execution runs."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, WorkflowExecution)

    async def start(
        self,
        workflow_id: uuid.UUID,
        business_id: Optional[uuid.UUID],
        attachment_id: Optional[uuid.UUID],
        message_id: Optional[uuid.UUID],
        trigger_type: Optional[str],
        context: dict,
    ) -> WorkflowExecution:
        return await self.create(
            workflow_id=workflow_id,
            business_id=business_id,
            attachment_id=attachment_id,
            message_id=message_id,
            trigger_type=trigger_type,
            status="running",
            execution_data=context,
            started_at=datetime.now(timezone.utc),
        )

    async def record_progress(
        self,
        execution_id: uuid.UUID,
        current_step_id: Optional[uuid.UUID],
        context: dict,
    ) -> Optional[WorkflowExecution]:
        return await self.update(
            execution_id,
            current_step_id=current_step_id,
            execution_data=context,
        )

    async def finish(
        self,
        execution_id: uuid.UUID,
        status: str,
        context: dict,
        error_message: Optional[str] = None,
    ) -> Optional[WorkflowExecution]:
        return await self.update(
            execution_id,
            status=status,
            execution_data=context,
            error_message=error_message,
            completed_at=datetime.now(timezone.utc),
        )


class WorkflowAuditRepository(BaseRepository[WorkflowAuditLog]):
    """Append-only audit trail for executions."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, WorkflowAuditLog)

    async def append(
        self,
        execution_id: uuid.UUID,
        action: str,
        metadata: Optional[dict] = None,
    ) -> WorkflowAuditLog:
        return await self.create(
            execution_id=execution_id,
            action=action,
            audit_metadata=metadata or {},
        )

    async def list_for_execution(self, execution_id: uuid.UUID) -> List[WorkflowAuditLog]:
        query = (
            select(WorkflowAuditLog)
            .where(WorkflowAuditLog.execution_id == execution_id)
            .order_by(WorkflowAuditLog.created_at)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())
