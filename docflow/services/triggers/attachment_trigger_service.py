"""Inbound attachment dispatch.

Decides what happens to a freshly stored attachment based on the owning
business's configuration, never on its identity.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from docflow.core.exceptions import AppError, NotFoundError
from docflow.repositories.business_repository import MessageRepository, PipelineProfileRepository
from docflow.repositories.workflow_repository import WorkflowRepository
from docflow.schemas.submissions import AttachmentTrigger, IngestOutcome, WorkflowRun
from docflow.services.base_service import BaseService
from docflow.services.parsing.parse_router import ParseRouter
from docflow.services.submission.auto_submission_service import AutoSubmissionService
from docflow.services.workflow.engine import WorkflowEngine
from docflow.utils.logging import get_logger

LOGGER = get_logger(__name__)

ATTACHMENT_RECEIVED = "attachment_received"


class AttachmentTriggerService(BaseService):
    """Routes an inbound attachment to auto-submission, workflows, or a plain parse."""

    def __init__(
        self,
        session: AsyncSession,
        pipeline: Optional[AutoSubmissionService] = None,
        engine: Optional[WorkflowEngine] = None,
        router: Optional[ParseRouter] = None,
    ):
        super().__init__()
        self.router = router or ParseRouter(session)
        self.pipeline = pipeline or AutoSubmissionService(session, router=self.router)
        self.engine = engine or WorkflowEngine(session, router=self.router)
        self.messages = MessageRepository(session)
        self.profiles = PipelineProfileRepository(session)
        self.workflows = WorkflowRepository(session)

    async def handle(self, trigger: AttachmentTrigger) -> IngestOutcome:
        log_extra = {"attachment_id": str(trigger.attachment_id), "message_id": str(trigger.message_id)}

        message = await self.messages.get_by_id(trigger.message_id)
        if message is None:
            raise NotFoundError(f"Message {trigger.message_id} not found")

        profile = await self.profiles.get_for_business(message.business_id)
        if profile is not None and profile.auto_submission_enabled:
            LOGGER.info("Dispatching attachment to auto-submission", extra=log_extra)
            outcome = await self.pipeline.process(trigger)
            return IngestOutcome(
                mode="auto_submission",
                success=outcome.success,
                process=outcome,
                error=outcome.error,
            )

        workflows = await self.workflows.get_active_by_trigger(message.business_id, ATTACHMENT_RECEIVED)
        if workflows:
            LOGGER.info(f"Running {len(workflows)} workflow(s) for attachment", extra=log_extra)
            runs = []
            for workflow in workflows:
                try:
                    execution = await self.engine.execute_workflow(
                        workflow.id,
                        attachment_id=trigger.attachment_id,
                        message_id=trigger.message_id,
                        trigger_type=ATTACHMENT_RECEIVED,
                    )
                    runs.append(WorkflowRun(workflow_id=workflow.id, execution_id=execution.id, success=True))
                except AppError as e:
                    LOGGER.error(
                        f"Workflow {workflow.id} failed: {e.message}",
                        extra={**log_extra, "workflow_id": str(workflow.id)},
                    )
                    runs.append(WorkflowRun(
                        workflow_id=workflow.id,
                        execution_id=getattr(e, "execution_id", None),
                        success=False,
                        error=e.message,
                    ))
            return IngestOutcome(mode="workflows", success=all(run.success for run in runs), workflows=runs)

        LOGGER.info("No automation configured, parsing attachment only", extra=log_extra)
        parsed = await self.router.route(
            trigger.attachment_url,
            attachment_id=trigger.attachment_id,
            message_id=trigger.message_id,
            business_id=message.business_id,
        )
        return IngestOutcome(mode="parse_only", success=parsed.success, parse=parsed, error=parsed.error)

    async def run(self, trigger: AttachmentTrigger) -> IngestOutcome:
        return await self.handle(trigger)
