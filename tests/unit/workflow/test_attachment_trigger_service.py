"""Unit tests for inbound attachment dispatch."""

import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from docflow.core.exceptions import NotFoundError, WorkflowExecutionError
from docflow.schemas.parsing import RouteOutcome
from docflow.schemas.submissions import AttachmentTrigger, ProcessOutcome
from docflow.services.triggers.attachment_trigger_service import ATTACHMENT_RECEIVED, AttachmentTriggerService


@pytest.fixture
def trigger():
    return AttachmentTrigger(
        attachment_id=uuid.uuid4(),
        message_id=uuid.uuid4(),
        attachment_url="https://files.example.com/doc.pdf",
    )


@pytest.fixture
def service(mock_session):
    pipeline = MagicMock()
    pipeline.process = AsyncMock(return_value=ProcessOutcome(success=True, message="Processed 1 submission(s)"))
    engine = MagicMock()
    engine.execute_workflow = AsyncMock()
    router = MagicMock()
    router.route = AsyncMock(return_value=RouteOutcome(success=True, classification="gas"))

    svc = AttachmentTriggerService(mock_session, pipeline=pipeline, engine=engine, router=router)
    svc.messages = AsyncMock()
    svc.messages.get_by_id.return_value = SimpleNamespace(business_id=uuid.uuid4())
    svc.profiles = AsyncMock()
    svc.profiles.get_for_business.return_value = None
    svc.workflows = AsyncMock()
    svc.workflows.get_active_by_trigger.return_value = []
    return svc


class TestAttachmentTrigger:
    @pytest.mark.asyncio
    async def test_auto_submission_business(self, service, trigger):
        service.profiles.get_for_business.return_value = SimpleNamespace(auto_submission_enabled=True)

        outcome = await service.handle(trigger)

        assert outcome.mode == "auto_submission"
        assert outcome.success is True
        service.pipeline.process.assert_awaited_once_with(trigger)
        service.engine.execute_workflow.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_workflows_run_independently(self, service, trigger):
        first, second = SimpleNamespace(id=uuid.uuid4()), SimpleNamespace(id=uuid.uuid4())
        failed_execution = uuid.uuid4()
        service.workflows.get_active_by_trigger.return_value = [first, second]
        service.engine.execute_workflow.side_effect = [
            WorkflowExecutionError("Step x (api_action) failed", execution_id=failed_execution),
            SimpleNamespace(id=uuid.uuid4()),
        ]

        outcome = await service.handle(trigger)

        assert outcome.mode == "workflows"
        assert outcome.success is False
        assert [(run.workflow_id, run.success) for run in outcome.workflows] == [(first.id, False), (second.id, True)]
        assert outcome.workflows[0].execution_id == failed_execution
        assert service.engine.execute_workflow.await_args.kwargs["trigger_type"] == ATTACHMENT_RECEIVED
        service.pipeline.process.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_parse_only_without_automation(self, service, trigger):
        outcome = await service.handle(trigger)

        assert outcome.mode == "parse_only"
        assert outcome.parse.classification == "gas"
        service.router.route.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_message(self, service, trigger):
        service.messages.get_by_id.return_value = None

        with pytest.raises(NotFoundError):
            await service.handle(trigger)
