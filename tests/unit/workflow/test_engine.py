"""Unit tests for the workflow engine."""

import json
import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from docflow.core.exceptions import NotFoundError, WorkflowConfigError, WorkflowExecutionError
from docflow.schemas.parsing import RouteOutcome
from docflow.services.workflow.context import ExecutionContext
from docflow.services.workflow.engine import COMPLETED_EVENT, FAILED_EVENT, WorkflowEngine, load_steps


def step(step_type, order, config=None, on_success=None, on_failure=None, step_id=None):
    return SimpleNamespace(
        id=step_id or uuid.uuid4(),
        step_type=step_type,
        step_order=order,
        step_config=config or {},
        next_step_on_success=on_success,
        next_step_on_failure=on_failure,
    )


def api_step(order, url="https://erp.example.com/documents", on_success=None, on_failure=None, **config):
    return step("api_action", order, {"endpoint_url": url, **config}, on_success, on_failure)


class Api:
    """MockTransport handler returning a fixed status and recording requests."""

    def __init__(self, status=200, body=None):
        self.status = status
        self.body = body if body is not None else {"ok": True}
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        return httpx.Response(self.status, json=self.body)


@pytest.fixture
def workflow():
    return SimpleNamespace(id=uuid.uuid4(), business_id=uuid.uuid4(), name="Invoices", steps=[])


@pytest.fixture
def attachment():
    return SimpleNamespace(id=uuid.uuid4(), file_url="https://files.example.com/inv.pdf", file_name="inv.pdf")


@pytest.fixture
def router():
    mock = MagicMock()
    mock.route = AsyncMock(
        return_value=RouteOutcome(
            success=True,
            classification="electricity",
            confidence=0.9,
            fields={"total": 150, "customer": {"phone": "+353 87 123 4567"}},
        )
    )
    mock.extract = AsyncMock()
    mock.fetcher = MagicMock()
    mock.fetcher.fetch = AsyncMock()
    return mock


def build_engine(mock_session, workflow, attachment, router, api=None, max_steps=None):
    engine = WorkflowEngine(
        mock_session,
        router=router,
        type_classifier=MagicMock(),
        dispatcher=AsyncMock(),
        transport=httpx.MockTransport(api or Api()),
        sleep=AsyncMock(),
        max_steps=max_steps,
    )
    engine.workflows = AsyncMock()
    engine.workflows.get_by_id.return_value = workflow
    engine.executions = AsyncMock()
    engine.executions.start.return_value = SimpleNamespace(id=uuid.uuid4())
    engine.audit = AsyncMock()
    engine.attachments = AsyncMock()
    engine.attachments.get_by_id.return_value = attachment
    engine.document_types = AsyncMock()
    engine.document_types.get_active.return_value = []
    return engine


def final_context(engine):
    return engine.executions.finish.await_args.args[2]


class TestLoadSteps:
    def test_orders_and_validates(self):
        end = step("end", 2)
        parse = step("parse", 1, on_success=end.id)

        steps = load_steps([end, parse])

        assert [s.type for s in steps] == ["parse", "end"]
        assert steps[0].next_on_success == str(end.id)

    def test_unknown_successor(self):
        with pytest.raises(WorkflowConfigError, match="unknown step"):
            load_steps([step("parse", 1, on_success=uuid.uuid4())])

    def test_unknown_step_type(self):
        with pytest.raises(WorkflowConfigError):
            load_steps([step("sms", 1)])

    def test_invalid_config(self):
        with pytest.raises(WorkflowConfigError):
            load_steps([step("condition", 1, {"conditions": [{"field": "x", "operator": "like"}]})])


class TestConditionStep:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("score,expected", [(0.5, "review"), (0.9, "accept")])
    async def test_confidence_threshold_selects_branch(
        self, mock_session, workflow, attachment, router, score, expected
    ):
        review, accept = step("end", 2), step("end", 3)
        check = step(
            "condition",
            1,
            {"conditions": [{"field": "confidence_score", "operator": "less_than", "value": 0.7}], "logic": "AND"},
            on_success=review.id,
            on_failure=accept.id,
        )
        steps = load_steps([check, review, accept])
        engine = build_engine(mock_session, workflow, attachment, router)
        context = ExecutionContext({"confidence_score": score, "parsed_data": {}})

        next_id = await engine.run_step(steps[0], context, workflow)

        assert next_id == str({"review": review.id, "accept": accept.id}[expected])
        assert context.get("condition_result") is (expected == "review")


class TestExecution:
    @pytest.mark.asyncio
    async def test_condition_routes_to_success_branch(self, mock_session, workflow, attachment, router):
        end = step("end", 5)
        high = step(
            "transform",
            3,
            {"mapping": [{"source_field": "customer.phone", "output_field": "transformed_data.phone", "transformation": "format_phone"}]},
            on_success=end.id,
        )
        low = step("transform", 4, {"mapping": [{"source_field": "total", "output_field": "small_total"}]}, on_success=end.id)
        check = step(
            "condition",
            2,
            {"conditions": [{"field": "total", "operator": "greater_than", "value": 100}], "logic": "AND"},
            on_success=high.id,
            on_failure=low.id,
        )
        parse = step("parse", 1, on_success=check.id)
        workflow.steps = [parse, check, high, low, end]
        engine = build_engine(mock_session, workflow, attachment, router)

        execution = await engine.execute_workflow(workflow.id, attachment_id=attachment.id)

        context = final_context(engine)
        assert context["condition_result"] is True
        assert context["transformed_data"] == {"phone": "353871234567"}
        assert context["parsed_data"]["total"] == 150
        router.route.assert_awaited_once_with(
            attachment.file_url, attachment_id=attachment.id, message_id=None, business_id=workflow.business_id
        )
        assert engine.executions.finish.await_args.args[:2] == (execution.id, "completed")
        assert engine.executions.record_progress.await_count == 4

    @pytest.mark.asyncio
    async def test_completion_is_audited_and_announced(self, mock_session, workflow, attachment, router):
        workflow.steps = [step("end", 1)]
        engine = build_engine(mock_session, workflow, attachment, router)

        execution = await engine.execute_workflow(workflow.id)

        engine.audit.append.assert_awaited_once_with(execution.id, "workflow_completed", {"workflow_id": str(workflow.id)})
        business_id, event, data = engine.dispatcher.dispatch.await_args.args
        assert (business_id, event) == (workflow.business_id, COMPLETED_EVENT)
        assert data["execution_id"] == str(execution.id)

    @pytest.mark.asyncio
    async def test_api_action_sends_rendered_request(self, mock_session, workflow, attachment, router):
        api = Api(status=201, body={"id": "erp-9"})
        call = api_step(
            2,
            url="https://erp.example.com/docs/{{classification}}",
            headers={"X-Total": "{{parsed_data.total}}"},
            body_template={"total": "{{parsed_data.total}}", "source": "docflow"},
        )
        workflow.steps = [step("parse", 1, on_success=call.id), call]
        engine = build_engine(mock_session, workflow, attachment, router, api=api)

        await engine.execute_workflow(workflow.id, attachment_id=attachment.id)

        request = api.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://erp.example.com/docs/electricity"
        assert request.headers["X-Total"] == "150"
        assert json.loads(request.content) == {"total": "150", "source": "docflow"}
        context = final_context(engine)
        assert context["api_response"] == {"id": "erp-9"}
        assert context["api_status"] == 201

    @pytest.mark.asyncio
    async def test_failed_step_follows_failure_path(self, mock_session, workflow, attachment, router):
        api = Api(status=500)
        fallback = step("transform", 2, {"mapping": [{"source_field": "attachment_id", "output_field": "failed_for"}]})
        call = api_step(1, on_failure=fallback.id, max_retries=2, backoff_seconds=0.5)
        workflow.steps = [call, fallback]
        engine = build_engine(mock_session, workflow, attachment, router, api=api)

        await engine.execute_workflow(workflow.id, attachment_id=attachment.id)

        assert len(api.requests) == 2
        engine.sleep.assert_awaited_once_with(0.5)
        context = final_context(engine)
        assert context["last_error"]["step_type"] == "api_action"
        assert "status 500" in context["last_error"]["message"]
        assert context["transformed_data"] == {"failed_for": str(attachment.id)}
        assert engine.executions.finish.await_args.args[1] == "completed"

    @pytest.mark.asyncio
    async def test_failure_without_path_aborts(self, mock_session, workflow, attachment, router):
        call = api_step(1, max_retries=1)
        workflow.steps = [call]
        engine = build_engine(mock_session, workflow, attachment, router, api=Api(status=404))

        with pytest.raises(WorkflowExecutionError) as exc_info:
            await engine.execute_workflow(workflow.id, attachment_id=attachment.id)

        execution_id = engine.executions.start.return_value.id
        assert exc_info.value.execution_id == execution_id
        assert exc_info.value.step_id == str(call.id)
        finish = engine.executions.finish.await_args
        assert finish.args[1] == "failed"
        assert "status 404" in finish.kwargs["error_message"]
        action, metadata = engine.audit.append.await_args.args[1:]
        assert action == "workflow_failed"
        assert metadata["step_id"] == str(call.id)
        assert engine.dispatcher.dispatch.await_args.args[1] == FAILED_EVENT

    @pytest.mark.asyncio
    async def test_step_error_survives_failed_bookkeeping(self, mock_session, workflow, attachment, router):
        call = api_step(1, max_retries=1)
        workflow.steps = [call]
        engine = build_engine(mock_session, workflow, attachment, router, api=Api(status=404))
        engine.executions.finish.side_effect = RuntimeError("database unavailable")

        with pytest.raises(WorkflowExecutionError) as exc_info:
            await engine.execute_workflow(workflow.id, attachment_id=attachment.id)

        assert exc_info.value.step_id == str(call.id)
        assert "status 404" in exc_info.value.message
        engine.audit.append.assert_not_awaited()
        assert engine.dispatcher.dispatch.await_args.args[1] == FAILED_EVENT

    @pytest.mark.asyncio
    async def test_parse_failure_aborts(self, mock_session, workflow, attachment, router):
        router.route.return_value = RouteOutcome(success=False, error="Unsupported file type: text/plain")
        workflow.steps = [step("parse", 1)]
        engine = build_engine(mock_session, workflow, attachment, router)

        with pytest.raises(WorkflowExecutionError, match="Unsupported file type"):
            await engine.execute_workflow(workflow.id, attachment_id=attachment.id)

    @pytest.mark.asyncio
    async def test_step_limit(self, mock_session, workflow, attachment, router):
        first_id, second_id = uuid.uuid4(), uuid.uuid4()
        workflow.steps = [
            step("transform", 1, on_success=second_id, step_id=first_id),
            step("transform", 2, on_success=first_id, step_id=second_id),
        ]
        engine = build_engine(mock_session, workflow, attachment, router, max_steps=5)

        with pytest.raises(WorkflowExecutionError, match="Step limit of 5 exceeded"):
            await engine.execute_workflow(workflow.id)

        assert engine.executions.record_progress.await_count == 5
        assert engine.executions.finish.await_args.args[1] == "failed"

    @pytest.mark.asyncio
    async def test_delay_uses_injected_sleep(self, mock_session, workflow, attachment, router):
        workflow.steps = [step("delay", 1, {"duration": 2, "unit": "minutes"})]
        engine = build_engine(mock_session, workflow, attachment, router)

        await engine.execute_workflow(workflow.id)

        engine.sleep.assert_awaited_once_with(120)

    @pytest.mark.asyncio
    async def test_invalid_workflow_is_rejected_before_start(self, mock_session, workflow, attachment, router):
        workflow.steps = [step("parse", 1, on_success=uuid.uuid4())]
        engine = build_engine(mock_session, workflow, attachment, router)

        with pytest.raises(WorkflowConfigError):
            await engine.execute_workflow(workflow.id)

        engine.executions.start.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_workflow_is_rejected(self, mock_session, workflow, attachment, router):
        engine = build_engine(mock_session, workflow, attachment, router)

        with pytest.raises(WorkflowConfigError, match="no steps"):
            await engine.execute_workflow(workflow.id)

    @pytest.mark.asyncio
    async def test_unknown_workflow(self, mock_session, workflow, attachment, router):
        engine = build_engine(mock_session, workflow, attachment, router)
        engine.workflows.get_by_id.return_value = None

        with pytest.raises(NotFoundError):
            await engine.execute_workflow(uuid.uuid4())


class TestDocumentTypeStep:
    @pytest.mark.asyncio
    async def test_catalog_classification(self, mock_session, workflow, attachment, router, fetched_file):
        type_id = uuid.uuid4()
        workflow.steps = [step("document_type", 1, {"minConfidence": 0.7})]
        engine = build_engine(mock_session, workflow, attachment, router)
        engine.document_types.get_active.return_value = [SimpleNamespace(id=type_id, name="Invoice")]
        router.fetcher.fetch.return_value = fetched_file
        engine.type_classifier.classify = AsyncMock(
            return_value=SimpleNamespace(document_type="Invoice", document_type_id=type_id, confidence=0.95)
        )

        await engine.execute_workflow(workflow.id, attachment_id=attachment.id)

        context = final_context(engine)
        assert context["document_type"] == "Invoice"
        assert context["document_type_id"] == str(type_id)
        assert context["confidence_score"] == 0.95
        assert engine.type_classifier.classify.await_args.kwargs["min_confidence"] == 0.7
        engine.document_types.get_active.assert_awaited_once_with(workflow.business_id, None)

    @pytest.mark.asyncio
    async def test_empty_catalog_uses_builtin_classification(self, mock_session, workflow, attachment, router):
        workflow.steps = [step("document_type", 1)]
        engine = build_engine(mock_session, workflow, attachment, router)

        await engine.execute_workflow(workflow.id, attachment_id=attachment.id)

        context = final_context(engine)
        assert context["document_type"] == "electricity"
        assert context["document_type_id"] is None
        assert context["parsed_data"]["total"] == 150

    @pytest.mark.asyncio
    async def test_builtin_classification_below_threshold(self, mock_session, workflow, attachment, router):
        workflow.steps = [step("document_type", 1, {"min_confidence": 0.95})]
        engine = build_engine(mock_session, workflow, attachment, router)

        with pytest.raises(WorkflowExecutionError, match="below threshold"):
            await engine.execute_workflow(workflow.id, attachment_id=attachment.id)


class TestGetExecution:
    @pytest.mark.asyncio
    async def test_detail_includes_audit_trail(self, mock_session, workflow, attachment, router):
        engine = build_engine(mock_session, workflow, attachment, router)
        execution_id = uuid.uuid4()
        engine.executions.get_by_id.return_value = SimpleNamespace(
            id=execution_id,
            workflow_id=workflow.id,
            status="completed",
            attachment_id=None,
            message_id=None,
            current_step_id=None,
            execution_data={"parsed_data": {}},
            error_message=None,
            started_at=None,
            completed_at=None,
        )
        engine.audit.list_for_execution.return_value = [
            SimpleNamespace(action="workflow_completed", audit_metadata={"workflow_id": "w"}, created_at=None)
        ]

        detail = await engine.get_execution(execution_id)

        assert detail.status == "completed"
        assert detail.audit[0].action == "workflow_completed"
        assert detail.audit[0].metadata == {"workflow_id": "w"}

    @pytest.mark.asyncio
    async def test_unknown_execution(self, mock_session, workflow, attachment, router):
        engine = build_engine(mock_session, workflow, attachment, router)
        engine.executions.get_by_id.return_value = None

        with pytest.raises(NotFoundError):
            await engine.get_execution(uuid.uuid4())
