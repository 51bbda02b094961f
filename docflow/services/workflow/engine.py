"""Workflow engine.

Walks a stored workflow graph one step at a time. Steps reference their
successors by id; ``condition`` steps pick their successor from the
predicate result, every other step follows ``next_on_success``. A step that
raises continues at ``next_on_failure`` when one is configured, otherwise the
execution is marked failed and the error is raised to the caller.
"""

import asyncio
import uuid
from typing import Any, Awaitable, Callable, Optional

import httpx
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from docflow.core.config import settings
from docflow.core.exceptions import (
    NotFoundError,
    StepFailedError,
    WorkflowConfigError,
    WorkflowExecutionError,
)
from docflow.database.models import DocumentWorkflow, MessageAttachment, WorkflowExecution, WorkflowStep
from docflow.repositories.business_repository import AttachmentRepository, DocumentTypeRepository
from docflow.repositories.workflow_repository import (
    WorkflowAuditRepository,
    WorkflowExecutionRepository,
    WorkflowRepository,
)
from docflow.schemas.classification import FileMeta
from docflow.schemas.workflow import (
    ApiActionStep,
    AuditEntry,
    ConditionStep,
    DelayStep,
    DocumentTypeStep,
    EndStep,
    ExecutionDetail,
    ParseStep,
    StepDefinition,
    TransformStep,
    WorkflowTriggerRequest,
)
from docflow.services.base_service import BaseService
from docflow.services.classification.document_type_classifier import DocumentTypeClassifier
from docflow.services.parsing.parse_router import ParseRouter, ProviderChoice
from docflow.services.webhooks.dispatcher import WebhookDispatcher
from docflow.services.workflow.conditions import evaluate_conditions
from docflow.services.workflow.context import ExecutionContext
from docflow.services.workflow.templating import render, render_string
from docflow.services.workflow.transforms import OUTPUT_ROOT, apply_mappings
from docflow.utils.logging import get_logger
from docflow.utils.retry import RetryConfig, retry_async

LOGGER = get_logger(__name__)

COMPLETED_EVENT = "workflow.completed"
FAILED_EVENT = "workflow.failed"

_STEP_ADAPTER = TypeAdapter(StepDefinition)


def _as_uuid(value: Any) -> Optional[uuid.UUID]:
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _str_or_none(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def load_steps(rows: list[WorkflowStep]) -> list[StepDefinition]:
    """Validate stored steps into typed definitions, ordered by position.

    Raises:
        WorkflowConfigError: If a step has an unknown type, an invalid config,
            or references a successor that is not part of the workflow
    """
    steps = []
    for row in sorted(rows, key=lambda r: r.step_order):
        raw = {
            "id": str(row.id),
            "type": row.step_type,
            "order": row.step_order,
            "config": row.step_config or {},
            "next_on_success": _str_or_none(row.next_step_on_success),
            "next_on_failure": _str_or_none(row.next_step_on_failure),
        }
        try:
            steps.append(_STEP_ADAPTER.validate_python(raw))
        except PydanticValidationError as e:
            raise WorkflowConfigError(
                f"Invalid configuration for step {row.id} ({row.step_type}): {e}",
                original_error=e,
            )

    known = {step.id for step in steps}
    for step in steps:
        for target in (step.next_on_success, step.next_on_failure):
            if target is not None and target not in known:
                raise WorkflowConfigError(f"Step {step.id} references unknown step {target}")
    return steps


class WorkflowEngine(BaseService):
    """Executes document workflows and records their lifecycle."""

    def __init__(
        self,
        session: AsyncSession,
        router: Optional[ParseRouter] = None,
        type_classifier: Optional[DocumentTypeClassifier] = None,
        dispatcher: Optional[WebhookDispatcher] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        max_steps: Optional[int] = None,
    ):
        super().__init__()
        self.router = router or ParseRouter(session)
        self.type_classifier = type_classifier or DocumentTypeClassifier()
        self.dispatcher = dispatcher or WebhookDispatcher(session)
        self.transport = transport
        self.sleep = sleep
        self.max_steps = max_steps or settings.workflow.max_steps

        self.workflows = WorkflowRepository(session)
        self.executions = WorkflowExecutionRepository(session)
        self.audit = WorkflowAuditRepository(session)
        self.attachments = AttachmentRepository(session)
        self.document_types = DocumentTypeRepository(session)

    async def execute_workflow(
        self,
        workflow_id: uuid.UUID,
        attachment_id: Optional[uuid.UUID] = None,
        message_id: Optional[uuid.UUID] = None,
        trigger_type: Optional[str] = "manual",
    ) -> WorkflowExecution:
        """Run a workflow to completion.

        Returns:
            The completed execution row

        Raises:
            NotFoundError: If the workflow does not exist
            WorkflowConfigError: If the stored steps are invalid (nothing is executed)
            WorkflowExecutionError: If a step fails without a failure path or
                the step ceiling is reached; the execution is marked failed
        """
        workflow = await self.workflows.get_by_id(workflow_id)
        if workflow is None:
            raise NotFoundError(f"Workflow {workflow_id} not found")

        steps = load_steps(list(workflow.steps))
        if not steps:
            raise WorkflowConfigError(f"Workflow {workflow_id} has no steps")

        context = ExecutionContext.initial(_str_or_none(attachment_id), _str_or_none(message_id))
        execution = await self.executions.start(
            workflow_id=workflow.id,
            business_id=workflow.business_id,
            attachment_id=attachment_id,
            message_id=message_id,
            trigger_type=trigger_type,
            context=context.snapshot(),
        )
        log_extra = {"workflow_id": str(workflow.id), "execution_id": str(execution.id)}
        LOGGER.info(f"Starting workflow {workflow.name}", extra=log_extra)

        try:
            await self._walk(workflow, execution, steps, context)
        except WorkflowExecutionError as e:
            await self._fail(workflow, execution, context, e)
            raise
        except Exception as e:
            wrapped = WorkflowExecutionError(
                f"Workflow execution failed: {e}",
                execution_id=execution.id,
                original_error=e,
            )
            await self._fail(workflow, execution, context, wrapped)
            raise wrapped

        await self._complete(workflow, execution, context)
        return execution

    async def _walk(
        self,
        workflow: DocumentWorkflow,
        execution: WorkflowExecution,
        steps: list[StepDefinition],
        context: ExecutionContext,
    ) -> None:
        by_id = {step.id: step for step in steps}
        current: Optional[StepDefinition] = steps[0]
        executed = 0

        while current is not None:
            executed += 1
            if executed > self.max_steps:
                raise WorkflowExecutionError(
                    f"Step limit of {self.max_steps} exceeded",
                    execution_id=execution.id,
                    step_id=current.id,
                )

            await self.executions.record_progress(execution.id, _as_uuid(current.id), context.snapshot())
            step_extra = {
                "execution_id": str(execution.id),
                "step_id": current.id,
                "step_type": current.type,
            }

            try:
                next_id = await self.run_step(current, context, workflow)
            except Exception as e:
                if current.next_on_failure is None:
                    LOGGER.error(f"Step {current.type} failed with no failure path: {e}", extra=step_extra)
                    raise WorkflowExecutionError(
                        f"Step {current.id} ({current.type}) failed: {e}",
                        execution_id=execution.id,
                        step_id=current.id,
                        original_error=e,
                    )
                LOGGER.warning(
                    f"Step {current.type} failed, following failure path: {e}",
                    extra={**step_extra, "next_step_id": current.next_on_failure},
                )
                context.set("last_error", {"step_id": current.id, "step_type": current.type, "message": str(e)})
                next_id = current.next_on_failure

            current = by_id.get(next_id) if next_id else None

    async def run_step(
        self,
        step: StepDefinition,
        context: ExecutionContext,
        workflow: DocumentWorkflow,
    ) -> Optional[str]:
        """Execute one step and return the id of the next one (None ends the run)."""
        if isinstance(step, ParseStep):
            await self._parse(step, context, workflow)
        elif isinstance(step, DocumentTypeStep):
            await self._document_type(step, context, workflow)
        elif isinstance(step, ConditionStep):
            result = evaluate_conditions(context, step.config)
            context.set("condition_result", result)
            return step.next_on_success if result else step.next_on_failure
        elif isinstance(step, TransformStep):
            transformed = apply_mappings(context, step.config.mapping)
            existing = context.get(OUTPUT_ROOT)
            context.set(OUTPUT_ROOT, {**(existing if isinstance(existing, dict) else {}), **transformed})
        elif isinstance(step, ApiActionStep):
            await self._api_action(step, context)
        elif isinstance(step, DelayStep):
            seconds = step.config.seconds
            LOGGER.info(f"Delaying for {seconds}s", extra={"step_id": step.id})
            await self.sleep(seconds)
        elif isinstance(step, EndStep):
            return None
        return step.next_on_success

    async def _attachment(self, context: ExecutionContext) -> MessageAttachment:
        attachment_id = _as_uuid(context.get("attachment_id"))
        if attachment_id is None:
            raise StepFailedError("Execution has no attachment")
        attachment = await self.attachments.get_by_id(attachment_id)
        if attachment is None:
            raise StepFailedError(f"Attachment {attachment_id} not found")
        return attachment

    async def _route(self, context: ExecutionContext, workflow: DocumentWorkflow):
        attachment = await self._attachment(context)
        outcome = await self.router.route(
            attachment.file_url,
            attachment_id=attachment.id,
            message_id=_as_uuid(context.get("message_id")),
            business_id=workflow.business_id,
        )
        if not outcome.success:
            raise StepFailedError(outcome.error or "Parse failed")
        return outcome

    async def _parse(self, step: ParseStep, context: ExecutionContext, workflow: DocumentWorkflow) -> None:
        config = step.config
        if config.extraction_schema or config.provider:
            # Custom extraction is not the attachment's canonical parse, so it stays out of the ledger.
            attachment = await self._attachment(context)
            providers = [ProviderChoice(config.provider, config.model)] if config.provider else None
            extraction = await self.router.extract(
                attachment.file_url,
                business_id=workflow.business_id,
                extraction_schema=config.extraction_schema,
                providers=providers,
                file_name=attachment.file_name,
            )
            fields, confidence, classification = (
                extraction.result.fields,
                extraction.result.confidence,
                extraction.result.classification,
            )
        else:
            outcome = await self._route(context, workflow)
            fields, confidence, classification = outcome.fields, outcome.confidence, outcome.classification

        context.set("parsed_data", fields)
        context.set("confidence_score", confidence)
        context.set("classification", classification)

    async def _document_type(
        self,
        step: DocumentTypeStep,
        context: ExecutionContext,
        workflow: DocumentWorkflow,
    ) -> None:
        config = step.config
        catalog = await self.document_types.get_active(workflow.business_id, config.document_type_ids or None)

        if not catalog:
            LOGGER.info(
                "No document types configured, using built-in classification",
                extra={"step_id": step.id, "business_id": str(workflow.business_id)},
            )
            outcome = await self._route(context, workflow)
            if outcome.confidence < config.min_confidence:
                raise StepFailedError(
                    f"Confidence {outcome.confidence:.2f} below threshold {config.min_confidence:.2f}",
                    step_id=step.id,
                )
            if not context.get("parsed_data"):
                context.set("parsed_data", outcome.fields)
            context.update({
                "document_type": outcome.classification,
                "document_type_id": None,
                "confidence_score": outcome.confidence,
            })
            return

        attachment = await self._attachment(context)
        fetched = await self.router.fetcher.fetch(attachment.file_url, file_name=attachment.file_name)
        match = await self.type_classifier.classify(
            fetched.content,
            FileMeta(file_name=fetched.file_name, content_type=fetched.content_type, size_bytes=fetched.size_bytes),
            catalog,
            min_confidence=config.min_confidence,
            provider=config.provider,
            model=config.model,
        )
        context.update({
            "document_type": match.document_type,
            "document_type_id": str(match.document_type_id),
            "confidence_score": match.confidence,
        })

    async def _api_action(self, step: ApiActionStep, context: ExecutionContext) -> None:
        config = step.config
        url = render_string(config.endpoint_url, context)
        headers = {"Content-Type": "application/json"}
        headers.update({key: render_string(value, context) for key, value in config.headers.items()})

        request_kwargs: dict[str, Any] = {}
        if config.body_template is not None and config.http_method != "GET":
            body = render(config.body_template, context)
            if isinstance(body, str):
                request_kwargs["content"] = body
            else:
                request_kwargs["json"] = body

        async def attempt() -> httpx.Response:
            async with httpx.AsyncClient(timeout=settings.workflow.api_timeout, transport=self.transport) as client:
                response = await client.request(config.http_method, url, headers=headers, **request_kwargs)
            if not response.is_success:
                raise StepFailedError(
                    f"API call to {url} failed with status {response.status_code}",
                    step_id=step.id,
                )
            return response

        retry_config = RetryConfig(
            max_attempts=config.max_retries or settings.workflow.api_max_attempts,
            base_delay_seconds=(
                config.backoff_seconds if config.backoff_seconds is not None
                else settings.workflow.api_backoff_seconds
            ),
            retryable_exceptions=(StepFailedError, httpx.HTTPError),
            sleep=self.sleep,
        )
        response = await retry_async(attempt, retry_config)

        try:
            data = response.json()
        except ValueError:
            data = {}
        context.set("api_response", data)
        context.set("api_status", response.status_code)

    async def _complete(
        self,
        workflow: DocumentWorkflow,
        execution: WorkflowExecution,
        context: ExecutionContext,
    ) -> None:
        await self.executions.finish(execution.id, "completed", context.snapshot())
        await self.audit.append(execution.id, "workflow_completed", {"workflow_id": str(workflow.id)})
        LOGGER.info(
            f"Workflow {workflow.name} completed",
            extra={"workflow_id": str(workflow.id), "execution_id": str(execution.id)},
        )
        await self.dispatcher.dispatch(
            workflow.business_id,
            COMPLETED_EVENT,
            {"workflow_id": str(workflow.id), "execution_id": str(execution.id), "status": "completed"},
        )

    async def _fail(
        self,
        workflow: DocumentWorkflow,
        execution: WorkflowExecution,
        context: ExecutionContext,
        error: WorkflowExecutionError,
    ) -> None:
        """Record the failure. Errors while recording are logged so the step error still reaches the caller."""
        LOGGER.error(
            f"Workflow {workflow.name} failed: {error.message}",
            extra={"workflow_id": str(workflow.id), "execution_id": str(execution.id)},
        )
        try:
            await self.executions.finish(execution.id, "failed", context.snapshot(), error_message=error.message)
            await self.audit.append(
                execution.id,
                "workflow_failed",
                {"workflow_id": str(workflow.id), "step_id": error.step_id, "error": error.message},
            )
        except Exception:
            LOGGER.error(
                "Could not record workflow failure",
                exc_info=True,
                extra={"workflow_id": str(workflow.id), "execution_id": str(execution.id)},
            )
        await self.dispatcher.dispatch(
            workflow.business_id,
            FAILED_EVENT,
            {
                "workflow_id": str(workflow.id),
                "execution_id": str(execution.id),
                "status": "failed",
                "error": error.message,
            },
        )

    async def get_execution(self, execution_id: uuid.UUID) -> ExecutionDetail:
        """Execution status, context snapshot, and audit trail."""
        execution = await self.executions.get_by_id(execution_id)
        if execution is None:
            raise NotFoundError(f"Execution {execution_id} not found")
        entries = await self.audit.list_for_execution(execution_id)
        return ExecutionDetail(
            id=execution.id,
            workflow_id=execution.workflow_id,
            status=execution.status,
            attachment_id=execution.attachment_id,
            message_id=execution.message_id,
            current_step_id=execution.current_step_id,
            context=execution.execution_data or {},
            error_message=execution.error_message,
            started_at=execution.started_at,
            completed_at=execution.completed_at,
            audit=[
                AuditEntry(action=entry.action, metadata=entry.audit_metadata or {}, created_at=entry.created_at)
                for entry in entries
            ],
        )

    async def run(self, request: WorkflowTriggerRequest) -> WorkflowExecution:
        return await self.execute_workflow(
            request.workflow_id,
            attachment_id=request.attachment_id,
            message_id=request.message_id,
            trigger_type=request.trigger_type,
        )
