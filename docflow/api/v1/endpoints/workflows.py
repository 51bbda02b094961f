"""Workflow execution endpoints."""

from typing import Annotated, Union
from uuid import UUID

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from docflow.core.database import get_async_session as get_session
from docflow.core.exceptions import AppError, WorkflowExecutionError
from docflow.schemas.workflow import ExecutionDetail, WorkflowExecuteResponse, WorkflowTriggerRequest
from docflow.services.workflow.engine import WorkflowEngine
from docflow.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()


async def get_workflow_engine(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> WorkflowEngine:
    return WorkflowEngine(db_session)


@router.post(
    "/execute",
    response_model=WorkflowExecuteResponse,
    summary="Execute a document workflow",
    operation_id="execute_document_workflow",
)
async def execute_workflow(
    payload: WorkflowTriggerRequest,
    engine: Annotated[WorkflowEngine, Depends(get_workflow_engine)],
) -> Union[WorkflowExecuteResponse, JSONResponse]:
    """Run a workflow synchronously and return its execution id."""
    try:
        execution = await engine.execute(payload)
    except WorkflowExecutionError as e:
        LOGGER.error(f"Workflow execution failed: {e.message}", extra={"workflow_id": str(payload.workflow_id)})
        content = {"error": e.message}
        if e.execution_id:
            content["execution_id"] = str(e.execution_id)
        return JSONResponse(status_code=e.status_code, content=content)
    except AppError as e:
        LOGGER.warning(f"Workflow could not start: {e.message}", extra={"workflow_id": str(payload.workflow_id)})
        return JSONResponse(status_code=e.status_code, content={"error": e.message})

    return WorkflowExecuteResponse(success=True, execution_id=execution.id)


@router.get(
    "/executions/{execution_id}",
    response_model=ExecutionDetail,
    summary="Get a workflow execution",
    operation_id="get_workflow_execution",
)
async def get_execution(
    execution_id: UUID,
    engine: Annotated[WorkflowEngine, Depends(get_workflow_engine)],
) -> ExecutionDetail:
    return await engine.get_execution(execution_id)
