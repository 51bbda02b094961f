from fastapi import APIRouter

from docflow.api.v1.endpoints import attachments, submissions, workflows

api_router = APIRouter()

api_router.include_router(attachments.router, prefix="/attachments", tags=["Attachments"])
api_router.include_router(workflows.router, prefix="/workflows", tags=["Workflows"])
api_router.include_router(submissions.router, prefix="/submissions", tags=["Submissions"])

__all__ = ["api_router"]
