"""Auto-submission pipeline, downstream client and retry processor."""

from docflow.services.submission.auto_submission_service import AutoSubmissionService
from docflow.services.submission.retry_service import SubmissionRetryService
from docflow.services.submission.sender import SubmissionSender
from docflow.services.submission.submission_client import SubmissionClient

__all__ = [
    "AutoSubmissionService",
    "SubmissionClient",
    "SubmissionRetryService",
    "SubmissionSender",
]
