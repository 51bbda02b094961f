"""Sends one stored submission downstream and records the outcome."""

from typing import Any, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from docflow.core.exceptions import AppError
from docflow.database.models import UtilitySubmission
from docflow.repositories.business_repository import PipelineProfileRepository
from docflow.repositories.submission_repository import SubmissionRepository
from docflow.schemas.parsing import FetchedFile
from docflow.schemas.submissions import SubmissionOutcome
from docflow.services.parsing.attachment_fetcher import AttachmentFetcher
from docflow.services.submission.submission_client import SubmissionClient
from docflow.services.webhooks.dispatcher import WebhookDispatcher
from docflow.utils.logging import get_logger

LOGGER = get_logger(__name__)

SUBMITTED_EVENT = "submission.submitted"
FAILED_EVENT = "submission.failed"


def submission_fields(row: UtilitySubmission) -> dict[str, Any]:
    """Integration fields for a row, with any operator override applied on top."""
    fields = {
        "phone": row.phone,
        "mprn": row.mprn,
        "mcc_type": row.mcc_type,
        "dg_type": row.dg_type,
        "gprn": row.gprn,
        "url": row.file_url,
    }
    if row.manual_payload_override:
        fields.update(row.manual_payload_override)
    return fields


class SubmissionSender:
    """Pushes a submission row to the integration and updates it to a terminal status."""

    def __init__(
        self,
        session: AsyncSession,
        client_factory: Callable[..., SubmissionClient] = SubmissionClient,
        fetcher: Optional[AttachmentFetcher] = None,
        dispatcher: Optional[WebhookDispatcher] = None,
    ):
        self.submissions = SubmissionRepository(session)
        self.profiles = PipelineProfileRepository(session)
        self.client_factory = client_factory
        self.fetcher = fetcher or AttachmentFetcher()
        self.dispatcher = dispatcher or WebhookDispatcher(session)

    async def _client_for(self, row: UtilitySubmission) -> SubmissionClient:
        profile = await self.profiles.get_for_business(row.business_id)
        if profile is None:
            return self.client_factory()
        return self.client_factory(
            base_url=profile.integration_base_url,
            api_key=profile.integration_api_key,
        )

    async def send(self, row: UtilitySubmission, file: Optional[FetchedFile] = None) -> SubmissionOutcome:
        """Submit ``row`` and persist the result.

        The source file is downloaded from ``row.file_url`` unless given.
        Errors become a failed outcome; nothing is raised.
        """
        document_type = row.document_type
        try:
            if file is None:
                file = await self.fetcher.fetch(row.file_url)
            client = await self._client_for(row)
            result = await client.submit(document_type, submission_fields(row), file)
        except AppError as e:
            LOGGER.error(
                f"Could not submit {document_type}: {e.message}",
                extra={"submission_id": str(row.id)},
            )
            await self.submissions.mark_failed(row.id, e.message)
            await self._notify(row, FAILED_EVENT, None)
            return SubmissionOutcome(type=document_type, success=False, submission_id=row.id, error=e.message)

        if result.success:
            await self.submissions.mark_submitted(row.id, result.http_status, result.response)
            await self._notify(row, SUBMITTED_EVENT, result.http_status)
            return SubmissionOutcome(
                type=document_type,
                success=True,
                submission_id=row.id,
                data=result.response,
            )

        await self.submissions.mark_failed(
            row.id,
            result.error or "Submission failed",
            http_status=result.http_status,
            response=result.response or {"error": result.error},
        )
        await self._notify(row, FAILED_EVENT, result.http_status)
        return SubmissionOutcome(
            type=document_type,
            success=False,
            submission_id=row.id,
            error=result.error,
        )

    async def _notify(self, row: UtilitySubmission, event: str, http_status: Optional[int]) -> None:
        await self.dispatcher.dispatch(
            row.business_id,
            event,
            {
                "submission_id": str(row.id),
                "attachment_id": str(row.attachment_id),
                "document_type": row.document_type,
                "status": "submitted" if event == SUBMITTED_EVENT else "failed",
                "http_status": http_status,
            },
        )
