"""Unit tests for SubmissionSender."""

import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from docflow.core.exceptions import FileTooLargeError
from docflow.schemas.submissions import IntegrationResult
from docflow.services.submission.sender import FAILED_EVENT, SUBMITTED_EVENT, SubmissionSender, submission_fields


@pytest.fixture
def submission_row(make_row):
    return make_row(
        business_id=uuid.uuid4(),
        attachment_id=uuid.uuid4(),
        document_type="gas",
        phone="353871234567",
        mprn=None,
        mcc_type=None,
        dg_type=None,
        gprn="1234567",
        file_url="https://files.example.com/bill.png",
        manual_payload_override=None,
    )


@pytest.fixture
def client():
    mock = MagicMock()
    mock.submit = AsyncMock()
    return mock


@pytest.fixture
def sender(mock_session, client, fetched_file):
    fetcher = MagicMock()
    fetcher.fetch = AsyncMock(return_value=fetched_file)
    instance = SubmissionSender(
        mock_session,
        client_factory=MagicMock(return_value=client),
        fetcher=fetcher,
        dispatcher=AsyncMock(),
    )
    instance.submissions = AsyncMock()
    instance.profiles = AsyncMock()
    instance.profiles.get_for_business.return_value = None
    return instance


class TestSubmissionFields:
    def test_override_is_applied_on_top(self, submission_row):
        submission_row.manual_payload_override = {"gprn": "7654321"}

        fields = submission_fields(submission_row)

        assert fields["gprn"] == "7654321"
        assert fields["phone"] == "353871234567"
        assert fields["url"] == "https://files.example.com/bill.png"


class TestSend:
    @pytest.mark.asyncio
    async def test_success_marks_submitted_and_notifies(self, sender, client, submission_row, fetched_file):
        client.submit.return_value = IntegrationResult(success=True, http_status=200, response={"id": "x"})

        outcome = await sender.send(submission_row)

        assert outcome.success is True
        assert outcome.data == {"id": "x"}
        sender.fetcher.fetch.assert_awaited_once_with("https://files.example.com/bill.png")
        assert client.submit.await_args.args[0] == "gas"
        assert client.submit.await_args.args[2] is fetched_file
        sender.submissions.mark_submitted.assert_awaited_once_with(submission_row.id, 200, {"id": "x"})
        event = sender.dispatcher.dispatch.await_args.args
        assert event[0] == submission_row.business_id
        assert event[1] == SUBMITTED_EVENT
        assert event[2]["status"] == "submitted"

    @pytest.mark.asyncio
    async def test_rejection_marks_failed(self, sender, client, submission_row, fetched_file):
        client.submit.return_value = IntegrationResult(
            success=False, http_status=422, response={"message": "bad gprn"}, error="bad gprn"
        )

        outcome = await sender.send(submission_row, fetched_file)

        assert outcome.success is False
        assert outcome.error == "bad gprn"
        sender.fetcher.fetch.assert_not_awaited()
        sender.submissions.mark_failed.assert_awaited_once_with(
            submission_row.id, "bad gprn", http_status=422, response={"message": "bad gprn"}
        )
        assert sender.dispatcher.dispatch.await_args.args[1] == FAILED_EVENT

    @pytest.mark.asyncio
    async def test_download_error_is_reported(self, sender, client, submission_row):
        sender.fetcher.fetch.side_effect = FileTooLargeError("File size 30.0MB exceeds the 20MB limit")

        outcome = await sender.send(submission_row)

        assert outcome.success is False
        assert "exceeds" in outcome.error
        client.submit.assert_not_awaited()
        sender.submissions.mark_failed.assert_awaited_once_with(
            submission_row.id, "File size 30.0MB exceeds the 20MB limit"
        )

    @pytest.mark.asyncio
    async def test_profile_credentials_are_used(self, sender, client, submission_row, fetched_file):
        sender.profiles.get_for_business.return_value = SimpleNamespace(
            integration_base_url="https://tenant.example.com", integration_api_key="tenant-key"
        )
        client.submit.return_value = IntegrationResult(success=True, http_status=200, response={})

        await sender.send(submission_row, fetched_file)

        sender.client_factory.assert_called_once_with(base_url="https://tenant.example.com", api_key="tenant-key")
