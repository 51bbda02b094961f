"""Auto-submission against a real async session when a submission row already exists."""

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from docflow.core.database import Base
from docflow.database.models import (
    AttachmentParseResult,
    Business,
    Message,
    PipelineProfile,
    UtilitySubmission,
)
from docflow.schemas.submissions import AttachmentTrigger, SubmissionOutcome
from docflow.services.parsing.parse_router import Extraction
from docflow.services.submission.auto_submission_service import AutoSubmissionService


@pytest_asyncio.fixture
async def db_session():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def message(db_session):
    business = Business(name="Acme Energy")
    db_session.add(business)
    await db_session.flush()

    message = Message(business_id=business.id, channel="whatsapp")
    db_session.add_all([message, PipelineProfile(business_id=business.id, auto_submission_enabled=True)])
    await db_session.commit()
    return message


@pytest.mark.asyncio
async def test_existing_row_is_reused_and_remaining_entities_are_created(
    db_session, message, make_result, fetched_file, electricity_fields
):
    attachment_id = uuid.uuid4()
    existing = UtilitySubmission(
        business_id=message.business_id,
        attachment_id=attachment_id,
        message_id=message.id,
        document_type="electricity",
        phone="353871234567",
        mprn="10001234567",
        status="pending",
    )
    db_session.add(existing)
    await db_session.commit()
    existing_id = existing.id

    electricity_fields["bills"]["gas"] = [{"gas_details": {"meter_details": {"gprn": "1234567"}}}]
    router = MagicMock()
    router.extract = AsyncMock(
        return_value=Extraction(
            result=make_result("electricity", electricity_fields), file=fetched_file, router={}
        )
    )
    sender = MagicMock()
    sender.send = AsyncMock(
        side_effect=lambda row, file: SubmissionOutcome(type=row.document_type, success=True, submission_id=row.id)
    )
    service = AutoSubmissionService(db_session, router=router, sender=sender)

    outcome = await service.process(
        AttachmentTrigger(
            attachment_id=attachment_id,
            message_id=message.id,
            attachment_url="https://files.example.com/bill.png",
        )
    )

    assert outcome.success is True
    assert [(s.type, s.success) for s in outcome.submissions] == [("electricity", True), ("gas", True)]
    assert outcome.submissions[0].submission_id == existing_id
    assert sender.send.await_count == 2

    rows = (
        await db_session.execute(
            select(UtilitySubmission.document_type).where(UtilitySubmission.attachment_id == attachment_id)
        )
    ).scalars().all()
    assert sorted(rows) == ["electricity", "gas"]

    statuses = (
        await db_session.execute(
            select(AttachmentParseResult.parse_status).where(AttachmentParseResult.attachment_id == attachment_id)
        )
    ).scalars().all()
    assert statuses == ["success"]
