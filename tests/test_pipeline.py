import asyncio
import uuid
from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from conftest import USER_ID, FakeStorage, FakeVision
from db.models import BankAccount, Statement, StatementStatus, Transaction
from extraction.errors import ExtractionError
from extraction.text_extractor import TextExtractor
from statements.pipeline import StatementPipeline, mime_type_from_filename, statement_source
from statements.statement_repo import StatementRepo
from statements.statuses import InvalidStatusTransition

STATEMENT_TEXT = """CHASE
Account ending in 4321
Statement Period: 01/01/2024 - 01/31/2024
New Balance: $1,250.00
COFFEE SHOP $4.50
GROCERY STORE $52.10 $3.00
"""


@pytest.fixture
def storage():
    storage = FakeStorage()
    storage.objects[("statements", f"{USER_ID}/scan.png")] = b"png-bytes"
    return storage


@pytest_asyncio.fixture
async def statement_id(session_factory):
    async with session_factory() as session:
        statement = await StatementRepo(session).create(
            user_id=USER_ID,
            filename="scan.png",
            file_type="image/png",
            storage_url=f"http://storage.test/statements/{USER_ID}/scan.png",
            storage_bucket="statements",
            storage_path=f"{USER_ID}/scan.png",
        )
        await session.commit()
        return statement.id


def _pipeline(session_factory, storage, vision, **kwargs):
    return StatementPipeline(session_factory, TextExtractor(vision, storage=storage), **kwargs)


async def _load(session_factory, statement_id):
    async with session_factory() as session:
        statement = await session.get(Statement, statement_id)
        txns = (
            await session.execute(select(Transaction).where(Transaction.statement_id == statement_id))
        ).scalars().all()
        accounts = (await session.execute(select(BankAccount))).scalars().all()
        return statement, list(txns), list(accounts)


@pytest.mark.asyncio
async def test_successful_run_completes_statement(session_factory, storage, statement_id):
    vision = FakeVision(text=STATEMENT_TEXT)

    result = await _pipeline(session_factory, storage, vision).run(statement_id)

    assert result is StatementStatus.COMPLETED
    assert vision.calls == [b"png-bytes"]
    statement, txns, accounts = await _load(session_factory, statement_id)
    assert statement.status is StatementStatus.COMPLETED
    assert statement.error_message is None
    assert statement.processed_timestamp is not None
    assert statement.period_start.date() == date(2024, 1, 1)
    assert statement.period_end.date() == date(2024, 1, 31)

    assert sorted(t.amount for t in txns) == [Decimal("4.50"), Decimal("52.10")]
    assert all(t.needs_review for t in txns)

    assert len(accounts) == 1
    assert statement.account_id == accounts[0].id
    assert accounts[0].name == "Chase Account"
    assert accounts[0].last_four_digits == "4321"
    assert accounts[0].balance == Decimal("1250.00")


@pytest.mark.asyncio
async def test_ocr_failure_marks_statement_failed(session_factory, storage, statement_id):
    vision = FakeVision(error=ExtractionError("Vision API error: quota exceeded"))

    result = await _pipeline(session_factory, storage, vision).run(statement_id)

    assert result is StatementStatus.FAILED
    statement, txns, accounts = await _load(session_factory, statement_id)
    assert statement.status is StatementStatus.FAILED
    assert statement.error_message == "Vision API error: quota exceeded"
    assert statement.processed_timestamp is not None
    assert txns == []
    assert accounts == []


@pytest.mark.asyncio
async def test_missing_object_marks_statement_failed(session_factory, statement_id):
    result = await _pipeline(session_factory, FakeStorage(), FakeVision(text="x")).run(statement_id)

    assert result is StatementStatus.FAILED
    statement, _, _ = await _load(session_factory, statement_id)
    assert statement.error_message.startswith("File not found or not accessible")


@pytest.mark.asyncio
async def test_no_text_marks_statement_failed(session_factory, storage, statement_id):
    result = await _pipeline(session_factory, storage, FakeVision(text="")).run(statement_id)

    assert result is StatementStatus.FAILED
    statement, _, _ = await _load(session_factory, statement_id)
    assert statement.error_message == "No text could be extracted from the file"


@pytest.mark.asyncio
async def test_reprocess_replaces_transactions(session_factory, storage, statement_id):
    pipeline = _pipeline(session_factory, storage, FakeVision(text=STATEMENT_TEXT))
    await pipeline.run(statement_id)

    with pytest.raises(InvalidStatusTransition):
        await pipeline.run(statement_id)

    result = await pipeline.run(statement_id, reprocess=True)

    assert result is StatementStatus.COMPLETED
    _, txns, accounts = await _load(session_factory, statement_id)
    assert len(txns) == 2
    assert len(accounts) == 1


@pytest.mark.asyncio
async def test_failed_statement_can_be_reprocessed(session_factory, storage, statement_id):
    vision = FakeVision(error=RuntimeError("deadline exceeded"))
    pipeline = _pipeline(session_factory, storage, vision)
    assert await pipeline.run(statement_id) is StatementStatus.FAILED

    vision.error = None
    vision.text = STATEMENT_TEXT

    assert await pipeline.run(statement_id, reprocess=True) is StatementStatus.COMPLETED
    statement, _, _ = await _load(session_factory, statement_id)
    assert statement.error_message is None


@pytest.mark.asyncio
async def test_explicit_account_is_kept(session_factory, storage, statement_id):
    async with session_factory() as session:
        account = BankAccount(
            id=uuid.uuid4(),
            user_id=USER_ID,
            name="Joint",
            financial_institution="Ally Bank",
            last_four_digits="0001",
        )
        session.add(account)
        statement = await session.get(Statement, statement_id)
        statement.account_id = account.id
        await session.commit()
        account_id = account.id

    await _pipeline(session_factory, storage, FakeVision(text=STATEMENT_TEXT)).run(statement_id)

    statement, _, accounts = await _load(session_factory, statement_id)
    assert statement.account_id == account_id
    assert len(accounts) == 1


@pytest.mark.asyncio
async def test_stages_can_be_switched_off(session_factory, storage, statement_id):
    pipeline = _pipeline(
        session_factory, storage, FakeVision(text=STATEMENT_TEXT), parse_enabled=False, resolve_account_enabled=False
    )

    assert await pipeline.run(statement_id) is StatementStatus.COMPLETED
    statement, txns, accounts = await _load(session_factory, statement_id)
    assert statement.account_id is None
    assert txns == []
    assert accounts == []


@pytest.mark.asyncio
async def test_unknown_statement(session_factory, storage):
    with pytest.raises(LookupError):
        await _pipeline(session_factory, storage, FakeVision()).run(uuid.uuid4())


@pytest.mark.asyncio
async def test_transaction_count_matches_amount_lines(session_factory, storage, statement_id):
    await _pipeline(session_factory, storage, FakeVision(text=STATEMENT_TEXT)).run(statement_id)

    async with session_factory() as session:
        count = (
            await session.execute(
                select(func.count()).select_from(Transaction).where(Transaction.statement_id == statement_id)
            )
        ).scalar_one()
    assert count == 2


def test_mime_type_from_filename():
    assert mime_type_from_filename("March.PDF") == "application/pdf"
    assert mime_type_from_filename("scan.png") == "image/png"
    assert mime_type_from_filename("photo.jpeg") == "image/jpeg"
    assert mime_type_from_filename("no-extension") == "image/jpeg"


def test_statement_source_prefers_bucket_and_path():
    stored = Statement(filename="a.pdf", storage_url="https://x/a.pdf", storage_bucket="statements", storage_path="u/a.pdf")
    external = Statement(filename="b.pdf", storage_url="https://x/b.pdf")

    assert statement_source(stored) == "s3://statements/u/a.pdf"
    assert statement_source(external) == "https://x/b.pdf"


@pytest.mark.asyncio
async def test_cancelled_job_is_recorded_as_failed(session_factory, storage, statement_id):
    vision = FakeVision(error=asyncio.CancelledError())

    with pytest.raises(asyncio.CancelledError):
        await _pipeline(session_factory, storage, vision).run(statement_id)

    statement, txns, _ = await _load(session_factory, statement_id)
    assert statement.status is StatementStatus.FAILED
    assert statement.error_message == "Statement processing was cancelled"
    assert statement.processed_timestamp is not None
    assert txns == []
