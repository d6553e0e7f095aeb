from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from accounts.account_repo import AccountRepo
from db.models import Statement, StatementStatus
from extraction.errors import ExtractionError
from extraction.text_extractor import TextExtractor, process_uploaded_file
from settings.config import settings
from statements.account_info import extract_account_info, extract_statement_period
from statements.parser import parse_transactions
from statements.statement_repo import StatementRepo

logger = logging.getLogger(__name__)


def mime_type_from_filename(filename: str) -> str:
    lowered = (filename or "").lower()
    if lowered.endswith(".pdf"):
        return "application/pdf"
    if lowered.endswith(".png"):
        return "image/png"
    return "image/jpeg"


def statement_source(statement: Statement) -> Optional[str]:
    """Where the extractor should read the file from."""
    if statement.storage_bucket and statement.storage_path:
        return f"s3://{statement.storage_bucket}/{statement.storage_path}"
    return statement.storage_url


class StatementPipeline:
    """
    Drives one statement through extraction, parsing and account resolution.

    Every status change is committed on its own so pollers see PROCESSING
    while work is in flight. Any failure after PROCESSING ends the attempt
    in FAILED with the error text; nothing is retried.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        extractor: TextExtractor,
        parse_enabled: bool = settings.PIPELINE_PARSE_TRANSACTIONS,
        resolve_account_enabled: bool = settings.PIPELINE_RESOLVE_ACCOUNT,
    ) -> None:
        self.session_factory = session_factory
        self.extractor = extractor
        self.parse_enabled = parse_enabled
        self.resolve_account_enabled = resolve_account_enabled

    async def run(
        self, statement_id: uuid.UUID, file_type: Optional[str] = None, reprocess: bool = False
    ) -> StatementStatus:
        async with self.session_factory() as session:
            repo = StatementRepo(session)
            statement = await repo.get(statement_id)
            if statement is None:
                raise LookupError(f"Statement {statement_id} not found")

            repo.set_status(statement, StatementStatus.PROCESSING, reprocess=reprocess)
            await session.commit()

            try:
                await self._process(session, repo, statement, file_type)
            except asyncio.CancelledError:
                await self._fail(session, statement_id, "Statement processing was cancelled")
                raise
            except Exception as e:
                logger.exception(f"Error processing statement {statement_id}")
                await self._fail(session, statement_id, str(e) or e.__class__.__name__)
                return StatementStatus.FAILED

            logger.info(f"Statement {statement_id} processed successfully")
            return StatementStatus.COMPLETED

    async def _process(
        self, session: AsyncSession, repo: StatementRepo, statement: Statement, file_type: Optional[str]
    ) -> None:
        source = statement_source(statement)
        if not source:
            raise ExtractionError("Statement has no storage URL")
        mime_type = file_type or statement.file_type or mime_type_from_filename(statement.filename)

        result = await process_uploaded_file(self.extractor, source, mime_type)
        if not result.success or not result.text:
            raise ExtractionError(result.error or "Failed to process statement text")
        text = result.text

        account_info = extract_account_info(text)
        period = extract_statement_period(text)

        if self.parse_enabled:
            count = await repo.replace_transactions(statement.id, parse_transactions(text))
            logger.info(f"Stored {count} transactions for statement {statement.id}")

        account_id = statement.account_id
        if self.resolve_account_enabled:
            account_id = await AccountRepo(session).resolve(statement.user_id, account_info, statement.account_id)

        statement.account_id = account_id
        statement.period_start = period.start
        statement.period_end = period.end
        repo.set_status(statement, StatementStatus.COMPLETED)
        await session.commit()

    async def _fail(self, session: AsyncSession, statement_id: uuid.UUID, message: str) -> None:
        await session.rollback()
        repo = StatementRepo(session)
        statement = await repo.get(statement_id)
        if statement is None:
            return
        repo.set_status(statement, StatementStatus.FAILED, error_message=message)
        await session.commit()
