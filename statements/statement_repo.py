from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import delete, desc, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from db.models import Statement, StatementStatus, Transaction
from statements.parser import ParsedTransaction
from statements.statuses import transition

logger = logging.getLogger(__name__)


class StatementRepo:
    """Statement and parsed-transaction persistence. Callers own the commit."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        user_id: uuid.UUID,
        filename: str,
        file_type: Optional[str],
        storage_url: Optional[str],
        storage_bucket: Optional[str] = None,
        storage_path: Optional[str] = None,
        account_id: Optional[uuid.UUID] = None,
    ) -> Statement:
        statement = Statement(
            user_id=user_id,
            filename=filename,
            file_type=file_type,
            storage_url=storage_url,
            storage_bucket=storage_bucket,
            storage_path=storage_path,
            account_id=account_id,
            status=StatementStatus.UPLOADED,
        )
        self._session.add(statement)
        await self._session.flush()
        return statement

    async def get(self, statement_id: uuid.UUID) -> Optional[Statement]:
        return await self._session.get(Statement, statement_id)

    async def get_for_user(
        self, statement_id: uuid.UUID, user_id: uuid.UUID, with_account: bool = False
    ) -> Optional[Statement]:
        stmt = select(Statement).where(Statement.id == statement_id, Statement.user_id == user_id)
        if with_account:
            stmt = stmt.options(selectinload(Statement.account)).execution_options(populate_existing=True)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def list_recent(self, user_id: uuid.UUID, limit: int = 5) -> List[Statement]:
        stmt = (
            select(Statement)
            .where(Statement.user_id == user_id)
            .options(selectinload(Statement.account))
            .order_by(desc(Statement.upload_timestamp), desc(Statement.id))
            .limit(limit)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    def set_status(
        self,
        statement: Statement,
        target: StatementStatus,
        reprocess: bool = False,
        error_message: Optional[str] = None,
    ) -> None:
        statement.status = transition(statement.status, target, reprocess=reprocess)
        if target is StatementStatus.PROCESSING:
            statement.error_message = None
            statement.processed_timestamp = None
        else:
            statement.error_message = error_message
            statement.processed_timestamp = datetime.now(timezone.utc)
        logger.info(f"Statement {statement.id} -> {target.value}")

    async def replace_transactions(
        self, statement_id: uuid.UUID, parsed: Iterable[ParsedTransaction], needs_review: bool = True
    ) -> int:
        await self._session.execute(delete(Transaction).where(Transaction.statement_id == statement_id))
        rows = [
            Transaction(
                statement_id=statement_id,
                description=item.description,
                amount=item.amount,
                transaction_date=item.date,
                raw_text=item.raw_text or item.description,
                needs_review=needs_review,
            )
            for item in parsed
        ]
        self._session.add_all(rows)
        await self._session.flush()
        return len(rows)

    async def list_transactions(self, statement_id: uuid.UUID) -> List[Transaction]:
        stmt = select(Transaction).where(Transaction.statement_id == statement_id)
        return list((await self._session.execute(stmt)).scalars().all())
