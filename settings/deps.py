from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from db.postgres import get_async_session
from statements.statement_service import StatementQueue, StatementService
from storage.s3_client import S3Client


def get_storage(request: Request) -> S3Client | None:
	"""
	Storage client created at startup. None when storage credentials are not
	configured; upload routes then answer 500 instead of failing at import.
	"""
	return getattr(request.app.state, "storage", None)


def get_statement_queue(request: Request) -> StatementQueue:
	queue = getattr(request.app.state, "statement_queue", None)
	if queue is None:
		raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Processing queue not available")
	return queue


def get_statement_service(
	session: AsyncSession = Depends(get_async_session),
	storage: S3Client | None = Depends(get_storage),
	queue: StatementQueue = Depends(get_statement_queue),
) -> StatementService:
	return StatementService(session, queue, storage)
