from __future__ import annotations

import logging
import uuid
from typing import List, Optional, Protocol

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from accounts.account_repo import AccountRepo
from db.models import Statement, StatementStatus, Transaction
from settings.config import settings
from statements.models import StatementUrlUpload
from statements.pipeline import mime_type_from_filename
from statements.statement_repo import StatementRepo
from statements.statuses import InvalidStatusTransition, transition
from storage.s3_client import S3Client, StorageError, build_object_path

logger = logging.getLogger(__name__)

PROCESS_STATEMENT_JOB = "process_statement"


class StatementQueue(Protocol):
    async def submit(self, statement_id: uuid.UUID, file_type: Optional[str] = None, reprocess: bool = False) -> str: ...


class ArqStatementQueue:
    """Submits statement processing jobs to the arq worker over Redis."""

    def __init__(self, redis_settings: RedisSettings) -> None:
        self.redis_settings = redis_settings
        self._pool: ArqRedis | None = None

    async def _get_pool(self) -> ArqRedis:
        if self._pool is None:
            self._pool = await create_pool(self.redis_settings)
        return self._pool

    async def submit(self, statement_id: uuid.UUID, file_type: Optional[str] = None, reprocess: bool = False) -> str:
        pool = await self._get_pool()
        job_id = f"statement:{statement_id}:{uuid.uuid4().hex}"
        await pool.enqueue_job(PROCESS_STATEMENT_JOB, str(statement_id), file_type, reprocess, _job_id=job_id)
        logger.info(f"Queued statement {statement_id} as job {job_id}")
        return job_id

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.aclose()
            self._pool = None


class StatementService:
    def __init__(self, session: AsyncSession, queue: StatementQueue, storage: Optional[S3Client] = None) -> None:
        self.session = session
        self.queue = queue
        self.storage = storage
        self.repo = StatementRepo(session)
        self.accounts = AccountRepo(session)

    async def _require_own_account(self, account_id: Optional[uuid.UUID], user_id: uuid.UUID) -> None:
        if account_id is None:
            return
        if await self.accounts.get_for_user(account_id, user_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Bank account not found")

    def _check_upload(self, filename: Optional[str], content_type: Optional[str], size: int) -> None:
        if not filename or filename.strip() == "":
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file provided")
        if content_type not in settings.ALLOWED_MIME_TYPES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unsupported file type: {content_type}",
            )
        if size == 0:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded file is empty")
        if size > settings.MAX_UPLOAD_BYTES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"File exceeds the {settings.MAX_UPLOAD_BYTES} byte limit",
            )

    @staticmethod
    def _is_own_object(user_id: uuid.UUID, bucket: str, path: str) -> bool:
        # Uploads live at <userId>/<name> in the statements bucket
        if bucket != settings.STORAGE_BUCKET or not path.startswith(f"{user_id}/"):
            return False
        return ".." not in path.split("/")

    async def _create_and_submit(self, user_id: uuid.UUID, **fields) -> uuid.UUID:
        try:
            statement = await self.repo.create(user_id=user_id, **fields)
            await self.session.commit()
            await self.queue.submit(statement.id, fields.get("file_type"))
        except HTTPException:
            raise
        except Exception as e:
            logger.exception("Error uploading statement")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to upload statement"
            ) from e
        return statement.id

    async def upload_file(
        self,
        user_id: uuid.UUID,
        filename: Optional[str],
        content_type: Optional[str],
        data: bytes,
        account_id: Optional[uuid.UUID] = None,
    ) -> uuid.UUID:
        """Store the blob, record the statement as UPLOADED and queue processing."""
        self._check_upload(filename, content_type, len(data))
        await self._require_own_account(account_id, user_id)
        if self.storage is None:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Storage not configured")

        bucket = settings.STORAGE_BUCKET
        path = build_object_path(user_id, filename)  # type: ignore[arg-type]
        try:
            url = await self.storage.upload_bytes(bucket, path, data, content_type)  # type: ignore[arg-type]
        except StorageError as e:
            logger.error(f"Storage upload failed for user {user_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to upload statement"
            ) from e

        return await self._create_and_submit(
            user_id,
            filename=filename,
            file_type=content_type,
            storage_url=url,
            storage_bucket=bucket,
            storage_path=path,
            account_id=account_id,
        )

    async def register_url(self, user_id: uuid.UUID, payload: StatementUrlUpload) -> uuid.UUID:
        """Record a statement for a file the client already stored and queue processing."""
        await self._require_own_account(payload.account_id, user_id)
        file_url = str(payload.file_url)
        location = self.storage.parse_object_url(file_url) if self.storage is not None else None
        bucket, path = location if location else (None, None)
        if location is not None and not self._is_own_object(user_id, bucket, path):  # type: ignore[arg-type]
            logger.warning(f"User {user_id} registered a storage URL outside their uploads: {file_url}")
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
        return await self._create_and_submit(
            user_id,
            filename=payload.filename,
            file_type=payload.file_type,
            storage_url=file_url,
            storage_bucket=bucket,
            storage_path=path,
            account_id=payload.account_id,
        )

    async def get_recent(self, user_id: uuid.UUID, limit: int = 5) -> List[Statement]:
        return await self.repo.list_recent(user_id, limit=limit)

    async def get_by_id(self, user_id: uuid.UUID, statement_id: uuid.UUID) -> Statement:
        statement = await self.repo.get_for_user(statement_id, user_id, with_account=True)
        if statement is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Statement not found")
        return statement

    async def list_transactions(self, user_id: uuid.UUID, statement_id: uuid.UUID) -> List[Transaction]:
        statement = await self.repo.get_for_user(statement_id, user_id)
        if statement is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Statement not found")
        return await self.repo.list_transactions(statement.id)

    async def reprocess(self, user_id: uuid.UUID, statement_id: uuid.UUID) -> Statement:
        statement = await self.repo.get_for_user(statement_id, user_id, with_account=True)
        if statement is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Statement not found")
        if not statement.storage_url:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Statement has no storage URL")
        try:
            transition(statement.status, StatementStatus.PROCESSING, reprocess=True)
        except InvalidStatusTransition as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

        file_type = statement.file_type or mime_type_from_filename(statement.filename)
        try:
            await self.queue.submit(statement.id, file_type, reprocess=True)
        except Exception as e:
            logger.exception(f"Error queueing statement {statement.id} for processing")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to queue statement"
            ) from e
        return statement

    async def link_to_account(self, user_id: uuid.UUID, statement_id: uuid.UUID, account_id: uuid.UUID) -> Statement:
        statement = await self.repo.get_for_user(statement_id, user_id)
        if statement is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Statement not found")
        await self._require_own_account(account_id, user_id)
        statement.account_id = account_id
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            logger.exception(f"Error linking statement {statement_id} to account {account_id}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to link statement"
            ) from e
        return await self.get_by_id(user_id, statement_id)
