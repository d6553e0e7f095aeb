from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status

from auth.auth import get_current_user_id
from settings.config import settings
from settings.deps import get_statement_service
from statements.models import (
    LinkAccountIn,
    StatementOut,
    StatementUrlUpload,
    StatementWithAccountOut,
    TransactionOut,
    UploadResponse,
)
from statements.statement_service import StatementService

router = APIRouter(prefix="/statements", tags=["statements"])


@router.post("/upload", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_statement(
    file: UploadFile = File(...),
    account_id: Optional[uuid.UUID] = Form(default=None),
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: StatementService = Depends(get_statement_service),
):
    if file is None or file.filename is None or file.filename.strip() == "":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file provided")
    # Read one byte past the limit so oversize uploads are rejected without buffering them whole
    content = await file.read(settings.MAX_UPLOAD_BYTES + 1)
    statement_id = await service.upload_file(
        user_id, file.filename, file.content_type, content, account_id=account_id
    )
    return UploadResponse(success=True, statement_id=statement_id)


@router.post("", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def register_statement(
    payload: StatementUrlUpload,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: StatementService = Depends(get_statement_service),
):
    statement_id = await service.register_url(user_id, payload)
    return UploadResponse(success=True, statement_id=statement_id)


@router.get("/recent", response_model=List[StatementWithAccountOut])
async def get_recent_statements(
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: StatementService = Depends(get_statement_service),
):
    return await service.get_recent(user_id)


@router.post("/link-account", response_model=StatementWithAccountOut)
async def link_statement_to_account(
    payload: LinkAccountIn,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: StatementService = Depends(get_statement_service),
):
    return await service.link_to_account(user_id, payload.statement_id, payload.account_id)


@router.get("/{statement_id}", response_model=StatementWithAccountOut)
async def get_statement(
    statement_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: StatementService = Depends(get_statement_service),
):
    return await service.get_by_id(user_id, statement_id)


@router.get("/{statement_id}/transactions", response_model=List[TransactionOut])
async def get_statement_transactions(
    statement_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: StatementService = Depends(get_statement_service),
):
    return await service.list_transactions(user_id, statement_id)


@router.post("/{statement_id}/process", response_model=StatementOut, status_code=status.HTTP_202_ACCEPTED)
async def process_statement(
    statement_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: StatementService = Depends(get_statement_service),
):
    return await service.reprocess(user_id, statement_id)
