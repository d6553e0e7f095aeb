from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from db.models import AccountType, StatementStatus


class ApiModel(BaseModel):
    # camelCase on the wire, snake_case in Python
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class StatementUrlUpload(ApiModel):
    filename: str
    file_type: str
    file_url: AnyHttpUrl
    account_id: Optional[uuid.UUID] = None

    @field_validator("filename", "file_type")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("must not be empty")
        return v2


class UploadResponse(ApiModel):
    success: bool
    statement_id: uuid.UUID


class LinkAccountIn(ApiModel):
    statement_id: uuid.UUID
    account_id: uuid.UUID


class BankAccountOut(ApiModel):
    id: uuid.UUID
    name: str
    financial_institution: str
    account_type: AccountType
    last_four_digits: str
    balance: Optional[Decimal] = None


class StatementOut(ApiModel):
    id: uuid.UUID
    filename: str
    file_type: Optional[str] = None
    storage_url: Optional[str] = None
    status: StatementStatus
    error_message: Optional[str] = None
    account_id: Optional[uuid.UUID] = None
    upload_timestamp: datetime
    processed_timestamp: Optional[datetime] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None


class StatementWithAccountOut(StatementOut):
    account: Optional[BankAccountOut] = None


class TransactionOut(ApiModel):
    id: uuid.UUID
    description: str
    amount: Decimal
    transaction_date: Optional[datetime] = None
    raw_text: str
    needs_review: bool
