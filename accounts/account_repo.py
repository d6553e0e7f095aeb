from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import AccountType, BankAccount
from statements.account_info import AccountInfo

logger = logging.getLogger(__name__)


class AccountRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_for_user(self, account_id: uuid.UUID, user_id: uuid.UUID) -> Optional[BankAccount]:
        stmt = select(BankAccount).where(BankAccount.id == account_id, BankAccount.user_id == user_id)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def find_match(self, user_id: uuid.UUID, institution: str, last_four: str) -> Optional[BankAccount]:
        # Exact, case-sensitive match on institution and last four
        stmt = select(BankAccount).where(
            BankAccount.user_id == user_id,
            BankAccount.financial_institution == institution,
            BankAccount.last_four_digits == last_four,
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def resolve(
        self,
        user_id: uuid.UUID,
        info: AccountInfo,
        explicit_account_id: Optional[uuid.UUID] = None,
    ) -> Optional[uuid.UUID]:
        """
        Pick the bank account a statement belongs to.

        - An explicit account id wins and is returned as-is (ownership is
          checked by the callers that accept it from clients).
        - With institution and last four digits, reuse the user's matching
          account (refreshing its balance when one was extracted) or create it.
        - Otherwise there is no account.
        """
        if explicit_account_id is not None:
            return explicit_account_id

        institution = info.financial_institution
        last_four = info.last_four_digits
        if not institution or not last_four:
            return None

        existing = await self.find_match(user_id, institution, last_four)
        if existing is not None:
            self._apply_balance(existing, info)
            return existing.id

        account = BankAccount(
            user_id=user_id,
            name=info.account_name or f"{institution} Account",
            financial_institution=institution,
            account_type=info.account_type or AccountType.OTHER,
            last_four_digits=last_four,
            balance=info.balance,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(account)
        except IntegrityError:
            # A concurrent statement created the same account first
            logger.info(f"Account for {institution} ****{last_four} created concurrently; reusing it")
            existing = await self.find_match(user_id, institution, last_four)
            if existing is None:
                raise
            self._apply_balance(existing, info)
            return existing.id

        logger.info(f"Created bank account {account.id} for {institution} ****{last_four}")
        return account.id

    @staticmethod
    def _apply_balance(account: BankAccount, info: AccountInfo) -> None:
        if info.balance is not None:
            account.balance = info.balance
