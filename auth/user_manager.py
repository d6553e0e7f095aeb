import uuid
from typing import AsyncIterator, Optional
import logging

from fastapi import Depends, Request
from fastapi_users import BaseUserManager, UUIDIDMixin
from fastapi_users_db_sqlalchemy import SQLAlchemyUserDatabase

from settings.config import settings
from .sqlalchemy_db import get_user_db
from .tables import UserTable

logger = logging.getLogger(__name__)


class UserManager(UUIDIDMixin, BaseUserManager[UserTable, uuid.UUID]):
    reset_password_token_secret = settings.ENV_RESET_PASSWORD_TOKEN_SECRET
    verification_token_secret = settings.ENV_VERIFICATION_TOKEN_SECRET

    async def on_after_register(self, user: UserTable, request: Optional[Request] = None):
        logger.info(f"User {user.email} has registered.")


async def get_user_manager(user_db: SQLAlchemyUserDatabase = Depends(get_user_db)) -> AsyncIterator[UserManager]:
    yield UserManager(user_db)
