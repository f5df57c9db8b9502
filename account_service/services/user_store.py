"""Identity store: lookups and targeted updates of user records over an AsyncSession."""

import logging
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from account_service.core.errors import ConflictError
from account_service.models.user import User

logger = logging.getLogger(__name__)


class UserStore:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_id(self, user_id: int) -> User | None:
        r = await self.session.execute(select(User).where(User.id == user_id))
        return r.scalar_one_or_none()

    async def get_by_email(self, email: str) -> User | None:
        r = await self.session.execute(select(User).where(User.email == email))
        return r.scalar_one_or_none()

    async def find_by_username_or_email(self, username: str, email: str) -> User | None:
        r = await self.session.execute(
            select(User).where(or_(User.username == username, User.email == email)).limit(1)
        )
        return r.scalar_one_or_none()

    async def create(self, **fields: Any) -> User:
        user = User(**fields)
        self.session.add(user)
        try:
            await self.session.flush()
        except IntegrityError as e:
            logger.warning("Create user IntegrityError: %s", e.orig)
            await self.session.rollback()
            raise ConflictError("User with email or username already exists") from e
        await self.session.refresh(user)
        return user

    async def update_fields(self, user: User, **fields: Any) -> User:
        """Targeted update: only the given columns are written, without re-checking unrelated fields."""
        user_id = user.id
        for name, value in fields.items():
            setattr(user, name, value)
        try:
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            logger.warning("Update user %s IntegrityError: %s", user_id, e.orig)
            raise ConflictError("Email or username already in use") from e
        return user

    async def set_refresh_token(self, user: User, token: str) -> None:
        user.refresh_token = token
        try:
            await self.session.flush()
        except SQLAlchemyError:
            await self.session.rollback()
            raise

    async def unset_refresh_token(self, user: User) -> None:
        user.refresh_token = None
        await self.session.flush()
