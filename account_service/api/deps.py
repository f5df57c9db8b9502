"""FastAPI dependencies: DB session, collaborators from app.state, current user from the access token."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from account_service.config import Settings
from account_service.models.user import User
from account_service.services.session_tokens import SessionTokenManager
from account_service.services.storage import ObjectStore
from account_service.services.user_store import UserStore


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    async with request.app.state.database.session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_manager(request: Request) -> SessionTokenManager:
    return request.app.state.token_manager


def get_object_store(request: Request) -> ObjectStore:
    return request.app.state.object_store


def get_user_store(session: Annotated[AsyncSession, Depends(get_db)]) -> UserStore:
    return UserStore(session)


def _access_token_from_request(request: Request) -> str | None:
    token = request.cookies.get("accessToken")
    if token:
        return token
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


async def get_current_user(
    request: Request,
    users: Annotated[UserStore, Depends(get_user_store)],
    tokens: Annotated[SessionTokenManager, Depends(get_token_manager)],
) -> User:
    return await tokens.authenticate(users, _access_token_from_request(request))
