"""
Access/refresh token lifecycle for an identity.

One refresh token is recorded per user; every issuance overwrites it (last write wins),
so rotating or logging in elsewhere invalidates the previous value.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from account_service.core.errors import InternalError, UnauthorizedError
from account_service.core.security import TokenCodec, TokenError
from account_service.models.user import User
from account_service.services.user_store import UserStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


def _subject_to_user_id(sub: str) -> int | None:
    try:
        return int(sub)
    except (TypeError, ValueError):
        return None


class SessionTokenManager:
    def __init__(self, access_codec: TokenCodec, refresh_codec: TokenCodec) -> None:
        self.access_codec = access_codec
        self.refresh_codec = refresh_codec

    async def issue(self, users: UserStore, user: User) -> TokenPair:
        """Mint a token pair for an authenticated user and record the refresh token."""
        user_id = user.id
        try:
            access = self.access_codec.sign(
                {"sub": str(user_id), "email": user.email, "username": user.username, "fullname": user.fullname}
            )
            refresh = self.refresh_codec.sign({"sub": str(user_id)})
            await users.set_refresh_token(user, refresh)
        except (SQLAlchemyError, TokenError, ValueError) as e:
            logger.exception("Token issuance failed for user %s: %s", user_id, e)
            raise InternalError("Something went wrong while generating access and refresh token") from e
        return TokenPair(access_token=access, refresh_token=refresh)

    async def validate(self, users: UserStore, presented: str | None) -> User:
        """Check a presented refresh token against the codec and the recorded value. Raises 401 on any failure."""
        if not presented or not presented.strip():
            raise UnauthorizedError("Unauthorized request")
        try:
            payload = self.refresh_codec.decode(presented)
        except TokenError as e:
            logger.info("Refresh token rejected: %s", type(e).__name__)
            raise UnauthorizedError("Invalid Refresh Token", errors=[str(e)]) from e
        user_id = _subject_to_user_id(payload["sub"])
        user = await users.get_by_id(user_id) if user_id is not None else None
        if user is None:
            logger.info("Refresh token rejected: unknown user %s", payload["sub"])
            raise UnauthorizedError("Invalid Refresh Token")
        stored = user.refresh_token
        if stored is None or not hmac.compare_digest(presented.encode("utf-8"), stored.encode("utf-8")):
            logger.info("Refresh token rejected: superseded for user %s", user.id)
            raise UnauthorizedError("Refresh Token Expired")
        return user

    async def rotate(self, users: UserStore, presented: str | None) -> tuple[User, TokenPair]:
        """Validate a refresh token, then replace it with a fresh pair."""
        user = await self.validate(users, presented)
        return user, await self.issue(users, user)

    async def revoke(self, users: UserStore, user: User) -> None:
        """Clear the recorded refresh token. No error if none is recorded."""
        await users.unset_refresh_token(user)

    async def authenticate(self, users: UserStore, access_token: str | None) -> User:
        """Resolve the user an access token was issued to."""
        if not access_token:
            raise UnauthorizedError("Unauthorized request")
        try:
            payload = self.access_codec.decode(access_token)
        except TokenError as e:
            raise UnauthorizedError("Invalid Access Token", errors=[str(e)]) from e
        user_id = _subject_to_user_id(payload["sub"])
        user = await users.get_by_id(user_id) if user_id is not None else None
        if user is None:
            raise UnauthorizedError("Invalid Access Token")
        return user
