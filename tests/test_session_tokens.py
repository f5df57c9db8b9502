"""Session token lifecycle: issue, validate, rotate, revoke against a real (SQLite) user store."""

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt
from sqlalchemy import text

from account_service.core.errors import InternalError, UnauthorizedError
from account_service.core.security import TokenCodec
from account_service.services.session_tokens import SessionTokenManager
from account_service.services.user_store import UserStore


@pytest.fixture
def manager() -> SessionTokenManager:
    return SessionTokenManager(
        access_codec=TokenCodec("access-secret", ttl_seconds=60),
        refresh_codec=TokenCodec("refresh-secret", ttl_seconds=600),
    )


@pytest.mark.asyncio
async def test_issue_records_refresh_token(manager, session, stored_user):
    users = UserStore(session)
    pair = await manager.issue(users, stored_user)
    reloaded = await users.get_by_id(stored_user.id)
    assert reloaded.refresh_token == pair.refresh_token
    assert manager.access_codec.decode(pair.access_token)["sub"] == str(stored_user.id)
    assert manager.access_codec.decode(pair.access_token)["username"] == "ana"


@pytest.mark.asyncio
async def test_second_issue_invalidates_first_refresh_token(manager, session, stored_user):
    users = UserStore(session)
    first = await manager.issue(users, stored_user)
    second = await manager.issue(users, stored_user)
    assert first.refresh_token != second.refresh_token
    with pytest.raises(UnauthorizedError) as exc:
        await manager.validate(users, first.refresh_token)
    assert exc.value.message == "Refresh Token Expired"
    assert (await manager.validate(users, second.refresh_token)).id == stored_user.id


@pytest.mark.asyncio
async def test_rotate_replaces_token_and_old_one_is_rejected(manager, session, stored_user):
    users = UserStore(session)
    pair = await manager.issue(users, stored_user)
    user, rotated = await manager.rotate(users, pair.refresh_token)
    assert user.id == stored_user.id
    assert rotated.refresh_token != pair.refresh_token
    assert user.refresh_token == rotated.refresh_token
    with pytest.raises(UnauthorizedError):
        await manager.rotate(users, pair.refresh_token)


@pytest.mark.asyncio
async def test_wrong_token_leaves_recorded_token_unchanged(manager, session, stored_user):
    users = UserStore(session)
    pair = await manager.issue(users, stored_user)
    other = manager.refresh_codec.sign({"sub": str(stored_user.id)})
    with pytest.raises(UnauthorizedError):
        await manager.validate(users, other)
    assert (await users.get_by_id(stored_user.id)).refresh_token == pair.refresh_token


@pytest.mark.asyncio
@pytest.mark.parametrize("presented", [None, "", "   "])
async def test_validate_missing_token(manager, session, presented):
    with pytest.raises(UnauthorizedError) as exc:
        await manager.validate(UserStore(session), presented)
    assert exc.value.status_code == 401
    assert exc.value.message == "Unauthorized request"


@pytest.mark.asyncio
async def test_validate_invalid_token_is_401_with_codec_detail(manager, session, stored_user):
    forged = TokenCodec("not-the-secret", ttl_seconds=600).sign({"sub": str(stored_user.id)})
    with pytest.raises(UnauthorizedError) as exc:
        await manager.validate(UserStore(session), forged)
    assert exc.value.status_code == 401
    assert exc.value.message == "Invalid Refresh Token"
    assert exc.value.errors == ["invalid signature"]


@pytest.mark.asyncio
async def test_validate_access_token_as_refresh_token_fails(manager, session, stored_user):
    pair = await manager.issue(UserStore(session), stored_user)
    with pytest.raises(UnauthorizedError):
        await manager.validate(UserStore(session), pair.access_token)


@pytest.mark.asyncio
async def test_validate_unknown_user(manager, session):
    token = manager.refresh_codec.sign({"sub": "999"})
    with pytest.raises(UnauthorizedError) as exc:
        await manager.validate(UserStore(session), token)
    assert exc.value.message == "Invalid Refresh Token"


@pytest.mark.asyncio
async def test_validate_after_revoke_fails(manager, session, stored_user):
    users = UserStore(session)
    pair = await manager.issue(users, stored_user)
    await manager.revoke(users, stored_user)
    assert (await users.get_by_id(stored_user.id)).refresh_token is None
    with pytest.raises(UnauthorizedError) as exc:
        await manager.validate(users, pair.refresh_token)
    assert exc.value.message == "Refresh Token Expired"


@pytest.mark.asyncio
async def test_revoke_is_idempotent(manager, session, stored_user):
    users = UserStore(session)
    await manager.revoke(users, stored_user)
    await manager.revoke(users, stored_user)
    assert stored_user.refresh_token is None


@pytest.mark.asyncio
async def test_issue_persistence_failure_is_internal_error(manager, session, stored_user):
    await session.execute(
        text(
            "CREATE TRIGGER block_refresh_token BEFORE UPDATE OF refresh_token ON users "
            "BEGIN SELECT RAISE(ABORT, 'refresh token writes disabled'); END"
        )
    )
    await session.commit()
    users = UserStore(session)
    with pytest.raises(InternalError) as exc:
        await manager.issue(users, stored_user)
    assert exc.value.status_code == 500
    assert exc.value.message == "Something went wrong while generating access and refresh token"
    assert (await users.get_by_id(stored_user.id)).refresh_token is None


@pytest.mark.asyncio
async def test_validate_expired_refresh_token(manager, session, stored_user):
    users = UserStore(session)
    await manager.issue(users, stored_user)
    expired = jwt.encode(
        {"sub": str(stored_user.id), "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
        "refresh-secret",
        algorithm="HS256",
    )
    with pytest.raises(UnauthorizedError) as exc:
        await manager.validate(users, expired)
    assert exc.value.message == "Invalid Refresh Token"
    assert exc.value.errors == ["jwt expired"]


@pytest.mark.asyncio
@pytest.mark.parametrize("padding", [("  ", ""), ("", "\n"), (" ", " ")])
async def test_validate_compares_presented_token_exactly(manager, session, stored_user, padding):
    users = UserStore(session)
    pair = await manager.issue(users, stored_user)
    before, after = padding
    with pytest.raises(UnauthorizedError):
        await manager.validate(users, f"{before}{pair.refresh_token}{after}")
    assert (await users.get_by_id(stored_user.id)).refresh_token == pair.refresh_token


@pytest.mark.asyncio
async def test_authenticate_resolves_access_token(manager, session, stored_user):
    users = UserStore(session)
    pair = await manager.issue(users, stored_user)
    assert (await manager.authenticate(users, pair.access_token)).id == stored_user.id
    with pytest.raises(UnauthorizedError):
        await manager.authenticate(users, pair.refresh_token)
    with pytest.raises(UnauthorizedError):
        await manager.authenticate(users, None)
