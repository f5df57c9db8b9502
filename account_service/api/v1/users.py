"""Users: register, login, logout, refresh, password change, profile and profile-image updates."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile
from starlette.concurrency import run_in_threadpool

from account_service.api.deps import (
    get_current_user,
    get_object_store,
    get_settings,
    get_token_manager,
    get_user_store,
)
from account_service.config import Settings
from account_service.core.errors import BadRequestError, ConflictError, NotFoundError, UnauthorizedError
from account_service.core.security import hash_password, verify_password
from account_service.models.user import User
from account_service.schemas.user import (
    ApiResponse,
    ChangePasswordBody,
    LoginBody,
    LoginOut,
    RefreshBody,
    TokenPairOut,
    UpdateAccountBody,
    UserOut,
)
from account_service.services.session_tokens import SessionTokenManager, TokenPair
from account_service.services.storage import ObjectStore
from account_service.services.user_store import UserStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/users", tags=["users"])

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"

Users = Annotated[UserStore, Depends(get_user_store)]
Tokens = Annotated[SessionTokenManager, Depends(get_token_manager)]
Storage = Annotated[ObjectStore, Depends(get_object_store)]
AppSettings = Annotated[Settings, Depends(get_settings)]
CurrentUser = Annotated[User, Depends(get_current_user)]


def _cookie_options(settings: Settings) -> dict:
    return {"httponly": True, "secure": settings.cookie_secure, "samesite": settings.cookie_samesite}


def _set_session_cookies(response: Response, pair: TokenPair, settings: Settings) -> None:
    opts = _cookie_options(settings)
    response.set_cookie(ACCESS_COOKIE, pair.access_token, max_age=settings.access_token_expire_seconds, **opts)
    response.set_cookie(REFRESH_COOKIE, pair.refresh_token, max_age=settings.refresh_token_expire_seconds, **opts)


def _clear_session_cookies(response: Response, settings: Settings) -> None:
    opts = _cookie_options(settings)
    response.delete_cookie(ACCESS_COOKIE, **opts)
    response.delete_cookie(REFRESH_COOKIE, **opts)


def _clean(value: str | None) -> str:
    return (value or "").strip()


async def _upload_image(storage: ObjectStore, file: UploadFile, folder: str, label: str) -> str:
    local_path = await storage.stage_upload(file)
    url = await storage.upload_file(local_path, folder=folder)
    if not url:
        raise BadRequestError(f"Error while uploading {label}")
    return url


@router.post(
    "/register",
    status_code=201,
    response_model=ApiResponse[UserOut],
    summary="Register a new user with avatar and optional cover image",
    responses={
        400: {"description": "Missing fields, missing avatar or upload failure"},
        409: {"description": "Username or email already registered"},
    },
)
async def register(
    users: Users,
    storage: Storage,
    username: Annotated[str | None, Form()] = None,
    fullname: Annotated[str | None, Form()] = None,
    email: Annotated[str | None, Form()] = None,
    password: Annotated[str | None, Form()] = None,
    avatar: Annotated[UploadFile | None, File()] = None,
    cover_image: Annotated[UploadFile | None, File(alias="coverImage")] = None,
) -> ApiResponse[UserOut]:
    if any(_clean(field) == "" for field in (fullname, email, username, password)):
        raise BadRequestError("All fields are required")
    username = _clean(username).lower()
    email = _clean(email).lower()

    if await users.find_by_username_or_email(username, email) is not None:
        logger.info("Register conflict for username=%s email=%s", username, email)
        raise ConflictError("User with email or username already exists")

    if avatar is None or not avatar.filename:
        raise BadRequestError("Avatar file is required")
    avatar_url = await _upload_image(storage, avatar, "avatars", "avatar")
    cover_url = ""
    if cover_image is not None and cover_image.filename:
        cover_url = await _upload_image(storage, cover_image, "covers", "cover image")

    user = await users.create(
        username=username,
        fullname=_clean(fullname),
        email=email,
        avatar=avatar_url,
        cover_image=cover_url,
        password_hash=await run_in_threadpool(hash_password, password),
    )
    return ApiResponse[UserOut].ok(UserOut.model_validate(user), "User registered successfully", status_code=201)


@router.post(
    "/login",
    response_model=ApiResponse[LoginOut],
    summary="Login with email and password",
    responses={
        400: {"description": "Email or password missing"},
        401: {"description": "Invalid credentials"},
        404: {"description": "User does not exist"},
    },
)
async def login(
    response: Response,
    users: Users,
    tokens: Tokens,
    settings: AppSettings,
    body: LoginBody,
) -> ApiResponse[LoginOut]:
    email = _clean(body.email).lower()
    if not email:
        raise BadRequestError("Email is required")
    if not body.password:
        raise BadRequestError("Password is required")
    user = await users.get_by_email(email)
    if user is None:
        raise NotFoundError("User does not exist")
    if not await run_in_threadpool(verify_password, body.password, user.password_hash):
        logger.info("Login failed for %s", email)
        raise UnauthorizedError("Invalid user credentials")

    pair = await tokens.issue(users, user)
    _set_session_cookies(response, pair, settings)
    data = LoginOut(
        user=UserOut.model_validate(user),
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
    )
    return ApiResponse[LoginOut].ok(data, "User logged in successfully")


@router.post(
    "/logout",
    response_model=ApiResponse[dict],
    summary="Logout: clear the stored refresh token and session cookies",
    responses={401: {"description": "Not authenticated"}},
)
async def logout(
    response: Response,
    user: CurrentUser,
    users: Users,
    tokens: Tokens,
    settings: AppSettings,
) -> ApiResponse[dict]:
    await tokens.revoke(users, user)
    _clear_session_cookies(response, settings)
    return ApiResponse[dict].ok({}, "User logged out")


@router.post(
    "/refresh-token",
    response_model=ApiResponse[TokenPairOut],
    summary="Exchange a refresh token for a new token pair (rotation)",
    responses={401: {"description": "Refresh token missing, invalid, expired or superseded"}},
)
async def refresh_access_token(
    request: Request,
    response: Response,
    users: Users,
    tokens: Tokens,
    settings: AppSettings,
    body: RefreshBody | None = None,
) -> ApiResponse[TokenPairOut]:
    """Refresh token is read from the refreshToken cookie, falling back to the JSON body."""
    presented = request.cookies.get(REFRESH_COOKIE) or (body.refresh_token if body else None)
    _, pair = await tokens.rotate(users, presented)
    _set_session_cookies(response, pair, settings)
    data = TokenPairOut(access_token=pair.access_token, refresh_token=pair.refresh_token)
    return ApiResponse[TokenPairOut].ok(data, "Access token refreshed")


@router.post(
    "/change-password",
    response_model=ApiResponse[dict],
    summary="Change the current user's password",
    responses={
        400: {"description": "Old password invalid or new password missing"},
        401: {"description": "Not authenticated"},
    },
)
async def change_current_password(
    user: CurrentUser,
    users: Users,
    body: ChangePasswordBody,
) -> ApiResponse[dict]:
    if not await run_in_threadpool(verify_password, body.old_password or "", user.password_hash):
        raise BadRequestError("Invalid old password")
    if _clean(body.new_password) == "":
        raise BadRequestError("New password is required")
    await users.update_fields(user, password_hash=await run_in_threadpool(hash_password, body.new_password))
    return ApiResponse[dict].ok({}, "Password changed successfully")


@router.get(
    "/current-user",
    response_model=ApiResponse[UserOut],
    summary="Get the authenticated user",
    responses={401: {"description": "Not authenticated"}},
)
async def get_current_user_profile(user: CurrentUser) -> ApiResponse[UserOut]:
    return ApiResponse[UserOut].ok(UserOut.model_validate(user), "Current user fetched successfully")


@router.patch(
    "/update-account",
    response_model=ApiResponse[UserOut],
    summary="Update full name and email",
    responses={
        400: {"description": "Full name or email missing"},
        401: {"description": "Not authenticated"},
        409: {"description": "Email already in use"},
    },
)
async def update_account_details(
    user: CurrentUser,
    users: Users,
    body: UpdateAccountBody,
) -> ApiResponse[UserOut]:
    fullname = _clean(body.fullname)
    email = _clean(body.email).lower()
    if not fullname or not email:
        raise BadRequestError("All fields are required")
    updated = await users.update_fields(user, fullname=fullname, email=email)
    return ApiResponse[UserOut].ok(UserOut.model_validate(updated), "Account details updated successfully")


@router.patch(
    "/avatar",
    response_model=ApiResponse[UserOut],
    summary="Replace the avatar image",
    responses={
        400: {"description": "File missing, invalid or upload failed"},
        401: {"description": "Not authenticated"},
    },
)
async def update_user_avatar(
    user: CurrentUser,
    users: Users,
    storage: Storage,
    avatar: Annotated[UploadFile | None, File()] = None,
) -> ApiResponse[UserOut]:
    if avatar is None or not avatar.filename:
        raise BadRequestError("Avatar file is missing")
    url = await _upload_image(storage, avatar, "avatars", "avatar")
    updated = await users.update_fields(user, avatar=url)
    return ApiResponse[UserOut].ok(UserOut.model_validate(updated), "Avatar image updated successfully")


@router.patch(
    "/cover-image",
    response_model=ApiResponse[UserOut],
    summary="Replace the cover image",
    responses={
        400: {"description": "File missing, invalid or upload failed"},
        401: {"description": "Not authenticated"},
    },
)
async def update_user_cover_image(
    user: CurrentUser,
    users: Users,
    storage: Storage,
    cover_image: Annotated[UploadFile | None, File(alias="coverImage")] = None,
) -> ApiResponse[UserOut]:
    if cover_image is None or not cover_image.filename:
        raise BadRequestError("Cover image file is missing")
    url = await _upload_image(storage, cover_image, "covers", "cover image")
    updated = await users.update_fields(user, cover_image=url)
    return ApiResponse[UserOut].ok(UserOut.model_validate(updated), "Cover image updated successfully")
