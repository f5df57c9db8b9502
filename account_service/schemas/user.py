"""Request and response schemas for the users API. JSON keys are camelCase."""

from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ApiResponse(CamelModel, Generic[T]):
    """Success envelope: {statusCode, data, message, success}."""

    status_code: int
    data: T
    message: str
    success: bool = True

    @classmethod
    def ok(cls, data: T, message: str, status_code: int = 200) -> "ApiResponse[T]":
        return cls(status_code=status_code, data=data, message=message, success=status_code < 400)


class UserOut(CamelModel):
    """Public projection of the identity record: never carries the password hash or refresh token."""

    id: int
    username: str
    email: str
    fullname: str
    avatar: str
    cover_image: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None


class TokenPairOut(CamelModel):
    access_token: str
    refresh_token: str


class LoginOut(TokenPairOut):
    user: UserOut


class LoginBody(CamelModel):
    email: str | None = None
    # Accepted for client compatibility; login looks users up by email only
    username: str | None = None
    password: str | None = None


class RefreshBody(CamelModel):
    refresh_token: str | None = None


class ChangePasswordBody(CamelModel):
    old_password: str | None = None
    new_password: str | None = None


class UpdateAccountBody(CamelModel):
    fullname: str | None = None
    email: str | None = None
