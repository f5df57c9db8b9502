"""Typed API errors. Raised from handlers and services, rendered by the app's exception handlers."""

from __future__ import annotations

from typing import Any


class ApiError(Exception):
    """Error surfaced to the client as a status code plus human-readable message."""

    status_code: int = 500
    default_message: str = "Something went wrong"

    def __init__(
        self,
        message: str | None = None,
        errors: list[str] | None = None,
        status_code: int | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.errors = list(errors or [])
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_body(self) -> dict[str, Any]:
        return {
            "statusCode": self.status_code,
            "data": None,
            "message": self.message,
            "success": False,
            "errors": self.errors,
        }


class ClientError(ApiError):
    """4xx: bad input, missing resource, failed authorization, conflict."""

    status_code = 400
    default_message = "Bad request"


class ServerError(ApiError):
    """5xx: a collaborator (database, token issuance) failed."""

    status_code = 500
    default_message = "Internal server error"


class BadRequestError(ClientError):
    status_code = 400


class UnauthorizedError(ClientError):
    status_code = 401
    default_message = "Unauthorized request"


class NotFoundError(ClientError):
    status_code = 404
    default_message = "Resource not found"


class ConflictError(ClientError):
    status_code = 409
    default_message = "Conflict"


class InternalError(ServerError):
    status_code = 500
