"""Shared test data and request helpers."""

from httpx import AsyncClient
from sqlalchemy import select

from account_service.models.user import User

# Minimal JPEG bytes (valid magic)
JPEG_BYTES = (
    b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00"
    b"\xff\xdb\x00C\x00\x08\x06\x06\x07\x06\x05\x08\x07\x07\x07\t\t\x08\n\x0c\x14\r\x0c\x0b\x0b\x0c\x19\x12\x13\x0f"
    b"\xff\xd9"
)
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


async def fetch_user(app, email: str) -> User | None:
    """Read a user straight from the DB (fresh session) to inspect stored state."""
    async with app.state.database.session_maker() as s:
        r = await s.execute(select(User).where(User.email == email))
        return r.scalar_one_or_none()


async def register_user(client: AsyncClient, files: dict | None = None, **overrides):
    data = {"username": "ana", "fullname": "Ana", "email": "a@x.com", "password": "p1"}
    data.update(overrides)
    if files is None:
        files = {"avatar": ("avatar.jpg", JPEG_BYTES, "image/jpeg")}
    return await client.post("/api/v1/users/register", data=data, files=files)
