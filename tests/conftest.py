"""Pytest configuration and shared fixtures for API tests."""

import os
import tempfile

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set a SQLite test DB before app imports so the module-level app and settings use it
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{tempfile.gettempdir()}/account_service_import.db")
os.environ.setdefault("ACCESS_TOKEN_SECRET", "test-access-secret")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "test-refresh-secret")
os.environ.setdefault("RATE_LIMIT_DEFAULT", "10000/minute")

from account_service.api.deps import get_object_store
from account_service.config import Settings
from account_service.core.security import hash_password
from account_service.db.session import Database
from account_service.main import create_app
from account_service.services.storage import ObjectStore
from account_service.services.user_store import UserStore
from tests.helpers import register_user

pytest_plugins = ["pytest_asyncio"]


class FakeObjectStore(ObjectStore):
    """Keeps real staging/validation; records uploads instead of talking to S3."""

    def __init__(self, settings: Settings):
        super().__init__(settings)
        self.uploads: list[tuple[str, str]] = []
        self.fail = False

    async def upload_file(self, local_path, folder: str = "media"):
        if not local_path:
            return None
        name = os.path.basename(str(local_path))
        os.remove(local_path)
        if self.fail:
            return None
        self.uploads.append((folder, name))
        return f"https://media.test/{folder}/{name}"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path}/test.db",
        upload_tmp_dir=str(tmp_path / "uploads"),
        access_token_secret="test-access-secret",
        refresh_token_secret="test-refresh-secret",
        rate_limit_default="10000/minute",
        cors_origins="http://test",
    )


@pytest_asyncio.fixture
async def database(settings):
    db = Database(settings.database_url)
    await db.init_db()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def session(database):
    async with database.session_maker() as s:
        yield s


@pytest.fixture
def object_store(settings) -> FakeObjectStore:
    return FakeObjectStore(settings)


@pytest_asyncio.fixture
async def app(settings, object_store):
    application = create_app(settings)
    await application.state.database.init_db()
    application.dependency_overrides[get_object_store] = lambda: object_store
    yield application
    await application.state.database.dispose()


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def registered_user(client):
    resp = await register_user(client)
    assert resp.status_code == 201
    return resp.json()["data"]


@pytest_asyncio.fixture
async def login_tokens(client, registered_user):
    """Log in the registered user; return (access_token, refresh_token)."""
    resp = await client.post("/api/v1/users/login", json={"email": "a@x.com", "password": "p1"})
    assert resp.status_code == 200
    data = resp.json()["data"]
    return data["accessToken"], data["refreshToken"]


@pytest.fixture
def auth_headers(login_tokens):
    access, _ = login_tokens
    return {"Authorization": f"Bearer {access}"}


@pytest_asyncio.fixture
async def stored_user(session):
    """User row created directly through the store, for token manager tests."""
    users = UserStore(session)
    user = await users.create(
        username="ana",
        fullname="Ana",
        email="a@x.com",
        avatar="https://media.test/avatars/a.jpg",
        cover_image="",
        password_hash=hash_password("p1"),
    )
    await session.commit()
    return user
