"""Shared test fixtures."""

import os

from cryptography.fernet import Fernet

# Settings are read at import time, so the environment must be set first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["APP_DEBUG"] = "false"
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("SMTP_ENCRYPTION_KEY", Fernet.generate_key().decode())

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.auth.security import TokenPayload, generate_token, hash_password
from app.db.models import Base, User, UserRole, UserStatus
from app.db.session import get_db
from app.main import app

TEST_PASSWORD = "password123"


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    async def _make_user(
        username: str,
        role: UserRole = UserRole.CONTENT_MANAGER,
        permissions: list[str] | None = None,
        email: str | None = None,
        status: UserStatus = UserStatus.ACTIVE,
        password: str = TEST_PASSWORD,
    ) -> User:
        user = User(
            username=username,
            email=email,
            password_hash=hash_password(password),
            role=role,
            status=status,
            permissions=permissions,
            requires_password_change=False,
            is_first_login=False,
        )
        db.add(user)
        await db.commit()
        return user

    return _make_user


def auth_headers(user: User) -> dict:
    token = generate_token(TokenPayload(user_id=user.id, username=user.username, role=user.role.value))
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def admin(make_user):
    return await make_user("admin", role=UserRole.ADMIN, email="admin@example.com")


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest_asyncio.fixture
async def editor(make_user):
    return await make_user("editor", role=UserRole.CONTENT_MANAGER, email="editor@example.com")


@pytest.fixture
def editor_headers(editor):
    return auth_headers(editor)


@pytest.fixture
def headers_for():
    return auth_headers
