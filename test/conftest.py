"""
Pytest configuration and fixtures for eMineral Pass tests
"""

import os
import sys
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))  # noqa: PTH100, PTH118, PTH119, PTH120

import app.database as database_module  # noqa: E402
from app.auth import create_access_token  # noqa: E402
from app.database import Base, get_db  # noqa: E402
from app.models import Record, User, UserRole  # noqa: E402
from app.services.storage_service import BlobStorage, set_storage  # noqa: E402


class FakeClock:
    """Controllable time source passed wherever a ``clock`` is accepted."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 3, 10, 6, 30, 0, tzinfo=timezone.utc))


@pytest.fixture(scope="function")
async def engine(tmp_path):
    """A fresh SQLite database file per test."""
    # NullPool: each session opens its own connection, as concurrent scans need
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False, poolclass=NullPool)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine, monkeypatch):
    """Session factory that also backs every 'separate session' task (audit, scans, artifacts)."""
    factory = async_sessionmaker(engine, class_=AsyncSession, autoflush=False, expire_on_commit=False)
    monkeypatch.setattr(database_module, "AsyncSessionLocal", factory)
    return factory


@pytest.fixture(scope="function")
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture(scope="function")
def storage(tmp_path):
    store = BlobStorage(root=tmp_path / "storage", base_url="http://testserver", secret_key="test-secret")
    set_storage(store)
    yield store
    set_storage(None)


async def _create_user(session_factory, email: str, role: UserRole = UserRole.HOST, is_active: bool = True) -> User:
    async with session_factory() as session:
        user = User(email=email, full_name=email.split("@")[0].title(), role=role.value, is_active=is_active)
        session.add(user)
        await session.commit()
        return user


@pytest.fixture
async def owner(session_factory) -> User:
    return await _create_user(session_factory, "host@example.com")


@pytest.fixture
async def other_owner(session_factory) -> User:
    return await _create_user(session_factory, "other@example.com", role=UserRole.USER)


@pytest.fixture
async def inactive_user(session_factory) -> User:
    return await _create_user(session_factory, "inactive@example.com", is_active=False)


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token({"sub": user.id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def owner_headers(owner) -> dict[str, str]:
    return auth_headers(owner)


@pytest.fixture
def other_headers(other_owner) -> dict[str, str]:
    return auth_headers(other_owner)


@pytest.fixture
def app(session_factory, storage):
    """A fresh app wired to the test database and storage."""
    from main import create_app

    application = create_app()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    application.dependency_overrides[get_db] = override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


async def reload_record(session_factory, record_id: str) -> Record | None:
    """Read a record through a new session so no cached state is returned."""
    async with session_factory() as session:
        return await session.get(Record, record_id)
