# tests/conftest.py — Shared test fixtures
import os
import uuid

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Use SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///./test.db"
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-min-32-chars"
os.environ["ENVIRONMENT"] = "test"

from models import Base, User, UserRole
from auth import AuthService, CurrentUser
from database import get_db_session
from main import app


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    engine = create_async_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine):
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def session_factory(db_engine):
    """Factory for independent sessions (concurrent-writer tests)"""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def client(db_engine):
    """HTTP test client with overridden DB dependency"""
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _make_user(db_session, username: str, first: str, last: str, role: UserRole) -> User:
    user = User(
        id=str(uuid.uuid4()),
        username=username,
        email=f"{username}@taskhub.dev",
        first_name=first,
        last_name=last,
        role=role,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def admin_user(db_session):
    return await _make_user(db_session, "admin", "Ada", "Admin", UserRole.ADMIN)


@pytest_asyncio.fixture
async def manager_user(db_session):
    return await _make_user(db_session, "manager", "Mona", "Manager", UserRole.MANAGER)


@pytest_asyncio.fixture
async def other_manager(db_session):
    return await _make_user(db_session, "manager2", "Max", "Manager", UserRole.MANAGER)


@pytest_asyncio.fixture
async def member_user(db_session):
    return await _make_user(db_session, "member", "Mel", "Member", UserRole.MEMBER)


@pytest_asyncio.fixture
async def member_two(db_session):
    return await _make_user(db_session, "member2", "Sam", "Second", UserRole.MEMBER)


@pytest_asyncio.fixture
async def outsider(db_session):
    """Member who belongs to no project"""
    return await _make_user(db_session, "outsider", "Olly", "Outside", UserRole.MEMBER)


def get_auth_headers(user: User) -> dict:
    """Generate auth headers for a user"""
    token = AuthService.token_for(user)
    return {"Authorization": f"Bearer {token}"}


def as_actor(user: User) -> CurrentUser:
    """CurrentUser snapshot for calling services directly"""
    return CurrentUser(
        id=user.id,
        username=user.username,
        display_name=user.display_name,
        role=user.role.value if isinstance(user.role, UserRole) else user.role,
    )


async def create_project(client, owner, members=(), **fields) -> str:
    body = {"name": "Website Relaunch", "team_member_ids": [m.id for m in members]}
    body.update(fields)
    resp = await client.post("/api/v1/projects", json=body, headers=get_auth_headers(owner))
    assert resp.status_code == 201, resp.text
    return resp.json()["id"]


async def create_task(client, creator, project_id, **fields) -> str:
    body = {"project_id": project_id, "title": "Write landing copy"}
    body.update(fields)
    resp = await client.post("/api/v1/tasks", json=body, headers=get_auth_headers(creator))
    assert resp.status_code == 201, resp.text
    return resp.json()["id"]
