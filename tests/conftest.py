import os
import sys
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

# Force runtime DB settings to in-memory SQLite during tests, so importing
# `db`/`auth` never requires a local Postgres.
os.environ.setdefault("USE_POSTGRES_ENV", "0")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

# Ensure imports like `from models import ...` (used by runtime code under /app)
# work when running pytest from repo root.
ROOT = Path(__file__).resolve().parents[1]
APP_DIR = ROOT / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

# Import models to register them with SQLModel.metadata
import models  # noqa: F401, E402
from models import Post, Role, User  # noqa: E402


@pytest_asyncio.fixture()
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def session(engine):
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture()
def make_user(session: AsyncSession):
    async def _make(username: str, *, role: Role = Role.user, is_active: bool = True) -> User:
        u = User(
            username=username,
            email=f"{username}@example.com",
            name=username.capitalize(),
            role=role,
            password_hash="x",
            is_active=is_active,
        )
        session.add(u)
        await session.commit()
        await session.refresh(u)
        return u

    return _make


@pytest_asyncio.fixture()
async def admin(make_user) -> User:
    return await make_user("admin", role=Role.admin)


@pytest_asyncio.fixture()
async def alice(make_user) -> User:
    return await make_user("alice")


@pytest_asyncio.fixture()
async def bob(make_user) -> User:
    return await make_user("bob")


@pytest_asyncio.fixture()
async def post(session: AsyncSession, admin: User) -> Post:
    p = Post(title="Hello", slug="hello", content="# Hello", rendered_content="<h1>Hello</h1>", author_id=admin.id)
    session.add(p)
    await session.commit()
    await session.refresh(p)
    return p
