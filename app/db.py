from __future__ import annotations

import asyncio
import logging
import os
import time
from typing import AsyncIterator
from urllib.parse import urlparse

from pydantic_settings import BaseSettings
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession


logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Database settings.

    Under Docker Compose the URL is built from the POSTGRES_* variables so a
    stale DATABASE_URL in .env cannot point at a role that no longer exists.
    Set USE_POSTGRES_ENV=0 to use DATABASE_URL instead (tests, local SQLite).
    """

    DATABASE_URL: str | None = None
    USE_POSTGRES_ENV: bool = True

    DB_HOST: str = "db"
    DB_PORT: int = 5432
    POSTGRES_USER: str = "blog"
    POSTGRES_PASSWORD: str = "blog"
    POSTGRES_DB: str = "blog"
    DB_CONNECT_TIMEOUT: int = 5

    class Config:
        case_sensitive = False


settings = Settings()


def build_database_url() -> str:
    if settings.USE_POSTGRES_ENV:
        return (
            f"postgresql+psycopg://{settings.POSTGRES_USER}:{settings.POSTGRES_PASSWORD}"
            f"@{settings.DB_HOST}:{settings.DB_PORT}/{settings.POSTGRES_DB}"
        )
    if settings.DATABASE_URL:
        return settings.DATABASE_URL
    # last resort for local dev
    return "sqlite+aiosqlite:///./dev.db"


DATABASE_URL = build_database_url()


def _safe_db_hint(url: str) -> str:
    try:
        p = urlparse(url)
        user = p.username or ""
        host = p.hostname or ""
        db = (p.path or "").lstrip("/")
        return f"user={user} host={host} db={db}"
    except Exception:
        return "(unparsed)"


def _connect_args(url: str) -> dict:
    # connect_timeout is a libpq option; sqlite drivers reject it.
    if url.startswith("postgresql"):
        return {"connect_timeout": int(os.getenv("DB_CONNECT_TIMEOUT", str(settings.DB_CONNECT_TIMEOUT)))}
    return {}


engine = create_async_engine(
    DATABASE_URL,
    pool_pre_ping=True,
    connect_args=_connect_args(DATABASE_URL),
)


async def create_db_and_tables() -> None:
    """Create tables with retry (db container may need a few seconds)."""
    logger.info("connecting: %s", _safe_db_hint(DATABASE_URL))
    deadline = time.time() + 60
    last_err: Exception | None = None
    while time.time() < deadline:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)
            return
        except OperationalError as e:
            last_err = e
            logger.warning("retrying in 2s: %s: %s", type(e).__name__, e)
            await asyncio.sleep(2)

    if last_err:
        raise last_err


async def get_session() -> AsyncIterator[AsyncSession]:
    # expire_on_commit=False: views are built from objects after commit and
    # async sessions cannot lazy-load on attribute access.
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session
