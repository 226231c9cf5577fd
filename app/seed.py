from __future__ import annotations

import os

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from auth import hash_password
from models import Role, User


async def ensure_default_admin(session: AsyncSession) -> User:
    """Create the bootstrap admin on first start.

    An existing account with the configured username is returned untouched, so
    later role or password changes survive restarts.
    """

    username = os.getenv("DEFAULT_ADMIN_USERNAME", "admin")
    password = os.getenv("DEFAULT_ADMIN_PASSWORD", "change-me-now")
    email = os.getenv("DEFAULT_ADMIN_EMAIL", "admin@local")
    name = os.getenv("DEFAULT_ADMIN_NAME", username)

    existing = (await session.exec(select(User).where(User.username == username))).first()
    if existing:
        return existing

    admin = User(
        username=username,
        email=email,
        name=name,
        role=Role.admin,
        password_hash=hash_password(password),
    )
    session.add(admin)
    await session.commit()
    await session.refresh(admin)
    return admin
