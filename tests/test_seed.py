from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from models import Role, User
from seed import ensure_default_admin
from tools.user_admin import set_user_role


async def test_seed_creates_admin_once(session: AsyncSession, monkeypatch):
    monkeypatch.setenv("DEFAULT_ADMIN_USERNAME", "boot")
    monkeypatch.setenv("DEFAULT_ADMIN_EMAIL", "boot@example.com")

    first = await ensure_default_admin(session)
    second = await ensure_default_admin(session)

    assert first.id == second.id
    assert first.role == Role.admin
    rows = (await session.exec(select(User).where(User.username == "boot"))).all()
    assert len(rows) == 1


async def test_seed_keeps_role_and_password_changes(session: AsyncSession, admin: User, monkeypatch):
    monkeypatch.setenv("DEFAULT_ADMIN_USERNAME", "boot")
    monkeypatch.setenv("DEFAULT_ADMIN_EMAIL", "boot@example.com")

    boot = await ensure_default_admin(session)
    boot_id = boot.id
    original_hash = boot.password_hash

    result = await set_user_role(session, boot_id, "user", admin)
    assert result["ok"] is True

    again = await ensure_default_admin(session)
    await session.refresh(again)
    assert again.id == boot_id
    assert again.role == Role.user
    assert again.password_hash == original_hash
