from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from models import Notification, NotificationType, Role, User
from tools.user_admin import set_user_role, validate_role_change


async def test_validate_role_change_blocks_demote_last_admin(session: AsyncSession, admin: User):
    # a deactivated admin does not count towards the minimum
    admin2 = User(
        username="a2", email="a2@example.com", name="A2", role=Role.admin, password_hash="x", is_active=False
    )
    session.add(admin2)
    await session.commit()
    await session.refresh(admin2)

    err = await validate_role_change(session=session, target_user=admin, new_role=Role.user, acting_user=admin2)
    assert err == "At least one admin account is required"


async def test_validate_role_change_allows_demote_when_other_admin_exists(session: AsyncSession, admin: User):
    admin2 = User(username="a2", email="a2@example.com", name="A2", role=Role.admin, password_hash="x")
    session.add(admin2)
    await session.commit()
    await session.refresh(admin2)

    err = await validate_role_change(session=session, target_user=admin, new_role=Role.user, acting_user=admin2)
    assert err is None


async def test_validate_role_change_blocks_own_role(session: AsyncSession, admin: User):
    err = await validate_role_change(session=session, target_user=admin, new_role=Role.user, acting_user=admin)
    assert err == "Cannot change your own role"


async def test_validate_role_change_blocks_inactive_user(session: AsyncSession, admin: User, make_user):
    target = await make_user("gone", is_active=False)

    err = await validate_role_change(session=session, target_user=target, new_role=Role.admin, acting_user=admin)
    assert err == "User has been deleted"


async def test_set_user_role_requires_admin(session: AsyncSession, alice: User, bob: User):
    result = await set_user_role(session, bob.id, "admin", alice)
    assert result == {"ok": False, "error": "Admin access required", "code": "policy_violation"}

    await session.refresh(bob)
    assert bob.role == Role.user


async def test_set_user_role_rejects_unknown_role(session: AsyncSession, admin: User, alice: User):
    result = await set_user_role(session, alice.id, "owner", admin)
    assert result["ok"] is False
    assert result["code"] == "validation_error"


async def test_set_user_role_missing_user(session: AsyncSession, admin: User):
    result = await set_user_role(session, 9999, "admin", admin)
    assert result["code"] == "not_found"


async def test_set_user_role_notifies_target(session: AsyncSession, admin: User, alice: User):
    result = await set_user_role(session, alice.id, "admin", admin)
    assert result == {"ok": True, "data": {"id": alice.id, "role": "admin"}}

    rows = (await session.exec(select(Notification).where(Notification.user_id == alice.id))).all()
    assert len(rows) == 1
    assert rows[0].type == NotificationType.role_changed
    assert rows[0].message == "Your role has been changed to admin"
