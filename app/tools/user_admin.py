from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from auth import is_admin
from errors import NotFoundError, PolicyViolation, ValidationError, fail, fail_from, ok
from models import NotificationType, Role, User
from notify import notify


logger = logging.getLogger(__name__)


async def validate_role_change(
    session: AsyncSession,
    target_user: User,
    new_role: Role,
    acting_user: User,
) -> str | None:
    """Validate whether an admin is allowed to change target user's role.

    Returns an error message string when not allowed; otherwise None.
    """
    if not is_admin(acting_user):
        return "Admin access required"

    if target_user.id == acting_user.id:
        return "Cannot change your own role"

    if getattr(target_user, "is_active", True) is False:
        return "User has been deleted"

    # Safety: always keep at least one active admin.
    target_role_val = getattr(target_user.role, "value", None) or str(target_user.role)
    new_role_val = getattr(new_role, "value", None) or str(new_role)

    if target_role_val == Role.admin.value and new_role_val != Role.admin.value:
        other_admin = (
            await session.exec(
                select(User).where(
                    User.is_active == True,  # noqa: E712
                    User.role == Role.admin,
                    User.id != target_user.id,
                )
            )
        ).first()
        if not other_admin:
            return "At least one admin account is required"

    return None


async def set_user_role(
    session: AsyncSession,
    user_id: int,
    new_role: Role | str,
    acting_user: User,
) -> dict[str, Any]:
    try:
        if not is_admin(acting_user):
            raise PolicyViolation("Admin access required")
        try:
            role = Role(new_role)
        except ValueError:
            raise ValidationError("Unknown role")

        target = await session.get(User, user_id)
        if not target:
            raise NotFoundError("User not found")

        err = await validate_role_change(session, target, role, acting_user)
        if err:
            raise PolicyViolation(err)

        target.role = role
        session.add(target)
        await session.commit()
    except (NotFoundError, PolicyViolation, ValidationError) as e:
        return fail_from(e)
    except SQLAlchemyError:
        logger.exception("failed to update user role: user_id=%s", user_id)
        await session.rollback()
        return fail("Failed to update user role")

    await notify(
        session,
        user_id,
        NotificationType.role_changed,
        f"Your role has been changed to {role.value}",
        actor_id=acting_user.id,
    )
    return ok({"id": user_id, "role": role.value})
