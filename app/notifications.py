from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from errors import NotFoundError, fail, fail_from, ok
from models import Comment, Notification, NotificationType, User


logger = logging.getLogger(__name__)

# Types whose reference_id points at a comment row.
_COMMENT_REFERENCES = {NotificationType.reply, NotificationType.comment_hidden}


def notification_view(n: Notification, *, reference_available: bool) -> dict[str, Any]:
    return {
        "id": n.id,
        "type": NotificationType(n.type).value,
        "message": n.message,
        "reference_id": n.reference_id,
        "reference_available": reference_available,
        "read": n.read,
        "created_at": n.created_at,
    }


async def get_notifications(session: AsyncSession, user: User) -> dict[str, Any]:
    """The caller's notifications, newest first.

    Referenced comments may have been deleted since; those entries report
    ``reference_available = False`` instead of failing.
    """
    try:
        rows = (
            await session.exec(
                select(Notification)
                .where(Notification.user_id == user.id)
                .order_by(Notification.created_at.desc(), Notification.id.desc())
            )
        ).all()

        ref_ids = {n.reference_id for n in rows if n.type in _COMMENT_REFERENCES and n.reference_id is not None}
        existing: set[int] = set()
        if ref_ids:
            existing = set((await session.exec(select(Comment.id).where(Comment.id.in_(ref_ids)))).all())
    except SQLAlchemyError:
        logger.exception("failed to load notifications: user_id=%s", user.id)
        return fail("Failed to fetch notifications")

    views = []
    for n in rows:
        if n.reference_id is None:
            available = False
        elif n.type in _COMMENT_REFERENCES:
            available = n.reference_id in existing
        else:
            available = True
        views.append(notification_view(n, reference_available=available))
    return ok(views)


async def get_unread_count(session: AsyncSession, user: User) -> dict[str, Any]:
    try:
        count = (
            await session.exec(
                select(func.count())
                .select_from(Notification)
                .where(Notification.user_id == user.id, Notification.read == False)  # noqa: E712
            )
        ).one()
    except SQLAlchemyError:
        logger.exception("failed to count unread notifications: user_id=%s", user.id)
        return fail("Failed to fetch unread count")
    return ok(int(count or 0))


async def mark_read(session: AsyncSession, user: User, notification_id: int) -> dict[str, Any]:
    try:
        n = await session.get(Notification, notification_id)
        # someone else's notification looks exactly like a missing one
        if not n or n.user_id != user.id:
            raise NotFoundError("Notification not found")
        if not n.read:
            n.read = True
            session.add(n)
            await session.commit()
    except NotFoundError as e:
        return fail_from(e)
    except SQLAlchemyError:
        logger.exception("failed to mark notification read: id=%s", notification_id)
        await session.rollback()
        return fail("Failed to mark notification as read")
    return ok({"id": notification_id, "read": True})


async def mark_all_read(session: AsyncSession, user: User) -> dict[str, Any]:
    try:
        unread = (
            await session.exec(
                select(Notification).where(
                    Notification.user_id == user.id,
                    Notification.read == False,  # noqa: E712
                )
            )
        ).all()
        for n in unread:
            n.read = True
            session.add(n)
        await session.commit()
    except SQLAlchemyError:
        logger.exception("failed to mark all notifications read: user_id=%s", user.id)
        await session.rollback()
        return fail("Failed to mark all notifications as read")
    return ok({"updated": len(unread)})
