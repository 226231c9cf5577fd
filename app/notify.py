from __future__ import annotations

import logging
from typing import Optional

from sqlmodel.ext.asyncio.session import AsyncSession

from errors import NotificationDeliveryFailure
from models import Notification, NotificationType


logger = logging.getLogger(__name__)


async def _insert_notification(
    session: AsyncSession,
    *,
    user_id: int,
    type: NotificationType,
    message: str,
    reference_id: Optional[int],
) -> Notification:
    try:
        n = Notification(user_id=user_id, type=type, message=message, reference_id=reference_id)
        session.add(n)
        await session.commit()
        await session.refresh(n)
        return n
    except Exception as e:
        raise NotificationDeliveryFailure(f"failed to write {NotificationType(type).value} notification") from e


async def notify(
    session: AsyncSession,
    user_id: int,
    type: NotificationType,
    message: str,
    reference_id: Optional[int] = None,
    *,
    actor_id: Optional[int] = None,
) -> Optional[Notification]:
    """Write one notification row (best-effort).

    Call only after the mutation it describes has been committed. A failure is
    logged and swallowed here so the caller's already-committed change stands;
    returns None in that case, and also when the user would notify themselves.
    """
    if actor_id is not None and actor_id == user_id:
        return None
    try:
        return await _insert_notification(
            session,
            user_id=user_id,
            type=type,
            message=message,
            reference_id=reference_id,
        )
    except NotificationDeliveryFailure:
        logger.exception(
            "notification not delivered: type=%s user_id=%s reference_id=%s",
            NotificationType(type).value,
            user_id,
            reference_id,
        )
        # drop only the pending notification; the primary write is already committed
        try:
            await session.rollback()
        except Exception:
            logger.exception("rollback after failed notification also failed: user_id=%s", user_id)
        return None
