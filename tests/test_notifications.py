from datetime import datetime, timedelta

from sqlalchemy.exc import OperationalError
from sqlmodel.ext.asyncio.session import AsyncSession

import comments
import notifications
import notify as notify_module
from errors import NotificationDeliveryFailure
from models import Notification, NotificationType, Post, User
from notify import notify


async def _add(session: AsyncSession, user: User, message: str, *, minutes: int = 0, **kw) -> Notification:
    n = Notification(
        user_id=user.id,
        type=kw.pop("type", NotificationType.role_changed),
        message=message,
        created_at=datetime(2024, 1, 1) + timedelta(minutes=minutes),
        **kw,
    )
    session.add(n)
    await session.commit()
    await session.refresh(n)
    return n


async def test_notify_skips_self(session: AsyncSession, alice: User):
    assert await notify(session, alice.id, NotificationType.reply, "hi", actor_id=alice.id) is None
    n = await notify(session, alice.id, NotificationType.reply, "hi", 5)
    assert n is not None and n.id is not None
    assert n.read is False


async def test_list_is_newest_first_and_scoped(session: AsyncSession, alice: User, bob: User):
    await _add(session, alice, "old", minutes=1)
    await _add(session, alice, "new", minutes=10)
    await _add(session, bob, "not yours", minutes=5)

    result = await notifications.get_notifications(session, alice)
    assert [n["message"] for n in result["data"]] == ["new", "old"]


async def test_unread_count_and_mark_read(session: AsyncSession, alice: User):
    a = await _add(session, alice, "a")
    await _add(session, alice, "b")
    assert (await notifications.get_unread_count(session, alice))["data"] == 2

    assert (await notifications.mark_read(session, alice, a.id))["ok"] is True
    assert (await notifications.get_unread_count(session, alice))["data"] == 1
    # idempotent
    assert (await notifications.mark_read(session, alice, a.id))["ok"] is True


async def test_cannot_mark_someone_elses(session: AsyncSession, alice: User, bob: User):
    n = await _add(session, alice, "private")
    result = await notifications.mark_read(session, bob, n.id)
    assert result == {"ok": False, "error": "Notification not found", "code": "not_found"}

    await session.refresh(n)
    assert n.read is False


async def test_mark_all_read(session: AsyncSession, alice: User, bob: User):
    await _add(session, alice, "a")
    await _add(session, alice, "b")
    await _add(session, bob, "c")

    assert (await notifications.mark_all_read(session, alice))["data"] == {"updated": 2}
    assert (await notifications.get_unread_count(session, alice))["data"] == 0
    assert (await notifications.get_unread_count(session, bob))["data"] == 1


async def test_reference_unavailable_after_comment_deleted(
    session: AsyncSession, post: Post, admin: User, alice: User, bob: User
):
    parent = (await comments.create_comment(session, post.id, "top", alice))["data"]
    await comments.create_reply(session, parent["id"], "answer", bob)

    before = (await notifications.get_notifications(session, alice))["data"]
    assert before[0]["type"] == "reply"
    assert before[0]["reference_available"] is True

    await comments.delete_comment(session, parent["id"], admin)
    after = (await notifications.get_notifications(session, alice))["data"]
    by_type = {n["type"]: n for n in after}
    assert by_type["reply"]["reference_available"] is False
    assert by_type["comment_deleted"]["reference_available"] is False


async def test_notify_survives_failed_rollback(session: AsyncSession, alice: User, monkeypatch, caplog):
    async def _fail_insert(session, **kwargs):
        raise NotificationDeliveryFailure("db down")

    async def _fail_rollback():
        raise OperationalError("ROLLBACK", {}, Exception("connection lost"))

    monkeypatch.setattr(notify_module, "_insert_notification", _fail_insert)
    monkeypatch.setattr(session, "rollback", _fail_rollback)

    assert await notify(session, alice.id, NotificationType.reply, "hi", 1) is None
    assert "rollback after failed notification also failed" in caplog.text
