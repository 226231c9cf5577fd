from __future__ import annotations

import html
import logging
from typing import Any, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app_config import content_settings
from auth import is_admin, require_admin
from errors import (
    ContentError,
    NotFoundError,
    PolicyViolation,
    RenderFailure,
    ValidationError,
    fail,
    fail_from,
    ok,
)
from models import Comment, NotificationType, Post, Role, User
from notify import notify
from rendering import ContentTier, render_content


logger = logging.getLogger(__name__)

DELETED_AUTHOR = {"id": None, "name": "Deleted User", "role": Role.user.value}


def _validate_content(content: Any, *, label: str) -> str:
    if not isinstance(content, str) or not content.strip():
        raise ValidationError(f"{label} cannot be empty")
    limit = content_settings.MAX_COMMENT_LENGTH
    if len(content) > limit:
        raise ValidationError(f"{label} must be {limit} characters or less")
    return content


def _author_view(author: Optional[User]) -> dict[str, Any]:
    if author is None or getattr(author, "is_active", True) is False:
        return dict(DELETED_AUTHOR)
    role_val = getattr(author.role, "value", None) or str(author.role)
    return {"id": author.id, "name": author.name or author.username or "Anonymous", "role": role_val}


def comment_view(comment: Comment, author: Optional[User], *, reveal_hidden: bool = False) -> dict[str, Any]:
    """Display shape of one comment. Hidden comments show the placeholder."""
    content = comment.content
    rendered = comment.rendered_content
    if comment.hidden and not reveal_hidden:
        placeholder = content_settings.HIDDEN_COMMENT_PLACEHOLDER
        content = placeholder
        rendered = f"<p><em>{html.escape(placeholder)}</em></p>"
    return {
        "id": comment.id,
        "post_id": comment.post_id,
        "parent_id": comment.parent_id,
        "author": _author_view(author),
        "content": content,
        "html": rendered,
        "hidden": comment.hidden,
        "created_at": comment.created_at,
        "replies": [],
    }


def _chrono(view: dict[str, Any]):
    return (view["created_at"], view["id"] or 0)


def attach_replies(comments: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Group a flat comment list into top-level comments with their replies.

    Replies whose parent is not a top-level comment in the set are dropped
    (logged as a consistency warning).
    """
    top_level: list[dict[str, Any]] = []
    by_parent: dict[int, list[dict[str, Any]]] = {}
    for c in comments:
        if c["parent_id"] is None:
            top_level.append(c)
        else:
            by_parent.setdefault(c["parent_id"], []).append(c)

    top_level.sort(key=_chrono)
    for c in top_level:
        c["replies"] = sorted(by_parent.pop(c["id"], []), key=_chrono)

    for parent_id, orphans in by_parent.items():
        for o in orphans:
            logger.warning("dropping orphaned reply: comment_id=%s parent_id=%s", o["id"], parent_id)
    return top_level


async def _notify_author(
    session: AsyncSession,
    author_id: Optional[int],
    type: NotificationType,
    message: str,
    reference_id: Optional[int] = None,
    *,
    actor_id: Optional[int] = None,
) -> None:
    # Deleted or deactivated authors get nothing.
    if author_id is None:
        return
    try:
        target = await session.get(User, author_id)
    except SQLAlchemyError:
        logger.exception("notification target lookup failed: user_id=%s", author_id)
        return
    if target is None or target.is_active is False:
        return
    await notify(session, target.id, type, message, reference_id, actor_id=actor_id)


async def get_comments_for_post(
    session: AsyncSession,
    post_id: int,
    *,
    viewer: Optional[User] = None,
) -> dict[str, Any]:
    try:
        post = await session.get(Post, post_id)
        if not post:
            raise NotFoundError("Post not found")
        stmt = (
            select(Comment, User)
            .join(User, Comment.author_id == User.id, isouter=True)
            .where(Comment.post_id == post_id)
            .order_by(Comment.created_at, Comment.id)
        )
        rows = (await session.exec(stmt)).all()
    except ContentError as e:
        return fail_from(e)
    except SQLAlchemyError:
        logger.exception("failed to load comments: post_id=%s", post_id)
        return fail("Failed to fetch comments")

    reveal = is_admin(viewer)
    views = [comment_view(c, author, reveal_hidden=reveal) for c, author in rows]
    return ok(attach_replies(views))


async def create_comment(session: AsyncSession, post_id: int, content: str, author: User) -> dict[str, Any]:
    try:
        _validate_content(content, label="Comment")
        post = await session.get(Post, post_id)
        if not post:
            raise NotFoundError("Post not found")
        rendered = await render_content(content, ContentTier.public)

        c = Comment(
            post_id=post.id,
            author_id=author.id,
            parent_id=None,
            content=rendered.raw,
            rendered_content=rendered.html,
        )
        session.add(c)
        await session.commit()
        await session.refresh(c)
    except RenderFailure as e:
        return fail("Failed to create comment", e.code)
    except ContentError as e:
        return fail_from(e)
    except SQLAlchemyError:
        logger.exception("failed to create comment: post_id=%s", post_id)
        await session.rollback()
        return fail("Failed to create comment")

    return ok(comment_view(c, author))


async def create_reply(session: AsyncSession, parent_id: int, content: str, author: User) -> dict[str, Any]:
    try:
        _validate_content(content, label="Reply")
        parent = await session.get(Comment, parent_id)
        if not parent:
            raise NotFoundError("Parent comment not found")
        if parent.parent_id is not None:
            raise PolicyViolation("Cannot reply to a reply")
        parent_author_id = parent.author_id

        rendered = await render_content(content, ContentTier.public)
        reply = Comment(
            post_id=parent.post_id,
            author_id=author.id,
            parent_id=parent.id,
            content=rendered.raw,
            rendered_content=rendered.html,
        )
        session.add(reply)
        await session.commit()
        await session.refresh(reply)
    except RenderFailure as e:
        return fail("Failed to create reply", e.code)
    except ContentError as e:
        return fail_from(e)
    except SQLAlchemyError:
        logger.exception("failed to create reply: parent_id=%s", parent_id)
        await session.rollback()
        return fail("Failed to create reply")

    view = comment_view(reply, author)
    await _notify_author(
        session,
        parent_author_id,
        NotificationType.reply,
        "Someone replied to your comment",
        view["id"],
        actor_id=author.id,
    )
    return ok(view)


async def _set_hidden(session: AsyncSession, comment_id: int, hidden: bool) -> Comment:
    c = await session.get(Comment, comment_id)
    if not c:
        raise NotFoundError("Comment not found")
    c.hidden = hidden
    session.add(c)
    await session.commit()
    return c


async def hide_comment(session: AsyncSession, comment_id: int, acting_user: User) -> dict[str, Any]:
    try:
        require_admin(acting_user)
        c = await _set_hidden(session, comment_id, True)
        author_id = c.author_id
    except ContentError as e:
        return fail_from(e)
    except SQLAlchemyError:
        logger.exception("failed to hide comment: comment_id=%s", comment_id)
        await session.rollback()
        return fail("Failed to hide comment")

    await _notify_author(
        session,
        author_id,
        NotificationType.comment_hidden,
        "Your comment was hidden",
        comment_id,
        actor_id=acting_user.id,
    )
    return ok({"id": comment_id, "hidden": True})


async def unhide_comment(session: AsyncSession, comment_id: int, acting_user: User) -> dict[str, Any]:
    try:
        require_admin(acting_user)
        await _set_hidden(session, comment_id, False)
    except ContentError as e:
        return fail_from(e)
    except SQLAlchemyError:
        logger.exception("failed to unhide comment: comment_id=%s", comment_id)
        await session.rollback()
        return fail("Failed to unhide comment")
    return ok({"id": comment_id, "hidden": False})


async def delete_comment(session: AsyncSession, comment_id: int, acting_user: User) -> dict[str, Any]:
    """Delete a comment and, for a top-level comment, all of its replies.

    Only the directly deleted comment's author is notified.
    """
    try:
        require_admin(acting_user)
        c = await session.get(Comment, comment_id)
        if not c:
            raise NotFoundError("Comment not found")
        author_id = c.author_id

        replies = (await session.exec(select(Comment).where(Comment.parent_id == comment_id))).all()
        for r in replies:
            await session.delete(r)
        # children go first so the parent row is never referenced while deleted
        await session.flush()
        await session.delete(c)
        await session.commit()
        deleted = len(replies) + 1
    except ContentError as e:
        return fail_from(e)
    except SQLAlchemyError:
        logger.exception("failed to delete comment: comment_id=%s", comment_id)
        await session.rollback()
        return fail("Failed to delete comment")

    await _notify_author(
        session,
        author_id,
        NotificationType.comment_deleted,
        "Your comment was deleted",
        None,
        actor_id=acting_user.id,
    )
    return ok({"id": comment_id, "deleted": deleted})


async def get_admin_comments(session: AsyncSession, acting_user: User) -> dict[str, Any]:
    try:
        require_admin(acting_user)
        stmt = (
            select(Comment, User, Post)
            .join(User, Comment.author_id == User.id, isouter=True)
            .join(Post, Comment.post_id == Post.id, isouter=True)
            .order_by(Comment.created_at, Comment.id)
        )
        rows = (await session.exec(stmt)).all()
    except ContentError as e:
        return fail_from(e)
    except SQLAlchemyError:
        logger.exception("failed to load admin comments")
        return fail("Failed to fetch comments")

    views = []
    for c, author, post in rows:
        v = comment_view(c, author, reveal_hidden=True)
        v["post_title"] = post.title if post else None
        v["post_slug"] = post.slug if post else None
        views.append(v)
    return ok(views)
