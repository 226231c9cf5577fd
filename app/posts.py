from __future__ import annotations

import logging
import re
import unicodedata
from datetime import datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app_config import content_settings
from auth import require_admin
from errors import ContentError, NotFoundError, RenderFailure, ValidationError, fail, fail_from, ok
from models import Post, User
from rendering import ContentTier, render_content


logger = logging.getLogger(__name__)

_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")


def slugify(title: str) -> str:
    s = unicodedata.normalize("NFKD", title or "").encode("ascii", "ignore").decode("ascii")
    s = _SLUG_STRIP_RE.sub("-", s.lower()).strip("-")
    return s or "post"


async def _unique_slug(session: AsyncSession, title: str) -> str:
    base = slugify(title)
    slug = base
    n = 2
    while (await session.exec(select(Post.id).where(Post.slug == slug))).first() is not None:
        slug = f"{base}-{n}"
        n += 1
    return slug


def _validate_title(title: Any) -> str:
    t = (title or "").strip() if isinstance(title, str) else ""
    if not t:
        raise ValidationError("Title is required")
    if len(t) > content_settings.MAX_TITLE_LENGTH:
        raise ValidationError(f"Title must be {content_settings.MAX_TITLE_LENGTH} characters or less")
    return t


def _validate_body(content: Any) -> str:
    if not isinstance(content, str):
        raise ValidationError("Content is required")
    if len(content) > content_settings.MAX_POST_CONTENT_SIZE:
        raise ValidationError("Content is too large")
    return content


def post_view(post: Post) -> dict[str, Any]:
    return {
        "id": post.id,
        "title": post.title,
        "slug": post.slug,
        "content": post.content,
        "html": post.rendered_content,
        "author_id": post.author_id,
        "created_at": post.created_at,
        "updated_at": post.updated_at,
    }


async def create_post(session: AsyncSession, title: str, content: str, acting_user: User) -> dict[str, Any]:
    try:
        require_admin(acting_user)
        title = _validate_title(title)
        content = _validate_body(content)
        rendered = await render_content(content, ContentTier.trusted)
        post = Post(
            title=title,
            slug=await _unique_slug(session, title),
            content=rendered.raw,
            rendered_content=rendered.html,
            author_id=acting_user.id,
        )
        session.add(post)
        await session.commit()
        await session.refresh(post)
    except RenderFailure as e:
        return fail("Failed to create post", e.code)
    except ContentError as e:
        return fail_from(e)
    except SQLAlchemyError:
        logger.exception("failed to create post")
        await session.rollback()
        return fail("Failed to create post")
    return ok(post_view(post))


async def update_post_body(session: AsyncSession, post_id: int, content: str, acting_user: User) -> dict[str, Any]:
    """Replace a post body; raw markdown and HTML are always written together."""
    try:
        require_admin(acting_user)
        content = _validate_body(content)
        post = await session.get(Post, post_id)
        if not post:
            raise NotFoundError("Post not found")
        rendered = await render_content(content, ContentTier.trusted)
        post.content = rendered.raw
        post.rendered_content = rendered.html
        post.updated_at = datetime.utcnow()
        session.add(post)
        await session.commit()
        await session.refresh(post)
    except RenderFailure as e:
        return fail("Failed to update post", e.code)
    except ContentError as e:
        return fail_from(e)
    except SQLAlchemyError:
        logger.exception("failed to update post: post_id=%s", post_id)
        await session.rollback()
        return fail("Failed to update post")
    return ok(post_view(post))
