from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request, Depends, Form, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response
from sqlmodel.ext.asyncio.session import AsyncSession

import comments as comment_service
import notifications as inbox
import posts as post_service
from app_config import content_settings
from auth import get_current_user, get_optional_user, require_role
from db import create_db_and_tables, engine, get_session
from errors import STATUS_BY_CODE, RenderFailure
from highlight import stylesheet
from models import User
from rendering import render_preview
from seed import ensure_default_admin
from tools.user_admin import set_user_role


app = FastAPI(title="Blog content service")


@app.on_event("startup")
async def on_startup():
    logging.basicConfig(level=content_settings.LOG_LEVEL.upper())
    await create_db_and_tables()
    # Ensure bootstrap admin exists (idempotent)
    async with AsyncSession(engine, expire_on_commit=False) as session:
        await ensure_default_admin(session)


def _respond(result: dict[str, Any]) -> JSONResponse:
    status = 200 if result.get("ok") else STATUS_BY_CODE.get(result.get("code"), 500)
    return JSONResponse(status_code=status, content=jsonable_encoder(result))


@app.exception_handler(HTTPException)
async def _http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": exc.detail, "code": "http_error"})


@app.get("/api/health")
async def health():
    return {"status": "ok"}


@app.get("/static/highlight.css")
async def highlight_css():
    return Response(content=stylesheet(), media_type="text/css")


# ── comments ──────────────────────────────────────────────────────────────────


@app.get("/api/posts/{post_id}/comments")
async def post_comments(
    post_id: int,
    user: Optional[User] = Depends(get_optional_user),
    session: AsyncSession = Depends(get_session),
):
    return _respond(await comment_service.get_comments_for_post(session, post_id, viewer=user))


@app.post("/api/posts/{post_id}/comments")
async def post_comment_create(
    post_id: int,
    content: str = Form(""),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return _respond(await comment_service.create_comment(session, post_id, content, user))


@app.post("/api/comments/{comment_id}/replies")
async def comment_reply_create(
    comment_id: int,
    content: str = Form(""),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return _respond(await comment_service.create_reply(session, comment_id, content, user))


# Moderation routes only need a signed-in user; the service layer enforces the admin role
# so that non-admins get a structured policy_violation result.


@app.post("/api/admin/comments/{comment_id}/hide")
async def admin_comment_hide(
    comment_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return _respond(await comment_service.hide_comment(session, comment_id, user))


@app.post("/api/admin/comments/{comment_id}/unhide")
async def admin_comment_unhide(
    comment_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return _respond(await comment_service.unhide_comment(session, comment_id, user))


@app.delete("/api/admin/comments/{comment_id}")
async def admin_comment_delete(
    comment_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return _respond(await comment_service.delete_comment(session, comment_id, user))


@app.get("/api/admin/comments")
async def admin_comments(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return _respond(await comment_service.get_admin_comments(session, user))


# ── users / posts (admin) ─────────────────────────────────────────────────────


@app.post("/api/admin/users/{user_id}/role")
async def admin_user_role(
    user_id: int,
    role: str = Form(...),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return _respond(await set_user_role(session, user_id, role, user))


@app.post("/api/admin/posts")
async def admin_post_create(
    title: str = Form(""),
    content: str = Form(""),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return _respond(await post_service.create_post(session, title, content, user))


@app.post("/api/admin/posts/{post_id}/body")
async def admin_post_body(
    post_id: int,
    content: str = Form(""),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return _respond(await post_service.update_post_body(session, post_id, content, user))


@app.post("/api/markdown/preview")
async def markdown_preview(
    content: str = Form(""),
    user: User = Depends(require_role("admin")),
):
    if len(content) > content_settings.MAX_POST_CONTENT_SIZE:
        return _respond({"ok": False, "error": "Content is too large", "code": "validation_error"})
    try:
        html = await render_preview(content)
    except RenderFailure:
        # already logged by the renderer
        return _respond({"ok": False, "error": "Failed to render preview", "code": "render_failure"})
    return _respond({"ok": True, "data": {"html": html}})


# ── notifications ─────────────────────────────────────────────────────────────


@app.get("/api/notifications")
async def notifications_list(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return _respond(await inbox.get_notifications(session, user))


@app.get("/api/notifications/unread-count")
async def notifications_unread_count(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return _respond(await inbox.get_unread_count(session, user))


@app.post("/api/notifications/read-all")
async def notifications_read_all(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return _respond(await inbox.mark_all_read(session, user))


@app.post("/api/notifications/{notification_id}/read")
async def notification_read(
    notification_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return _respond(await inbox.mark_read(session, user, notification_id))
