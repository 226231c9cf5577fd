from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, HTTPException, Request
from jose import jwt, JWTError
from passlib.context import CryptContext
from pydantic_settings import BaseSettings
from sqlmodel.ext.asyncio.session import AsyncSession

from db import get_session
from errors import PolicyViolation
from models import Role, User


class AuthSettings(BaseSettings):
    APP_SECRET_KEY: str = "change-me"
    TOKEN_EXPIRE_HOURS: int = 72
    COOKIE_NAME: str = "blog_token"
    # 生产环境(HTTPS)建议设为 True；本地 http 开发默认 False，避免 cookie 不生效
    COOKIE_SECURE: bool = False

    class Config:
        case_sensitive = False


auth_settings = AuthSettings()
# PBKDF2-SHA256: no bcrypt backend/version issues and no 72-byte input limit.
_pwd = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return _pwd.hash(password)


def _role_value(user: User) -> str:
    # Role is a str Enum in most cases, but older rows / casts can behave differently.
    return getattr(user.role, "value", None) or str(user.role)


def is_admin(user: Optional[User]) -> bool:
    return user is not None and _role_value(user) == Role.admin.value


def require_admin(user: Optional[User]) -> None:
    """Service-level gate; raises PolicyViolation for non-admins."""
    if not is_admin(user):
        raise PolicyViolation("Admin access required")


def create_token(user: User, *, expire_hours: int | None = None) -> str:
    """Sign an identity cookie value for `user`.

    No route here issues tokens: sign-in belongs to the external auth service,
    which signs with the same APP_SECRET_KEY.
    """
    now = datetime.utcnow()
    hours = auth_settings.TOKEN_EXPIRE_HOURS if expire_hours is None else int(expire_hours)
    exp = now + timedelta(hours=hours)
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "username": getattr(user, "username", None),
        "role": _role_value(user),
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, auth_settings.APP_SECRET_KEY, algorithm="HS256")


def get_token_from_request(request: Request) -> Optional[str]:
    return request.cookies.get(auth_settings.COOKIE_NAME)


async def _user_from_token(session: AsyncSession, token: str) -> User:
    try:
        payload = jwt.decode(token, auth_settings.APP_SECRET_KEY, algorithms=["HS256"])
        user_id = int(payload.get("sub"))
    except (JWTError, TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")

    user = await session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    # soft-delete / disabled user
    if getattr(user, "is_active", True) is False:
        raise HTTPException(status_code=401, detail="User disabled")
    return user


async def get_current_user(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> User:
    token = get_token_from_request(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return await _user_from_token(session, token)


async def get_optional_user(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> Optional[User]:
    """Like get_current_user, but anonymous requests resolve to None.

    A cookie that is present but invalid is still rejected with 401.
    """
    token = get_token_from_request(request)
    if not token:
        return None
    return await _user_from_token(session, token)


def require_role(*roles: str):
    async def _dep(user: User = Depends(get_current_user)) -> User:
        if _role_value(user) not in set(roles):
            raise HTTPException(status_code=403, detail="Forbidden")
        return user

    return _dep
