from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field, Column
from sqlalchemy import Text


class Role(str, Enum):
    admin = "admin"
    user = "user"


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    username: Optional[str] = Field(default=None, index=True)
    email: str = Field(index=True, unique=True)
    name: str = Field(default="")
    role: Role = Field(default=Role.user)
    password_hash: str = Field(default="")

    # 软删除：账号删除后评论/通知保留，作者显示为 Deleted User
    is_active: bool = Field(default=True, index=True)
    deleted_at: Optional[datetime] = Field(default=None, index=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)


class Post(SQLModel, table=True):
    """Post body is trusted content: only admins author it."""

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    slug: str = Field(index=True, unique=True)
    content: str = Field(default="", sa_column=Column(Text, nullable=False))
    rendered_content: str = Field(default="", sa_column=Column(Text, nullable=False))
    author_id: Optional[int] = Field(default=None, foreign_key="user.id", index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Comment(SQLModel, table=True):
    """Flat storage; the thread is rebuilt on read from ``parent_id``.

    ``parent_id`` is NULL for top-level comments, otherwise it points at a
    top-level comment (one level of nesting only).
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    post_id: int = Field(foreign_key="post.id", index=True)
    author_id: Optional[int] = Field(default=None, foreign_key="user.id", index=True)
    parent_id: Optional[int] = Field(default=None, foreign_key="comment.id", index=True)

    content: str = Field(default="", sa_column=Column(Text, nullable=False))
    rendered_content: str = Field(default="", sa_column=Column(Text, nullable=False))

    hidden: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)


class NotificationType(str, Enum):
    reply = "reply"
    comment_hidden = "comment_hidden"
    comment_deleted = "comment_deleted"
    role_changed = "role_changed"


class Notification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    type: NotificationType = Field(index=True)
    message: str = Field(default="")
    # May dangle once the referenced comment is deleted.
    reference_id: Optional[int] = Field(default=None)
    read: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
