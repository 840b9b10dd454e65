"""User, conversation and message models."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, Field

from replykit.models.enums import MessageRole


def _now() -> datetime:
    return datetime.now(UTC)


class User(BaseModel):
    """An account of the portal, as supplied by the session layer."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    email: str
    name: str | None = None
    is_approved: bool = False
    is_admin: bool = False
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class Conversation(BaseModel):
    """A chat thread owned by a single user."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    user_id: str
    title: str = "New Conversation"
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class Message(BaseModel):
    """A single turn in a conversation.

    Assistant messages produced through the automation webhook carry the
    correlation ``session_id`` they were sent with.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    conversation_id: str
    role: MessageRole
    content: str
    session_id: str | None = None
    created_at: datetime = Field(default_factory=_now)
