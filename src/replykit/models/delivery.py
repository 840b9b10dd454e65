"""Outbound dispatch and inbound callback result models."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from replykit.models.conversation import Message
from replykit.models.enums import DeliveryMode, DispatchStatus


class ResolvedCallback(BaseModel):
    """The callback URL this instance advertises, and how it was validated."""

    callback_url: str
    delivery_mode: DeliveryMode


class DispatchResult(BaseModel):
    """Outcome of a single webhook send.

    Attributes:
        status: ``pending`` when the provider accepted the request and will
            answer through the callback, ``success`` when it answered inline,
            ``error`` when the send failed (terminal for the user turn).
        reply: Text to store as the assistant's turn.
        session_id: Correlation id sent with the request, or a fresh
            ``error_session_...`` id on failure.
        timestamp: When the dispatch finished.
        request_id: Provider-side request id, when one was returned.
        delivery_mode: How the callback URL was validated, when it was.
    """

    status: DispatchStatus
    reply: str
    session_id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    request_id: str | None = None
    delivery_mode: DeliveryMode | None = None


class CallbackRequest(BaseModel):
    """Transport-neutral view of an inbound callback POST."""

    body: dict[str, Any] | str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    query: dict[str, str] = Field(default_factory=dict)


class CallbackPayload(BaseModel):
    """Fields recovered from a callback body, whatever shape it arrived in."""

    session_id: str | None = None
    external_user_id: str | None = None
    reply_text: str | None = None
    secret: str | None = None
    raw_body: str | None = None


class CallbackResult(BaseModel):
    """Successful reconciliation of a callback onto a pending reply."""

    status: str = "updated"
    conversation_id: str
    message_id: str
    session_id: str | None = None

    def to_response(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "conversationId": self.conversation_id,
            "messageId": self.message_id,
            "sessionId": self.session_id,
        }


class ChatTurn(BaseModel):
    """The stored messages of one user turn and the dispatch that answered it."""

    user_message: Message
    assistant_message: Message
    dispatch: DispatchResult
