"""ReplyKit data models."""

from replykit.models.conversation import Conversation, Message, User
from replykit.models.delivery import (
    CallbackPayload,
    CallbackRequest,
    CallbackResult,
    ChatTurn,
    DispatchResult,
    ResolvedCallback,
)
from replykit.models.enums import DeliveryMode, DispatchStatus, MessageRole
from replykit.models.identity import IdentityMapping

__all__ = [
    "CallbackPayload",
    "CallbackRequest",
    "CallbackResult",
    "ChatTurn",
    "Conversation",
    "DeliveryMode",
    "DispatchResult",
    "DispatchStatus",
    "IdentityMapping",
    "Message",
    "MessageRole",
    "ResolvedCallback",
    "User",
]
