"""All string enums for ReplyKit."""

from __future__ import annotations

from enum import StrEnum, unique


@unique
class MessageRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


@unique
class DeliveryMode(StrEnum):
    """How the advertised callback URL was proven reachable."""

    PUBLIC = "public"
    LOCAL_FALLBACK = "local_fallback"


@unique
class DispatchStatus(StrEnum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"
