"""Exception hierarchy for ReplyKit.

Every error carries the HTTP status the web layer answers with.
"""

from __future__ import annotations


class ReplyKitError(Exception):
    """Base exception for all ReplyKit errors."""

    status_code: int = 500


class ConfigurationError(ReplyKitError):
    """Missing identity or secret configuration."""


class MissingIdentityError(ConfigurationError):
    """The caller has no email, so no message can be sent on their behalf."""


class InvalidCallbackConfigError(ReplyKitError):
    """The callback URL cannot be advertised to the webhook provider."""


class HealthCheckMismatchError(ReplyKitError):
    """The callback URL answered, but not with the ready sentinel."""

    status_code = 502


class CallbackUnreachableError(ReplyKitError):
    """Neither the public callback URL nor the loopback fallback answered."""

    status_code = 502


class WebhookNetworkError(ReplyKitError):
    """Transport failure or timeout talking to the webhook or the probe."""

    status_code = 502


class UnauthenticatedError(ReplyKitError):
    """The callback did not present the configured shared secret."""

    status_code = 401


class UnparseableCallbackError(ReplyKitError):
    """The callback body could not be turned into a payload."""

    status_code = 400


class CallbackTooLargeError(ReplyKitError):
    """The callback body exceeds the configured size limit."""

    status_code = 413


class MissingReplyTextError(UnparseableCallbackError):
    """The callback body carried no reply text."""


class NoPendingMessageError(ReplyKitError):
    """No pending assistant message correlates with the callback."""

    status_code = 404


class ConversationNotFoundError(ReplyKitError):
    """The conversation does not exist or belongs to another user."""

    status_code = 404

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id
