"""ReplyKit - async webhook reply reconciliation for chat portals."""

from replykit._version import __version__
from replykit.client import PendingReplyPoller, PortalAPIError, PortalClient, has_pending_reply
from replykit.config import ReplyKitSettings, get_settings
from replykit.core.framework import (
    CallbackTooLargeError,
    CallbackUnreachableError,
    ConfigurationError,
    ConversationNotFoundError,
    HealthCheckMismatchError,
    InvalidCallbackConfigError,
    MissingIdentityError,
    MissingReplyTextError,
    NoPendingMessageError,
    ReplyKit,
    ReplyKitError,
    UnauthenticatedError,
    UnparseableCallbackError,
    WebhookNetworkError,
)
from replykit.core.placeholder import PENDING_PREFIX, is_pending
from replykit.core.reaper import PendingReplyReaper
from replykit.core.reconciler import (
    CallbackReconciler,
    PendingReplyMatcher,
    SessionIdMatcher,
    UserPendingMatcher,
)
from replykit.enrichment import ContextEnricher, NoopEnricher, StaticEnricher
from replykit.identity import (
    HeaderSessionResolver,
    IdentityMapper,
    MockSessionResolver,
    SessionResolver,
)
from replykit.models import (
    CallbackPayload,
    CallbackRequest,
    CallbackResult,
    ChatTurn,
    Conversation,
    DeliveryMode,
    DispatchResult,
    DispatchStatus,
    IdentityMapping,
    Message,
    MessageRole,
    ResolvedCallback,
    User,
)
from replykit.providers.webhook import (
    CallbackAddressResolver,
    WebhookConfig,
    WebhookDispatcher,
    build_envelope,
    normalize_callback_payload,
    parse_callback_body,
)
from replykit.store import InMemoryStore, ReplyStore

__all__ = [
    "PENDING_PREFIX",
    "CallbackAddressResolver",
    "CallbackPayload",
    "CallbackReconciler",
    "CallbackRequest",
    "CallbackResult",
    "CallbackTooLargeError",
    "CallbackUnreachableError",
    "ChatTurn",
    "ConfigurationError",
    "ContextEnricher",
    "Conversation",
    "ConversationNotFoundError",
    "DeliveryMode",
    "DispatchResult",
    "DispatchStatus",
    "HeaderSessionResolver",
    "HealthCheckMismatchError",
    "IdentityMapper",
    "IdentityMapping",
    "InMemoryStore",
    "InvalidCallbackConfigError",
    "Message",
    "MessageRole",
    "MissingIdentityError",
    "MissingReplyTextError",
    "MockSessionResolver",
    "NoPendingMessageError",
    "NoopEnricher",
    "PendingReplyMatcher",
    "PendingReplyPoller",
    "PendingReplyReaper",
    "PortalAPIError",
    "PortalClient",
    "ReplyKit",
    "ReplyKitError",
    "ReplyKitSettings",
    "ReplyStore",
    "ResolvedCallback",
    "SessionIdMatcher",
    "SessionResolver",
    "StaticEnricher",
    "UnauthenticatedError",
    "UnparseableCallbackError",
    "User",
    "UserPendingMatcher",
    "WebhookConfig",
    "WebhookDispatcher",
    "WebhookNetworkError",
    "__version__",
    "build_envelope",
    "get_settings",
    "has_pending_reply",
    "is_pending",
    "normalize_callback_payload",
    "parse_callback_body",
]
