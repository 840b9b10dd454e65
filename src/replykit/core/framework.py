"""ReplyKit - orchestrator for webhook-answered conversations."""

from __future__ import annotations

import logging

from replykit.core.errors import (
    CallbackTooLargeError,
    CallbackUnreachableError,
    ConfigurationError,
    ConversationNotFoundError,
    HealthCheckMismatchError,
    InvalidCallbackConfigError,
    MissingIdentityError,
    MissingReplyTextError,
    NoPendingMessageError,
    ReplyKitError,
    UnauthenticatedError,
    UnparseableCallbackError,
    WebhookNetworkError,
)
from replykit.core.placeholder import initial_placeholder, is_pending, new_session_id
from replykit.core.reaper import PendingReplyReaper
from replykit.core.reconciler import CallbackReconciler
from replykit.enrichment.base import ContextEnricher, NoopEnricher, apply_context
from replykit.identity.mapper import IdentityMapper
from replykit.models.conversation import Conversation, Message, User
from replykit.models.delivery import CallbackRequest, CallbackResult, ChatTurn, DispatchResult
from replykit.models.enums import DispatchStatus, MessageRole
from replykit.providers.webhook.address import CallbackAddressResolver
from replykit.providers.webhook.config import WebhookConfig
from replykit.providers.webhook.dispatcher import WebhookDispatcher
from replykit.store.base import ReplyStore
from replykit.store.memory import InMemoryStore

__all__ = [
    "CallbackTooLargeError",
    "CallbackUnreachableError",
    "ConfigurationError",
    "ConversationNotFoundError",
    "HealthCheckMismatchError",
    "InvalidCallbackConfigError",
    "MissingIdentityError",
    "MissingReplyTextError",
    "NoPendingMessageError",
    "ReplyKit",
    "ReplyKitError",
    "UnauthenticatedError",
    "UnparseableCallbackError",
    "WebhookNetworkError",
]

logger = logging.getLogger("replykit.framework")

TITLE_MAX_LENGTH = 50


def title_from_message(message: str) -> str:
    if len(message) > TITLE_MAX_LENGTH:
        return message[: TITLE_MAX_LENGTH - 3] + "..."
    return message


class ReplyKit:
    """Ties storage, the webhook dispatcher and the callback reconciler together.

    Example::

        kit = ReplyKit(WebhookConfig(webhook_url="https://hook.example.com/run"))
        turn = await kit.send_message(user, conversation.id, "What is the capital of France?")
        # later, from the callback route:
        await kit.handle_callback(CallbackRequest(body=raw_body, headers=headers))
    """

    def __init__(
        self,
        config: WebhookConfig,
        *,
        store: ReplyStore | None = None,
        enricher: ContextEnricher | None = None,
        resolver: CallbackAddressResolver | None = None,
        dispatcher: WebhookDispatcher | None = None,
        reconciler: CallbackReconciler | None = None,
        pending_reply_ttl: float | None = None,
        reaper_interval: float = 60.0,
    ) -> None:
        self._config = config
        self._store = store or InMemoryStore()
        self._identity = IdentityMapper(self._store)
        self._enricher = enricher or NoopEnricher()
        self._resolver = resolver or CallbackAddressResolver(config)
        self._dispatcher = dispatcher or WebhookDispatcher(config, self._identity, self._resolver)
        self._reconciler = reconciler or CallbackReconciler(
            self._store, self._identity, secret=config.secret_value
        )
        self._reaper: PendingReplyReaper | None = None
        if pending_reply_ttl is not None:
            floor = config.health_timeout + config.webhook_timeout
            if pending_reply_ttl <= floor:
                # A shorter TTL could expire a turn while its dispatch is in flight.
                raise ConfigurationError(
                    f"pending_reply_ttl ({pending_reply_ttl}s) must exceed "
                    f"health_timeout + webhook_timeout ({floor}s)"
                )
            self._reaper = PendingReplyReaper(
                self._store, pending_reply_ttl, interval=reaper_interval
            )

    @property
    def config(self) -> WebhookConfig:
        return self._config

    @property
    def store(self) -> ReplyStore:
        return self._store

    @property
    def identity(self) -> IdentityMapper:
        return self._identity

    @property
    def resolver(self) -> CallbackAddressResolver:
        return self._resolver

    @property
    def dispatcher(self) -> WebhookDispatcher:
        return self._dispatcher

    @property
    def reconciler(self) -> CallbackReconciler:
        return self._reconciler

    @property
    def reaper(self) -> PendingReplyReaper | None:
        return self._reaper

    # -- Lifecycle --

    async def start(self) -> None:
        if self._reaper is not None:
            self._reaper.start()

    async def close(self) -> None:
        if self._reaper is not None:
            await self._reaper.stop()
        await self._dispatcher.close()
        await self._resolver.close()
        await self._store.close()

    # -- Conversations --

    async def create_conversation(self, user: User, title: str | None = None) -> Conversation:
        conversation = Conversation(user_id=user.id, title=title or "New Conversation")
        return await self._store.create_conversation(conversation)

    async def list_conversations(self, user: User) -> list[Conversation]:
        return await self._store.list_conversations(user.id)

    async def get_conversation(self, user: User, conversation_id: str) -> Conversation:
        """Return the conversation if *user* owns it.

        Raises:
            ConversationNotFoundError: Unknown id, or owned by someone else.
        """
        conversation = await self._store.get_conversation(conversation_id)
        if conversation is None or conversation.user_id != user.id:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    async def list_messages(self, user: User, conversation_id: str) -> list[Message]:
        await self.get_conversation(user, conversation_id)
        return await self._store.list_messages(conversation_id)

    async def delete_conversation(self, user: User, conversation_id: str) -> None:
        await self.get_conversation(user, conversation_id)
        await self._store.delete_conversation(conversation_id)

    # -- Chat turn --

    async def send_message(self, user: User, conversation_id: str, text: str) -> ChatTurn:
        """Store the user's turn, dispatch it, and store the assistant's turn.

        The assistant's turn is persisted as a pending placeholder before the
        webhook is called, so a fast callback always finds it.

        Raises:
            ValueError: *text* is blank.
            ConversationNotFoundError: *user* does not own the conversation.
        """
        if not text or not text.strip():
            raise ValueError("Message is required")
        conversation = await self.get_conversation(user, conversation_id)

        user_message = await self._store.add_message(
            Message(conversation_id=conversation.id, role=MessageRole.USER, content=text)
        )

        outbound = text
        try:
            outbound = apply_context(text, await self._enricher.enrich(text, user))
        except Exception:
            logger.exception("Context enrichment failed, sending the message as typed")

        session_id = new_session_id()
        placeholder = await self._store.add_message(
            Message(
                conversation_id=conversation.id,
                role=MessageRole.ASSISTANT,
                content=initial_placeholder(session_id),
                session_id=session_id,
            )
        )

        result = await self._dispatcher.dispatch(
            f"verified_user_{user.id}",
            outbound,
            user.email,
            session_id=session_id,
        )
        assistant_message = await self._settle_placeholder(placeholder, result)

        if await self._store.count_messages(conversation.id) == 2:
            conversation.title = title_from_message(text)
            await self._store.update_conversation(conversation)
        await self._store.touch_conversation(conversation.id)

        return ChatTurn(
            user_message=user_message,
            assistant_message=assistant_message,
            dispatch=result,
        )

    async def _settle_placeholder(self, placeholder: Message, result: DispatchResult) -> Message:
        current = await self._store.get_message(placeholder.id)
        if current is None:
            return placeholder
        if not is_pending(current.content):
            # The callback beat the webhook's own response.
            logger.info("Callback already answered session %s", current.session_id)
            return current

        current.content = result.reply
        if result.status == DispatchStatus.ERROR:
            # Detach the row from its session so no late callback can claim it.
            current.session_id = result.session_id
        await self._store.update_message(current)
        return current

    # -- Callback --

    async def handle_callback(self, request: CallbackRequest) -> CallbackResult:
        return await self._reconciler.reconcile(request)
