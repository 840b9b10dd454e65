"""In-memory implementation of ReplyStore."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime

from replykit.models.conversation import Conversation, Message, User
from replykit.models.enums import MessageRole
from replykit.models.identity import IdentityMapping
from replykit.store.base import ReplyStore


class InMemoryStore(ReplyStore):
    """Dict-based in-memory store for development and testing.

    Message and conversation dicts keep insertion order, which breaks ties
    between rows created within the same clock tick.
    """

    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._email_index: dict[str, str] = {}
        self._conversations: dict[str, Conversation] = {}
        self._messages: dict[str, Message] = {}
        self._conversation_messages: dict[str, list[str]] = {}
        self._mappings: dict[str, IdentityMapping] = {}

    # User operations

    async def create_user(self, user: User) -> User:
        self._users[user.id] = user
        self._email_index[user.email] = user.id
        return user

    async def get_user(self, user_id: str) -> User | None:
        user = self._users.get(user_id)
        return user.model_copy() if user is not None else None

    async def get_user_by_email(self, email: str) -> User | None:
        user_id = self._email_index.get(email)
        if user_id is None:
            return None
        return await self.get_user(user_id)

    async def update_user(self, user: User) -> User:
        if user.id not in self._users:
            raise KeyError(f"User not found: {user.id}")
        self._users[user.id] = user
        self._email_index[user.email] = user.id
        return user

    # Conversation operations

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        self._conversations[conversation.id] = conversation
        self._conversation_messages.setdefault(conversation.id, [])
        return conversation

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        conversation = self._conversations.get(conversation_id)
        return conversation.model_copy() if conversation is not None else None

    async def update_conversation(self, conversation: Conversation) -> Conversation:
        if conversation.id not in self._conversations:
            from replykit.core.errors import ConversationNotFoundError

            raise ConversationNotFoundError(conversation.id)
        self._conversations[conversation.id] = conversation
        return conversation

    async def delete_conversation(self, conversation_id: str) -> bool:
        if conversation_id not in self._conversations:
            return False
        del self._conversations[conversation_id]
        for mid in self._conversation_messages.pop(conversation_id, []):
            self._messages.pop(mid, None)
        return True

    async def list_conversations(self, user_id: str) -> list[Conversation]:
        owned = [c for c in self._conversations.values() if c.user_id == user_id]
        # Stable sort on reversed insertion order: newest insert wins ties.
        owned.reverse()
        owned.sort(key=lambda c: c.updated_at, reverse=True)
        return [c.model_copy() for c in owned]

    async def touch_conversation(
        self, conversation_id: str, at: datetime | None = None
    ) -> Conversation | None:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return None
        conversation.updated_at = at or datetime.now(UTC)
        return conversation.model_copy()

    # Message operations

    async def add_message(self, message: Message) -> Message:
        self._messages[message.id] = message
        self._conversation_messages.setdefault(message.conversation_id, []).append(message.id)
        return message

    async def get_message(self, message_id: str) -> Message | None:
        message = self._messages.get(message_id)
        return message.model_copy() if message is not None else None

    async def update_message(self, message: Message) -> Message:
        if message.id not in self._messages:
            raise KeyError(f"Message not found: {message.id}")
        self._messages[message.id] = message
        return message

    async def list_messages(self, conversation_id: str) -> list[Message]:
        ids = self._conversation_messages.get(conversation_id, [])
        messages = [self._messages[mid] for mid in ids if mid in self._messages]
        messages.sort(key=lambda m: m.created_at)
        return [m.model_copy() for m in messages]

    async def find_latest_message_by_session(
        self, session_id: str, role: str = "assistant"
    ) -> Message | None:
        return self._latest(
            m for m in self._messages.values() if m.session_id == session_id and m.role == role
        )

    async def find_latest_pending_message(
        self, conversation_id: str, prefix: str
    ) -> Message | None:
        ids = self._conversation_messages.get(conversation_id, [])
        return self._latest(
            self._messages[mid]
            for mid in ids
            if mid in self._messages
            and self._messages[mid].role == MessageRole.ASSISTANT
            and self._messages[mid].content.startswith(prefix)
        )

    async def list_pending_messages(
        self, prefix: str, created_before: datetime | None = None
    ) -> list[Message]:
        pending = [
            m
            for m in self._messages.values()
            if m.role == MessageRole.ASSISTANT
            and m.content.startswith(prefix)
            and (created_before is None or m.created_at < created_before)
        ]
        pending.sort(key=lambda m: m.created_at)
        return [m.model_copy() for m in pending]

    async def count_messages(self, conversation_id: str) -> int:
        return len(self._conversation_messages.get(conversation_id, []))

    # Identity mapping operations

    async def get_identity_mapping(self, email: str) -> IdentityMapping | None:
        mapping = self._mappings.get(email)
        return mapping.model_copy() if mapping is not None else None

    async def find_identity_mapping_by_external_id(
        self, external_user_id: str
    ) -> IdentityMapping | None:
        for mapping in self._mappings.values():
            if mapping.external_user_id == external_user_id:
                return mapping.model_copy()
        return None

    async def create_identity_mapping(self, mapping: IdentityMapping) -> IdentityMapping:
        stored = self._mappings.setdefault(mapping.email, mapping)
        return stored.model_copy()

    @staticmethod
    def _latest(messages: Iterable[Message]) -> Message | None:
        best: Message | None = None
        for message in messages:
            # >= so the later insert wins a created_at tie
            if best is None or message.created_at >= best.created_at:
                best = message
        return best.model_copy() if best is not None else None
