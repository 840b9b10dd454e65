"""Abstract base class for portal storage."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from replykit.models.conversation import Conversation, Message, User
from replykit.models.identity import IdentityMapping


class ReplyStore(ABC):
    """Persistent storage for users, conversations, messages and identity mappings.

    Implement this ABC to plug in any storage backend. The library ships with
    `InMemoryStore` for development and testing and `PostgresStore` for
    deployments. Writes are last-write-wins; no method takes a version.
    """

    # User operations

    @abstractmethod
    async def create_user(self, user: User) -> User:
        """Persist a new user."""
        ...

    @abstractmethod
    async def get_user(self, user_id: str) -> User | None:
        """Get a user by ID, or ``None`` if it doesn't exist."""
        ...

    @abstractmethod
    async def get_user_by_email(self, email: str) -> User | None:
        """Get a user by email, or ``None``."""
        ...

    @abstractmethod
    async def update_user(self, user: User) -> User:
        """Update an existing user."""
        ...

    # Conversation operations

    @abstractmethod
    async def create_conversation(self, conversation: Conversation) -> Conversation:
        """Persist a new conversation."""
        ...

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        """Get a conversation by ID."""
        ...

    @abstractmethod
    async def update_conversation(self, conversation: Conversation) -> Conversation:
        """Update an existing conversation."""
        ...

    @abstractmethod
    async def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation and its messages. Returns ``True`` if it existed."""
        ...

    @abstractmethod
    async def list_conversations(self, user_id: str) -> list[Conversation]:
        """List a user's conversations, most recently updated first."""
        ...

    @abstractmethod
    async def touch_conversation(
        self, conversation_id: str, at: datetime | None = None
    ) -> Conversation | None:
        """Set a conversation's ``updated_at`` (now by default)."""
        ...

    async def find_latest_conversation(self, user_id: str) -> Conversation | None:
        """Return the user's most recently updated conversation."""
        conversations = await self.list_conversations(user_id)
        return conversations[0] if conversations else None

    # Message operations

    @abstractmethod
    async def add_message(self, message: Message) -> Message:
        """Store a new message."""
        ...

    @abstractmethod
    async def get_message(self, message_id: str) -> Message | None:
        """Get a message by ID."""
        ...

    @abstractmethod
    async def update_message(self, message: Message) -> Message:
        """Update an existing message (content or session id)."""
        ...

    @abstractmethod
    async def list_messages(self, conversation_id: str) -> list[Message]:
        """List a conversation's messages, oldest first."""
        ...

    @abstractmethod
    async def find_latest_message_by_session(
        self, session_id: str, role: str = "assistant"
    ) -> Message | None:
        """Most recently created message with this exact session id and role."""
        ...

    @abstractmethod
    async def find_latest_pending_message(
        self, conversation_id: str, prefix: str
    ) -> Message | None:
        """Most recent assistant message in a conversation whose content starts with *prefix*."""
        ...

    @abstractmethod
    async def list_pending_messages(
        self, prefix: str, created_before: datetime | None = None
    ) -> list[Message]:
        """All assistant messages whose content starts with *prefix*, oldest first."""
        ...

    async def count_messages(self, conversation_id: str) -> int:
        """Return the number of messages in a conversation."""
        return len(await self.list_messages(conversation_id))

    # Identity mapping operations

    @abstractmethod
    async def get_identity_mapping(self, email: str) -> IdentityMapping | None:
        """Look up the mapping for an email."""
        ...

    @abstractmethod
    async def find_identity_mapping_by_external_id(
        self, external_user_id: str
    ) -> IdentityMapping | None:
        """Reverse lookup by webhook-side user id."""
        ...

    @abstractmethod
    async def create_identity_mapping(self, mapping: IdentityMapping) -> IdentityMapping:
        """Insert a mapping unless one exists for the email.

        Returns the stored mapping, which is the existing one when the email
        was already mapped.
        """
        ...

    # Lifecycle

    async def close(self) -> None:  # noqa: B027
        """Release backend resources."""
