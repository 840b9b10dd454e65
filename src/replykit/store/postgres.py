"""PostgreSQL implementation of ReplyStore using asyncpg."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from replykit.models.conversation import Conversation, Message, User
from replykit.models.identity import IdentityMapping
from replykit.store.base import ReplyStore

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL UNIQUE,
    data JSONB NOT NULL
);

CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    seq BIGSERIAL,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    data JSONB NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_conversations_user ON conversations(user_id, updated_at DESC);

CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    session_id TEXT,
    seq BIGSERIAL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    data JSONB NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id, created_at);
CREATE INDEX IF NOT EXISTS idx_messages_session ON messages(session_id) WHERE session_id IS NOT NULL;

CREATE TABLE IF NOT EXISTS webhook_users (
    email TEXT PRIMARY KEY,
    external_user_id TEXT NOT NULL,
    data JSONB NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_webhook_users_external ON webhook_users(external_user_id);
"""

_PENDING_FILTER = "role = 'assistant' AND left(content, length($1)) = $1"


def _dump(model: Any) -> str:
    return str(model.model_dump_json())


class PostgresStore(ReplyStore):
    """PostgreSQL-backed portal store using asyncpg."""

    def __init__(
        self,
        dsn: str | None = None,
        pool: Any = None,
    ) -> None:
        try:
            import asyncpg as _asyncpg
        except ImportError as exc:
            raise ImportError(
                "asyncpg is required for PostgresStore. "
                "Install it with: pip install replykit[postgres]"
            ) from exc
        self._asyncpg = _asyncpg
        self._dsn = dsn
        self._pool = pool
        self._owns_pool = pool is None

    async def init(self, min_size: int = 2, max_size: int = 10) -> None:
        """Create the connection pool (if needed) and ensure schema exists."""
        if self._pool is None:
            self._pool = await self._asyncpg.create_pool(
                self._dsn,
                min_size=min_size,
                max_size=max_size,
            )
        async with self._pool.acquire() as conn:
            await conn.execute(_SCHEMA)

    async def close(self) -> None:
        """Release the connection pool if we own it."""
        if self._pool is not None and self._owns_pool:
            await self._pool.close()
            self._pool = None

    async def __aenter__(self) -> PostgresStore:
        await self.init()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── User operations ──────────────────────────────────────────

    async def create_user(self, user: User) -> User:
        async with self._pool.acquire() as conn:
            await conn.execute(
                "INSERT INTO users (id, email, data) VALUES ($1, $2, $3)",
                user.id,
                user.email,
                _dump(user),
            )
        return user

    async def get_user(self, user_id: str) -> User | None:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow("SELECT data FROM users WHERE id = $1", user_id)
        if row is None:
            return None
        return User.model_validate_json(row["data"])

    async def get_user_by_email(self, email: str) -> User | None:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow("SELECT data FROM users WHERE email = $1", email)
        if row is None:
            return None
        return User.model_validate_json(row["data"])

    async def update_user(self, user: User) -> User:
        async with self._pool.acquire() as conn:
            await conn.execute(
                "UPDATE users SET email = $2, data = $3 WHERE id = $1",
                user.id,
                user.email,
                _dump(user),
            )
        return user

    # ── Conversation operations ──────────────────────────────────

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        async with self._pool.acquire() as conn:
            await conn.execute(
                "INSERT INTO conversations (id, user_id, updated_at, data) "
                "VALUES ($1, $2, $3, $4)",
                conversation.id,
                conversation.user_id,
                conversation.updated_at,
                _dump(conversation),
            )
        return conversation

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT data FROM conversations WHERE id = $1", conversation_id
            )
        if row is None:
            return None
        return Conversation.model_validate_json(row["data"])

    async def update_conversation(self, conversation: Conversation) -> Conversation:
        async with self._pool.acquire() as conn:
            tag = await conn.execute(
                "UPDATE conversations SET updated_at = $2, data = $3 WHERE id = $1",
                conversation.id,
                conversation.updated_at,
                _dump(conversation),
            )
        if tag != "UPDATE 1":
            from replykit.core.errors import ConversationNotFoundError

            raise ConversationNotFoundError(conversation.id)
        return conversation

    async def delete_conversation(self, conversation_id: str) -> bool:
        async with self._pool.acquire() as conn:
            tag = await conn.execute("DELETE FROM conversations WHERE id = $1", conversation_id)
        return bool(tag == "DELETE 1")

    async def list_conversations(self, user_id: str) -> list[Conversation]:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT data FROM conversations WHERE user_id = $1 "
                "ORDER BY updated_at DESC, seq DESC",
                user_id,
            )
        return [Conversation.model_validate_json(r["data"]) for r in rows]

    async def find_latest_conversation(self, user_id: str) -> Conversation | None:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT data FROM conversations WHERE user_id = $1 "
                "ORDER BY updated_at DESC, seq DESC LIMIT 1",
                user_id,
            )
        if row is None:
            return None
        return Conversation.model_validate_json(row["data"])

    async def touch_conversation(
        self, conversation_id: str, at: datetime | None = None
    ) -> Conversation | None:
        conversation = await self.get_conversation(conversation_id)
        if conversation is None:
            return None
        conversation.updated_at = at or datetime.now(UTC)
        return await self.update_conversation(conversation)

    # ── Message operations ───────────────────────────────────────

    async def add_message(self, message: Message) -> Message:
        async with self._pool.acquire() as conn:
            await conn.execute(
                "INSERT INTO messages "
                "(id, conversation_id, role, content, session_id, created_at, data) "
                "VALUES ($1, $2, $3, $4, $5, $6, $7)",
                message.id,
                message.conversation_id,
                message.role.value,
                message.content,
                message.session_id,
                message.created_at,
                _dump(message),
            )
        return message

    async def get_message(self, message_id: str) -> Message | None:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow("SELECT data FROM messages WHERE id = $1", message_id)
        if row is None:
            return None
        return Message.model_validate_json(row["data"])

    async def update_message(self, message: Message) -> Message:
        async with self._pool.acquire() as conn:
            await conn.execute(
                "UPDATE messages SET content = $2, session_id = $3, data = $4 WHERE id = $1",
                message.id,
                message.content,
                message.session_id,
                _dump(message),
            )
        return message

    async def list_messages(self, conversation_id: str) -> list[Message]:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT data FROM messages WHERE conversation_id = $1 ORDER BY created_at, seq",
                conversation_id,
            )
        return [Message.model_validate_json(r["data"]) for r in rows]

    async def find_latest_message_by_session(
        self, session_id: str, role: str = "assistant"
    ) -> Message | None:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT data FROM messages WHERE session_id = $1 AND role = $2 "
                "ORDER BY created_at DESC, seq DESC LIMIT 1",
                session_id,
                str(role),
            )
        if row is None:
            return None
        return Message.model_validate_json(row["data"])

    async def find_latest_pending_message(
        self, conversation_id: str, prefix: str
    ) -> Message | None:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT data FROM messages WHERE {_PENDING_FILTER} AND conversation_id = $2 "
                "ORDER BY created_at DESC, seq DESC LIMIT 1",
                prefix,
                conversation_id,
            )
        if row is None:
            return None
        return Message.model_validate_json(row["data"])

    async def list_pending_messages(
        self, prefix: str, created_before: datetime | None = None
    ) -> list[Message]:
        async with self._pool.acquire() as conn:
            if created_before is None:
                rows = await conn.fetch(
                    f"SELECT data FROM messages WHERE {_PENDING_FILTER} ORDER BY created_at, seq",
                    prefix,
                )
            else:
                rows = await conn.fetch(
                    f"SELECT data FROM messages WHERE {_PENDING_FILTER} AND created_at < $2 "
                    "ORDER BY created_at, seq",
                    prefix,
                    created_before,
                )
        return [Message.model_validate_json(r["data"]) for r in rows]

    async def count_messages(self, conversation_id: str) -> int:
        async with self._pool.acquire() as conn:
            count = await conn.fetchval(
                "SELECT count(*) FROM messages WHERE conversation_id = $1", conversation_id
            )
        return int(count)

    # ── Identity mapping operations ──────────────────────────────

    async def get_identity_mapping(self, email: str) -> IdentityMapping | None:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow("SELECT data FROM webhook_users WHERE email = $1", email)
        if row is None:
            return None
        return IdentityMapping.model_validate_json(row["data"])

    async def find_identity_mapping_by_external_id(
        self, external_user_id: str
    ) -> IdentityMapping | None:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT data FROM webhook_users WHERE external_user_id = $1 LIMIT 1",
                external_user_id,
            )
        if row is None:
            return None
        return IdentityMapping.model_validate_json(row["data"])

    async def create_identity_mapping(self, mapping: IdentityMapping) -> IdentityMapping:
        async with self._pool.acquire() as conn:
            await conn.execute(
                "INSERT INTO webhook_users (email, external_user_id, data) "
                "VALUES ($1, $2, $3) ON CONFLICT (email) DO NOTHING",
                mapping.email,
                mapping.external_user_id,
                _dump(mapping),
            )
            row = await conn.fetchrow(
                "SELECT data FROM webhook_users WHERE email = $1", mapping.email
            )
        return IdentityMapping.model_validate_json(row["data"])
