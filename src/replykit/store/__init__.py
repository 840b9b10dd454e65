"""Portal storage backends."""

from replykit.store.base import ReplyStore
from replykit.store.memory import InMemoryStore

__all__ = ["InMemoryStore", "ReplyStore"]
