"""Content enrichment: extra context injected ahead of a user's message."""

from __future__ import annotations

from abc import ABC, abstractmethod

from replykit.models.conversation import User


class ContextEnricher(ABC):
    """Supplies context text (news digests, documents) for an outbound message."""

    @abstractmethod
    async def enrich(self, message: str, user: User) -> str | None:
        """Return context to prepend to *message*, or ``None`` for none."""
        ...


class NoopEnricher(ContextEnricher):
    async def enrich(self, message: str, user: User) -> str | None:
        return None


class StaticEnricher(ContextEnricher):
    """Always returns the same context. Handy in tests and demos."""

    def __init__(self, context: str) -> None:
        self._context = context

    async def enrich(self, message: str, user: User) -> str | None:
        return self._context


def apply_context(message: str, context: str | None) -> str:
    """Prepend *context* to *message* in the layout the webhook scenario expects."""
    if not context or not context.strip():
        return message
    return f"Context:\n{context.strip()}\n\nMessage:\n{message}"
