"""Email to webhook-user-id mapping."""

from __future__ import annotations

import logging

from replykit.core.errors import ConfigurationError
from replykit.models.identity import IdentityMapping
from replykit.store.base import ReplyStore

logger = logging.getLogger("replykit.identity")


class IdentityMapper:
    """Persists which external user id the webhook provider knows an account by.

    The first id recorded for an email wins; later sends for the same email
    reuse it even when the caller proposes a different one.
    """

    def __init__(self, store: ReplyStore) -> None:
        self._store = store

    async def resolve_external_id(self, email: str, proposed_id: str) -> str:
        """Return the external id for *email*, recording *proposed_id* on first use.

        Raises:
            ConfigurationError: If *email* is empty.
        """
        if not email or not email.strip():
            raise ConfigurationError("An authenticated email is required to send messages")

        existing = await self._store.get_identity_mapping(email)
        if existing is not None:
            return existing.external_user_id

        stored = await self._store.create_identity_mapping(
            IdentityMapping(email=email, external_user_id=proposed_id)
        )
        if stored.external_user_id == proposed_id:
            logger.info("Mapped %s to webhook user %s", email, proposed_id)
        return stored.external_user_id

    async def find_email(self, external_user_id: str) -> str | None:
        """Reverse lookup: which email was mapped to *external_user_id*."""
        mapping = await self._store.find_identity_mapping_by_external_id(external_user_id)
        return mapping.email if mapping is not None else None
