"""Expiry of placeholders whose callback never arrived."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import UTC, datetime, timedelta

from replykit.core.placeholder import PENDING_PREFIX
from replykit.models.conversation import Message
from replykit.store.base import ReplyStore

logger = logging.getLogger("replykit.reaper")

EXPIRED_REPLY = (
    "The automation webhook did not reply in time. Please send your message again."
)


class PendingReplyReaper:
    """Replaces placeholders older than *ttl* seconds with a failure message.

    Disabled unless the application opts in; a placeholder is otherwise left
    pending until its callback arrives.
    """

    def __init__(
        self,
        store: ReplyStore,
        ttl: float,
        *,
        interval: float = 60.0,
        prefix: str = PENDING_PREFIX,
        expired_reply: str = EXPIRED_REPLY,
    ) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self._store = store
        self._ttl = timedelta(seconds=ttl)
        self._interval = interval
        self._prefix = prefix
        self._expired_reply = expired_reply
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep(self, now: datetime | None = None) -> list[Message]:
        """Expire every placeholder created before ``now - ttl``."""
        cutoff = (now or datetime.now(UTC)) - self._ttl
        expired: list[Message] = []
        for message in await self._store.list_pending_messages(self._prefix, cutoff):
            # Re-read: the callback may have landed since the listing.
            current = await self._store.get_message(message.id)
            if current is None or not current.content.startswith(self._prefix):
                continue
            current.content = self._expired_reply
            await self._store.update_message(current)
            await self._store.touch_conversation(current.conversation_id)
            expired.append(current)
        if expired:
            logger.info("Expired %d pending replies older than %s", len(expired), self._ttl)
        return expired

    def start(self) -> None:
        """Run `sweep` every *interval* seconds in a background task."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _loop(self) -> None:
        while True:
            try:
                await self.sweep()
            except Exception:
                logger.exception("Pending reply sweep failed")
            await asyncio.sleep(self._interval)
