"""Cooperative polling for replies still pending on the webhook."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Sequence

from replykit.core.placeholder import PENDING_PREFIX
from replykit.models.conversation import Message
from replykit.models.enums import MessageRole

logger = logging.getLogger("replykit.client.polling")

POLL_INTERVAL = 1.5
POLL_MAX_ATTEMPTS = 80

FetchMessages = Callable[[str], Awaitable[list[Message]]]
MessagesCallback = Callable[[str, list[Message]], Awaitable[None] | None]


def has_pending_reply(messages: Sequence[Message], prefix: str = PENDING_PREFIX) -> bool:
    """True if any assistant message is still a webhook placeholder."""
    return any(
        m.role == MessageRole.ASSISTANT
        and isinstance(m.content, str)
        and m.content.startswith(prefix)
        for m in messages
    )


class PendingReplyPoller:
    """Re-fetches one conversation's messages while a placeholder is pending.

    One instance per active conversation view. Call `watch` whenever the
    loaded messages change, `switch` when the view moves to another
    conversation, and `close` on teardown. Polling runs at a fixed interval
    for at most *max_attempts* fetches, then stops whatever the outcome.

    Example::

        poller = PendingReplyPoller(client.get_messages, on_messages=render)
        poller.watch(conversation.id, messages)
    """

    def __init__(
        self,
        fetch: FetchMessages,
        on_messages: MessagesCallback | None = None,
        *,
        interval: float = POLL_INTERVAL,
        max_attempts: int = POLL_MAX_ATTEMPTS,
        prefix: str = PENDING_PREFIX,
    ) -> None:
        self._fetch = fetch
        self._on_messages = on_messages
        self._interval = interval
        self._max_attempts = max_attempts
        self._prefix = prefix
        self._conversation_id: str | None = None
        self._messages: list[Message] = []
        self._task: asyncio.Task[None] | None = None
        self.attempts = 0

    @property
    def conversation_id(self) -> str | None:
        return self._conversation_id

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    @property
    def polling(self) -> bool:
        return self._task is not None and not self._task.done()

    def watch(self, conversation_id: str, messages: Sequence[Message]) -> None:
        """Re-evaluate after the message list or active conversation changed."""
        if (
            conversation_id == self._conversation_id
            and self._task is not None
            and self._task is asyncio.current_task()
        ):
            # Called back from our own fetch; the loop re-checks on its own.
            self._messages = list(messages)
            return
        self._cancel()
        self._conversation_id = conversation_id
        self._messages = list(messages)
        if has_pending_reply(self._messages, self._prefix):
            self.attempts = 0
            self._task = asyncio.get_running_loop().create_task(self._run(conversation_id))

    def switch(self, conversation_id: str | None) -> None:
        """Move the view to another conversation (or none); stops polling at once."""
        self._cancel()
        self._conversation_id = conversation_id
        self._messages = []

    async def close(self) -> None:
        task = self._task
        self._cancel()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._conversation_id = None

    def _cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self, conversation_id: str) -> None:
        while self.attempts < self._max_attempts:
            await asyncio.sleep(self._interval)
            self.attempts += 1
            try:
                messages = await self._fetch(conversation_id)
            except Exception:
                logger.warning("Polling %s failed", conversation_id, exc_info=True)
                continue
            if conversation_id != self._conversation_id:
                return
            self._messages = list(messages)
            if self._on_messages is not None:
                result = self._on_messages(conversation_id, list(messages))
                if asyncio.iscoroutine(result):
                    await result
            if not has_pending_reply(self._messages, self._prefix):
                logger.debug("Pending reply resolved in %s", conversation_id)
                return
        logger.info(
            "Gave up polling %s after %d attempts", conversation_id, self._max_attempts
        )
