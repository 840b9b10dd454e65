"""Inbound callback reconciliation.

A callback moves through ``received -> authenticated -> normalized ->
matched -> applied``; each step can reject it with a `ReplyKitError`
subclass whose ``status_code`` the web layer answers with.
"""

from __future__ import annotations

import hmac
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any

from replykit.core.errors import (
    MissingReplyTextError,
    NoPendingMessageError,
    UnauthenticatedError,
    UnparseableCallbackError,
)
from replykit.core.placeholder import PENDING_PREFIX
from replykit.identity.mapper import IdentityMapper
from replykit.models.conversation import Message
from replykit.models.delivery import CallbackPayload, CallbackRequest, CallbackResult
from replykit.models.enums import MessageRole
from replykit.providers.webhook.normalize import extract_payload, parse_callback_body
from replykit.store.base import ReplyStore

logger = logging.getLogger("replykit.callback")

SECRET_HEADERS: tuple[str, ...] = ("x-latenode-secret", "x-webhook-secret")

_LOGGED_HEADERS: tuple[str, ...] = (
    "content-type",
    "user-agent",
    "x-forwarded-for",
    "x-request-id",
    "x-portal-session-id",
    "x-portal-callback-url",
)


def mask_secret(value: str | None) -> str | None:
    """Keep the first and last four characters of a secret for logs."""
    if not value:
        return value
    if len(value) <= 8:
        return "***"
    return f"{value[:4]}...{value[-4:]}"


def _lower_keys(headers: Mapping[str, str]) -> dict[str, str]:
    return {k.lower(): v for k, v in headers.items()}


def loggable_headers(headers: Mapping[str, str]) -> dict[str, str | None]:
    lowered = _lower_keys(headers)
    shown: dict[str, str | None] = {h: lowered.get(h) for h in _LOGGED_HEADERS}
    for name in SECRET_HEADERS:
        shown[name] = mask_secret(lowered.get(name))
    return shown


# -- Matching strategies --


class PendingReplyMatcher(ABC):
    """One way of finding the stored message a callback answers."""

    name: str = "matcher"

    @abstractmethod
    async def match(self, payload: CallbackPayload) -> Message | None:
        """Return the message to overwrite, or ``None`` to defer to the next matcher."""
        ...


class SessionIdMatcher(PendingReplyMatcher):
    """Latest assistant message sent with the callback's session id.

    Content state is ignored: a repeated callback for the same session
    overwrites the earlier answer.
    """

    name = "session"

    def __init__(self, store: ReplyStore) -> None:
        self._store = store

    async def match(self, payload: CallbackPayload) -> Message | None:
        if not payload.session_id:
            return None
        message = await self._store.find_latest_message_by_session(
            payload.session_id, role=MessageRole.ASSISTANT
        )
        logger.info(
            "Session lookup for %s: %s",
            payload.session_id,
            message.id if message else "not found",
        )
        return message


class UserPendingMatcher(PendingReplyMatcher):
    """Latest still-pending reply in the mapped user's most recent conversation."""

    name = "user"

    def __init__(
        self, store: ReplyStore, identity: IdentityMapper, prefix: str = PENDING_PREFIX
    ) -> None:
        self._store = store
        self._identity = identity
        self._prefix = prefix

    async def match(self, payload: CallbackPayload) -> Message | None:
        if not payload.external_user_id:
            return None
        email = await self._identity.find_email(payload.external_user_id)
        logger.info("User lookup for %s: mapped email %s", payload.external_user_id, email)
        if email is None:
            return None
        user = await self._store.get_user_by_email(email)
        if user is None:
            return None
        conversation = await self._store.find_latest_conversation(user.id)
        if conversation is None:
            return None
        message = await self._store.find_latest_pending_message(conversation.id, self._prefix)
        logger.info(
            "Pending message lookup in conversation %s: %s",
            conversation.id,
            message.id if message else "not found",
        )
        return message


async def first_match(
    matchers: Sequence[PendingReplyMatcher], payload: CallbackPayload
) -> tuple[PendingReplyMatcher, Message] | None:
    """Run *matchers* in order; the first one that finds a message wins."""
    for matcher in matchers:
        message = await matcher.match(payload)
        if message is not None:
            return matcher, message
    return None


# -- Reconciler --


class CallbackReconciler:
    """Applies an external provider's late reply to the turn that asked for it.

    Example::

        reconciler = CallbackReconciler(store, identity, secret="s3cret")
        result = await reconciler.reconcile(
            CallbackRequest(body={"sessionId": sid, "reply": "Paris."})
        )
    """

    def __init__(
        self,
        store: ReplyStore,
        identity: IdentityMapper,
        *,
        secret: str | None = None,
        matchers: Sequence[PendingReplyMatcher] | None = None,
    ) -> None:
        self._store = store
        self._secret = secret or None
        self._matchers: list[PendingReplyMatcher] = list(
            matchers
            if matchers is not None
            else (SessionIdMatcher(store), UserPendingMatcher(store, identity))
        )

    @property
    def matchers(self) -> list[PendingReplyMatcher]:
        return list(self._matchers)

    async def reconcile(self, request: CallbackRequest) -> CallbackResult:
        """Authenticate, normalise, match and apply one callback.

        Raises:
            UnauthenticatedError: Secret configured and not presented.
            UnparseableCallbackError: Body unreadable.
            MissingReplyTextError: No reply text in the body.
            NoPendingMessageError: Nothing to correlate with; the reply is dropped.
        """
        logger.info(
            "Incoming callback",
            extra={"headers": loggable_headers(request.headers), "query": request.query},
        )

        parse_error: UnparseableCallbackError | None = None
        try:
            data: Mapping[str, Any] = parse_callback_body(request.body)
        except UnparseableCallbackError as exc:
            parse_error = exc
            data = {}

        payload = extract_payload(data, request.headers)
        self.authenticate(request, payload)

        if parse_error is not None:
            logger.warning("Rejecting callback: %s", parse_error)
            raise parse_error
        if payload.reply_text is None:
            logger.warning("Rejecting callback: missing reply text")
            raise MissingReplyTextError("Missing reply text in callback payload")

        logger.info(
            "Extracted callback fields",
            extra={
                "session_id": payload.session_id,
                "external_user_id": payload.external_user_id,
                "recovered_from_raw": payload.raw_body is not None,
            },
        )

        found = await first_match(self._matchers, payload)
        if found is None:
            logger.warning(
                "No pending message for callback (session=%s, user=%s)",
                payload.session_id,
                payload.external_user_id,
            )
            raise NoPendingMessageError("No pending assistant message found for callback")
        matcher, message = found
        return await self._apply(message, payload.reply_text, matcher.name)

    def authenticate(self, request: CallbackRequest, payload: CallbackPayload) -> None:
        """Accept if any of the secret headers, body field or query field matches."""
        if self._secret is None:
            return
        headers = _lower_keys(request.headers)
        candidates = [headers.get(name) for name in SECRET_HEADERS]
        candidates += [payload.secret, request.query.get("secret")]
        expected = self._secret.encode()
        for candidate in candidates:
            if candidate and hmac.compare_digest(candidate.encode(), expected):
                return
        logger.warning("Callback secret validation failed")
        raise UnauthenticatedError("Invalid callback secret")

    async def _apply(self, message: Message, reply_text: str, matched_by: str) -> CallbackResult:
        message.content = reply_text
        await self._store.update_message(message)
        await self._store.touch_conversation(message.conversation_id)
        logger.info(
            "Applied callback to message %s",
            message.id,
            extra={
                "conversation_id": message.conversation_id,
                "session_id": message.session_id,
                "matched_by": matched_by,
            },
        )
        return CallbackResult(
            conversation_id=message.conversation_id,
            message_id=message.id,
            session_id=message.session_id,
        )
