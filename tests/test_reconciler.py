"""Tests for CallbackReconciler."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from replykit.core.errors import (
    MissingReplyTextError,
    NoPendingMessageError,
    UnauthenticatedError,
    UnparseableCallbackError,
)
from replykit.core.placeholder import PENDING_PREFIX, initial_placeholder
from replykit.core.reconciler import (
    CallbackReconciler,
    PendingReplyMatcher,
    SessionIdMatcher,
    UserPendingMatcher,
    loggable_headers,
    mask_secret,
)
from replykit.identity.mapper import IdentityMapper
from replykit.models.conversation import Conversation, Message
from replykit.models.delivery import CallbackPayload, CallbackRequest
from replykit.models.enums import MessageRole
from replykit.store.memory import InMemoryStore
from tests.conftest import make_conversation, make_user

T0 = datetime(2026, 1, 1, tzinfo=UTC)


async def _pending(
    store: InMemoryStore, conversation: Conversation, session_id: str, **kwargs: object
) -> Message:
    return await store.add_message(
        Message(
            conversation_id=conversation.id,
            role=MessageRole.ASSISTANT,
            content=initial_placeholder(session_id),
            session_id=session_id,
            **kwargs,  # type: ignore[arg-type]
        )
    )


def _reconciler(store: InMemoryStore, secret: str | None = None) -> CallbackReconciler:
    return CallbackReconciler(store, IdentityMapper(store), secret=secret)


class TestSessionMatch:
    async def test_overwrites_by_session(self, store: InMemoryStore) -> None:
        user = await make_user(store)
        conv = await make_conversation(store, user, updated_at=T0)
        msg = await _pending(store, conv, "webhook_session_1_aaaa")

        result = await _reconciler(store).reconcile(
            CallbackRequest(body={"sessionId": "webhook_session_1_aaaa", "reply": "Paris."})
        )

        assert result.status == "updated"
        assert result.message_id == msg.id
        assert result.conversation_id == conv.id
        assert result.session_id == "webhook_session_1_aaaa"
        stored = await store.get_message(msg.id)
        assert stored is not None
        assert stored.content == "Paris."
        touched = await store.get_conversation(conv.id)
        assert touched is not None
        assert touched.updated_at > T0

    async def test_session_from_header(self, store: InMemoryStore) -> None:
        user = await make_user(store)
        conv = await make_conversation(store, user)
        msg = await _pending(store, conv, "s-header")

        result = await _reconciler(store).reconcile(
            CallbackRequest(body={"reply": "hi"}, headers={"x-portal-session-id": "s-header"})
        )

        assert result.message_id == msg.id

    async def test_repeat_callback_overwrites_again(self, store: InMemoryStore) -> None:
        user = await make_user(store)
        conv = await make_conversation(store, user)
        msg = await _pending(store, conv, "s1")
        reconciler = _reconciler(store)

        await reconciler.reconcile(CallbackRequest(body={"sessionId": "s1", "reply": "first"}))
        await reconciler.reconcile(CallbackRequest(body={"sessionId": "s1", "reply": "second"}))

        stored = await store.get_message(msg.id)
        assert stored is not None
        assert stored.content == "second"

    async def test_malformed_body(self, store: InMemoryStore) -> None:
        user = await make_user(store)
        conv = await make_conversation(store, user)
        msg = await _pending(store, conv, "s1")

        await _reconciler(store).reconcile(
            CallbackRequest(body='{"sessionId": "s1", "reply": "Line 1\nLine 2"}')
        )

        stored = await store.get_message(msg.id)
        assert stored is not None
        assert stored.content == "Line 1\nLine 2"


class TestUserFallback:
    async def test_user_latest_pending(self, store: InMemoryStore) -> None:
        user = await make_user(store)
        identity = IdentityMapper(store)
        await identity.resolve_external_id(user.email, "verified_user_x")
        older = await make_conversation(store, user, updated_at=T0)
        latest = await make_conversation(store, user, updated_at=T0 + timedelta(minutes=1))
        await _pending(store, older, "s-old")
        target = await _pending(store, latest, "s-new")

        result = await CallbackReconciler(store, identity).reconcile(
            CallbackRequest(body={"userId": "verified_user_x", "reply": "Berlin."})
        )

        assert result.message_id == target.id
        stored = await store.get_message(target.id)
        assert stored is not None
        assert stored.content == "Berlin."

    async def test_unknown_session_falls_back_to_user(self, store: InMemoryStore) -> None:
        user = await make_user(store)
        identity = IdentityMapper(store)
        await identity.resolve_external_id(user.email, "verified_user_x")
        conv = await make_conversation(store, user)
        target = await _pending(store, conv, "s1")

        result = await CallbackReconciler(store, identity).reconcile(
            CallbackRequest(
                body={"sessionId": "gone", "userId": "verified_user_x", "reply": "ok"}
            )
        )

        assert result.message_id == target.id

    async def test_only_pending_rows_considered(self, store: InMemoryStore) -> None:
        user = await make_user(store)
        identity = IdentityMapper(store)
        await identity.resolve_external_id(user.email, "verified_user_x")
        conv = await make_conversation(store, user)
        await store.add_message(
            Message(conversation_id=conv.id, role=MessageRole.ASSISTANT, content="done")
        )

        with pytest.raises(NoPendingMessageError):
            await CallbackReconciler(store, identity).reconcile(
                CallbackRequest(body={"userId": "verified_user_x", "reply": "late"})
            )


class TestRejections:
    async def test_no_pending_message(self, store: InMemoryStore) -> None:
        with pytest.raises(NoPendingMessageError) as exc_info:
            await _reconciler(store).reconcile(
                CallbackRequest(body={"sessionId": "unknown", "reply": "orphan"})
            )
        assert exc_info.value.status_code == 404

    async def test_missing_reply(self, store: InMemoryStore) -> None:
        with pytest.raises(MissingReplyTextError) as exc_info:
            await _reconciler(store).reconcile(CallbackRequest(body={"sessionId": "s1"}))
        assert exc_info.value.status_code == 400

    async def test_empty_body(self, store: InMemoryStore) -> None:
        with pytest.raises(UnparseableCallbackError):
            await _reconciler(store).reconcile(CallbackRequest(body=None))

    async def test_error_session_never_matches(self, store: InMemoryStore) -> None:
        user = await make_user(store)
        conv = await make_conversation(store, user)
        await store.add_message(
            Message(
                conversation_id=conv.id,
                role=MessageRole.ASSISTANT,
                content="The message could not be delivered.",
                session_id="error_session_1_abcd",
            )
        )

        with pytest.raises(NoPendingMessageError):
            await _reconciler(store).reconcile(
                CallbackRequest(body={"sessionId": "webhook_session_1_abcd", "reply": "late"})
            )


class TestSecret:
    SECRET = "s3cret-value"

    async def _setup(self, store: InMemoryStore) -> Message:
        user = await make_user(store)
        conv = await make_conversation(store, user)
        return await _pending(store, conv, "s1")

    async def test_wrong_secret_leaves_store_untouched(self, store: InMemoryStore) -> None:
        msg = await self._setup(store)

        with pytest.raises(UnauthenticatedError) as exc_info:
            await _reconciler(store, self.SECRET).reconcile(
                CallbackRequest(
                    body={"sessionId": "s1", "reply": "x"},
                    headers={"x-latenode-secret": "wrong"},
                )
            )

        assert exc_info.value.status_code == 401
        stored = await store.get_message(msg.id)
        assert stored is not None
        assert stored.content.startswith(PENDING_PREFIX)

    async def test_missing_secret_rejected_before_parsing(self, store: InMemoryStore) -> None:
        with pytest.raises(UnauthenticatedError):
            await _reconciler(store, self.SECRET).reconcile(CallbackRequest(body=None))

    @pytest.mark.parametrize(
        "request_kwargs",
        [
            {"headers": {"X-Latenode-Secret": SECRET}},
            {"headers": {"x-webhook-secret": SECRET}},
            {"query": {"secret": SECRET}},
            {"body_secret": SECRET},
            {"headers": {"x-latenode-secret": "wrong", "x-webhook-secret": SECRET}},
        ],
    )
    async def test_any_source_accepted(
        self, store: InMemoryStore, request_kwargs: dict[str, object]
    ) -> None:
        msg = await self._setup(store)
        body: dict[str, object] = {"sessionId": "s1", "reply": "ok"}
        kwargs = dict(request_kwargs)
        if "body_secret" in kwargs:
            body["secret"] = kwargs.pop("body_secret")

        result = await _reconciler(store, self.SECRET).reconcile(
            CallbackRequest(body=body, **kwargs)  # type: ignore[arg-type]
        )

        assert result.message_id == msg.id

    async def test_no_secret_configured(self, store: InMemoryStore) -> None:
        msg = await self._setup(store)
        result = await _reconciler(store).reconcile(
            CallbackRequest(body={"sessionId": "s1", "reply": "ok"})
        )
        assert result.message_id == msg.id


class TestMatchers:
    async def test_default_order(self, store: InMemoryStore) -> None:
        reconciler = _reconciler(store)
        assert [m.name for m in reconciler.matchers] == ["session", "user"]
        assert isinstance(reconciler.matchers[0], SessionIdMatcher)
        assert isinstance(reconciler.matchers[1], UserPendingMatcher)

    async def test_custom_matcher(self, store: InMemoryStore) -> None:
        user = await make_user(store)
        conv = await make_conversation(store, user)
        msg = await _pending(store, conv, "s1")

        class FixedMatcher(PendingReplyMatcher):
            name = "fixed"

            async def match(self, payload: CallbackPayload) -> Message | None:
                return await store.get_message(msg.id)

        reconciler = CallbackReconciler(store, IdentityMapper(store), matchers=[FixedMatcher()])
        result = await reconciler.reconcile(CallbackRequest(body={"reply": "custom"}))

        assert result.message_id == msg.id


class TestLogHelpers:
    def test_mask_secret(self) -> None:
        assert mask_secret("abcdefghijkl") == "abcd...ijkl"
        assert mask_secret("short") == "***"
        assert mask_secret(None) is None

    def test_secret_headers_masked(self) -> None:
        shown = loggable_headers({"X-Webhook-Secret": "abcdefghijkl", "Content-Type": "a/b"})
        assert shown["x-webhook-secret"] == "abcd...ijkl"
        assert shown["content-type"] == "a/b"
