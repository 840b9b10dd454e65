"""Tests for the FastAPI portal application."""

from __future__ import annotations

from collections.abc import AsyncIterator

import httpx
import pytest

from replykit.core.framework import ReplyKit
from replykit.core.placeholder import is_pending
from replykit.identity.session import HeaderSessionResolver
from replykit.models.conversation import User
from replykit.providers.webhook.config import WebhookConfig
from replykit.store.memory import InMemoryStore
from replykit.web.app import create_app
from tests.conftest import PUBLIC_BASE, WEBHOOK_URL, make_user, mock_http

CALLBACK_PATH = "/api/chat/webhook/callback"


@pytest.fixture
async def kit(store: InMemoryStore) -> AsyncIterator[ReplyKit]:
    config = WebhookConfig(
        webhook_url=WEBHOOK_URL, public_base_url=PUBLIC_BASE, callback_secret="topsecret"
    )
    kit = ReplyKit(config, store=store)
    mock_http(kit)
    yield kit


@pytest.fixture
async def client(kit: ReplyKit, store: InMemoryStore) -> AsyncIterator[httpx.AsyncClient]:
    app = create_app(kit, HeaderSessionResolver(store))
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://portal.test") as c:
        yield c


@pytest.fixture
async def alice(store: InMemoryStore) -> User:
    return await make_user(store)


def _auth(user: User) -> dict[str, str]:
    return {"x-user-email": user.email}


class TestCallbackRoutes:
    async def test_ready_probe(self, client: httpx.AsyncClient) -> None:
        resp = await client.get(CALLBACK_PATH)

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "callback-ready"
        assert data["endpoint"] == CALLBACK_PATH
        assert data["method"] == "GET"

    async def test_callback_needs_no_session(
        self, client: httpx.AsyncClient, alice: User
    ) -> None:
        conv = (await client.post("/api/chat/conversations", headers=_auth(alice))).json()
        sent = (
            await client.post(
                f"/api/chat/conversations/{conv['id']}/messages",
                json={"message": "capital of France?"},
                headers=_auth(alice),
            )
        ).json()
        session_id = sent["llmResponse"]["sessionId"]

        resp = await client.post(
            CALLBACK_PATH,
            content=f'{{"sessionId": "{session_id}", "reply": "Paris.\nCapital city."}}',
            headers={"content-type": "application/json", "x-latenode-secret": "topsecret"},
        )

        assert resp.status_code == 200
        assert resp.json() == {
            "status": "updated",
            "conversationId": conv["id"],
            "messageId": sent["assistantMessage"]["id"],
            "sessionId": session_id,
        }
        messages = (
            await client.get(
                f"/api/chat/conversations/{conv['id']}/messages", headers=_auth(alice)
            )
        ).json()
        assert messages[-1]["content"] == "Paris.\nCapital city."

    async def test_form_encoded_callback(
        self, client: httpx.AsyncClient, kit: ReplyKit, alice: User
    ) -> None:
        conv = await kit.create_conversation(alice)
        turn = await kit.send_message(alice, conv.id, "hi")

        resp = await client.post(
            CALLBACK_PATH,
            data={
                "sessionId": turn.dispatch.session_id,
                "reply": "form reply",
                "secret": "topsecret",
            },
        )

        assert resp.status_code == 200
        assert resp.json()["messageId"] == turn.assistant_message.id

    async def test_wrong_secret(self, client: httpx.AsyncClient) -> None:
        resp = await client.post(
            CALLBACK_PATH,
            json={"sessionId": "s1", "reply": "x"},
            headers={"x-webhook-secret": "nope"},
        )
        assert resp.status_code == 401
        assert "error" in resp.json()

    async def test_secret_in_query(self, client: httpx.AsyncClient) -> None:
        resp = await client.post(
            f"{CALLBACK_PATH}?secret=topsecret", json={"sessionId": "none", "reply": "x"}
        )
        assert resp.status_code == 404

    async def test_missing_reply(self, client: httpx.AsyncClient) -> None:
        resp = await client.post(
            CALLBACK_PATH, json={"sessionId": "s1"}, headers={"x-webhook-secret": "topsecret"}
        )
        assert resp.status_code == 400

    async def test_empty_body(self, client: httpx.AsyncClient) -> None:
        resp = await client.post(CALLBACK_PATH, headers={"x-webhook-secret": "topsecret"})
        assert resp.status_code == 400


class TestCallbackBodyLimit:
    @pytest.fixture
    async def small_client(self, store: InMemoryStore) -> AsyncIterator[httpx.AsyncClient]:
        config = WebhookConfig(
            webhook_url=WEBHOOK_URL,
            public_base_url=PUBLIC_BASE,
            callback_secret="topsecret",
            max_callback_body=64,
        )
        kit = ReplyKit(config, store=store)
        mock_http(kit)
        app = create_app(kit, HeaderSessionResolver(store))
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://portal.test") as c:
            yield c

    async def test_oversized_body_rejected(self, small_client: httpx.AsyncClient) -> None:
        resp = await small_client.post(
            CALLBACK_PATH,
            content='{"sessionId": "s1", "reply": "' + "x" * 100 + '"}',
            headers={"content-type": "application/json", "x-webhook-secret": "topsecret"},
        )
        assert resp.status_code == 413
        assert "64" in resp.json()["error"]

    async def test_oversized_stream_without_length(self, small_client: httpx.AsyncClient) -> None:
        async def chunks() -> AsyncIterator[bytes]:
            for _ in range(10):
                yield b"x" * 16

        resp = await small_client.post(
            CALLBACK_PATH,
            content=chunks(),
            headers={"content-type": "application/json", "x-webhook-secret": "topsecret"},
        )
        assert resp.status_code == 413

    async def test_body_within_limit_processed(self, small_client: httpx.AsyncClient) -> None:
        resp = await small_client.post(
            CALLBACK_PATH,
            content='{"sessionId": "s1", "reply": "ok"}',
            headers={"content-type": "application/json", "x-webhook-secret": "topsecret"},
        )
        assert resp.status_code == 404

    def test_default_limit_is_two_mebibytes(self) -> None:
        config = WebhookConfig(webhook_url=WEBHOOK_URL)
        assert config.max_callback_body == 2 * 1024 * 1024


class TestChatRoutes:
    async def test_health(self, client: httpx.AsyncClient) -> None:
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    async def test_unauthenticated(self, client: httpx.AsyncClient) -> None:
        resp = await client.get("/api/chat/conversations")
        assert resp.status_code == 401

    async def test_unapproved_user(self, client: httpx.AsyncClient, store: InMemoryStore) -> None:
        pending = await make_user(store, "new@example.com", approved=False)
        resp = await client.get("/api/chat/conversations", headers=_auth(pending))
        assert resp.status_code == 401

    async def test_conversation_lifecycle(self, client: httpx.AsyncClient, alice: User) -> None:
        created = await client.post(
            "/api/chat/conversations", json={"title": "Trip"}, headers=_auth(alice)
        )
        assert created.status_code == 201
        conv_id = created.json()["id"]

        listed = await client.get("/api/chat/conversations", headers=_auth(alice))
        assert [c["id"] for c in listed.json()] == [conv_id]

        deleted = await client.delete(f"/api/chat/conversations/{conv_id}", headers=_auth(alice))
        assert deleted.status_code == 200
        missing = await client.get(
            f"/api/chat/conversations/{conv_id}/messages", headers=_auth(alice)
        )
        assert missing.status_code == 404

    async def test_send_message_response(self, client: httpx.AsyncClient, alice: User) -> None:
        conv_id = (await client.post("/api/chat/conversations", headers=_auth(alice))).json()["id"]

        resp = await client.post(
            f"/api/chat/conversations/{conv_id}/messages",
            json={"message": "hello"},
            headers=_auth(alice),
        )

        assert resp.status_code == 200
        data = resp.json()
        assert data["userMessage"]["content"] == "hello"
        assert is_pending(data["assistantMessage"]["content"])
        assert data["llmResponse"]["status"] == "pending"
        assert data["llmResponse"]["sessionId"].startswith("webhook_session_")

    async def test_blank_message(self, client: httpx.AsyncClient, alice: User) -> None:
        conv_id = (await client.post("/api/chat/conversations", headers=_auth(alice))).json()["id"]

        resp = await client.post(
            f"/api/chat/conversations/{conv_id}/messages",
            json={"message": "  "},
            headers=_auth(alice),
        )

        assert resp.status_code == 400
        assert resp.json() == {"error": "Message is required"}

    async def test_foreign_conversation(
        self, client: httpx.AsyncClient, store: InMemoryStore, alice: User
    ) -> None:
        bob = await make_user(store, "bob@example.com")
        conv_id = (await client.post("/api/chat/conversations", headers=_auth(alice))).json()["id"]

        resp = await client.get(f"/api/chat/conversations/{conv_id}/messages", headers=_auth(bob))

        assert resp.status_code == 404


class TestServerWiring:
    async def test_build_app_from_settings(self) -> None:
        from replykit.config import ReplyKitSettings
        from replykit.web.server import build_app

        settings = ReplyKitSettings(_env_file=None, database_url=None, port=3999)
        app = build_app(settings)

        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://portal.test") as c:
            resp = await c.get(CALLBACK_PATH)

        assert resp.json()["status"] == "callback-ready"
