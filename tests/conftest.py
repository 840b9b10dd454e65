"""Shared test fixtures and helpers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest

from replykit.core.framework import ReplyKit
from replykit.models.conversation import Conversation, User
from replykit.providers.webhook.config import WebhookConfig
from replykit.store.memory import InMemoryStore

WEBHOOK_URL = "https://hook.example.com/portal/chat"
PUBLIC_BASE = "https://portal.example.com"
CALLBACK_URL = f"{PUBLIC_BASE}/api/chat/webhook/callback"


@pytest.fixture
def advance() -> Callable[[int], Coroutine[Any, Any, None]]:
    """Yield control to let pending tasks run without real delay.

    Usage::

        await advance()       # 5 yields (default)
        await advance(10)     # 10 yields for heavier workloads
    """

    async def _advance(n: int = 5) -> None:
        for _ in range(n):
            await asyncio.sleep(0)

    return _advance


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def config() -> WebhookConfig:
    return WebhookConfig(webhook_url=WEBHOOK_URL, public_base_url=PUBLIC_BASE)


def ready_response(url: str = CALLBACK_URL, status: str = "callback-ready") -> httpx.Response:
    return httpx.Response(
        200,
        json={"status": status, "service": "web-portal"},
        request=httpx.Request("GET", url),
    )


def webhook_response(
    status_code: int = 200, *, json: Any = None, text: str | None = None, **kwargs: Any
) -> httpx.Response:
    request = httpx.Request("POST", WEBHOOK_URL)
    if text is not None:
        return httpx.Response(status_code, text=text, request=request, **kwargs)
    return httpx.Response(status_code, json=json, request=request, **kwargs)


def mock_http(
    kit: ReplyKit,
    *,
    post: httpx.Response | Exception | None = None,
    get: httpx.Response | Exception | None = None,
) -> None:
    """Replace the dispatcher and resolver clients with mocks."""
    kit.resolver._client = AsyncMock()
    if isinstance(get, Exception):
        kit.resolver._client.get = AsyncMock(side_effect=get)
    else:
        kit.resolver._client.get = AsyncMock(
            return_value=get if get is not None else ready_response()
        )
    kit.dispatcher._client = AsyncMock()
    if isinstance(post, Exception):
        kit.dispatcher._client.post = AsyncMock(side_effect=post)
    else:
        kit.dispatcher._client.post = AsyncMock(
            return_value=post if post is not None else webhook_response(json="Request accepted")
        )


async def make_user(
    store: InMemoryStore, email: str = "alice@example.com", *, approved: bool = True
) -> User:
    return await store.create_user(User(email=email, name="Alice", is_approved=approved))


async def make_conversation(store: InMemoryStore, user: User, **kwargs: Any) -> Conversation:
    return await store.create_conversation(Conversation(user_id=user.id, **kwargs))
