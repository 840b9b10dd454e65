"""Tests for session resolvers."""

from __future__ import annotations

from replykit.identity.session import HeaderSessionResolver, MockSessionResolver
from replykit.models.conversation import User
from replykit.store.memory import InMemoryStore
from tests.conftest import make_user


class TestHeaderSessionResolver:
    async def test_approved_user(self, store: InMemoryStore) -> None:
        user = await make_user(store)
        resolver = HeaderSessionResolver(store)

        resolved = await resolver.resolve({"X-User-Email": "alice@example.com"})

        assert resolved is not None
        assert resolved.id == user.id

    async def test_missing_header(self, store: InMemoryStore) -> None:
        assert await HeaderSessionResolver(store).resolve({}) is None

    async def test_unapproved_user(self, store: InMemoryStore) -> None:
        await make_user(store, approved=False)
        resolved = await HeaderSessionResolver(store).resolve({"x-user-email": "alice@example.com"})
        assert resolved is None

    async def test_auto_register_creates_unapproved(self, store: InMemoryStore) -> None:
        resolver = HeaderSessionResolver(store, auto_register=True)

        assert await resolver.resolve({"x-user-email": "new@example.com"}) is None

        created = await store.get_user_by_email("new@example.com")
        assert created is not None
        assert created.is_approved is False

    async def test_custom_header(self, store: InMemoryStore) -> None:
        await make_user(store)
        resolver = HeaderSessionResolver(store, "X-Forwarded-Email")
        resolved = await resolver.resolve({"x-forwarded-email": " alice@example.com "})
        assert resolved is not None


class TestMockSessionResolver:
    async def test_fixed_user(self) -> None:
        user = User(email="a@example.com", is_approved=True)
        assert await MockSessionResolver(user).resolve({}) is user
        assert await MockSessionResolver().resolve({}) is None
