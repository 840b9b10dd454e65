"""Session resolution: who is calling the portal API."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping

from replykit.models.conversation import User
from replykit.store.base import ReplyStore


class SessionResolver(ABC):
    """Resolves the calling user from request headers.

    Login, approval and session cookies live outside ReplyKit; an implementation
    only has to turn an authenticated request into a `User`.
    """

    @abstractmethod
    async def resolve(self, headers: Mapping[str, str]) -> User | None:
        """Return the caller, or ``None`` if the request is not authenticated."""
        ...


class HeaderSessionResolver(SessionResolver):
    """Trusts an email header set by an authenticating reverse proxy.

    Only approved users resolve; unknown emails are created unapproved when
    ``auto_register`` is set so an admin can approve them later.
    """

    def __init__(
        self,
        store: ReplyStore,
        header: str = "x-user-email",
        *,
        auto_register: bool = False,
    ) -> None:
        self._store = store
        self._header = header.lower()
        self._auto_register = auto_register

    async def resolve(self, headers: Mapping[str, str]) -> User | None:
        email = _get_header(headers, self._header)
        if not email:
            return None
        user = await self._store.get_user_by_email(email)
        if user is None and self._auto_register:
            user = await self._store.create_user(User(email=email))
        if user is None or not user.is_approved:
            return None
        return user


class MockSessionResolver(SessionResolver):
    """Resolves every request to a fixed user (or nobody)."""

    def __init__(self, user: User | None = None) -> None:
        self._user = user

    async def resolve(self, headers: Mapping[str, str]) -> User | None:
        return self._user


def _get_header(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is None:
        for key, val in headers.items():
            if key.lower() == name:
                return val.strip() or None
        return None
    return value.strip() or None
