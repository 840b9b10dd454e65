"""Async client for the portal REST API."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from replykit.models.conversation import Conversation, Message

if TYPE_CHECKING:
    import httpx


class PortalAPIError(Exception):
    """The portal answered with a non-2xx status."""

    def __init__(self, status_code: int, error: str) -> None:
        super().__init__(f"HTTP {status_code}: {error}")
        self.status_code = status_code
        self.error = error


class PortalClient:
    """Talks to the ``/api/chat`` routes of a running portal.

    Authentication is whatever the deployment's session layer expects;
    pass it through *headers* (e.g. ``{"x-user-email": ...}`` behind a
    trusted proxy) or *cookies*.
    """

    def __init__(
        self,
        base_url: str,
        *,
        headers: dict[str, str] | None = None,
        cookies: dict[str, str] | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        try:
            import httpx as _httpx
        except ImportError as exc:
            raise ImportError(
                "httpx is required for PortalClient. Install it with: pip install replykit[httpx]"
            ) from exc
        self._owns_client = client is None
        self._client: httpx.AsyncClient = client or _httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            cookies=cookies,
            timeout=timeout,
        )

    async def list_conversations(self) -> list[Conversation]:
        data = await self._request("GET", "/api/chat/conversations")
        return [Conversation.model_validate(c) for c in data]

    async def create_conversation(self, title: str | None = None) -> Conversation:
        data = await self._request("POST", "/api/chat/conversations", json={"title": title})
        return Conversation.model_validate(data)

    async def get_messages(self, conversation_id: str) -> list[Message]:
        data = await self._request("GET", f"/api/chat/conversations/{conversation_id}/messages")
        return [Message.model_validate(m) for m in data]

    async def send_message(self, conversation_id: str, message: str) -> dict[str, Any]:
        """Send a chat turn. Returns the raw ``{userMessage, assistantMessage, llmResponse}``."""
        data: dict[str, Any] = await self._request(
            "POST",
            f"/api/chat/conversations/{conversation_id}/messages",
            json={"message": message},
        )
        return data

    async def delete_conversation(self, conversation_id: str) -> None:
        await self._request("DELETE", f"/api/chat/conversations/{conversation_id}")

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        resp = await self._client.request(method, path, **kwargs)
        if resp.is_error:
            try:
                error = resp.json().get("error", "Request failed")
            except (ValueError, AttributeError):
                error = "Request failed"
            raise PortalAPIError(resp.status_code, str(error))
        return resp.json()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
