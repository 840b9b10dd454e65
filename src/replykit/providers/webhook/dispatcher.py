"""Automation webhook dispatcher: POSTs a chat turn to the external endpoint."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from replykit.core.errors import MissingIdentityError, ReplyKitError, WebhookNetworkError
from replykit.core.placeholder import accepted_placeholder, new_error_session_id, new_session_id
from replykit.identity.mapper import IdentityMapper
from replykit.models.delivery import DispatchResult
from replykit.models.enums import DispatchStatus
from replykit.providers.webhook.address import CallbackAddressResolver
from replykit.providers.webhook.config import WebhookConfig
from replykit.providers.webhook.envelope import build_envelope

if TYPE_CHECKING:
    import httpx

logger = logging.getLogger("replykit.webhook")

SESSION_HEADER = "X-Portal-Session-Id"
CALLBACK_URL_HEADER = "X-Portal-Callback-Url"

ACCEPTED_SENTINEL = "request accepted"
REPLY_FIELDS: tuple[str, ...] = ("reply", "response", "message")
REQUEST_ID_FIELDS: tuple[str, ...] = ("request_id", "requestId")


class WebhookDispatcher:
    """Sends one user message to the automation webhook.

    Every failure is reported as a ``DispatchResult`` with ``status=error``;
    nothing is retried and nothing raises out of `dispatch`.
    """

    def __init__(
        self,
        config: WebhookConfig,
        identity: IdentityMapper,
        resolver: CallbackAddressResolver,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        try:
            import httpx as _httpx
        except ImportError as exc:
            raise ImportError(
                "httpx is required for WebhookDispatcher. "
                "Install it with: pip install replykit[httpx]"
            ) from exc
        self._config = config
        self._identity = identity
        self._resolver = resolver
        self._httpx = _httpx
        self._owns_client = client is None
        self._client: httpx.AsyncClient = client or _httpx.AsyncClient(
            timeout=config.webhook_timeout,
        )

    async def dispatch(
        self,
        internal_user_id: str,
        message: str,
        email: str | None,
        *,
        session_id: str | None = None,
    ) -> DispatchResult:
        """Send *message* on behalf of *email* and interpret the acknowledgment.

        Args:
            internal_user_id: Id proposed to the identity mapper on first use.
            message: Text to send.
            email: The caller's account email; required.
            session_id: Correlation id already stored on the caller's
                placeholder. A new one is minted when omitted.
        """
        try:
            if not email:
                raise MissingIdentityError("No email on the current account")
            external_user_id = await self._identity.resolve_external_id(email, internal_user_id)
            resolved = await self._resolver.resolve_and_validate()
            session_id = session_id or new_session_id()
            envelope = build_envelope(message, external_user_id, resolved.callback_url)
            resp = await self._post(envelope, session_id, resolved.callback_url)
        except MissingIdentityError:
            logger.warning("Refusing to dispatch for user %s without an email", internal_user_id)
            return self._error("Your account has no email address, so the message was not sent.")
        except ReplyKitError as exc:
            logger.error("Webhook dispatch failed: %s", exc, extra={"error": type(exc).__name__})
            return self._error(
                f"The message could not be delivered to the automation webhook: {exc}"
            )
        except Exception:
            logger.exception("Unexpected error dispatching to the webhook")
            return self._error("The message could not be delivered to the automation webhook.")

        reply_text = extract_reply_text(resp)
        request_id = _extract_request_id(resp)
        logger.info(
            "Webhook answered HTTP %d for session %s",
            resp.status_code,
            session_id,
            extra={"session_id": session_id, "request_id": request_id},
        )

        if reply_text is None or is_accepted_sentinel(reply_text):
            return DispatchResult(
                status=DispatchStatus.PENDING,
                reply=accepted_placeholder(session_id, request_id),
                session_id=session_id,
                request_id=request_id,
                delivery_mode=resolved.delivery_mode,
            )
        return DispatchResult(
            status=DispatchStatus.SUCCESS,
            reply=reply_text,
            session_id=session_id,
            request_id=request_id,
            delivery_mode=resolved.delivery_mode,
        )

    async def _post(self, envelope: dict[str, Any], session_id: str, callback_url: str) -> Any:
        headers = {
            "Content-Type": "application/json",
            **self._config.headers,
            SESSION_HEADER: session_id,
            CALLBACK_URL_HEADER: callback_url,
        }
        try:
            resp = await self._client.post(
                self._config.webhook_url,
                content=json.dumps(envelope),
                headers=headers,
                timeout=self._config.webhook_timeout,
            )
            resp.raise_for_status()
        except self._httpx.TimeoutException as exc:
            raise WebhookNetworkError("the webhook timed out") from exc
        except self._httpx.HTTPStatusError as exc:
            raise WebhookNetworkError(
                f"the webhook answered HTTP {exc.response.status_code}"
            ) from exc
        except self._httpx.HTTPError as exc:
            raise WebhookNetworkError(str(exc) or type(exc).__name__) from exc
        return resp

    @staticmethod
    def _error(reply: str) -> DispatchResult:
        return DispatchResult(
            status=DispatchStatus.ERROR,
            reply=reply,
            session_id=new_error_session_id(),
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def extract_reply_text(resp: Any) -> str | None:
    """Pull the answer text out of a webhook response body.

    A JSON string is used as-is; an object is searched for ``reply``,
    ``response`` then ``message``; a non-JSON body is taken as plain text.
    """
    raw = resp.text or ""
    try:
        data = json.loads(raw) if raw.strip() else None
    except ValueError:
        data = raw

    if isinstance(data, str) and data.strip():
        return data.strip()
    if isinstance(data, dict):
        for field in REPLY_FIELDS:
            value = data.get(field)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def is_accepted_sentinel(text: str) -> bool:
    """True for the provider's "request accepted, answer comes later" reply."""
    return text.strip().rstrip(".!").strip().lower() == ACCEPTED_SENTINEL


def _extract_request_id(resp: Any) -> str | None:
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        for field in REQUEST_ID_FIELDS:
            value = data.get(field)
            if value not in (None, ""):
                return str(value)
    return resp.headers.get("x-request-id") or None
