"""Callback address resolution and reachability probing."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse, urlunparse

from replykit.core.errors import (
    CallbackUnreachableError,
    HealthCheckMismatchError,
    InvalidCallbackConfigError,
    WebhookNetworkError,
)
from replykit.models.delivery import ResolvedCallback
from replykit.models.enums import DeliveryMode
from replykit.providers.webhook.config import WebhookConfig

if TYPE_CHECKING:
    import httpx

logger = logging.getLogger("replykit.webhook.address")

CALLBACK_READY_STATUS = "callback-ready"

# Tunnels that interpose a reminder page unless the caller sends a bypass
# header; the webhook provider cannot send it.
HANDSHAKE_TUNNEL_SUFFIXES: tuple[str, ...] = ("loca.lt", "localtunnel.me")

# Tunnels that answer 403 to agent-origin requests while still letting the
# provider's requests through.
M2M_TUNNEL_SUFFIXES: tuple[str, ...] = (
    "ngrok-free.app",
    "ngrok-free.dev",
    "ngrok.app",
    "ngrok.io",
    "trycloudflare.com",
)


def matches_host_suffix(hostname: str, suffixes: tuple[str, ...]) -> bool:
    """True if *hostname* is one of *suffixes* or a subdomain of one."""
    host = hostname.lower().rstrip(".")
    return any(host == s or host.endswith("." + s) for s in suffixes)


class CallbackAddressResolver:
    """Works out which callback URL to advertise and proves it answers.

    Runs before every send and caches nothing: a developer tunnel can
    restart between two requests.
    """

    def __init__(self, config: WebhookConfig, client: httpx.AsyncClient | None = None) -> None:
        try:
            import httpx as _httpx
        except ImportError as exc:
            raise ImportError(
                "httpx is required for CallbackAddressResolver. "
                "Install it with: pip install replykit[httpx]"
            ) from exc
        self._config = config
        self._httpx = _httpx
        self._owns_client = client is None
        self._client: httpx.AsyncClient = client or _httpx.AsyncClient(
            timeout=config.health_timeout,
        )

    def callback_url(self) -> str:
        """Override, then public base URL + path, then the local default."""
        if self._config.callback_url:
            return self._config.callback_url
        if self._config.public_base_url:
            return self._config.public_base_url.rstrip("/") + self._config.callback_path
        return f"http://localhost:{self._config.port}{self._config.callback_path}"

    def loopback_url(self, callback_url: str) -> str:
        parsed = urlparse(callback_url)
        return urlunparse(
            ("http", f"127.0.0.1:{self._config.port}", parsed.path or "/", "", parsed.query, "")
        )

    async def resolve_and_validate(self) -> ResolvedCallback:
        """Return the callback URL to advertise, after probing it.

        Raises:
            InvalidCallbackConfigError: Bad scheme, missing host, or a tunnel
                host the provider cannot reach.
            HealthCheckMismatchError: The URL answered 2xx without the ready
                sentinel.
            CallbackUnreachableError: Any other status, or a failed loopback
                fallback.
            WebhookNetworkError: The public probe could not be sent at all.
        """
        url = self.callback_url()
        hostname = self._validate(url)

        try:
            resp = await self._client.get(url, timeout=self._config.health_timeout)
        except self._httpx.HTTPError as exc:
            raise WebhookNetworkError(f"Callback health check failed for {url}: {exc}") from exc

        if resp.is_success:
            self._require_ready(resp, url)
            logger.debug("Callback URL %s is reachable", url)
            return ResolvedCallback(callback_url=url, delivery_mode=DeliveryMode.PUBLIC)

        if resp.status_code == 403 and matches_host_suffix(hostname, M2M_TUNNEL_SUFFIXES):
            local = self.loopback_url(url)
            logger.info(
                "Tunnel %s rejected the health check with 403, probing %s instead",
                hostname,
                local,
            )
            await self._probe_loopback(local, url)
            # Only the GET route on this instance was proven; the provider's
            # POST path through the tunnel stays unverified.
            logger.warning(
                "Advertising %s on the strength of the loopback probe only",
                url,
                extra={"delivery_mode": DeliveryMode.LOCAL_FALLBACK.value},
            )
            return ResolvedCallback(callback_url=url, delivery_mode=DeliveryMode.LOCAL_FALLBACK)

        raise CallbackUnreachableError(
            f"Callback URL {url} answered the health check with HTTP {resp.status_code}"
        )

    def _validate(self, url: str) -> str:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https"):
            raise InvalidCallbackConfigError(
                f"Callback URL scheme must be http or https, got {parsed.scheme!r}"
            )
        hostname = parsed.hostname
        if not hostname:
            raise InvalidCallbackConfigError(f"Callback URL has no host: {url}")
        if matches_host_suffix(hostname, HANDSHAKE_TUNNEL_SUFFIXES):
            raise InvalidCallbackConfigError(
                f"Callback host {hostname} requires a tunnel handshake header the "
                "webhook provider cannot send; use a different tunnel"
            )
        return hostname

    async def _probe_loopback(self, local_url: str, public_url: str) -> None:
        try:
            resp = await self._client.get(local_url, timeout=self._config.health_timeout)
        except self._httpx.HTTPError as exc:
            raise CallbackUnreachableError(
                f"Callback URL {public_url} is blocked and the local fallback "
                f"{local_url} failed: {exc}"
            ) from exc
        if not resp.is_success:
            raise CallbackUnreachableError(
                f"Callback URL {public_url} is blocked and the local fallback "
                f"{local_url} answered HTTP {resp.status_code}"
            )
        try:
            self._require_ready(resp, local_url)
        except HealthCheckMismatchError as exc:
            raise CallbackUnreachableError(str(exc)) from exc

    @staticmethod
    def _require_ready(resp: Any, url: str) -> None:
        try:
            data = resp.json()
        except ValueError:
            data = None
        if not isinstance(data, dict) or data.get("status") != CALLBACK_READY_STATUS:
            raise HealthCheckMismatchError(
                f"Callback URL {url} answered without status {CALLBACK_READY_STATUS!r}; "
                "is it routed to this service?"
            )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
