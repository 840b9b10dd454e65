"""Automation webhook provider: outbound dispatch and inbound callback parsing."""

from replykit.providers.webhook.address import CallbackAddressResolver
from replykit.providers.webhook.config import WebhookConfig
from replykit.providers.webhook.dispatcher import WebhookDispatcher
from replykit.providers.webhook.envelope import build_envelope
from replykit.providers.webhook.normalize import normalize_callback_payload, parse_callback_body

__all__ = [
    "CallbackAddressResolver",
    "WebhookConfig",
    "WebhookDispatcher",
    "build_envelope",
    "normalize_callback_payload",
    "parse_callback_body",
]
