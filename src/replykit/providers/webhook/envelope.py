"""Outbound request envelope for the automation webhook.

The provider's scenario was built against a slash-command payload, so every
field except the three per-request ones must stay exactly as below.
"""

from __future__ import annotations

import copy
from types import MappingProxyType
from typing import Any

ENVELOPE_TEMPLATE: MappingProxyType[str, Any] = MappingProxyType(
    {
        "token": "portal",
        "team_id": "T0PORTAL",
        "team_domain": "web-portal",
        "enterprise_id": None,
        "channel_id": "C0PORTAL",
        "channel_name": "directmessage",
        "user_id": "",
        "user_name": "portal-user",
        "command": "/ask",
        "text": "",
        "api_app_id": "A0PORTAL",
        "is_enterprise_install": "false",
        "response_url": "",
        "trigger_id": "portal",
        "metadata": {"source": "web-portal", "version": 1},
    }
)

MUTABLE_FIELDS = frozenset({"text", "user_id", "response_url"})


def build_envelope(message: str, external_user_id: str, callback_url: str) -> dict[str, Any]:
    """Return a fresh copy of the template with the per-request fields set.

    The template itself is never mutated, so concurrent sends cannot leak
    fields into each other.
    """
    envelope = copy.deepcopy(dict(ENVELOPE_TEMPLATE))
    envelope["text"] = message
    envelope["user_id"] = external_user_id
    envelope["response_url"] = callback_url
    return envelope
