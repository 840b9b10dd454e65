"""Pending-reply sentinel and correlation session ids.

``PENDING_PREFIX`` is shared by the server, the storage queries and the
polling client. Changing it orphans every placeholder already stored.
"""

from __future__ import annotations

import time
from uuid import uuid4

PENDING_PREFIX = "Request accepted by webhook."

SESSION_PREFIX = "webhook_session_"
ERROR_SESSION_PREFIX = "error_session_"


def _suffix() -> str:
    return f"{int(time.time() * 1000)}_{uuid4().hex[:8]}"


def new_session_id() -> str:
    """Mint a correlation session id for one outbound send."""
    return f"{SESSION_PREFIX}{_suffix()}"


def new_error_session_id() -> str:
    return f"{ERROR_SESSION_PREFIX}{_suffix()}"


def is_pending(content: object) -> bool:
    """True if *content* is a placeholder still waiting for its callback."""
    return isinstance(content, str) and content.startswith(PENDING_PREFIX)


def initial_placeholder(session_id: str) -> str:
    """Content stored before the webhook has even been called."""
    return f"{PENDING_PREFIX} Waiting for the automation webhook (session {session_id})."


def accepted_placeholder(session_id: str, request_id: str | None = None) -> str:
    """Content stored once the provider acknowledged without an inline answer."""
    text = f"{PENDING_PREFIX} The final reply will appear here shortly (session {session_id}"
    if request_id:
        text += f", request {request_id}"
    return text + ")."
