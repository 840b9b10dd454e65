"""Client-side helpers for portal front ends."""

from replykit.client.api import PortalAPIError, PortalClient
from replykit.client.polling import PendingReplyPoller, has_pending_reply

__all__ = ["PendingReplyPoller", "PortalAPIError", "PortalClient", "has_pending_reply"]
