"""HTTP surface for the portal (requires ``replykit[server]``)."""

from replykit.web.app import callback_router, chat_router, create_app

__all__ = ["callback_router", "chat_router", "create_app"]
