"""Portal server example: chat turns answered through an automation webhook.

Every message is POSTed to the webhook with a correlation session id and a
callback URL. The webhook acknowledges with "Request accepted", the portal
stores a pending placeholder, and the final reply lands on the callback
route whenever the automation finishes.

Run with:
    REPLYKIT_WEBHOOK_URL=https://webhook.latenode.com/your/hook \
    RENDER_EXTERNAL_URL=https://your-tunnel.ngrok-free.app \
    LATENODE_CALLBACK_SECRET=change-me \
    uv run python examples/portal_server.py

Then, behind a proxy that sets ``x-user-email`` for an approved user:
    curl -X POST localhost:3001/api/chat/conversations -H 'x-user-email: you@example.com'

Requires:
    pip install replykit[server]
"""

from __future__ import annotations

import asyncio
import logging

import uvicorn

from replykit import InMemoryStore, ReplyKit, User, get_settings
from replykit.identity import HeaderSessionResolver
from replykit.web import create_app

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")


async def main() -> None:
    settings = get_settings()
    store = InMemoryStore()

    # Approval normally happens in an admin screen; seed one account here.
    await store.create_user(User(email="you@example.com", name="You", is_approved=True))

    kit = ReplyKit(settings.webhook_config(), store=store, pending_reply_ttl=15 * 60)
    app = create_app(
        kit,
        HeaderSessionResolver(store, settings.session_header),
        cors_origins=settings.cors_origins,
    )

    server = uvicorn.Server(uvicorn.Config(app, host="0.0.0.0", port=settings.port))
    print(f"Callback route: {kit.resolver.callback_url()}")
    await server.serve()


if __name__ == "__main__":
    asyncio.run(main())
