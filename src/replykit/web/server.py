"""Run the portal from environment settings.

Usage::

    REPLYKIT_WEBHOOK_URL=https://hook.example.com/run python -m replykit.web.server

Requires:
    pip install replykit[server]          # in-memory store
    pip install replykit[server,postgres] # with DATABASE_URL set
"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from replykit.config import ReplyKitSettings, get_settings
from replykit.core.framework import ReplyKit
from replykit.identity.session import HeaderSessionResolver
from replykit.store.base import ReplyStore
from replykit.store.memory import InMemoryStore
from replykit.store.postgres import PostgresStore
from replykit.web.app import create_app

logger = logging.getLogger("replykit.web")


def build_store(settings: ReplyKitSettings) -> ReplyStore:
    if settings.database_url:
        return PostgresStore(settings.database_url)
    logger.warning("DATABASE_URL not set, conversations are kept in memory only")
    return InMemoryStore()


def build_app(settings: ReplyKitSettings | None = None) -> FastAPI:
    """Wire store, ReplyKit and the FastAPI app from *settings*."""
    settings = settings or get_settings()
    store = build_store(settings)
    kit = ReplyKit(
        settings.webhook_config(),
        store=store,
        pending_reply_ttl=settings.pending_reply_ttl,
    )
    sessions = HeaderSessionResolver(
        store, settings.session_header, auto_register=settings.auto_register_users
    )

    on_startup = store.init if isinstance(store, PostgresStore) else None

    logger.info(
        "Portal configured",
        extra={
            "webhook_url": settings.webhook_url,
            "callback_path": settings.callback_path,
            "port": settings.port,
            "callback_secret_set": settings.callback_secret is not None,
        },
    )
    return create_app(kit, sessions, cors_origins=settings.cors_origins, on_startup=on_startup)


def main() -> None:
    try:
        import uvicorn
    except ImportError as exc:
        raise ImportError(
            "uvicorn is required to run the portal server. "
            "Install it with: pip install replykit[server]"
        ) from exc

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(build_app(settings), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
