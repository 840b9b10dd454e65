"""FastAPI surface: webhook callback, health check and portal chat routes."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from replykit.core.errors import CallbackTooLargeError, ReplyKitError, UnauthenticatedError
from replykit.core.framework import ReplyKit
from replykit.identity.session import SessionResolver
from replykit.models.conversation import User
from replykit.models.delivery import CallbackRequest

logger = logging.getLogger("replykit.web")

CALLBACK_SERVICE_NAME = "web-portal"


class NewConversation(BaseModel):
    title: str | None = None


class NewMessage(BaseModel):
    message: str | None = None


def _decode_callback_body(raw: bytes, content_type: str) -> dict[str, Any] | str | None:
    text = raw.decode("utf-8", errors="replace")
    if "application/x-www-form-urlencoded" in content_type:
        return dict(parse_qsl(text, keep_blank_values=True))
    # JSON is left as text: providers send bodies strict parsers reject.
    return text or None


async def _read_limited(request: Request, limit: int) -> bytes:
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > limit:
        raise CallbackTooLargeError(f"Callback body exceeds {limit} bytes")
    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            raise CallbackTooLargeError(f"Callback body exceeds {limit} bytes")
    return bytes(body)


def callback_router(kit: ReplyKit) -> APIRouter:
    """Routes the webhook provider calls. No session dependency: mount first."""
    router = APIRouter()
    path = kit.config.callback_path

    @router.get(path)
    async def callback_ready() -> dict[str, str]:
        return {
            "status": "callback-ready",
            "service": CALLBACK_SERVICE_NAME,
            "endpoint": path,
            "method": "GET",
            "timestamp": datetime.now(UTC).isoformat(),
        }

    @router.post(path)
    async def callback(request: Request) -> JSONResponse:
        raw = await _read_limited(request, kit.config.max_callback_body)
        callback_request = CallbackRequest(
            body=_decode_callback_body(raw, request.headers.get("content-type", "")),
            headers=dict(request.headers),
            query=dict(request.query_params),
        )
        try:
            result = await kit.handle_callback(callback_request)
        except ReplyKitError:
            raise
        except Exception:
            logger.exception("Error processing webhook callback")
            return JSONResponse({"error": "Failed to process webhook callback"}, status_code=500)
        return JSONResponse(result.to_response())

    return router


def chat_router(kit: ReplyKit, sessions: SessionResolver) -> APIRouter:
    """Conversation routes for signed-in, approved users."""

    async def current_user(request: Request) -> User:
        user = await sessions.resolve(request.headers)
        if user is None:
            raise UnauthenticatedError("Not authenticated")
        return user

    router = APIRouter()

    @router.get("/conversations")
    async def list_conversations(user: User = Depends(current_user)) -> list[dict[str, Any]]:
        conversations = await kit.list_conversations(user)
        return [c.model_dump(mode="json") for c in conversations]

    @router.post("/conversations", status_code=201)
    async def create_conversation(
        payload: NewConversation | None = None, user: User = Depends(current_user)
    ) -> dict[str, Any]:
        conversation = await kit.create_conversation(user, payload.title if payload else None)
        return conversation.model_dump(mode="json")

    @router.get("/conversations/{conversation_id}/messages")
    async def list_messages(
        conversation_id: str, user: User = Depends(current_user)
    ) -> list[dict[str, Any]]:
        messages = await kit.list_messages(user, conversation_id)
        return [m.model_dump(mode="json") for m in messages]

    @router.post("/conversations/{conversation_id}/messages", response_model=None)
    async def send_message(
        conversation_id: str, payload: NewMessage, user: User = Depends(current_user)
    ) -> dict[str, Any] | JSONResponse:
        if not payload.message or not payload.message.strip():
            return JSONResponse({"error": "Message is required"}, status_code=400)
        turn = await kit.send_message(user, conversation_id, payload.message)
        return {
            "userMessage": turn.user_message.model_dump(mode="json"),
            "assistantMessage": turn.assistant_message.model_dump(mode="json"),
            "llmResponse": {
                "status": turn.dispatch.status.value,
                "timestamp": turn.dispatch.timestamp.isoformat(),
                "sessionId": turn.dispatch.session_id,
            },
        }

    @router.delete("/conversations/{conversation_id}")
    async def delete_conversation(
        conversation_id: str, user: User = Depends(current_user)
    ) -> dict[str, str]:
        await kit.delete_conversation(user, conversation_id)
        return {"message": "Conversation deleted"}

    return router


async def _replykit_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status = getattr(exc, "status_code", 500)
    if status >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse({"error": str(exc)}, status_code=status)


def create_app(
    kit: ReplyKit,
    sessions: SessionResolver,
    *,
    cors_origins: list[str] | None = None,
    on_startup: Callable[[], Awaitable[None]] | None = None,
    manage_lifecycle: bool = True,
) -> FastAPI:
    """Build the portal application.

    The callback router is registered before anything session-aware so the
    webhook provider can reach it without a login.

    Args:
        kit: The ReplyKit instance handling chat turns and callbacks.
        sessions: Resolves the calling user for ``/api/chat`` routes.
        cors_origins: Browser origins allowed to call the API with credentials.
        on_startup: Extra coroutine to run before serving (e.g. store init).
        manage_lifecycle: Start and close *kit* with the application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if on_startup is not None:
            await on_startup()
        if manage_lifecycle:
            await kit.start()
        try:
            yield
        finally:
            if manage_lifecycle:
                await kit.close()

    app = FastAPI(title="ReplyKit portal", lifespan=lifespan)
    app.include_router(callback_router(kit))

    if cors_origins:
        from fastapi.middleware.cors import CORSMiddleware

        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.get("/api/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "timestamp": datetime.now(UTC).isoformat()}

    app.include_router(chat_router(kit, sessions), prefix="/api/chat")
    app.add_exception_handler(ReplyKitError, _replykit_error_handler)
    return app
