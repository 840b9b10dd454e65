"""Callback simulation: walk through one accepted turn without any network.

The webhook and the callback health check are replaced with httpx mock
transports, so this runs anywhere. It shows the three ways a reply can be
correlated: by session id, by the mapped webhook user, and what happens
when nothing matches.

Run with:
    uv run python examples/callback_simulation.py

Requires:
    pip install replykit[httpx]
"""

from __future__ import annotations

import asyncio
import json

import httpx

from replykit import (
    CallbackAddressResolver,
    CallbackRequest,
    IdentityMapper,
    InMemoryStore,
    NoPendingMessageError,
    ReplyKit,
    User,
    WebhookConfig,
    WebhookDispatcher,
)


def fake_network(request: httpx.Request) -> httpx.Response:
    if request.method == "GET":
        # The portal's own callback route, probed before every send.
        return httpx.Response(200, json={"status": "callback-ready"})
    envelope = json.loads(request.content)
    print(f"  webhook got {envelope['text']!r} for {envelope['user_id']}")
    print(f"  session header: {request.headers['x-portal-session-id']}")
    return httpx.Response(200, json="Request accepted")


async def main() -> None:
    config = WebhookConfig(
        webhook_url="https://hook.example.com/portal/chat",
        public_base_url="https://portal.example.com",
    )
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake_network))
    store = InMemoryStore()
    resolver = CallbackAddressResolver(config, client=http)
    dispatcher = WebhookDispatcher(config, IdentityMapper(store), resolver, client=http)
    kit = ReplyKit(config, store=store, resolver=resolver, dispatcher=dispatcher)

    user = await store.create_user(User(email="ada@example.com", is_approved=True))
    conversation = await kit.create_conversation(user)

    print("1. Send a message")
    turn = await kit.send_message(user, conversation.id, "What is the capital of France?")
    print(f"  stored placeholder: {turn.assistant_message.content}")

    print("2. Callback with the session id")
    result = await kit.handle_callback(
        CallbackRequest(
            body='{"sessionId": "%s", "reply": "Paris.\nIt is also the largest city."}'
            % turn.dispatch.session_id
        )
    )
    print(f"  {result.to_response()}")

    print("3. Second turn, callback carrying only the webhook user id")
    second = await kit.send_message(user, conversation.id, "And Germany?")
    await kit.handle_callback(
        CallbackRequest(body={"userId": f"verified_user_{user.id}", "reply": "Berlin."})
    )
    updated = await store.get_message(second.assistant_message.id)
    print(f"  reply stored: {updated.content if updated else None}")

    print("4. Callback nobody is waiting for")
    try:
        await kit.handle_callback(CallbackRequest(body={"sessionId": "stale", "reply": "?"}))
    except NoPendingMessageError as exc:
        print(f"  rejected with HTTP {exc.status_code}: {exc}")

    print("\nConversation:")
    for message in await kit.list_messages(user, conversation.id):
        print(f"  [{message.role}] {message.content}")

    await kit.close()
    await http.aclose()


if __name__ == "__main__":
    asyncio.run(main())
