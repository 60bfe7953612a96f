"""
Outbound Telegram Bot API calls, against httpx.MockTransport.
"""
import json

import httpx
import pytest

from tableservice.core.errors import DependencyFailure
from tableservice.messaging.telegram import Button, TelegramMessenger, deliver
from tableservice.schemas.commands import ApproveOrder, RejectOrder


def messenger_for(handler, token="123:abc") -> tuple[TelegramMessenger, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(record))
    return TelegramMessenger(token, api_url="https://tg.test", client=client), seen


def ok(request):
    return httpx.Response(200, json={"ok": True, "result": {}})


@pytest.mark.asyncio
async def test_send_message_with_buttons():
    messenger, seen = messenger_for(ok)

    await messenger.send_message("-100", "New order", [
        Button(text="✅ Approve", command=ApproveOrder(pending_order_id="p1")),
        Button(text="❌ Reject", command=RejectOrder(pending_order_id="p1")),
    ])

    request = seen[0]
    assert str(request.url) == "https://tg.test/bot123:abc/sendMessage"
    payload = json.loads(request.content)
    assert payload["chat_id"] == "-100"
    assert payload["reply_markup"] == {"inline_keyboard": [[
        {"text": "✅ Approve", "callback_data": "approve_order_p1"},
        {"text": "❌ Reject", "callback_data": "reject_order_p1"},
    ]]}
    await messenger.aclose()


@pytest.mark.asyncio
async def test_answer_callback():
    messenger, seen = messenger_for(ok)

    await messenger.answer_callback("cb-9", "Unknown action")

    assert seen[0].url.path.endswith("/answerCallbackQuery")
    assert json.loads(seen[0].content) == {"callback_query_id": "cb-9", "text": "Unknown action"}


@pytest.mark.asyncio
async def test_api_error_is_a_dependency_failure():
    messenger, _ = messenger_for(
        lambda r: httpx.Response(400, json={"ok": False, "description": "Bad Request: chat not found"})
    )

    with pytest.raises(DependencyFailure, match="chat not found"):
        await messenger.send_message("-100", "hi")


@pytest.mark.asyncio
async def test_transport_error_is_a_dependency_failure():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    messenger, _ = messenger_for(refuse)

    with pytest.raises(DependencyFailure):
        await messenger.answer_callback("cb-1")


@pytest.mark.asyncio
async def test_missing_token_makes_no_request():
    messenger, seen = messenger_for(ok, token="")

    with pytest.raises(DependencyFailure):
        await messenger.send_message("-100", "hi")
    assert seen == []


@pytest.mark.asyncio
async def test_deliver_swallows_failures():
    messenger, _ = messenger_for(lambda r: httpx.Response(502, text="Bad Gateway"))

    assert await deliver(messenger, "-100", "hi") is False
    assert await deliver(messenger, None, "hi") is False
