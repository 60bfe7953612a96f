"""
Inline button presses from staff chats.
"""
import pytest

from tableservice.messaging import formatting
from tableservice.schemas.order import OrderStatus
from tableservice.schemas.report import WaiterCallStatus
from tableservice.schemas.telegram import CallbackQuery

from conftest import TENANT, cart, place_order

STAFF_CHAT = -1001


def press(data: str, callback_id: str = "cb-1") -> CallbackQuery:
    return CallbackQuery.model_validate({
        "id": callback_id,
        "data": data,
        "from": {"id": 42, "username": "cashier"},
        "message": {"message_id": 7, "chat": {"id": STAFF_CHAT, "type": "group"}},
    })


@pytest.mark.asyncio
async def test_approve_button_replies_in_chat_and_answers(services, messenger):
    pending = await services.intake.submit(TENANT, "4", [cart("P", "Pizza", 1, "12.00")])

    reply = await services.callbacks.handle(press(f"approve_order_{pending.id}"))

    assert reply.startswith("✅ Order approved for Table 4")
    assert messenger.to(str(STAFF_CHAT))[-1].text == reply
    assert messenger.answers == [("cb-1", "")]


@pytest.mark.asyncio
async def test_second_press_gets_the_gone_reply(services, messenger):
    pending = await services.intake.submit(TENANT, "4", [cart("P", "Pizza", 1, "12.00")])
    await services.callbacks.handle(press(f"approve_order_{pending.id}"))

    again = await services.callbacks.handle(press(f"approve_order_{pending.id}", "cb-2"))
    rejected = await services.callbacks.handle(press(f"reject_order_{pending.id}", "cb-3"))

    assert again == formatting.ORDER_GONE
    assert rejected == formatting.ORDER_GONE
    assert len(await services.tracker.for_table(TENANT, "4")) == 1


@pytest.mark.asyncio
async def test_unknown_data_is_only_answered(services, messenger):
    reply = await services.callbacks.handle(press("assign_waiter_3"))

    assert reply is None
    assert messenger.answers == [("cb-1", "Unknown action")]
    assert messenger.to(str(STAFF_CHAT)) == []


@pytest.mark.asyncio
async def test_unexpected_failure(services, messenger, monkeypatch):
    order = await place_order(services, "2", cart("P", "Pizza", 1, "12.00"))

    async def broken(order_id):
        raise RuntimeError("boom")

    monkeypatch.setattr(services.tracker, "mark_ready", broken)
    dept = (await services.departments.for_tenant(TENANT))[0]

    reply = await services.callbacks.handle(press(f"ready_{dept.id}_{order.id}"))

    assert reply == formatting.FAILED
    assert messenger.answers[-1] == ("cb-1", "Error processing request")


@pytest.mark.asyncio
async def test_mark_ready_button(services):
    order = await place_order(services, "2", cart("P", "Pizza", 1, "12.00"))
    dept = (await services.departments.for_tenant(TENANT))[0]

    reply = await services.callbacks.handle(press(f"ready_{dept.id}_{order.id}"))

    assert reply == formatting.order_ready(order.id)
    assert (await services.tracker.get(order.id)).status == OrderStatus.READY


@pytest.mark.asyncio
async def test_delay_button_on_missing_order(services):
    dept = (await services.departments.for_tenant(TENANT))[0]

    reply = await services.callbacks.handle(press(f"delay_{dept.id}_missing"))

    assert reply == formatting.ORDER_GONE


@pytest.mark.asyncio
async def test_waiter_buttons(services, messenger):
    waiter_call = await services.waiter_calls.call(TENANT, "9")
    buttons = messenger.to("cashier-chat")[-1].callback_data
    assert buttons == [f"waiter_ack_9_{waiter_call.id}", f"waiter_delay_9_{waiter_call.id}"]

    delayed = await services.callbacks.handle(press(buttons[1]))
    acknowledged = await services.callbacks.handle(press(buttons[0], "cb-2"))
    twice = await services.callbacks.handle(press(buttons[0], "cb-3"))

    assert delayed == formatting.waiter_delayed("9")
    assert acknowledged == formatting.waiter_acknowledged("9")
    assert twice == formatting.WAITER_CALL_GONE
    assert await services.waiter_calls.pending(TENANT) == []
    stored = await services.store.get("waiter_calls", waiter_call.id)
    assert stored.data["status"] == WaiterCallStatus.ACKNOWLEDGED.value
