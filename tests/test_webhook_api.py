"""
HTTP surface: Telegram webhook, re-delivery de-duplication and health.
"""
import httpx
import pytest
import pytest_asyncio

from tableservice.api import telegram as telegram_api
from tableservice.core.container import get_services
from tableservice.main import app
from tableservice.messaging import formatting

from conftest import TENANT, FakeRedis, cart


@pytest.fixture
def redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr("tableservice.middleware.update_dedup.get_redis", lambda: fake)
    monkeypatch.setattr("tableservice.api.health.get_redis", lambda: fake)
    return fake


@pytest_asyncio.fixture
async def client(services, redis):
    app.dependency_overrides[get_services] = lambda: services
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


def callback_update(update_id: int, data: str) -> dict:
    return {
        "update_id": update_id,
        "callback_query": {
            "id": f"cb-{update_id}",
            "data": data,
            "from": {"id": 42},
            "message": {"message_id": 1, "chat": {"id": -1001}},
        },
    }


@pytest.mark.asyncio
async def test_button_press_is_handled_once(client, services, redis):
    pending = await services.intake.submit(TENANT, "6", [cart("P", "Pizza", 2, "12.00")])
    update = callback_update(1001, f"approve_order_{pending.id}")

    first = await client.post("/telegram/webhook", json=update)
    replay = await client.post("/telegram/webhook", json=update)

    assert first.status_code == 200
    assert first.json()["reply"].startswith("✅ Order approved for Table 6")
    assert replay.status_code == 200
    assert replay.json() == {"ok": True, "duplicate": True}
    assert replay.headers["X-Update-Replay"] == "true"
    assert "telegram-update:1001" in redis.data
    assert len(await services.tracker.for_table(TENANT, "6")) == 1


@pytest.mark.asyncio
async def test_new_update_for_same_button_gets_gone_reply(client, services):
    pending = await services.intake.submit(TENANT, "6", [cart("P", "Pizza", 1, "12.00")])
    await client.post("/telegram/webhook", json=callback_update(1, f"approve_order_{pending.id}"))

    resp = await client.post("/telegram/webhook", json=callback_update(2, f"approve_order_{pending.id}"))

    assert resp.json()["reply"] == formatting.ORDER_GONE


@pytest.mark.asyncio
async def test_plain_message_update_is_acknowledged(client):
    update = {"update_id": 5, "message": {"message_id": 3, "chat": {"id": 77}, "text": "hello"}}

    resp = await client.post("/telegram/webhook", json=update)

    assert resp.status_code == 200
    assert resp.json() == {"ok": True}


@pytest.mark.asyncio
async def test_webhook_secret(client, monkeypatch):
    monkeypatch.setattr(telegram_api.settings, "TELEGRAM_WEBHOOK_SECRET", "s3cret")

    denied = await client.post("/telegram/webhook", json=callback_update(10, "assign_waiter_1"))
    allowed = await client.post(
        "/telegram/webhook",
        json=callback_update(11, "assign_waiter_1"),
        headers={"X-Telegram-Bot-Api-Secret-Token": "s3cret"},
    )

    assert denied.status_code == 401
    assert allowed.status_code == 200
    assert allowed.json() == {"ok": True, "reply": None}


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["dependencies"] == {"store": "ok", "redis": "ok"}
