"""
Shared fixtures: an in-memory store, a messenger that records what staff
would see, and the fully wired services on top of them.
"""
import os

# Must be set before tableservice.core.config is first imported
os.environ["STORE_BACKEND"] = "memory"
os.environ["METRICS_ENABLED"] = "false"
os.environ["TELEGRAM_WEBHOOK_SECRET"] = ""
os.environ["DEFAULT_CASHIER_CHAT_ID"] = "cashier-chat"
os.environ["DEFAULT_ADMIN_CHAT_ID"] = "admin-chat"
os.environ["OPT_LOCK_MAX_RETRIES"] = "10"
os.environ["OPT_LOCK_BASE_DELAY_MS"] = "1"
os.environ["OPT_LOCK_MAX_DELAY_MS"] = "5"
os.environ["OPT_LOCK_JITTER_MS"] = "2"

from dataclasses import dataclass, field  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from tableservice.core.container import Services, build_services  # noqa: E402
from tableservice.core.errors import DependencyFailure  # noqa: E402
from tableservice.db.memory_store import MemoryDocumentStore  # noqa: E402
from tableservice.schemas.order import LineItem  # noqa: E402

TENANT = "tenant-a"
KITCHEN_CHAT = "kitchen-chat"


@dataclass
class SentMessage:
    channel_id: str
    text: str
    callback_data: list[str] = field(default_factory=list)


class RecordingMessenger:
    def __init__(self):
        self.sent: list[SentMessage] = []
        self.answers: list[tuple[str, str]] = []
        self.fail = False

    async def send_message(self, channel_id, text, buttons=None):
        if self.fail:
            raise DependencyFailure("Telegram sendMessage failed: 502 Bad Gateway")
        self.sent.append(SentMessage(channel_id, text, [b.command.encode() for b in buttons or []]))

    async def answer_callback(self, callback_id, text=""):
        self.answers.append((callback_id, text))

    def to(self, channel_id: str) -> list[SentMessage]:
        return [m for m in self.sent if m.channel_id == channel_id]


class FakeRedis:
    def __init__(self):
        self.data: dict[str, str] = {}

    async def exists(self, key):
        return int(key in self.data)

    async def setex(self, key, ttl, value):
        self.data[key] = value

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.data:
            return None
        self.data[key] = value
        return True

    async def get(self, key):
        return self.data.get(key)

    async def delete(self, key):
        return int(self.data.pop(key, None) is not None)

    async def eval(self, script, numkeys, *keys_and_args):
        # Only the guard's compare-and-delete script is understood
        assert "redis.call(\"del\", KEYS[1])" in script and numkeys == 1
        key, token = keys_and_args
        if self.data.get(key) == token:
            return await self.delete(key)
        return 0

    async def ping(self):
        return True


def line(item_id: str, name: str, quantity: int, unit_price: str) -> LineItem:
    return LineItem.priced(item_id, name, quantity, unit_price)


def cart(item_id: str, name: str, quantity: int, unit_price: str) -> dict:
    return {"item_id": item_id, "name": name, "quantity": quantity, "unit_price": unit_price}


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def messenger():
    return RecordingMessenger()


@pytest_asyncio.fixture
async def services(store, messenger) -> Services:
    wired = build_services(store, messenger)
    await wired.departments.ensure_kitchen(TENANT, KITCHEN_CHAT)
    return wired


async def place_order(services: Services, table: str, *items: dict, tenant_id: str = TENANT):
    """Submit a cart and approve it, returning the Order."""
    pending = await services.intake.submit(tenant_id, table, list(items))
    return await services.approval.approve(pending.id)
