"""
Table Service — Celery tasks

Celery tasks are not async-native: each run builds its own store and Redis
client on a fresh event loop and tears them down afterwards.
"""
import asyncio
import logging

from tableservice.core.celery_app import celery_app
from tableservice.core.config import get_settings
from tableservice.core.container import create_store
from tableservice.core.redis_client import new_redis
from tableservice.db.database import dispose_engine
from tableservice.ops.scheduler import NotificationScheduler, RedisInFlightGuard
from tableservice.ops.tenants import TenantDirectory

settings = get_settings()
logger = logging.getLogger(__name__)


async def _dispatch() -> int | None:
    store = create_store(settings)
    redis = new_redis()
    try:
        scheduler = NotificationScheduler(
            store,
            TenantDirectory(store, settings),
            guard=RedisInFlightGuard(redis),
        )
        return await scheduler.tick()
    finally:
        await store.close()
        await redis.aclose()
        await dispose_engine()


@celery_app.task(name="dispatch_scheduled_notifications", acks_late=True)
def dispatch_scheduled_notifications() -> int | None:
    sent = asyncio.run(_dispatch())
    if sent is None:
        logger.info("Notification poller busy; tick dropped")
    elif sent:
        logger.info("Dispatched %d scheduled notification(s)", sent)
    return sent
