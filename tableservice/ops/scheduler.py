"""
Table Service — Scheduled notification poller

Every tick loads pending notifications that are due, writes one
LiveNotification per target table and marks each notification sent or
failed. A tick that fires while the previous one is still running is dropped.
"""
import asyncio
import logging
import uuid
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Literal, Protocol

import redis.asyncio as aioredis

from tableservice.core.config import get_settings
from tableservice.core.errors import DependencyFailure, NotFound, ValidationError
from tableservice.db.store import DocumentStore
from tableservice.ops.tenants import TenantDirectory
from tableservice.schemas.base import format_timestamp, utc_now
from tableservice.schemas.notification import (
    LiveNotification,
    NotificationType,
    ScheduledNotification,
    ScheduledStatus,
)

settings = get_settings()
logger = logging.getLogger(__name__)


class InFlightGuard(Protocol):
    async def acquire(self) -> bool:
        ...

    async def release(self) -> None:
        ...


class LocalInFlightGuard:
    """Single-process flag."""

    def __init__(self) -> None:
        self._busy = False

    async def acquire(self) -> bool:
        if self._busy:
            return False
        self._busy = True
        return True

    async def release(self) -> None:
        self._busy = False


class RedisInFlightGuard:
    """
    Shared flag for ticks coming from several workers. The key expires on its
    own so a crashed worker cannot block the poller forever.
    """

    # Compare and delete in one step so an expired-then-retaken key is left alone
    RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""

    def __init__(
        self,
        redis: aioredis.Redis,
        key: str | None = None,
        ttl_seconds: int | None = None,
    ):
        self._redis = redis
        self._key = key or settings.NOTIFICATION_GUARD_KEY
        self._ttl = ttl_seconds or settings.NOTIFICATION_GUARD_TTL_SECONDS
        self._token = uuid.uuid4().hex

    async def acquire(self) -> bool:
        return bool(await self._redis.set(self._key, self._token, nx=True, ex=self._ttl))

    async def release(self) -> None:
        await self._redis.eval(self.RELEASE_SCRIPT, 1, self._key, self._token)


class NotificationScheduler:

    def __init__(
        self,
        store: DocumentStore,
        tenants: TenantDirectory,
        guard: InFlightGuard | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._tenants = tenants
        self._guard = guard or LocalInFlightGuard()
        self._clock = clock
        self._ticks: set[asyncio.Task] = set()

    async def schedule(
        self,
        tenant_id: str,
        title: str,
        message: str,
        scheduled_for: datetime,
        target_tables: Sequence[int] | Literal["all"] = "all",
        type: NotificationType | str = NotificationType.INFO,
    ) -> ScheduledNotification:
        if not title.strip() or not message.strip():
            raise ValidationError("Notification title and message are required")
        if target_tables != "all":
            target_tables = list(target_tables)
            if not target_tables:
                raise ValidationError("Pick at least one target table or 'all'")
        notification = ScheduledNotification(
            tenant_id=tenant_id,
            title=title,
            message=message,
            type=NotificationType(type),
            target_tables=target_tables,
            scheduled_for=scheduled_for,
        )
        doc = await self._store.create(
            ScheduledNotification.collection, notification.to_data(), doc_id=notification.id,
        )
        return ScheduledNotification.from_document(doc)

    async def cancel(self, notification_id: str) -> ScheduledNotification:
        doc = await self._store.get(ScheduledNotification.collection, notification_id)
        if doc is None or doc.data.get("status") != ScheduledStatus.PENDING.value:
            raise NotFound(f"Scheduled notification {notification_id} not found or already handled")
        doc = await self._store.update(
            ScheduledNotification.collection,
            notification_id,
            {"status": ScheduledStatus.CANCELLED.value},
            expected_version=doc.version,
        )
        return ScheduledNotification.from_document(doc)

    async def tick(self) -> int | None:
        if not await self._guard.acquire():
            logger.debug("Previous notification run still in flight; tick dropped")
            return None
        try:
            return await self._dispatch_due()
        finally:
            await self._guard.release()

    async def _dispatch_due(self) -> int:
        now = format_timestamp(self._clock())
        due = await self._store.query(
            ScheduledNotification.collection,
            [("status", "==", ScheduledStatus.PENDING.value), ("scheduled_for", "<=", now)],
            order_by="scheduled_for",
        )
        sent = 0
        for doc in due:
            notification = ScheduledNotification.from_document(doc)
            try:
                tables = await self._publish(notification)
            except DependencyFailure as e:
                logger.warning("Scheduled notification %s failed: %s", notification.id, e)
                await self._store.update(
                    ScheduledNotification.collection,
                    notification.id,
                    {"status": ScheduledStatus.FAILED.value, "failure_reason": str(e)},
                )
                continue
            await self._store.update(
                ScheduledNotification.collection,
                notification.id,
                {"status": ScheduledStatus.SENT.value, "sent_at": now},
            )
            logger.info("Scheduled notification %s sent to %d table(s)", notification.id, tables)
            sent += 1
        return sent

    async def _publish(self, notification: ScheduledNotification) -> int:
        if notification.target_tables == "all":
            profile = await self._tenants.profile(notification.tenant_id)
            tables = range(1, profile.table_count + 1)
        else:
            tables = notification.target_tables
        count = 0
        for table in tables:
            live = LiveNotification(
                tenant_id=notification.tenant_id,
                table_number=str(table),
                notification_id=notification.id,
                title=notification.title,
                message=notification.message,
                type=notification.type,
            )
            await self._store.create(LiveNotification.collection, live.to_data(), doc_id=live.id)
            count += 1
        return count

    async def run_forever(self, interval: float | None = None) -> None:
        """Fire a tick every ``interval`` seconds regardless of how long ticks take."""
        interval = interval or settings.NOTIFICATION_POLL_INTERVAL_SECONDS
        logger.info("Notification poller started (every %ss)", interval)
        while True:
            task = asyncio.create_task(self._safe_tick())
            self._ticks.add(task)
            task.add_done_callback(self._ticks.discard)
            await asyncio.sleep(interval)

    async def _safe_tick(self) -> None:
        try:
            await self.tick()
        except Exception:
            logger.exception("Scheduled notification run failed")
