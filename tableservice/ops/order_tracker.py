"""
Table Service — Order status tracking
"""
import logging
from collections.abc import Iterable

from tableservice.core.errors import NotFound, ValidationError
from tableservice.core.optimistic_lock import with_optimistic_retry
from tableservice.db.store import DocumentStore
from tableservice.schemas.base import format_timestamp, utc_now
from tableservice.schemas.order import Order, OrderStatus, PaymentStatus

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.CONFIRMED: {OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.READY, OrderStatus.CANCELLED},
    OrderStatus.READY: {OrderStatus.DELIVERED},
}

NEXT_STATUS = {
    OrderStatus.CONFIRMED: OrderStatus.PREPARING,
    OrderStatus.PREPARING: OrderStatus.READY,
    OrderStatus.READY: OrderStatus.DELIVERED,
}


class OrderTracker:

    def __init__(self, store: DocumentStore):
        self._store = store

    async def get(self, order_id: str) -> Order:
        doc = await self._store.get(Order.collection, order_id)
        if doc is None:
            raise NotFound(f"Order {order_id} not found")
        return Order.from_document(doc)

    @with_optimistic_retry()
    async def set_status(self, order_id: str, status: OrderStatus | str) -> Order:
        status = OrderStatus(status)
        order = await self.get(order_id)
        if status not in ALLOWED_TRANSITIONS.get(order.status, set()):
            raise ValidationError(
                f"Cannot move order {order_id[:8]} from '{order.status.value}' to '{status.value}'"
            )
        now = format_timestamp(utc_now())
        changes = {"status": status.value, "updated_at": now}
        if status == OrderStatus.READY:
            changes["ready_at"] = now
        doc = await self._store.update(Order.collection, order_id, changes, expected_version=order.version)
        logger.info("Order %s: %s → %s", order_id, order.status.value, status.value)
        return Order.from_document(doc)

    async def mark_ready(self, order_id: str) -> Order:
        return await self.set_status(order_id, OrderStatus.READY)

    async def cancel(self, order_id: str) -> Order:
        return await self.set_status(order_id, OrderStatus.CANCELLED)

    async def advance(self, order_id: str) -> Order:
        order = await self.get(order_id)
        next_status = NEXT_STATUS.get(order.status)
        if next_status is None:
            raise ValidationError(f"Order {order_id[:8]} is '{order.status.value}' and cannot advance")
        return await self.set_status(order_id, next_status)

    async def mark_orders_paid(self, order_ids: Iterable[str]) -> int:
        marked = 0
        for order_id in order_ids:
            try:
                await self._store.update(
                    Order.collection,
                    order_id,
                    {"payment_status": PaymentStatus.PAID.value, "updated_at": format_timestamp(utc_now())},
                )
            except NotFound:
                logger.warning("Order %s on a paid bill no longer exists", order_id)
                continue
            marked += 1
        return marked

    async def for_table(self, tenant_id: str, table_number: str, limit: int = 10) -> list[Order]:
        docs = await self._store.query(
            Order.collection,
            [("tenant_id", "==", tenant_id), ("table_number", "==", str(table_number))],
            order_by="timestamp",
            descending=True,
            limit=limit,
        )
        return [Order.from_document(d) for d in docs]
