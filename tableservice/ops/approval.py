"""
Table Service — Order approval

A PendingOrder moves pending → approving → committed → (deleted). The status
is written before each side effect, so an approval interrupted by a crash can
be finished with ``resume``; every step is safe to repeat:
  - the Order is created under the pending id (an existing one is reused)
  - the bill merge is keyed by order id
  - routing is skipped once the Order is flagged ``routed``
"""
import logging

from tableservice.core.errors import DependencyFailure, NotFound, ValidationError
from tableservice.core.optimistic_lock import DocumentExistsError, StaleDataError
from tableservice.db.store import DocumentStore
from tableservice.ops.bill_ledger import BillLedger
from tableservice.ops.department_router import DepartmentRouter
from tableservice.schemas.base import format_timestamp, utc_now
from tableservice.schemas.order import Order, PendingOrder, PendingStatus

logger = logging.getLogger(__name__)


class ApprovalCoordinator:

    def __init__(self, store: DocumentStore, ledger: BillLedger, router: DepartmentRouter):
        self._store = store
        self._ledger = ledger
        self._router = router

    async def _load(self, pending_order_id: str) -> PendingOrder | None:
        doc = await self._store.get(PendingOrder.collection, pending_order_id)
        return PendingOrder.from_document(doc) if doc else None

    async def approve(self, pending_order_id: str) -> Order:
        pending = await self._load(pending_order_id)
        if pending is None or pending.status != PendingStatus.PENDING:
            logger.info("Pending order %s not found or already processed", pending_order_id)
            raise NotFound(f"Pending order {pending_order_id} not found or already processed")

        try:
            doc = await self._store.update(
                PendingOrder.collection,
                pending.id,
                {"status": PendingStatus.APPROVING.value, "approving_at": format_timestamp(utc_now())},
                expected_version=pending.version,
            )
        except (StaleDataError, NotFound):
            logger.info("Lost the claim on pending order %s to another approver", pending_order_id)
            raise NotFound(f"Pending order {pending_order_id} not found or already processed") from None

        return await self._commit(PendingOrder.from_document(doc))

    async def resume(self, pending_order_id: str) -> Order:
        pending = await self._load(pending_order_id)
        if pending is None:
            raise NotFound(f"Pending order {pending_order_id} not found")
        if pending.status == PendingStatus.PENDING:
            raise ValidationError(f"Pending order {pending_order_id} was never claimed; approve it instead")
        logger.info("Resuming approval of %s from status %s", pending.id, pending.status.value)
        return await self._commit(pending)

    async def stalled(self, tenant_id: str) -> list[PendingOrder]:
        docs = await self._store.query(
            PendingOrder.collection,
            [
                ("tenant_id", "==", tenant_id),
                ("status", "in", [PendingStatus.APPROVING.value, PendingStatus.COMMITTED.value]),
            ],
            order_by="timestamp",
        )
        return [PendingOrder.from_document(d) for d in docs]

    async def reject(self, pending_order_id: str) -> PendingOrder:
        pending = await self._load(pending_order_id)
        if pending is None or pending.status != PendingStatus.PENDING:
            logger.info("Pending order %s not found or already processed", pending_order_id)
            raise NotFound(f"Pending order {pending_order_id} not found or already processed")
        try:
            deleted = await self._store.delete(PendingOrder.collection, pending.id, expected_version=pending.version)
        except StaleDataError:
            deleted = False
        if not deleted:
            logger.info("Pending order %s was processed concurrently", pending_order_id)
            raise NotFound(f"Pending order {pending_order_id} not found or already processed")
        logger.info("Pending order %s for table %s rejected", pending.id, pending.table_number)
        return pending

    async def _commit(self, pending: PendingOrder) -> Order:
        try:
            order = await self._create_order(pending)

            if pending.status == PendingStatus.APPROVING:
                await self._ledger.merge_or_create(
                    pending.tenant_id, pending.table_number, pending.items, order_id=order.id,
                )
                doc = await self._store.update(
                    PendingOrder.collection, pending.id, {"status": PendingStatus.COMMITTED.value},
                )
                pending = PendingOrder.from_document(doc)

            if not order.routed:
                await self._router.route(order)
                doc = await self._store.update(Order.collection, order.id, {"routed": True})
                order = Order.from_document(doc)

            await self._store.delete(PendingOrder.collection, pending.id)
        except DependencyFailure:
            logger.error(
                "Approval of pending order %s stopped at status %s; call resume() once dependencies recover",
                pending.id, pending.status.value,
            )
            raise

        logger.info("Order %s approved for table %s (total %s)", order.id, order.table_number, order.total_amount)
        return order

    async def _create_order(self, pending: PendingOrder) -> Order:
        order = Order(
            id=pending.id,
            tenant_id=pending.tenant_id,
            table_number=pending.table_number,
            items=pending.items,
            total_amount=pending.total_amount,
            customer_info=pending.customer_info,
        )
        try:
            doc = await self._store.create(Order.collection, order.to_data(), doc_id=order.id)
        except DocumentExistsError:
            doc = await self._store.get(Order.collection, order.id)
            logger.info("Order %s already exists; reusing it", order.id)
        return Order.from_document(doc)
