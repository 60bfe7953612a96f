"""
Table Service — Running table bills

Every mutation of one table's bill is serialized twice over:
  - in-process: a per-(tenant, table) asyncio lock
  - across processes: a compare-and-swap on the bill's version; a lost CAS
    raises StaleDataError and the whole read-modify-write is re-run
A new bill's id is derived from the table's bill count, so two processes that
both see "no active bill" collide on the same id and only one create wins.
"""
import logging
from collections.abc import Sequence

from tableservice.core.errors import ValidationError
from tableservice.core.keyed_lock import KeyedLock
from tableservice.core.optimistic_lock import with_optimistic_retry
from tableservice.db.store import DocumentStore
from tableservice.ops.tenants import TenantDirectory
from tableservice.schemas.base import format_timestamp, to_money, utc_now
from tableservice.schemas.billing import BillStatus, TableBill, compute_totals, merge_items, table_bill_id
from tableservice.schemas.order import LineItem

logger = logging.getLogger(__name__)


def _check_items(items: Sequence[LineItem]) -> None:
    if not items:
        raise ValidationError("Cannot add an empty item list to a bill")
    for item in items:
        if item.quantity <= 0:
            raise ValidationError(f"Quantity for {item.name!r} must be positive")
        if item.total != to_money(item.unit_price * item.quantity):
            raise ValidationError(
                f"Line total for {item.name!r} is {item.total}, expected "
                f"{to_money(item.unit_price * item.quantity)}"
            )


class BillLedger:

    def __init__(self, store: DocumentStore, tenants: TenantDirectory, locks: KeyedLock | None = None):
        self._store = store
        self._tenants = tenants
        self._locks = locks or KeyedLock()

    # ── Reads ─────────────────────────────────────────────────

    async def get_active(self, tenant_id: str, table_number: str) -> TableBill | None:
        docs = await self._store.query(
            TableBill.collection,
            [
                ("tenant_id", "==", tenant_id),
                ("table_number", "==", str(table_number)),
                ("status", "==", BillStatus.ACTIVE.value),
            ],
            order_by="created_at",
        )
        if len(docs) > 1:
            logger.error(
                "Table %s of tenant %s has %d active bills; using the oldest",
                table_number, tenant_id, len(docs),
            )
        return TableBill.from_document(docs[0]) if docs else None

    async def active_bills(self, tenant_id: str) -> list[TableBill]:
        docs = await self._store.query(
            TableBill.collection,
            [("tenant_id", "==", tenant_id), ("status", "==", BillStatus.ACTIVE.value)],
            order_by="created_at",
        )
        return [TableBill.from_document(d) for d in docs]

    async def history(self, tenant_id: str, table_number: str) -> list[TableBill]:
        docs = await self._store.query(
            TableBill.collection,
            [("tenant_id", "==", tenant_id), ("table_number", "==", str(table_number))],
        )
        return sorted((TableBill.from_document(d) for d in docs), key=lambda b: b.sequence)

    # ── Writes ────────────────────────────────────────────────

    async def merge_or_create(
        self,
        tenant_id: str,
        table_number: str,
        new_items: Sequence[LineItem],
        order_id: str | None = None,
    ) -> TableBill:
        _check_items(new_items)
        table_number = str(table_number)
        async with self._locks.hold((tenant_id, table_number)):
            return await self._merge_or_create(tenant_id, table_number, list(new_items), order_id)

    @with_optimistic_retry()
    async def _merge_or_create(
        self,
        tenant_id: str,
        table_number: str,
        new_items: list[LineItem],
        order_id: str | None,
    ) -> TableBill:
        if order_id:
            # Paid bills count too
            for earlier in await self.history(tenant_id, table_number):
                if order_id in earlier.order_ids:
                    logger.info("Order %s already on bill %s; skipping merge", order_id, earlier.id)
                    return earlier

        tax_rate = await self._tenants.tax_rate(tenant_id)
        bill = await self.get_active(tenant_id, table_number)

        if bill is None:
            sequence = await self._next_sequence(tenant_id, table_number)
            items = merge_items([], new_items)
            subtotal, tax, total = compute_totals(items, tax_rate)
            fresh = TableBill(
                id=table_bill_id(tenant_id, table_number, sequence),
                tenant_id=tenant_id,
                table_number=table_number,
                sequence=sequence,
                items=items,
                subtotal=subtotal,
                tax=tax,
                total=total,
                tax_rate=tax_rate,
                order_ids=[order_id] if order_id else [],
            )
            # DocumentExistsError is a StaleDataError: a concurrent creator won, re-run
            doc = await self._store.create(TableBill.collection, fresh.to_data(), doc_id=fresh.id)
            logger.info("Opened bill %s for table %s (total %s)", fresh.id, table_number, total)
            return TableBill.from_document(doc)

        items = merge_items(bill.items, new_items)
        subtotal, tax, total = compute_totals(items, tax_rate)
        updated = bill.model_copy(update={
            "items": items,
            "subtotal": subtotal,
            "tax": tax,
            "total": total,
            "tax_rate": tax_rate,
            "order_ids": bill.order_ids + ([order_id] if order_id else []),
            "updated_at": utc_now(),
        })
        changes = updated.model_dump(
            mode="json",
            include={"items", "subtotal", "tax", "total", "tax_rate", "order_ids", "updated_at"},
        )
        doc = await self._store.update(TableBill.collection, bill.id, changes, expected_version=bill.version)
        logger.info("Merged %d item(s) into bill %s (total %s)", len(new_items), bill.id, total)
        return TableBill.from_document(doc)

    async def mark_paid(
        self,
        tenant_id: str,
        table_number: str,
        payment_confirmation_id: str | None = None,
        bill_id: str | None = None,
    ) -> TableBill | None:
        table_number = str(table_number)
        async with self._locks.hold((tenant_id, table_number)):
            return await self._mark_paid(tenant_id, table_number, payment_confirmation_id, bill_id)

    @with_optimistic_retry()
    async def _mark_paid(
        self,
        tenant_id: str,
        table_number: str,
        payment_confirmation_id: str | None,
        bill_id: str | None = None,
    ) -> TableBill | None:
        bill = await self.get_active(tenant_id, table_number)
        if bill is None:
            logger.info("No active bill for table %s of tenant %s; nothing to mark paid", table_number, tenant_id)
            return None
        if bill_id and bill.id != bill_id:
            logger.warning(
                "Bill %s is no longer active on table %s; active bill %s left open",
                bill_id, table_number, bill.id,
            )
            return None
        changes = {"status": BillStatus.PAID.value, "updated_at": format_timestamp(utc_now())}
        if payment_confirmation_id:
            changes["payment_confirmation_id"] = payment_confirmation_id
        doc = await self._store.update(TableBill.collection, bill.id, changes, expected_version=bill.version)
        logger.info("Bill %s marked paid (total %s)", bill.id, bill.total)
        return TableBill.from_document(doc)

    async def _next_sequence(self, tenant_id: str, table_number: str) -> int:
        bills = await self._store.query(
            TableBill.collection,
            [("tenant_id", "==", tenant_id), ("table_number", "==", table_number)],
        )
        return max((doc.data.get("sequence", 0) for doc in bills), default=0) + 1
