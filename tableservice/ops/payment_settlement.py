"""
Table Service — Payment settlement

Customers submit proof of payment against their table's active bill; staff
approve or reject it. Approval closes the bill, archives it as a Bill and
marks the bill's orders paid.
"""
import logging

from tableservice.core.errors import DependencyFailure, NotFound, ValidationError
from tableservice.core.optimistic_lock import DocumentExistsError, StaleDataError
from tableservice.db.store import DocumentStore
from tableservice.messaging import formatting
from tableservice.messaging.telegram import Button, Messenger, deliver
from tableservice.ops.bill_ledger import BillLedger
from tableservice.ops.order_tracker import OrderTracker
from tableservice.ops.tenants import TenantDirectory
from tableservice.schemas.base import format_timestamp, utc_now
from tableservice.schemas.billing import (
    Bill,
    ConfirmationStatus,
    PaymentConfirmation,
    PaymentMethod,
    TableBill,
)
from tableservice.schemas.commands import ApprovePayment, RejectPayment

logger = logging.getLogger(__name__)


class PaymentSettlement:

    def __init__(
        self,
        store: DocumentStore,
        ledger: BillLedger,
        tracker: OrderTracker,
        tenants: TenantDirectory,
        messenger: Messenger,
    ):
        self._store = store
        self._ledger = ledger
        self._tracker = tracker
        self._tenants = tenants
        self._messenger = messenger

    async def submit(
        self,
        tenant_id: str,
        table_number: str,
        method: PaymentMethod | str,
        screenshot_url: str | None = None,
    ) -> PaymentConfirmation:
        try:
            method = PaymentMethod(method)
        except ValueError:
            raise ValidationError(f"Unsupported payment method {method!r}") from None
        table_number = str(table_number)

        bill = await self._ledger.get_active(tenant_id, table_number)
        if bill is None:
            raise ValidationError(f"Table {table_number} has no open bill to pay")

        confirmation = PaymentConfirmation(
            tenant_id=tenant_id,
            table_number=table_number,
            method=method,
            screenshot_url=screenshot_url,
            items=bill.items,
            subtotal=bill.subtotal,
            tax=bill.tax,
            total=bill.total,
            bill_id=bill.id,
        )
        doc = await self._store.create(PaymentConfirmation.collection, confirmation.to_data(), doc_id=confirmation.id)
        confirmation = PaymentConfirmation.from_document(doc)
        logger.info("Payment %s submitted for table %s (%s)", confirmation.id, table_number, confirmation.total)

        profile = await self._tenants.profile(tenant_id)
        await deliver(
            self._messenger,
            profile.cashier_channel_id,
            formatting.payment_verification(confirmation),
            [
                Button(text="✅ Accept Payment", command=ApprovePayment(confirmation_id=confirmation.id)),
                Button(text="❌ Reject Payment", command=RejectPayment(confirmation_id=confirmation.id)),
            ],
        )
        return confirmation

    async def resolve(self, confirmation_id: str, decision: ConfirmationStatus | str) -> PaymentConfirmation:
        try:
            decision = ConfirmationStatus(decision)
        except ValueError:
            raise ValidationError(f"Unknown payment decision {decision!r}") from None
        if decision == ConfirmationStatus.PENDING:
            raise ValidationError("A payment can only be approved or rejected")

        doc = await self._store.get(PaymentConfirmation.collection, confirmation_id)
        confirmation = PaymentConfirmation.from_document(doc) if doc else None
        if confirmation is None or confirmation.status != ConfirmationStatus.PENDING:
            logger.info("Payment confirmation %s not found or already processed", confirmation_id)
            raise NotFound(f"Payment confirmation {confirmation_id} not found or already processed")

        try:
            doc = await self._store.update(
                PaymentConfirmation.collection,
                confirmation.id,
                {"status": decision.value, "processed_at": format_timestamp(utc_now())},
                expected_version=confirmation.version,
            )
        except (StaleDataError, NotFound):
            logger.info("Payment confirmation %s resolved concurrently", confirmation_id)
            raise NotFound(f"Payment confirmation {confirmation_id} not found or already processed") from None

        resolved = PaymentConfirmation.from_document(doc)
        if decision == ConfirmationStatus.APPROVED:
            await self._settle(resolved)
        else:
            logger.info("Payment %s for table %s rejected", resolved.id, resolved.table_number)
        return resolved

    async def _settle(self, confirmation: PaymentConfirmation) -> None:
        try:
            paid = await self._ledger.mark_paid(
                confirmation.tenant_id, confirmation.table_number, confirmation.id, bill_id=confirmation.bill_id,
            )
            if paid is None:
                logger.warning(
                    "Payment %s approved but its bill %s is not active on table %s; nothing closed",
                    confirmation.id, confirmation.bill_id, confirmation.table_number,
                )
                return
            if paid.total != confirmation.total:
                logger.warning(
                    "Payment %s covers %s but bill %s totals %s; bill closed anyway",
                    confirmation.id, confirmation.total, paid.id, paid.total,
                )
            await self._archive(paid, confirmation)
            await self._tracker.mark_orders_paid(paid.order_ids)
        except DependencyFailure:
            logger.error("Settlement of payment %s stopped part-way", confirmation.id)
            raise
        logger.info("Payment %s approved; bill %s closed", confirmation.id, paid.id)

    async def _archive(self, paid: TableBill, confirmation: PaymentConfirmation) -> Bill:
        bill = Bill(
            id=paid.id,
            tenant_id=paid.tenant_id,
            table_number=paid.table_number,
            table_bill_id=paid.id,
            payment_confirmation_id=confirmation.id,
            items=paid.items,
            subtotal=paid.subtotal,
            tax=paid.tax,
            total=paid.total,
        )
        try:
            doc = await self._store.create(Bill.collection, bill.to_data(), doc_id=bill.id)
        except DocumentExistsError:
            doc = await self._store.get(Bill.collection, bill.id)
        return Bill.from_document(doc)

    async def pending(self, tenant_id: str) -> list[PaymentConfirmation]:
        docs = await self._store.query(
            PaymentConfirmation.collection,
            [("tenant_id", "==", tenant_id), ("status", "==", ConfirmationStatus.PENDING.value)],
            order_by="timestamp",
            descending=True,
        )
        return [PaymentConfirmation.from_document(d) for d in docs]

    async def bills(self, tenant_id: str, limit: int = 50) -> list[Bill]:
        docs = await self._store.query(
            Bill.collection,
            [("tenant_id", "==", tenant_id)],
            order_by="timestamp",
            descending=True,
            limit=limit,
        )
        return [Bill.from_document(d) for d in docs]
