"""
Table Service — Waiter calls
"""
import logging

from tableservice.core.errors import NotFound, ValidationError
from tableservice.core.optimistic_lock import StaleDataError
from tableservice.db.store import DocumentStore
from tableservice.messaging import formatting
from tableservice.messaging.telegram import Button, Messenger, deliver
from tableservice.ops.tenants import TenantDirectory
from tableservice.schemas.base import format_timestamp, utc_now
from tableservice.schemas.commands import AcknowledgeWaiter, DelayWaiter
from tableservice.schemas.report import WaiterCall, WaiterCallStatus

logger = logging.getLogger(__name__)


class WaiterCalls:

    def __init__(self, store: DocumentStore, tenants: TenantDirectory, messenger: Messenger):
        self._store = store
        self._tenants = tenants
        self._messenger = messenger

    async def call(self, tenant_id: str, table_number: str) -> WaiterCall:
        table_number = str(table_number).strip()
        if not table_number:
            raise ValidationError("Table number is required")
        waiter_call = WaiterCall(tenant_id=tenant_id, table_number=table_number)
        doc = await self._store.create(WaiterCall.collection, waiter_call.to_data(), doc_id=waiter_call.id)
        waiter_call = WaiterCall.from_document(doc)

        profile = await self._tenants.profile(tenant_id)
        await deliver(
            self._messenger,
            profile.cashier_channel_id,
            formatting.waiter_call(table_number, waiter_call.timestamp),
            [
                Button(
                    text="✅ On My Way",
                    command=AcknowledgeWaiter(table_number=table_number, waiter_call_id=waiter_call.id),
                ),
                Button(
                    text="⏰ Busy - 5 min",
                    command=DelayWaiter(table_number=table_number, waiter_call_id=waiter_call.id),
                ),
            ],
        )
        return waiter_call

    async def acknowledge(self, call_id: str) -> WaiterCall:
        doc = await self._store.get(WaiterCall.collection, call_id)
        waiter_call = WaiterCall.from_document(doc) if doc else None
        if waiter_call is None or waiter_call.status != WaiterCallStatus.PENDING:
            logger.info("Waiter call %s not found or already acknowledged", call_id)
            raise NotFound(f"Waiter call {call_id} not found or already acknowledged")
        try:
            doc = await self._store.update(
                WaiterCall.collection,
                call_id,
                {"status": WaiterCallStatus.ACKNOWLEDGED.value, "updated_at": format_timestamp(utc_now())},
                expected_version=waiter_call.version,
            )
        except StaleDataError:
            raise NotFound(f"Waiter call {call_id} not found or already acknowledged") from None
        return WaiterCall.from_document(doc)

    async def pending(self, tenant_id: str) -> list[WaiterCall]:
        docs = await self._store.query(
            WaiterCall.collection,
            [("tenant_id", "==", tenant_id), ("status", "==", WaiterCallStatus.PENDING.value)],
            order_by="timestamp",
        )
        return [WaiterCall.from_document(d) for d in docs]
