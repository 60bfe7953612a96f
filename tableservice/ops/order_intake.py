"""
Table Service — Customer order intake

Validates a cart, recomputes every line total server-side, stores the
PendingOrder and asks the cashier channel to approve or reject it.
"""
import logging
from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any

import pydantic
from pydantic import BaseModel

from tableservice.core.errors import ValidationError
from tableservice.db.store import DocumentStore
from tableservice.messaging import formatting
from tableservice.messaging.telegram import Button, Messenger, deliver
from tableservice.ops.tenants import TenantDirectory
from tableservice.schemas.base import to_money
from tableservice.schemas.commands import ApproveOrder, RejectOrder
from tableservice.schemas.order import CartItem, CustomerInfo, LineItem, PendingOrder, PendingStatus

logger = logging.getLogger(__name__)


def _first_error(exc: pydantic.ValidationError) -> str:
    error = exc.errors()[0]
    where = ".".join(str(part) for part in error.get("loc", ()))
    return f"{where}: {error['msg']}" if where else error["msg"]


class OrderIntake:

    def __init__(self, store: DocumentStore, tenants: TenantDirectory, messenger: Messenger):
        self._store = store
        self._tenants = tenants
        self._messenger = messenger

    async def submit(
        self,
        tenant_id: str,
        table_number: str,
        items: Sequence[CartItem | Mapping[str, Any]],
        customer_info: CustomerInfo | Mapping[str, Any] | None = None,
    ) -> PendingOrder:
        table_number = str(table_number).strip()
        if not table_number:
            raise ValidationError("Table number is required")
        if not items:
            raise ValidationError("Cart is empty")

        lines: list[LineItem] = []
        for raw in items:
            data = raw.model_dump() if isinstance(raw, BaseModel) else dict(raw)
            try:
                cart_item = CartItem.model_validate(data)
            except pydantic.ValidationError as exc:
                raise ValidationError(f"Invalid cart item: {_first_error(exc)}") from exc
            lines.append(LineItem.priced(cart_item.item_id, cart_item.name, cart_item.quantity, cart_item.unit_price))

        if customer_info is not None and not isinstance(customer_info, CustomerInfo):
            try:
                customer_info = CustomerInfo.model_validate(dict(customer_info))
            except pydantic.ValidationError as exc:
                raise ValidationError(f"Invalid customer info: {_first_error(exc)}") from exc

        pending = PendingOrder(
            tenant_id=tenant_id,
            table_number=table_number,
            items=lines,
            total_amount=to_money(sum((line.total for line in lines), Decimal("0"))),
            customer_info=customer_info,
        )
        doc = await self._store.create(PendingOrder.collection, pending.to_data(), doc_id=pending.id)
        pending = PendingOrder.from_document(doc)
        logger.info(
            "Pending order %s for table %s (%d item(s), total %s)",
            pending.id, table_number, len(lines), pending.total_amount,
        )

        profile = await self._tenants.profile(tenant_id)
        await deliver(
            self._messenger,
            profile.cashier_channel_id,
            formatting.pending_order(pending),
            [
                Button(text="✅ Approve Order", command=ApproveOrder(pending_order_id=pending.id)),
                Button(text="❌ Reject Order", command=RejectOrder(pending_order_id=pending.id)),
            ],
        )
        return pending

    async def pending(self, tenant_id: str) -> list[PendingOrder]:
        docs = await self._store.query(
            PendingOrder.collection,
            [("tenant_id", "==", tenant_id), ("status", "==", PendingStatus.PENDING.value)],
            order_by="timestamp",
            descending=True,
        )
        return [PendingOrder.from_document(d) for d in docs]
