"""
Table Service — Billing schemas and bill arithmetic
"""
from collections.abc import Iterable
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Literal

from pydantic import Field

from tableservice.schemas.base import DocumentModel, Money, Timestamp, to_money, utc_now
from tableservice.schemas.order import LineItem


class BillStatus(str, PyEnum):
    ACTIVE = "active"
    PAID = "paid"


class PaymentMethod(str, PyEnum):
    BANK_TRANSFER = "bank_transfer"
    MOBILE_MONEY = "mobile_money"


class ConfirmationStatus(str, PyEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def table_bill_id(tenant_id: str, table_number: str, sequence: int) -> str:
    return f"{tenant_id}:{table_number}:{sequence}"


def merge_items(existing: Iterable[LineItem], new_items: Iterable[LineItem]) -> list[LineItem]:
    """Fold new lines into existing ones by item_id, summing quantity and total."""
    merged: list[LineItem] = [item.model_copy() for item in existing]
    index = {item.item_id: pos for pos, item in enumerate(merged)}
    for item in new_items:
        pos = index.get(item.item_id)
        if pos is None:
            index[item.item_id] = len(merged)
            merged.append(item.model_copy())
            continue
        current = merged[pos]
        merged[pos] = current.model_copy(update={
            "quantity": current.quantity + item.quantity,
            "total": to_money(current.total + item.total),
        })
    return merged


def compute_totals(items: Iterable[LineItem], tax_rate: Decimal) -> tuple[Decimal, Decimal, Decimal]:
    subtotal = to_money(sum((item.total for item in items), Decimal("0")))
    tax = to_money(subtotal * tax_rate)
    return subtotal, tax, to_money(subtotal + tax)


class TableBill(DocumentModel):
    """
    The running bill of one table. At most one per (tenant_id, table_number)
    has status=active; paid bills stay as history.
    """
    collection = "table_bills"

    table_number: str
    sequence: int
    items: list[LineItem]
    subtotal: Money
    tax: Money
    total: Money
    tax_rate: Decimal
    status: BillStatus = BillStatus.ACTIVE
    order_ids: list[str] = Field(default_factory=list)
    payment_confirmation_id: str | None = None
    created_at: Timestamp = Field(default_factory=utc_now)
    updated_at: Timestamp = Field(default_factory=utc_now)


class PaymentConfirmation(DocumentModel):
    """A customer's payment proof, snapshotting the bill it was submitted against."""
    collection = "payment_confirmations"

    table_number: str
    method: PaymentMethod
    screenshot_url: str | None = None
    items: list[LineItem] = Field(default_factory=list)
    subtotal: Money
    tax: Money
    total: Money
    status: ConfirmationStatus = ConfirmationStatus.PENDING
    timestamp: Timestamp = Field(default_factory=utc_now)
    processed_at: Timestamp | None = None
    bill_id: str | None = None


class Bill(DocumentModel):
    """Immutable archive of a paid table bill; shares the table bill's id."""
    collection = "bills"

    table_number: str
    table_bill_id: str
    payment_confirmation_id: str | None = None
    items: list[LineItem]
    subtotal: Money
    tax: Money
    total: Money
    timestamp: Timestamp = Field(default_factory=utc_now)
    status: Literal["paid"] = "paid"
