"""
Table Service — Order schemas
"""
from decimal import Decimal
from enum import Enum as PyEnum

from pydantic import BaseModel, Field

from tableservice.schemas.base import DocumentModel, Money, Timestamp, to_money, utc_now


class LineItem(BaseModel):
    item_id: str = Field(..., min_length=1)
    name: str
    quantity: int = Field(..., gt=0)
    unit_price: Money
    total: Money

    @classmethod
    def priced(cls, item_id: str, name: str, quantity: int, unit_price) -> "LineItem":
        unit_price = to_money(unit_price)
        return cls(
            item_id=item_id,
            name=name,
            quantity=quantity,
            unit_price=unit_price,
            total=to_money(unit_price * quantity),
        )


class CartItem(BaseModel):
    """One row of a customer's cart as submitted."""

    item_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)


class CustomerInfo(BaseModel):
    name: str | None = None
    phone: str | None = None
    telegram_id: str | None = None
    telegram_username: str | None = None


class PendingStatus(str, PyEnum):
    PENDING = "pending"
    APPROVING = "approving"
    COMMITTED = "committed"


class OrderStatus(str, PyEnum):
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, PyEnum):
    PENDING = "pending"
    PAID = "paid"


class PendingOrder(DocumentModel):
    """
    A cart awaiting staff approval. Consumed exactly once: deleted on reject,
    or walked through approving → committed → deleted on approve.
    """
    collection = "pending_orders"

    table_number: str
    items: list[LineItem]
    total_amount: Money
    timestamp: Timestamp = Field(default_factory=utc_now)
    customer_info: CustomerInfo | None = None
    status: PendingStatus = PendingStatus.PENDING
    approving_at: Timestamp | None = None


class Order(DocumentModel):
    """An approved order. Its id is the id of the pending order it came from."""
    collection = "orders"

    table_number: str
    items: list[LineItem]
    total_amount: Money
    status: OrderStatus = OrderStatus.CONFIRMED
    payment_status: PaymentStatus = PaymentStatus.PENDING
    timestamp: Timestamp = Field(default_factory=utc_now)
    customer_info: CustomerInfo | None = None
    routed: bool = False
    ready_at: Timestamp | None = None
    updated_at: Timestamp | None = None
