"""
Table Service — Day close and waiter call schemas
"""
from enum import Enum as PyEnum
from typing import Literal

from pydantic import BaseModel, Field

from tableservice.schemas.base import DocumentModel, Money, Timestamp, utc_now


class CashierInfo(BaseModel):
    name: str = ""
    shift: str = ""
    notes: str = ""


class ItemCount(BaseModel):
    item_id: str
    name: str
    count: int


class DepartmentStat(BaseModel):
    department_id: str
    name: str
    icon: str | None = None
    orders: int
    avg_prep_minutes: float | None = None  # None until an order was marked ready


class DayReport(DocumentModel):
    collection = "day_reports"

    date: str
    cashier_info: CashierInfo
    total_orders: int
    total_revenue: Money
    total_payments: int
    waiter_calls: int = 0
    most_ordered_items: list[ItemCount] = Field(default_factory=list)
    most_active_table: str | None = None
    department_stats: list[DepartmentStat] = Field(default_factory=list)
    timestamp: Timestamp = Field(default_factory=utc_now)
    status: Literal["closed"] = "closed"


class WaiterCallStatus(str, PyEnum):
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    COMPLETED = "completed"


class WaiterCall(DocumentModel):
    collection = "waiter_calls"

    table_number: str
    status: WaiterCallStatus = WaiterCallStatus.PENDING
    timestamp: Timestamp = Field(default_factory=utc_now)
    updated_at: Timestamp | None = None
