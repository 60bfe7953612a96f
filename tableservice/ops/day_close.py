"""
Table Service — End-of-day close

Aggregates the tenant-local business day's orders and waiter calls into a
DayReport and sends the summary to the admin channel. Bills are untouched.
"""
import logging
from collections import Counter
from collections.abc import Callable, Mapping, Sequence
from datetime import date, datetime, time, timedelta, tzinfo
from decimal import Decimal
from typing import Any

from tableservice.core.errors import ValidationError
from tableservice.db.store import DocumentStore
from tableservice.messaging import formatting
from tableservice.messaging.telegram import Messenger, deliver
from tableservice.ops.catalog import DepartmentDirectory, MenuCatalog
from tableservice.ops.department_router import DepartmentRouter
from tableservice.ops.tenants import TenantDirectory
from tableservice.schemas.base import format_timestamp, to_money, utc_now
from tableservice.schemas.order import Order, PaymentStatus
from tableservice.schemas.catalog import Department
from tableservice.schemas.report import CashierInfo, DayReport, DepartmentStat, ItemCount, WaiterCall

logger = logging.getLogger(__name__)

TOP_ITEMS = 5


def day_bounds(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """Start (inclusive) and end (exclusive) of a local calendar day."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start, end


def most_ordered(orders: Sequence[Order], limit: int = TOP_ITEMS) -> list[ItemCount]:
    counts: Counter[str] = Counter()
    names: dict[str, str] = {}
    for order in orders:
        for item in order.items:
            counts[item.item_id] += item.quantity
            names.setdefault(item.item_id, item.name)
    # Counter.most_common keeps first-seen order among equal counts
    return [ItemCount(item_id=i, name=names[i], count=c) for i, c in counts.most_common(limit)]


def most_active_table(orders: Sequence[Order]) -> str | None:
    tables = Counter(order.table_number for order in orders)
    if not tables:
        return None
    return tables.most_common(1)[0][0]


def department_stat(department_id: str, department: Department | None, orders: Sequence[Order]) -> DepartmentStat:
    prep = [
        (order.ready_at - order.timestamp).total_seconds() / 60
        for order in orders if order.ready_at is not None
    ]
    return DepartmentStat(
        department_id=department_id,
        name=department.name if department else "Kitchen",
        icon=department.icon if department else None,
        orders=len(orders),
        avg_prep_minutes=round(sum(prep) / len(prep), 1) if prep else None,
    )


class DayCloseEngine:

    def __init__(
        self,
        store: DocumentStore,
        tenants: TenantDirectory,
        messenger: Messenger,
        clock: Callable[[], datetime] = utc_now,
        router: DepartmentRouter | None = None,
    ):
        self._store = store
        self._tenants = tenants
        self._messenger = messenger
        self._clock = clock
        self._router = router or DepartmentRouter(MenuCatalog(store), DepartmentDirectory(store), messenger)

    async def close_day(self, tenant_id: str, cashier_info: CashierInfo | Mapping[str, Any]) -> DayReport:
        if not isinstance(cashier_info, CashierInfo):
            cashier_info = CashierInfo.model_validate(dict(cashier_info))
        if not cashier_info.name.strip():
            raise ValidationError("Cashier name is required to close the day")

        profile = await self._tenants.profile(tenant_id)
        now = self._clock()
        business_day = now.astimezone(profile.timezone).date()
        start, end = day_bounds(business_day, profile.timezone)
        window = [
            ("tenant_id", "==", tenant_id),
            ("timestamp", ">=", format_timestamp(start)),
            ("timestamp", "<", format_timestamp(end)),
        ]

        orders = [Order.from_document(d) for d in await self._store.query(Order.collection, window)]
        calls = await self._store.query(WaiterCall.collection, window)
        department_stats = await self._department_stats(tenant_id, orders)

        report = DayReport(
            tenant_id=tenant_id,
            date=business_day.isoformat(),
            cashier_info=cashier_info,
            total_orders=len(orders),
            total_revenue=to_money(sum((o.total_amount for o in orders), Decimal("0"))),
            total_payments=sum(1 for o in orders if o.payment_status == PaymentStatus.PAID),
            waiter_calls=len(calls),
            most_ordered_items=most_ordered(orders),
            most_active_table=most_active_table(orders),
            department_stats=department_stats,
            timestamp=now,
        )
        doc = await self._store.create(DayReport.collection, report.to_data(), doc_id=report.id)
        report = DayReport.from_document(doc)
        logger.info(
            "Day %s closed for tenant %s: %d order(s), revenue %s",
            report.date, tenant_id, report.total_orders, report.total_revenue,
        )

        await deliver(self._messenger, profile.admin_channel_id, formatting.day_report(report))
        return report

    async def _department_stats(self, tenant_id: str, orders: Sequence[Order]) -> list[DepartmentStat]:
        known = await self._router.departments(tenant_id)
        by_department: dict[str, list[Order]] = {}
        for order in orders:
            for department_id in await self._router.split(order, known):
                by_department.setdefault(department_id, []).append(order)
        return [department_stat(d, known.get(d), dept_orders) for d, dept_orders in by_department.items()]

    async def reports(self, tenant_id: str, limit: int = 30) -> list[DayReport]:
        docs = await self._store.query(
            DayReport.collection,
            [("tenant_id", "==", tenant_id)],
            order_by="timestamp",
            descending=True,
            limit=limit,
        )
        return [DayReport.from_document(d) for d in docs]
