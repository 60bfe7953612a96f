"""
Table Service — Service wiring

Builds every operation object over one store and one messenger. The web app
uses the cached ``get_services()``; tests and Celery tasks call
``build_services`` with their own collaborators.
"""
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache

from tableservice.core.config import Settings, get_settings
from tableservice.db.memory_store import MemoryDocumentStore
from tableservice.db.store import DocumentStore
from tableservice.messaging.telegram import Messenger, TelegramMessenger
from tableservice.ops.approval import ApprovalCoordinator
from tableservice.ops.bill_ledger import BillLedger
from tableservice.ops.callbacks import CallbackDispatcher
from tableservice.ops.catalog import DepartmentDirectory, MenuCatalog
from tableservice.ops.day_close import DayCloseEngine
from tableservice.ops.department_router import DepartmentRouter
from tableservice.ops.order_intake import OrderIntake
from tableservice.ops.order_tracker import OrderTracker
from tableservice.ops.payment_settlement import PaymentSettlement
from tableservice.ops.scheduler import InFlightGuard, NotificationScheduler
from tableservice.ops.tenants import TenantDirectory
from tableservice.ops.waiter_calls import WaiterCalls
from tableservice.schemas.base import utc_now


@dataclass
class Services:
    store: DocumentStore
    messenger: Messenger
    tenants: TenantDirectory
    departments: DepartmentDirectory
    catalog: MenuCatalog
    ledger: BillLedger
    tracker: OrderTracker
    router: DepartmentRouter
    intake: OrderIntake
    approval: ApprovalCoordinator
    settlement: PaymentSettlement
    waiter_calls: WaiterCalls
    day_close: DayCloseEngine
    scheduler: NotificationScheduler
    callbacks: CallbackDispatcher


def build_services(
    store: DocumentStore,
    messenger: Messenger,
    settings: Settings | None = None,
    guard: InFlightGuard | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> Services:
    tenants = TenantDirectory(store, settings)
    departments = DepartmentDirectory(store)
    catalog = MenuCatalog(store)
    ledger = BillLedger(store, tenants)
    tracker = OrderTracker(store)
    router = DepartmentRouter(catalog, departments, messenger)
    approval = ApprovalCoordinator(store, ledger, router)
    settlement = PaymentSettlement(store, ledger, tracker, tenants, messenger)
    waiter_calls = WaiterCalls(store, tenants, messenger)
    return Services(
        store=store,
        messenger=messenger,
        tenants=tenants,
        departments=departments,
        catalog=catalog,
        ledger=ledger,
        tracker=tracker,
        router=router,
        intake=OrderIntake(store, tenants, messenger),
        approval=approval,
        settlement=settlement,
        waiter_calls=waiter_calls,
        day_close=DayCloseEngine(store, tenants, messenger, clock=clock, router=router),
        scheduler=NotificationScheduler(store, tenants, guard=guard, clock=clock),
        callbacks=CallbackDispatcher(approval, settlement, tracker, waiter_calls, messenger),
    )


def create_store(settings: Settings | None = None) -> DocumentStore:
    settings = settings or get_settings()
    if settings.STORE_BACKEND == "memory":
        return MemoryDocumentStore()
    if settings.STORE_BACKEND == "sql":
        from tableservice.db.sql_store import SqlDocumentStore

        return SqlDocumentStore()
    raise ValueError(f"Unknown STORE_BACKEND {settings.STORE_BACKEND!r}")


def create_messenger(settings: Settings | None = None) -> TelegramMessenger:
    settings = settings or get_settings()
    return TelegramMessenger(
        settings.TELEGRAM_BOT_TOKEN,
        api_url=settings.TELEGRAM_API_URL,
        timeout=settings.HTTP_TIMEOUT_SECONDS,
    )


@lru_cache()
def get_services() -> Services:
    return build_services(create_store(), create_messenger())
