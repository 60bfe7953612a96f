"""
Table Service — Department routing

Splits an approved order by owning department and sends each department one
ticket with Ready / Delay buttons. Delivery is fire-and-forget.
"""
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from tableservice.messaging import formatting
from tableservice.messaging.telegram import Button, Messenger, deliver
from tableservice.ops.catalog import DepartmentDirectory, MenuCatalog, kitchen_department_id
from tableservice.schemas.catalog import Department
from tableservice.schemas.commands import DelayOrder, MarkReady
from tableservice.schemas.order import LineItem, Order

logger = logging.getLogger(__name__)


@dataclass
class RoutedTicket:
    department_id: str
    channel_id: str
    items: list[LineItem] = field(default_factory=list)
    delivered: bool = False


class DepartmentRouter:

    def __init__(self, catalog: MenuCatalog, departments: DepartmentDirectory, messenger: Messenger):
        self._catalog = catalog
        self._departments = departments
        self._messenger = messenger

    async def departments(self, tenant_id: str) -> dict[str, Department]:
        return {d.id: d for d in await self._departments.for_tenant(tenant_id)}

    async def split(self, order: Order, known: Mapping[str, Department] | None = None) -> dict[str, list[LineItem]]:
        """Group the order's lines by department id; unowned items go to the kitchen."""
        if known is None:
            known = await self.departments(order.tenant_id)
        kitchen_id = kitchen_department_id(order.tenant_id)
        owners = await self._catalog.department_ids(order.tenant_id, [i.item_id for i in order.items])

        groups: dict[str, list[LineItem]] = {}
        for item in order.items:
            department_id = owners.get(item.item_id)
            if department_id not in known:
                department_id = kitchen_id
            groups.setdefault(department_id, []).append(item)
        return groups

    async def route(self, order: Order) -> list[RoutedTicket]:
        known = await self.departments(order.tenant_id)
        groups = await self.split(order, known)

        tickets: list[RoutedTicket] = []
        for department_id, items in groups.items():
            department = known.get(department_id)
            if department is None:
                logger.warning(
                    "Tenant %s has no kitchen department; %d item(s) of order %s not routed",
                    order.tenant_id, len(items), order.id,
                )
                continue
            delivered = await deliver(
                self._messenger,
                department.delivery_channel_id,
                formatting.department_ticket(order, department, items),
                [
                    Button(text="✅ Ready", command=MarkReady(department_id=department.id, order_id=order.id)),
                    Button(text="⏰ Delay", command=DelayOrder(department_id=department.id, order_id=order.id)),
                ],
            )
            tickets.append(RoutedTicket(department.id, department.delivery_channel_id, items, delivered))

        logger.info("Order %s routed to %d department(s)", order.id, len(tickets))
        return tickets
