"""
Table Service — Departments and menu catalog

Every tenant has a sentinel kitchen department with a deterministic id; items
without a department (or pointing at a deleted one) are routed there.
"""
import logging
import uuid
from collections.abc import Iterable
from decimal import Decimal

from tableservice.core.errors import NotFound, ValidationError
from tableservice.core.optimistic_lock import DocumentExistsError
from tableservice.db.store import DocumentStore
from tableservice.schemas.base import new_id, to_money
from tableservice.schemas.catalog import Department, DepartmentRole, MenuItem

logger = logging.getLogger(__name__)

KITCHEN_NAMESPACE = uuid.UUID("6f1c2a8e-4b7d-4e55-9a3e-2d8b5c7f0e14")


def kitchen_department_id(tenant_id: str) -> str:
    return uuid.uuid5(KITCHEN_NAMESPACE, tenant_id).hex[:20]


class DepartmentDirectory:

    def __init__(self, store: DocumentStore):
        self._store = store

    async def ensure_kitchen(self, tenant_id: str, delivery_channel_id: str, name: str = "Kitchen") -> Department:
        kitchen = Department(
            id=kitchen_department_id(tenant_id),
            tenant_id=tenant_id,
            name=name,
            role=DepartmentRole.KITCHEN,
            delivery_channel_id=delivery_channel_id,
            icon="👨‍🍳",
        )
        try:
            doc = await self._store.create(Department.collection, kitchen.to_data(), doc_id=kitchen.id)
        except DocumentExistsError:
            doc = await self._store.get(Department.collection, kitchen.id)
        return Department.from_document(doc)

    async def add(
        self,
        tenant_id: str,
        name: str,
        role: DepartmentRole | str,
        delivery_channel_id: str,
        icon: str | None = None,
    ) -> Department:
        if not name.strip():
            raise ValidationError("Department name is required")
        if not str(delivery_channel_id).strip():
            raise ValidationError("Department delivery channel is required")
        department = Department(
            tenant_id=tenant_id,
            name=name,
            role=DepartmentRole(role),
            delivery_channel_id=str(delivery_channel_id),
            icon=icon,
        )
        doc = await self._store.create(Department.collection, department.to_data(), doc_id=department.id)
        return Department.from_document(doc)

    async def get(self, tenant_id: str, department_id: str) -> Department | None:
        doc = await self._store.get(Department.collection, department_id)
        if doc is None or doc.data.get("tenant_id") != tenant_id:
            return None
        return Department.from_document(doc)

    async def for_tenant(self, tenant_id: str) -> list[Department]:
        docs = await self._store.query(Department.collection, [("tenant_id", "==", tenant_id)])
        return [Department.from_document(d) for d in docs]

    async def remove(self, tenant_id: str, department_id: str) -> None:
        if department_id == kitchen_department_id(tenant_id):
            raise ValidationError("The kitchen department cannot be removed")
        if await self.get(tenant_id, department_id) is None:
            raise NotFound(f"Department {department_id} not found")
        await self._store.delete(Department.collection, department_id)


class MenuCatalog:

    def __init__(self, store: DocumentStore):
        self._store = store

    async def add_item(
        self,
        tenant_id: str,
        name: str,
        price,
        department_id: str | None = None,
        item_id: str | None = None,
    ) -> MenuItem:
        price = to_money(price)
        if price < 0:
            raise ValidationError(f"Price for {name!r} cannot be negative")
        item = MenuItem(
            id=item_id or new_id(), tenant_id=tenant_id, name=name, price=price, department_id=department_id,
        )
        doc = await self._store.create(MenuItem.collection, item.to_data(), doc_id=item.id)
        return MenuItem.from_document(doc)

    async def get(self, tenant_id: str, item_id: str) -> MenuItem | None:
        doc = await self._store.get(MenuItem.collection, item_id)
        if doc is None or doc.data.get("tenant_id") != tenant_id:
            return None
        return MenuItem.from_document(doc)

    async def price(self, tenant_id: str, item_id: str) -> Decimal | None:
        item = await self.get(tenant_id, item_id)
        return item.price if item else None

    async def department_ids(self, tenant_id: str, item_ids: Iterable[str]) -> dict[str, str | None]:
        mapping: dict[str, str | None] = {}
        for item_id in item_ids:
            if item_id in mapping:
                continue
            item = await self.get(tenant_id, item_id)
            mapping[item_id] = item.department_id if item else None
        return mapping
