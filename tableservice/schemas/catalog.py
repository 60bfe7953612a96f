"""
Table Service — Tenant reference data: departments, menu items, tenant settings
"""
from decimal import Decimal
from enum import Enum as PyEnum

from tableservice.schemas.base import DocumentModel, Money


class DepartmentRole(str, PyEnum):
    KITCHEN = "kitchen"
    BAR = "bar"
    SHOP = "shop"
    CASHIER = "cashier"
    ADMIN = "admin"
    DELIVERY = "delivery"


class Department(DocumentModel):
    collection = "departments"

    name: str
    role: DepartmentRole
    delivery_channel_id: str
    icon: str | None = None


class MenuItem(DocumentModel):
    """The slice of a menu item this service reads: price and owning department."""
    collection = "menu_items"

    name: str
    price: Money
    department_id: str | None = None
    available: bool = True


class TenantSettings(DocumentModel):
    """Per-tenant overrides; unset fields fall back to the service defaults."""
    collection = "tenant_settings"

    tax_rate: Decimal | None = None
    timezone: str | None = None
    table_count: int | None = None
    admin_channel_id: str | None = None
    cashier_channel_id: str | None = None
