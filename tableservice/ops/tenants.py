"""
Table Service — Tenant directory

Resolves per-tenant tax rate, timezone, table count and staff channels.
Channel lookup order: a department with the matching role, then the tenant's
settings document, then the service-wide default.
"""
import logging
from dataclasses import dataclass
from datetime import timezone, tzinfo
from decimal import Decimal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from tableservice.core.config import Settings, get_settings
from tableservice.core.errors import ValidationError
from tableservice.core.optimistic_lock import DocumentExistsError
from tableservice.db.store import DocumentStore
from tableservice.schemas.catalog import Department, DepartmentRole, TenantSettings

logger = logging.getLogger(__name__)


def resolve_timezone(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError(f"Unknown timezone {name!r}") from exc


@dataclass(frozen=True)
class TenantProfile:
    tenant_id: str
    tax_rate: Decimal
    timezone: tzinfo
    table_count: int
    admin_channel_id: str | None
    cashier_channel_id: str | None


class TenantDirectory:

    def __init__(self, store: DocumentStore, settings: Settings | None = None):
        self._store = store
        self._settings = settings or get_settings()

    async def settings_for(self, tenant_id: str) -> TenantSettings | None:
        doc = await self._store.get(TenantSettings.collection, tenant_id)
        return TenantSettings.from_document(doc) if doc else None

    async def profile(self, tenant_id: str) -> TenantProfile:
        overrides = await self.settings_for(tenant_id)
        staff = await self._store.query(
            Department.collection,
            [
                ("tenant_id", "==", tenant_id),
                ("role", "in", [DepartmentRole.ADMIN.value, DepartmentRole.CASHIER.value]),
            ],
        )
        by_role: dict[str, str] = {}
        for doc in staff:
            department = Department.from_document(doc)
            by_role.setdefault(department.role.value, department.delivery_channel_id)

        defaults = self._settings

        def pick(value, default):
            return default if value is None else value

        tz_name = pick(overrides and overrides.timezone, defaults.DEFAULT_TIMEZONE)
        return TenantProfile(
            tenant_id=tenant_id,
            tax_rate=pick(overrides and overrides.tax_rate, defaults.DEFAULT_TAX_RATE),
            timezone=resolve_timezone(tz_name),
            table_count=pick(overrides and overrides.table_count, defaults.DEFAULT_TABLE_COUNT),
            admin_channel_id=(
                by_role.get(DepartmentRole.ADMIN.value)
                or (overrides and overrides.admin_channel_id)
                or defaults.DEFAULT_ADMIN_CHAT_ID
                or None
            ),
            cashier_channel_id=(
                by_role.get(DepartmentRole.CASHIER.value)
                or (overrides and overrides.cashier_channel_id)
                or defaults.DEFAULT_CASHIER_CHAT_ID
                or None
            ),
        )

    async def tax_rate(self, tenant_id: str) -> Decimal:
        overrides = await self.settings_for(tenant_id)
        if overrides and overrides.tax_rate is not None:
            return overrides.tax_rate
        return self._settings.DEFAULT_TAX_RATE

    async def configure(self, tenant_id: str, **fields) -> TenantSettings:
        """Create or update the tenant's settings document."""
        if fields.get("tax_rate") is not None:
            rate = Decimal(str(fields["tax_rate"]))
            if not Decimal("0") <= rate < Decimal("1"):
                raise ValidationError(f"Tax rate must be between 0 and 1, got {rate}")
            fields["tax_rate"] = rate
        if fields.get("timezone"):
            resolve_timezone(fields["timezone"])
        if fields.get("table_count") is not None and fields["table_count"] < 1:
            raise ValidationError("Table count must be at least 1")

        current = await self.settings_for(tenant_id)
        if current is None:
            wanted = TenantSettings(id=tenant_id, tenant_id=tenant_id, **fields)
            try:
                doc = await self._store.create(TenantSettings.collection, wanted.to_data(), doc_id=tenant_id)
                return TenantSettings.from_document(doc)
            except DocumentExistsError:
                logger.info("Settings for tenant %s created concurrently; updating instead", tenant_id)
        merged = TenantSettings(tenant_id=tenant_id, **fields)
        changes = merged.model_dump(mode="json", include=set(fields))
        doc = await self._store.update(TenantSettings.collection, tenant_id, changes)
        return TenantSettings.from_document(doc)
