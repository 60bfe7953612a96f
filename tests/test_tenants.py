"""
Per-tenant settings and staff channel resolution.
"""
from datetime import timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from tableservice.core.errors import ValidationError
from tableservice.ops.catalog import DepartmentDirectory
from tableservice.ops.tenants import TenantDirectory, resolve_timezone

from conftest import TENANT


def test_resolve_timezone():
    assert resolve_timezone("UTC") is timezone.utc
    assert resolve_timezone("Asia/Dhaka") == ZoneInfo("Asia/Dhaka")
    with pytest.raises(ValidationError):
        resolve_timezone("Mars/Olympus_Mons")


@pytest.mark.asyncio
async def test_defaults_apply_without_settings(store):
    profile = await TenantDirectory(store).profile(TENANT)

    assert profile.tax_rate == Decimal("0.15")
    assert profile.timezone is timezone.utc
    assert profile.table_count == 50
    assert profile.cashier_channel_id == "cashier-chat"
    assert profile.admin_channel_id == "admin-chat"


@pytest.mark.asyncio
async def test_configure_creates_then_updates(store):
    tenants = TenantDirectory(store)

    await tenants.configure(TENANT, tax_rate="0.05", timezone="Europe/Berlin")
    await tenants.configure(TENANT, table_count=12)

    profile = await tenants.profile(TENANT)
    assert profile.tax_rate == Decimal("0.05")
    assert profile.timezone == ZoneInfo("Europe/Berlin")
    assert profile.table_count == 12
    assert await tenants.tax_rate("someone-else") == Decimal("0.15")


@pytest.mark.asyncio
async def test_configure_rejects_bad_values(store):
    tenants = TenantDirectory(store)

    with pytest.raises(ValidationError):
        await tenants.configure(TENANT, tax_rate="1.5")
    with pytest.raises(ValidationError):
        await tenants.configure(TENANT, timezone="Nowhere/Land")
    with pytest.raises(ValidationError):
        await tenants.configure(TENANT, table_count=0)


@pytest.mark.asyncio
async def test_channel_lookup_order(store):
    tenants = TenantDirectory(store)
    await tenants.configure(TENANT, cashier_channel_id="settings-cashier")
    assert (await tenants.profile(TENANT)).cashier_channel_id == "settings-cashier"

    await DepartmentDirectory(store).add(TENANT, "Front desk", "cashier", "dept-cashier")
    assert (await tenants.profile(TENANT)).cashier_channel_id == "dept-cashier"
