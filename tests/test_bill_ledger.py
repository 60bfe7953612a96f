"""
Running bill arithmetic and per-table serialization.
"""
import asyncio
from decimal import Decimal

import pytest

from tableservice.core.errors import ValidationError
from tableservice.ops.bill_ledger import BillLedger
from tableservice.ops.tenants import TenantDirectory
from tableservice.schemas.billing import BillStatus
from tableservice.schemas.order import LineItem

from conftest import TENANT, line


@pytest.fixture
def ledger(store):
    return BillLedger(store, TenantDirectory(store))


@pytest.mark.asyncio
async def test_new_bill_totals_with_default_tax(ledger):
    bill = await ledger.merge_or_create(TENANT, "5", [line("A", "Burger", 2, "10.00"), line("B", "Soda", 1, "5.00")])

    assert bill.subtotal == Decimal("25.00")
    assert bill.tax == Decimal("3.75")
    assert bill.total == Decimal("28.75")
    assert bill.status == BillStatus.ACTIVE
    assert bill.id == f"{TENANT}:5:1"


@pytest.mark.asyncio
async def test_same_item_merges_quantity_and_total(ledger):
    first = await ledger.merge_or_create(TENANT, "5", [line("P", "Pizza", 1, "12.00")])
    assert (first.subtotal, first.tax, first.total) == (Decimal("12.00"), Decimal("1.80"), Decimal("13.80"))

    second = await ledger.merge_or_create(TENANT, "5", [line("P", "Pizza", 1, "12.00")])

    assert second.id == first.id
    assert len(second.items) == 1
    assert second.items[0].quantity == 2
    assert second.items[0].total == Decimal("24.00")
    assert (second.subtotal, second.tax, second.total) == (Decimal("24.00"), Decimal("3.60"), Decimal("27.60"))


@pytest.mark.asyncio
async def test_new_item_is_appended(ledger):
    await ledger.merge_or_create(TENANT, "5", [line("P", "Pizza", 1, "12.00")])
    bill = await ledger.merge_or_create(TENANT, "5", [line("C", "Coffee", 2, "3.50")])

    assert [i.item_id for i in bill.items] == ["P", "C"]
    assert bill.subtotal == Decimal("19.00")


@pytest.mark.asyncio
async def test_merge_with_known_order_id_is_a_no_op(ledger):
    await ledger.merge_or_create(TENANT, "5", [line("P", "Pizza", 1, "12.00")], order_id="order1")
    again = await ledger.merge_or_create(TENANT, "5", [line("P", "Pizza", 1, "12.00")], order_id="order1")

    assert again.items[0].quantity == 1
    assert again.order_ids == ["order1"]


@pytest.mark.asyncio
async def test_empty_items_rejected(ledger, store):
    with pytest.raises(ValidationError):
        await ledger.merge_or_create(TENANT, "5", [])
    assert await store.query("table_bills") == []


@pytest.mark.asyncio
async def test_inconsistent_line_total_rejected(ledger):
    bad = LineItem(item_id="A", name="Burger", quantity=2, unit_price="10.00", total="15.00")
    with pytest.raises(ValidationError):
        await ledger.merge_or_create(TENANT, "5", [bad])


@pytest.mark.asyncio
async def test_tenant_tax_rate_override(ledger, store):
    await TenantDirectory(store).configure(TENANT, tax_rate="0.10")

    bill = await ledger.merge_or_create(TENANT, "1", [line("A", "Burger", 1, "10.00")])

    assert bill.tax == Decimal("1.00")
    assert bill.total == Decimal("11.00")
    assert bill.tax_rate == Decimal("0.10")


@pytest.mark.asyncio
async def test_mark_paid_then_next_order_opens_a_new_bill(ledger):
    await ledger.merge_or_create(TENANT, "7", [line("A", "Burger", 1, "10.00")])
    paid = await ledger.mark_paid(TENANT, "7", "confirmation1")

    assert paid.status == BillStatus.PAID
    assert paid.payment_confirmation_id == "confirmation1"
    assert await ledger.get_active(TENANT, "7") is None

    fresh = await ledger.merge_or_create(TENANT, "7", [line("B", "Soda", 1, "5.00")])
    assert fresh.id == f"{TENANT}:7:2"
    assert fresh.subtotal == Decimal("5.00")
    assert [b.sequence for b in await ledger.history(TENANT, "7")] == [1, 2]


@pytest.mark.asyncio
async def test_mark_paid_without_active_bill_returns_none(ledger):
    assert await ledger.mark_paid(TENANT, "9") is None


@pytest.mark.asyncio
async def test_concurrent_merges_in_one_process(ledger):
    await asyncio.gather(*[
        ledger.merge_or_create(TENANT, "3", [line("P", "Pizza", 1, "12.00")], order_id=f"o{n}")
        for n in range(10)
    ])

    bills = await ledger.active_bills(TENANT)
    assert len(bills) == 1
    assert bills[0].items[0].quantity == 10
    assert bills[0].subtotal == Decimal("120.00")
    assert len(bills[0].order_ids) == 10


@pytest.mark.asyncio
async def test_concurrent_merges_across_processes(store):
    # Separate ledgers do not share the in-process lock; only the version CAS protects them
    ledger_a = BillLedger(store, TenantDirectory(store))
    ledger_b = BillLedger(store, TenantDirectory(store))

    await asyncio.gather(*[
        (ledger_a if n % 2 else ledger_b).merge_or_create(
            TENANT, "3", [line("P", "Pizza", 1, "12.00")], order_id=f"o{n}",
        )
        for n in range(8)
    ])

    bills = await ledger_a.active_bills(TENANT)
    assert len(bills) == 1
    assert bills[0].items[0].quantity == 8
    assert sorted(bills[0].order_ids) == sorted(f"o{n}" for n in range(8))
