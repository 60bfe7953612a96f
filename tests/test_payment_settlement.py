"""
Payment submission and staff resolution.
"""
import asyncio
import logging
from decimal import Decimal

import pytest

from tableservice.core.errors import NotFound, ValidationError
from tableservice.schemas.billing import Bill, BillStatus, ConfirmationStatus, PaymentConfirmation, PaymentMethod
from tableservice.schemas.order import PaymentStatus

from conftest import TENANT, cart, place_order


@pytest.mark.asyncio
async def test_submit_without_open_bill(services):
    with pytest.raises(ValidationError):
        await services.settlement.submit(TENANT, "3", "bank_transfer")


@pytest.mark.asyncio
async def test_submit_unknown_method(services):
    await place_order(services, "3", cart("P", "Pizza", 1, "12.00"))
    with pytest.raises(ValidationError):
        await services.settlement.submit(TENANT, "3", "cash")


@pytest.mark.asyncio
async def test_submit_snapshots_bill_and_notifies_cashier(services, messenger):
    await place_order(services, "3", cart("P", "Pizza", 1, "12.00"))

    confirmation = await services.settlement.submit(TENANT, "3", "mobile_money", "https://img.example/p.png")

    assert confirmation.method == PaymentMethod.MOBILE_MONEY
    assert confirmation.status == ConfirmationStatus.PENDING
    assert (confirmation.subtotal, confirmation.tax, confirmation.total) == (
        Decimal("12.00"), Decimal("1.80"), Decimal("13.80"),
    )
    assert confirmation.bill_id == f"{TENANT}:3:1"
    last = messenger.to("cashier-chat")[-1]
    assert last.callback_data == [f"approve_payment_{confirmation.id}", f"reject_payment_{confirmation.id}"]
    assert "$13.80" in last.text


@pytest.mark.asyncio
async def test_approve_closes_bill_archives_and_marks_orders_paid(services, store):
    order = await place_order(services, "3", cart("A", "Burger", 2, "10.00"), cart("B", "Soda", 1, "5.00"))
    confirmation = await services.settlement.submit(TENANT, "3", "bank_transfer")

    resolved = await services.settlement.resolve(confirmation.id, "approved")

    assert resolved.status == ConfirmationStatus.APPROVED
    assert resolved.processed_at is not None
    assert await services.ledger.get_active(TENANT, "3") is None

    archived = await services.settlement.bills(TENANT)
    assert len(archived) == 1
    bill = archived[0]
    assert isinstance(bill, Bill)
    assert (bill.subtotal, bill.tax, bill.total) == (Decimal("25.00"), Decimal("3.75"), Decimal("28.75"))
    assert bill.payment_confirmation_id == confirmation.id
    assert bill.table_bill_id == confirmation.bill_id

    paid_order = await services.tracker.get(order.id)
    assert paid_order.payment_status == PaymentStatus.PAID

    history = await services.ledger.history(TENANT, "3")
    assert history[0].status == BillStatus.PAID
    assert history[0].payment_confirmation_id == confirmation.id


@pytest.mark.asyncio
async def test_double_resolve_is_not_found(services):
    await place_order(services, "3", cart("P", "Pizza", 1, "12.00"))
    confirmation = await services.settlement.submit(TENANT, "3", "bank_transfer")
    await services.settlement.resolve(confirmation.id, "approved")

    with pytest.raises(NotFound):
        await services.settlement.resolve(confirmation.id, "approved")
    with pytest.raises(NotFound):
        await services.settlement.resolve(confirmation.id, "rejected")

    assert len(await services.settlement.bills(TENANT)) == 1


@pytest.mark.asyncio
async def test_rejected_payment_leaves_bill_active(services):
    await place_order(services, "3", cart("P", "Pizza", 1, "12.00"))
    confirmation = await services.settlement.submit(TENANT, "3", "bank_transfer")

    resolved = await services.settlement.resolve(confirmation.id, ConfirmationStatus.REJECTED)

    assert resolved.status == ConfirmationStatus.REJECTED
    bill = await services.ledger.get_active(TENANT, "3")
    assert bill is not None
    assert bill.total == Decimal("13.80")
    assert await services.settlement.bills(TENANT) == []
    assert await services.settlement.pending(TENANT) == []


@pytest.mark.asyncio
async def test_invalid_decision(services):
    with pytest.raises(ValidationError):
        await services.settlement.resolve("anything", "pending")
    with pytest.raises(ValidationError):
        await services.settlement.resolve("anything", "maybe")


@pytest.mark.asyncio
async def test_bill_grew_after_submission_is_closed_with_warning(services, caplog):
    await place_order(services, "3", cart("P", "Pizza", 1, "12.00"))
    confirmation = await services.settlement.submit(TENANT, "3", "bank_transfer")
    await place_order(services, "3", cart("C", "Coffee", 1, "3.00"))

    with caplog.at_level(logging.WARNING):
        await services.settlement.resolve(confirmation.id, "approved")

    assert "covers 13.80" in caplog.text
    assert await services.ledger.get_active(TENANT, "3") is None
    archived = (await services.settlement.bills(TENANT))[0]
    assert archived.subtotal == Decimal("15.00")


@pytest.mark.asyncio
async def test_stale_confirmation_does_not_close_a_newer_bill(services, caplog):
    await place_order(services, "3", cart("P", "Pizza", 1, "12.00"))
    first = await services.settlement.submit(TENANT, "3", "bank_transfer")
    second = await services.settlement.submit(TENANT, "3", "mobile_money")
    await services.settlement.resolve(first.id, "approved")
    steak = await place_order(services, "3", cart("S", "Steak", 1, "40.00"))

    with caplog.at_level(logging.WARNING):
        resolved = await services.settlement.resolve(second.id, "approved")

    assert resolved.status == ConfirmationStatus.APPROVED
    assert f"its bill {TENANT}:3:1 is not active" in caplog.text
    bill = await services.ledger.get_active(TENANT, "3")
    assert bill.id == f"{TENANT}:3:2"
    assert bill.total == Decimal("46.00")
    assert bill.payment_confirmation_id is None
    assert len(await services.settlement.bills(TENANT)) == 1
    assert (await services.tracker.get(steak.id)).payment_status == PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_concurrent_resolutions_have_one_winner(services, store):
    await place_order(services, "3", cart("P", "Pizza", 1, "12.00"))
    confirmation = await services.settlement.submit(TENANT, "3", "bank_transfer")

    results = await asyncio.gather(
        services.settlement.resolve(confirmation.id, "approved"),
        services.settlement.resolve(confirmation.id, "approved"),
        return_exceptions=True,
    )

    assert sum(isinstance(r, PaymentConfirmation) for r in results) == 1
    assert sum(isinstance(r, NotFound) for r in results) == 1
    assert len(await store.query(Bill.collection)) == 1
    assert [b.status for b in await services.ledger.history(TENANT, "3")] == [BillStatus.PAID]
