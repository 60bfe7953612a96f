"""
Staff command encoding on Telegram callback data.
"""
import pytest

from tableservice.schemas.commands import (
    AcknowledgeWaiter,
    ApproveOrder,
    ApprovePayment,
    DelayOrder,
    DelayWaiter,
    MarkReady,
    RejectOrder,
    RejectPayment,
    dump_command,
    load_command,
    parse_command,
)


@pytest.mark.parametrize("command, wire", [
    (ApproveOrder(pending_order_id="abc123"), "approve_order_abc123"),
    (RejectOrder(pending_order_id="abc123"), "reject_order_abc123"),
    (ApprovePayment(confirmation_id="pay9"), "approve_payment_pay9"),
    (RejectPayment(confirmation_id="pay9"), "reject_payment_pay9"),
    (MarkReady(department_id="dept1", order_id="ord1"), "ready_dept1_ord1"),
    (DelayOrder(department_id="dept1", order_id="ord1"), "delay_dept1_ord1"),
    (AcknowledgeWaiter(table_number="12", waiter_call_id="call7"), "waiter_ack_12_call7"),
    (DelayWaiter(table_number="12", waiter_call_id="call7"), "waiter_delay_12_call7"),
])
def test_legacy_wire_format(command, wire):
    assert command.encode() == wire
    assert parse_command(wire) == command


def test_single_id_may_contain_underscore():
    command = parse_command("approve_order_legacy_id_1")
    assert command == ApproveOrder(pending_order_id="legacy_id_1")


def test_multi_id_with_underscore_cannot_be_encoded():
    with pytest.raises(ValueError):
        MarkReady(department_id="hot_kitchen", order_id="ord1").encode()


def test_callback_data_limit():
    with pytest.raises(ValueError):
        ApproveOrder(pending_order_id="x" * 60).encode()


def test_waiter_delay_is_not_read_as_order_delay():
    assert isinstance(parse_command("waiter_delay_3_c1"), DelayWaiter)
    assert isinstance(parse_command("delay_d1_o1"), DelayOrder)


@pytest.mark.parametrize("data", ["", "assign_waiter_3", "ready_only", "ready_a_b_c", "approve_order_"])
def test_unrecognised_data(data):
    with pytest.raises(ValueError):
        parse_command(data)


def test_tagged_json_form():
    command = MarkReady(department_id="dept1", order_id="ord1")
    raw = dump_command(command)

    assert '"kind":"mark_ready"' in raw
    assert load_command(raw) == command
