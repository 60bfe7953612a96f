"""
Table Service — Staff-facing message texts (Telegram HTML parse mode)
"""
from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from html import escape

from tableservice.schemas.billing import PaymentConfirmation, PaymentMethod
from tableservice.schemas.catalog import Department
from tableservice.schemas.order import LineItem, Order, PendingOrder
from tableservice.schemas.report import DayReport

METHOD_LABELS = {
    PaymentMethod.BANK_TRANSFER: "Bank Transfer",
    PaymentMethod.MOBILE_MONEY: "Mobile Money",
}


def money(amount: Decimal) -> str:
    return f"${amount:.2f}"


def when(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%d %H:%M UTC")


def _priced_lines(items: Sequence[LineItem]) -> str:
    return "\n".join(f"• {escape(i.name)} x{i.quantity} - {money(i.total)}" for i in items)


def pending_order(order: PendingOrder) -> str:
    return (
        f"🍽️ <b>New Order Pending Approval - Table {escape(order.table_number)}</b>\n\n"
        f"{_priced_lines(order.items)}\n\n"
        f"💰 <b>Total: {money(order.total_amount)}</b>\n"
        f"🕐 <b>Time:</b> {when(order.timestamp)}\n\n"
        f"⚠️ <b>Awaiting approval...</b>"
    )


def department_ticket(order: Order, department: Department, items: Sequence[LineItem]) -> str:
    lines = "\n".join(f"• {escape(i.name)} x{i.quantity}" for i in items)
    icon = department.icon or "👨‍🍳"
    return (
        f"{icon} <b>{escape(department.name)} Order - Table {escape(order.table_number)}</b>\n\n"
        f"{lines}\n\n"
        f"🕐 <b>Time:</b> {when(order.timestamp)}\n"
        f"📋 <b>Order ID:</b> {order.id[:8]}\n\n"
        f"<b>Status: APPROVED - Start Preparation</b>"
    )


def payment_verification(confirmation: PaymentConfirmation) -> str:
    text = (
        f"💳 <b>Payment Verification Needed - Table {escape(confirmation.table_number)}</b>\n\n"
        f"💰 <b>Amount: {money(confirmation.total)}</b>\n"
        f"💳 <b>Method:</b> {METHOD_LABELS[confirmation.method]}\n"
        f"🕐 <b>Time:</b> {when(confirmation.timestamp)}\n"
        f"📋 <b>Confirmation ID:</b> {confirmation.id[:8]}"
    )
    if confirmation.screenshot_url:
        text += f'\n\n🔗 <a href="{escape(confirmation.screenshot_url)}">View Payment Screenshot</a>'
    return text


def waiter_call(table_number: str, moment: datetime) -> str:
    return (
        f"📞 <b>Table {escape(table_number)} is calling the waiter</b>\n"
        f"🕐 {when(moment)}"
    )


def day_report(report: DayReport) -> str:
    top_items = "\n".join(
        f"{rank}. {escape(item.name)} ({item.count} orders)"
        for rank, item in enumerate(report.most_ordered_items, start=1)
    )
    cashier = report.cashier_info
    shift = f" ({escape(cashier.shift)} shift)" if cashier.shift else ""
    text = (
        f"📊 <b>Day Closing Report</b>\n"
        f"📅 {report.date}\n"
        f"👤 <b>Cashier:</b> {escape(cashier.name)}{shift}\n\n"
        f"📈 <b>Orders:</b> {report.total_orders}\n"
        f"💰 <b>Revenue:</b> {money(report.total_revenue)}\n"
        f"💳 <b>Payments Processed:</b> {report.total_payments}\n"
        f"🏆 <b>Most Active Table:</b> {escape(report.most_active_table or 'None')}\n"
        f"📞 <b>Waiter Calls:</b> {report.waiter_calls}\n\n"
        f"🍽️ <b>Top Ordered Items:</b>\n"
        f"{top_items or 'No orders today'}\n\n"
    )
    for stat in report.department_stats:
        avg = f"{stat.avg_prep_minutes:g}min" if stat.avg_prep_minutes is not None else "n/a"
        text += f"{stat.icon or '🏷️'} <b>{escape(stat.name)}:</b> {stat.orders} orders (Avg: {avg})\n"
    if report.department_stats:
        text += "\n"
    if cashier.notes:
        text += f"📝 <b>Notes:</b> {escape(cashier.notes)}\n\n"
    return text + "✅ <b>Day closed successfully!</b>"


# ── Callback replies ──────────────────────────────────────

ORDER_GONE = "❌ Order not found or already processed"
PAYMENT_GONE = "❌ Payment confirmation not found or already processed"
WAITER_CALL_GONE = "❌ Waiter call not found or already handled"
FAILED = "❌ Failed to process request. Please try again."


def order_approved(order: Order) -> str:
    return (
        f"✅ Order approved for Table {escape(order.table_number)}!\n\n"
        f"📋 Order sent to kitchen\n💰 Added to table bill"
    )


def order_rejected(order: PendingOrder) -> str:
    return f"❌ Order rejected for Table {escape(order.table_number)}"


def payment_approved(confirmation: PaymentConfirmation) -> str:
    return (
        f"✅ Payment approved for Table {escape(confirmation.table_number)}!\n"
        f"💰 Amount: {money(confirmation.total)}\n"
        f"💳 Method: {METHOD_LABELS[confirmation.method]}"
    )


def payment_rejected(confirmation: PaymentConfirmation) -> str:
    return (
        f"❌ Payment rejected for Table {escape(confirmation.table_number)}\n"
        f"💰 Amount: {money(confirmation.total)}"
    )


def order_ready(order_id: str) -> str:
    return f"✅ Order {order_id[:8]} marked as ready!"


def order_delayed(order_id: str) -> str:
    return f"⏰ Order {order_id[:8]} - Additional time needed"


def waiter_acknowledged(table_number: str) -> str:
    return f"✅ Acknowledged! On the way to Table {escape(table_number)}"


def waiter_delayed(table_number: str) -> str:
    return f"⏰ Table {escape(table_number)} - Will be there in 5 minutes"
