"""
Table Service — Inline button dispatcher

Turns a Telegram callback query into one of the staff operations, replies in
the chat the button was pressed in and answers the callback so the client
stops its spinner.
"""
import logging

from tableservice.core.errors import NotFound, ValidationError
from tableservice.messaging import formatting
from tableservice.messaging.telegram import Messenger, deliver
from tableservice.ops.approval import ApprovalCoordinator
from tableservice.ops.order_tracker import OrderTracker
from tableservice.ops.payment_settlement import PaymentSettlement
from tableservice.ops.waiter_calls import WaiterCalls
from tableservice.schemas.billing import ConfirmationStatus
from tableservice.schemas.commands import (
    AcknowledgeWaiter,
    ApproveOrder,
    ApprovePayment,
    Command,
    DelayOrder,
    DelayWaiter,
    MarkReady,
    RejectOrder,
    RejectPayment,
    parse_command,
)
from tableservice.schemas.telegram import CallbackQuery

logger = logging.getLogger(__name__)

NOT_FOUND_REPLIES = {
    ApproveOrder: formatting.ORDER_GONE,
    RejectOrder: formatting.ORDER_GONE,
    MarkReady: formatting.ORDER_GONE,
    DelayOrder: formatting.ORDER_GONE,
    ApprovePayment: formatting.PAYMENT_GONE,
    RejectPayment: formatting.PAYMENT_GONE,
    AcknowledgeWaiter: formatting.WAITER_CALL_GONE,
    DelayWaiter: formatting.WAITER_CALL_GONE,
}


class CallbackDispatcher:

    def __init__(
        self,
        approval: ApprovalCoordinator,
        settlement: PaymentSettlement,
        tracker: OrderTracker,
        waiter_calls: WaiterCalls,
        messenger: Messenger,
    ):
        self._approval = approval
        self._settlement = settlement
        self._tracker = tracker
        self._waiter_calls = waiter_calls
        self._messenger = messenger
        self._handlers = {
            ApproveOrder: self._approve_order,
            RejectOrder: self._reject_order,
            ApprovePayment: self._approve_payment,
            RejectPayment: self._reject_payment,
            MarkReady: self._mark_ready,
            DelayOrder: self._delay_order,
            AcknowledgeWaiter: self._acknowledge_waiter,
            DelayWaiter: self._delay_waiter,
        }

    async def handle(self, callback: CallbackQuery) -> str | None:
        chat_id = str(callback.message.chat.id) if callback.message else None
        try:
            command = parse_command(callback.data or "")
        except ValueError:
            logger.warning("Ignoring unrecognised callback data %r", callback.data)
            await self._answer(callback.id, "Unknown action")
            return None

        answer = ""
        try:
            reply = await self.dispatch(command)
        except NotFound as e:
            logger.info("Callback %s: %s", callback.data, e)
            reply = NOT_FOUND_REPLIES[type(command)]
        except ValidationError as e:
            reply = f"⚠️ {e}"
        except Exception:
            logger.exception("Callback %s failed", callback.data)
            reply = formatting.FAILED
            answer = "Error processing request"

        if chat_id:
            await deliver(self._messenger, chat_id, reply)
        await self._answer(callback.id, answer)
        return reply

    async def dispatch(self, command: Command) -> str:
        return await self._handlers[type(command)](command)

    async def _answer(self, callback_id: str, text: str) -> None:
        try:
            await self._messenger.answer_callback(callback_id, text)
        except Exception as e:
            logger.warning("Could not answer callback %s: %s", callback_id, e)

    async def _approve_order(self, command: ApproveOrder) -> str:
        order = await self._approval.approve(command.pending_order_id)
        return formatting.order_approved(order)

    async def _reject_order(self, command: RejectOrder) -> str:
        pending = await self._approval.reject(command.pending_order_id)
        return formatting.order_rejected(pending)

    async def _approve_payment(self, command: ApprovePayment) -> str:
        confirmation = await self._settlement.resolve(command.confirmation_id, ConfirmationStatus.APPROVED)
        return formatting.payment_approved(confirmation)

    async def _reject_payment(self, command: RejectPayment) -> str:
        confirmation = await self._settlement.resolve(command.confirmation_id, ConfirmationStatus.REJECTED)
        return formatting.payment_rejected(confirmation)

    async def _mark_ready(self, command: MarkReady) -> str:
        await self._tracker.mark_ready(command.order_id)
        return formatting.order_ready(command.order_id)

    async def _delay_order(self, command: DelayOrder) -> str:
        await self._tracker.get(command.order_id)
        logger.info("Department %s needs more time for order %s", command.department_id, command.order_id)
        return formatting.order_delayed(command.order_id)

    async def _acknowledge_waiter(self, command: AcknowledgeWaiter) -> str:
        await self._waiter_calls.acknowledge(command.waiter_call_id)
        return formatting.waiter_acknowledged(command.table_number)

    async def _delay_waiter(self, command: DelayWaiter) -> str:
        logger.info("Waiter call %s for table %s delayed", command.waiter_call_id, command.table_number)
        return formatting.waiter_delayed(command.table_number)
