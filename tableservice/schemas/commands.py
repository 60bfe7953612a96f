"""
Table Service — Staff commands carried on inline buttons

Each command is a tagged model. On the wire (Telegram callback_data) it is the
legacy underscore form, e.g. ``ready_<departmentId>_<orderId>``; ids inside
multi-id commands therefore must not contain "_".
"""
from typing import Annotated, ClassVar, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

CALLBACK_DATA_LIMIT = 64


class _WireCommand(BaseModel):
    model_config = ConfigDict(frozen=True)

    prefix: ClassVar[str]
    wire_fields: ClassVar[tuple[str, ...]]

    def encode(self) -> str:
        values = [getattr(self, name) for name in self.wire_fields]
        if len(values) > 1:
            for value in values:
                if "_" in value:
                    raise ValueError(f"Id {value!r} cannot be carried in {self.kind} callback data")
        data = self.prefix + "_".join(values)
        if len(data.encode("utf-8")) > CALLBACK_DATA_LIMIT:
            raise ValueError(f"Callback data exceeds {CALLBACK_DATA_LIMIT} bytes: {data!r}")
        return data

    @classmethod
    def decode(cls, rest: str):
        values = [rest] if len(cls.wire_fields) == 1 else rest.split("_")
        if len(values) != len(cls.wire_fields):
            raise ValueError(f"Malformed {cls.prefix}* callback data: {rest!r}")
        return cls(**dict(zip(cls.wire_fields, values)))


class ApproveOrder(_WireCommand):
    prefix = "approve_order_"
    wire_fields = ("pending_order_id",)

    kind: Literal["approve_order"] = "approve_order"
    pending_order_id: str = Field(..., min_length=1)


class RejectOrder(_WireCommand):
    prefix = "reject_order_"
    wire_fields = ("pending_order_id",)

    kind: Literal["reject_order"] = "reject_order"
    pending_order_id: str = Field(..., min_length=1)


class ApprovePayment(_WireCommand):
    prefix = "approve_payment_"
    wire_fields = ("confirmation_id",)

    kind: Literal["approve_payment"] = "approve_payment"
    confirmation_id: str = Field(..., min_length=1)


class RejectPayment(_WireCommand):
    prefix = "reject_payment_"
    wire_fields = ("confirmation_id",)

    kind: Literal["reject_payment"] = "reject_payment"
    confirmation_id: str = Field(..., min_length=1)


class MarkReady(_WireCommand):
    prefix = "ready_"
    wire_fields = ("department_id", "order_id")

    kind: Literal["mark_ready"] = "mark_ready"
    department_id: str = Field(..., min_length=1)
    order_id: str = Field(..., min_length=1)


class DelayOrder(_WireCommand):
    prefix = "delay_"
    wire_fields = ("department_id", "order_id")

    kind: Literal["delay_order"] = "delay_order"
    department_id: str = Field(..., min_length=1)
    order_id: str = Field(..., min_length=1)


class AcknowledgeWaiter(_WireCommand):
    prefix = "waiter_ack_"
    wire_fields = ("table_number", "waiter_call_id")

    kind: Literal["acknowledge_waiter"] = "acknowledge_waiter"
    table_number: str = Field(..., min_length=1)
    waiter_call_id: str = Field(..., min_length=1)


class DelayWaiter(_WireCommand):
    prefix = "waiter_delay_"
    wire_fields = ("table_number", "waiter_call_id")

    kind: Literal["delay_waiter"] = "delay_waiter"
    table_number: str = Field(..., min_length=1)
    waiter_call_id: str = Field(..., min_length=1)


Command = Annotated[
    Union[
        ApproveOrder, RejectOrder, ApprovePayment, RejectPayment,
        MarkReady, DelayOrder, AcknowledgeWaiter, DelayWaiter,
    ],
    Field(discriminator="kind"),
]

command_adapter: TypeAdapter[Command] = TypeAdapter(Command)

# waiter_* must be tried before the shorter prefixes
_WIRE_ORDER: tuple[type[_WireCommand], ...] = (
    AcknowledgeWaiter, DelayWaiter,
    ApproveOrder, RejectOrder, ApprovePayment, RejectPayment,
    MarkReady, DelayOrder,
)


def parse_command(data: str) -> Command:
    """Decode callback_data into a command. Raises ValueError when unrecognised."""
    for command_type in _WIRE_ORDER:
        if data.startswith(command_type.prefix):
            return command_type.decode(data[len(command_type.prefix):])
    raise ValueError(f"Unknown callback data: {data!r}")


def dump_command(command: Command) -> str:
    return command_adapter.dump_json(command).decode()


def load_command(raw: str | bytes) -> Command:
    return command_adapter.validate_json(raw)
