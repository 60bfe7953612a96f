"""
Table Service — Shared schema pieces

Money is Decimal rounded half-up to the cent. Timestamps are UTC and serialize
to a fixed-width ISO string, so the store can compare and sort them as text.
"""
import uuid
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Annotated, Any, ClassVar

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, PlainSerializer

if TYPE_CHECKING:
    from tableservice.db.store import StoredDocument

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
CENT = Decimal("0.01")


def new_id() -> str:
    # 20 hex chars: no "_" (command delimiter) and short enough for callback data
    return uuid.uuid4().hex[:20]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return _as_utc(value).strftime(TIMESTAMP_FORMAT)


def to_money(value: Any) -> Decimal:
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


Money = Annotated[Decimal, AfterValidator(to_money)]
Timestamp = Annotated[
    datetime,
    AfterValidator(_as_utc),
    PlainSerializer(format_timestamp, return_type=str, when_used="json"),
]


class DocumentModel(BaseModel):
    """A record living in one store collection.

    ``version`` mirrors the store's optimistic-concurrency counter and is never
    written into the document body.
    """

    model_config = ConfigDict(extra="ignore", use_enum_values=False)

    collection: ClassVar[str]

    id: str = Field(default_factory=new_id)
    tenant_id: str
    version: int = 0

    @classmethod
    def from_document(cls, doc: "StoredDocument"):
        return cls.model_validate({**doc.data, "id": doc.id, "version": doc.version})

    def to_data(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude={"id", "version"})
