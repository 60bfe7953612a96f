"""
Table Service — Document store contract

Collections of JSON documents addressed by id. Every document carries a
version counter that the store bumps on each write; ``update`` and ``delete``
accept the version the caller read and raise StaleDataError when another
writer got there first.

Writes fan out to in-process subscribers as added / modified / removed events,
judged against each subscription's filters before and after the write. A
subscriber that falls more than ``max_pending`` events behind is closed; it
reads what was queued, then sees the end of the feed and should re-query.
"""
import abc
import asyncio
import logging
import operator
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from tableservice.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

Filter = tuple[str, str, Any]

OPERATORS = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda actual, allowed: actual in allowed,
}


def check_filters(filters: Iterable[Filter]) -> list[Filter]:
    checked = []
    for field_name, op, value in filters:
        if op not in OPERATORS:
            raise ValueError(f"Unsupported filter operator {op!r} on {field_name!r}")
        if op == "in" and not isinstance(value, (list, tuple, set, frozenset)):
            raise ValueError(f"'in' filter on {field_name!r} needs a collection of values")
        checked.append((field_name, op, value))
    return checked


def matches(data: dict[str, Any], filters: Iterable[Filter]) -> bool:
    """A document without the filtered field never matches, like a Firestore where()."""
    for field_name, op, value in filters:
        if field_name not in data:
            return False
        try:
            if not OPERATORS[op](data[field_name], value):
                return False
        except TypeError:
            return False
    return True


@dataclass(frozen=True)
class StoredDocument:
    collection: str
    id: str
    version: int
    data: dict[str, Any]


@dataclass(frozen=True)
class ChangeEvent:
    kind: Literal["added", "modified", "removed"]
    document: StoredDocument


class Subscription:
    """
    Async iterator of ChangeEvents for one collection and filter set.

        async with store.subscribe("orders", [("status", "==", "ready")]) as feed:
            async for event in feed:
                ...
    """

    def __init__(
        self,
        store: "DocumentStore",
        collection: str,
        filters: Sequence[Filter],
        max_pending: int | None = None,
    ):
        self._store = store
        self.collection = collection
        self.filters = list(filters)
        self._queue: asyncio.Queue[ChangeEvent | None] = asyncio.Queue(
            maxsize=max_pending or settings.SUBSCRIPTION_MAX_PENDING,
        )
        self.closed = False
        self.overflowed = False

    def _offer(self, event: ChangeEvent) -> None:
        if self.closed:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(
                "Subscriber on %s fell %d events behind; closing its feed",
                self.collection, self._queue.maxsize,
            )
            self.overflowed = True
            self.close()

    async def get(self, timeout: float | None = None) -> ChangeEvent:
        if self.closed and self._queue.empty():
            raise StopAsyncIteration
        event = await asyncio.wait_for(self._queue.get(), timeout)
        if event is None:
            raise StopAsyncIteration
        return event

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._store._unsubscribe(self)
        if not self._queue.full():
            self._queue.put_nowait(None)  # wake any reader

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChangeEvent:
        return await self.get()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.close()


class DocumentStore(abc.ABC):

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    @abc.abstractmethod
    async def create(self, collection: str, data: dict[str, Any], doc_id: str | None = None) -> StoredDocument:
        """Insert at version 1. Raises DocumentExistsError if ``doc_id`` is taken."""

    @abc.abstractmethod
    async def get(self, collection: str, doc_id: str) -> StoredDocument | None:
        ...

    @abc.abstractmethod
    async def update(
        self,
        collection: str,
        doc_id: str,
        changes: dict[str, Any],
        expected_version: int | None = None,
    ) -> StoredDocument:
        """
        Shallow-merge ``changes`` into the document and bump its version.

        Raises NotFound if the document is gone, StaleDataError if its version
        is not ``expected_version`` (or moved during the write when omitted).
        """

    @abc.abstractmethod
    async def delete(self, collection: str, doc_id: str, expected_version: int | None = None) -> bool:
        """False when the document did not exist."""

    @abc.abstractmethod
    async def query(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[StoredDocument]:
        ...

    @abc.abstractmethod
    async def ping(self) -> bool:
        ...

    async def close(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.close()

    def subscribe(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        max_pending: int | None = None,
    ) -> Subscription:
        subscription = Subscription(self, collection, check_filters(filters), max_pending)
        self._subscriptions.append(subscription)
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def _publish(self, collection: str, before: StoredDocument | None, after: StoredDocument | None) -> None:
        for subscription in list(self._subscriptions):
            if subscription.collection != collection:
                continue
            was = before is not None and matches(before.data, subscription.filters)
            now = after is not None and matches(after.data, subscription.filters)
            if was and now:
                subscription._offer(ChangeEvent("modified", after))
            elif now:
                subscription._offer(ChangeEvent("added", after))
            elif was:
                subscription._offer(ChangeEvent("removed", after or before))


def sort_documents(
    docs: list[StoredDocument],
    order_by: str | None,
    descending: bool,
    limit: int | None,
) -> list[StoredDocument]:
    if order_by:
        present = [d for d in docs if d.data.get(order_by) is not None]
        missing = [d for d in docs if d.data.get(order_by) is None]
        present.sort(key=lambda d: d.data[order_by], reverse=descending)
        docs = present + missing
    if limit is not None:
        docs = docs[:limit]
    return docs
