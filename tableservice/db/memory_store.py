"""
Table Service — In-memory document store

Used by the test-suite and by single-process deployments with
STORE_BACKEND=memory. Each operation yields to the event loop once before it
touches state, so concurrent callers interleave the way they would against a
remote store, while the check-and-write itself stays atomic.
"""
import asyncio
import copy
from collections import defaultdict
from collections.abc import Iterable
from typing import Any

from tableservice.core.errors import NotFound
from tableservice.core.optimistic_lock import DocumentExistsError, StaleDataError
from tableservice.db.store import DocumentStore, Filter, StoredDocument, check_filters, matches, sort_documents
from tableservice.schemas.base import new_id


def _copy(doc: StoredDocument) -> StoredDocument:
    return StoredDocument(doc.collection, doc.id, doc.version, copy.deepcopy(doc.data))


class MemoryDocumentStore(DocumentStore):

    def __init__(self) -> None:
        super().__init__()
        self._collections: dict[str, dict[str, StoredDocument]] = defaultdict(dict)

    async def create(self, collection: str, data: dict[str, Any], doc_id: str | None = None) -> StoredDocument:
        await asyncio.sleep(0)
        doc_id = doc_id or new_id()
        docs = self._collections[collection]
        if doc_id in docs:
            raise DocumentExistsError(f"{collection}/{doc_id} already exists")
        doc = StoredDocument(collection, doc_id, 1, copy.deepcopy(data))
        docs[doc_id] = doc
        self._publish(collection, None, _copy(doc))
        return _copy(doc)

    async def get(self, collection: str, doc_id: str) -> StoredDocument | None:
        await asyncio.sleep(0)
        doc = self._collections[collection].get(doc_id)
        return _copy(doc) if doc else None

    async def update(
        self,
        collection: str,
        doc_id: str,
        changes: dict[str, Any],
        expected_version: int | None = None,
    ) -> StoredDocument:
        await asyncio.sleep(0)
        docs = self._collections[collection]
        current = docs.get(doc_id)
        if current is None:
            raise NotFound(f"{collection}/{doc_id} does not exist")
        if expected_version is not None and current.version != expected_version:
            raise StaleDataError(
                f"{collection}/{doc_id} is at version {current.version}, expected {expected_version}"
            )
        updated = StoredDocument(
            collection, doc_id, current.version + 1,
            {**copy.deepcopy(current.data), **copy.deepcopy(changes)},
        )
        docs[doc_id] = updated
        self._publish(collection, _copy(current), _copy(updated))
        return _copy(updated)

    async def delete(self, collection: str, doc_id: str, expected_version: int | None = None) -> bool:
        await asyncio.sleep(0)
        docs = self._collections[collection]
        current = docs.get(doc_id)
        if current is None:
            return False
        if expected_version is not None and current.version != expected_version:
            raise StaleDataError(
                f"{collection}/{doc_id} is at version {current.version}, expected {expected_version}"
            )
        del docs[doc_id]
        self._publish(collection, _copy(current), None)
        return True

    async def query(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[StoredDocument]:
        filters = check_filters(filters)
        await asyncio.sleep(0)
        found = [
            _copy(doc) for doc in self._collections[collection].values()
            if matches(doc.data, filters)
        ]
        return sort_documents(found, order_by, descending, limit)

    async def ping(self) -> bool:
        return True
