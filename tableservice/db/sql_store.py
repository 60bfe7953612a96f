"""
Table Service — PostgreSQL-backed document store

Version checks use the same pattern as a row-level optimistic lock:
  - READ:  fetch the row and its version_id
  - WRITE: UPDATE ... WHERE version_id = <read_version>
  - rowcount 0 → another writer committed first → StaleDataError
"""
import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import delete, false, func, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from tableservice.core.errors import DependencyFailure, NotFound
from tableservice.core.optimistic_lock import DocumentExistsError, StaleDataError
from tableservice.db.database import session_factory
from tableservice.db.store import DocumentStore, Filter, StoredDocument, check_filters
from tableservice.models.document import DocumentRow
from tableservice.schemas.base import new_id

logger = logging.getLogger(__name__)


def _json_field(name: str, sample: Any):
    element = DocumentRow.data[name]
    if isinstance(sample, bool):
        return element.as_boolean()
    if isinstance(sample, int):
        return element.as_integer()
    if isinstance(sample, float):
        return element.as_float()
    return element.as_string()


def _condition(name: str, op: str, value: Any):
    if op == "in":
        values = list(value)
        if not values:
            return false()
        return _json_field(name, values[0]).in_(values)
    column = _json_field(name, value)
    return {
        "==": column.__eq__,
        "!=": column.__ne__,
        "<": column.__lt__,
        "<=": column.__le__,
        ">": column.__gt__,
        ">=": column.__ge__,
    }[op](value)


def _to_document(row: DocumentRow) -> StoredDocument:
    return StoredDocument(row.collection, row.id, row.version_id, dict(row.data))


class SqlDocumentStore(DocumentStore):

    def __init__(self, engine: AsyncEngine | None = None) -> None:
        super().__init__()
        self._sessions = session_factory(engine)

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._sessions() as session:
                yield session
        except (SQLAlchemyError, OSError) as exc:
            logger.error("Document store unavailable: %s", exc)
            raise DependencyFailure(f"Document store unavailable: {exc}") from exc

    async def create(self, collection: str, data: dict[str, Any], doc_id: str | None = None) -> StoredDocument:
        doc_id = doc_id or new_id()
        async with self._session() as session:
            row = DocumentRow(collection=collection, id=doc_id, data=dict(data), version_id=1)
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise DocumentExistsError(f"{collection}/{doc_id} already exists") from exc
        doc = StoredDocument(collection, doc_id, 1, dict(data))
        self._publish(collection, None, doc)
        return doc

    async def get(self, collection: str, doc_id: str) -> StoredDocument | None:
        async with self._session() as session:
            row = await session.get(DocumentRow, (collection, doc_id))
            return _to_document(row) if row else None

    async def update(
        self,
        collection: str,
        doc_id: str,
        changes: dict[str, Any],
        expected_version: int | None = None,
    ) -> StoredDocument:
        async with self._session() as session:
            row = await session.get(DocumentRow, (collection, doc_id))
            if row is None:
                raise NotFound(f"{collection}/{doc_id} does not exist")
            before = _to_document(row)
            if expected_version is not None and before.version != expected_version:
                raise StaleDataError(
                    f"{collection}/{doc_id} is at version {before.version}, expected {expected_version}"
                )
            data = {**before.data, **changes}
            result = await session.execute(
                update(DocumentRow)
                .where(
                    DocumentRow.collection == collection,
                    DocumentRow.id == doc_id,
                    DocumentRow.version_id == before.version,
                )
                .values(data=data, version_id=before.version + 1, updated_at=func.now())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await session.rollback()
                raise StaleDataError(f"{collection}/{doc_id} changed concurrently")
            await session.commit()
        after = StoredDocument(collection, doc_id, before.version + 1, data)
        self._publish(collection, before, after)
        return after

    async def delete(self, collection: str, doc_id: str, expected_version: int | None = None) -> bool:
        async with self._session() as session:
            row = await session.get(DocumentRow, (collection, doc_id))
            if row is None:
                return False
            before = _to_document(row)
            if expected_version is not None and before.version != expected_version:
                raise StaleDataError(
                    f"{collection}/{doc_id} is at version {before.version}, expected {expected_version}"
                )
            result = await session.execute(
                delete(DocumentRow)
                .where(
                    DocumentRow.collection == collection,
                    DocumentRow.id == doc_id,
                    DocumentRow.version_id == before.version,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await session.rollback()
                raise StaleDataError(f"{collection}/{doc_id} changed concurrently")
            await session.commit()
        self._publish(collection, before, None)
        return True

    async def query(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[StoredDocument]:
        stmt = select(DocumentRow).where(DocumentRow.collection == collection)
        for name, op, value in check_filters(filters):
            stmt = stmt.where(_condition(name, op, value))
        if order_by:
            column = DocumentRow.data[order_by].as_string()
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._session() as session:
            result = await session.execute(stmt)
            return [_to_document(row) for row in result.scalars().all()]

    async def ping(self) -> bool:
        async with self._session() as session:
            await session.execute(text("SELECT 1"))
        return True
