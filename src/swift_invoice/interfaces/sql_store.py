"""Document store persisted in the ``document`` table through SQLModel."""
from __future__ import annotations

import copy
import logging
from typing import Any, Optional, Sequence

import pendulum
from sqlalchemy import delete, nulls_last, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlmodel import Session, select
from starlette.concurrency import run_in_threadpool

from ..db import get_session
from ..errors import StoreError
from ..models import DocumentRecord
from .documents import (
    DocumentStore,
    FieldFilter,
    OrderBy,
    PendingWrite,
    WriteConflict,
    apply_query,
    deep_merge,
    split_path,
)

logger = logging.getLogger(__name__)


class SqlDocumentStore(DocumentStore):
    """Each document is a row holding its JSON body and a version counter.

    Blocking session work runs in Starlette's threadpool so the event loop
    stays responsive. Transaction commits use conditional updates on the
    version column, so a concurrent writer makes the commit fail instead of
    being overwritten.
    """

    async def get_document(self, path: str) -> Optional[dict[str, Any]]:
        data, _ = await self._read_versioned(path)
        return data

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        return await self._call(self._query_sync, collection, list(filters), order_by, limit)

    async def set_document(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        split_path(path)
        await self._call(self._write_sync, PendingWrite(path, copy.deepcopy(data), merge))

    async def delete_document(self, path: str) -> None:
        split_path(path)
        await self._call(self._write_sync, PendingWrite(path, None))

    async def _read_versioned(self, path: str) -> tuple[Optional[dict[str, Any]], int]:
        split_path(path)
        return await self._call(self._read_sync, path)

    async def _commit(self, reads: dict[str, int], writes: list[PendingWrite]) -> None:
        try:
            await run_in_threadpool(self._commit_sync, reads, writes)
        except (IntegrityError, OperationalError) as exc:
            raise WriteConflict(str(exc)) from exc
        except SQLAlchemyError as exc:
            raise StoreError("Transaction commit failed", error_code="store-unavailable") from exc

    async def _call(self, func, *args):
        try:
            return await run_in_threadpool(func, *args)
        except SQLAlchemyError as exc:
            logger.exception("Document store operation %s failed", func.__name__)
            raise StoreError("Document store unavailable", error_code="store-unavailable") from exc

    @staticmethod
    def _read_sync(path: str) -> tuple[Optional[dict[str, Any]], int]:
        with get_session() as session:
            record = session.get(DocumentRecord, path)
            if record is None:
                return None, 0
            return copy.deepcopy(record.data), record.version

    @staticmethod
    def _query_sync(
        collection: str,
        filters: list[FieldFilter],
        order_by: Optional[OrderBy],
        limit: Optional[int],
    ) -> list[dict[str, Any]]:
        statement = select(DocumentRecord).where(DocumentRecord.collection == collection)
        remaining: list[FieldFilter] = []
        for item in filters:
            if item.field == "ownerUid" and item.op == "==":
                statement = statement.where(DocumentRecord.owner_uid == item.value)
            elif item.op == "==" and isinstance(item.value, str) and "." not in item.field:
                statement = statement.where(DocumentRecord.data[item.field].as_string() == item.value)
            else:
                remaining.append(item)
        if order_by is not None and "." not in order_by[0]:
            column = DocumentRecord.data[order_by[0]].as_string()
            ordering = column.desc() if order_by[1].lower() == "desc" else column.asc()
            statement = statement.order_by(nulls_last(ordering))
            # The page can only be cut in SQL once every filter ran there.
            if limit is not None and not remaining:
                statement = statement.limit(limit)
        with get_session() as session:
            documents = [copy.deepcopy(record.data) for record in session.exec(statement).all()]
        return apply_query(documents, remaining, order_by, limit)

    def _write_sync(self, write: PendingWrite) -> None:
        with get_session() as session:
            self._apply(session, write, expected=None)

    def _commit_sync(self, reads: dict[str, int], writes: list[PendingWrite]) -> None:
        with get_session() as session:
            written: set[str] = set()
            for write in writes:
                self._apply(session, write, expected=reads.get(write.path))
                written.add(write.path)
            for path, expected in reads.items():
                if path in written:
                    continue
                record = session.get(DocumentRecord, path)
                if (record.version if record else 0) != expected:
                    raise WriteConflict(path)

    @staticmethod
    def _apply(session: Session, write: PendingWrite, expected: Optional[int]) -> None:
        collection, _ = split_path(write.path)
        record = session.get(DocumentRecord, write.path)
        current_version = record.version if record else 0
        if expected is not None and current_version != expected:
            raise WriteConflict(write.path)

        conditions = [DocumentRecord.path == write.path]
        if expected is not None:
            conditions.append(DocumentRecord.version == current_version)

        if write.is_delete:
            if record is not None:
                result = session.connection().execute(delete(DocumentRecord).where(*conditions))
                if expected is not None and result.rowcount != 1:
                    raise WriteConflict(write.path)
            return

        data = write.data
        if write.merge and record is not None:
            data = deep_merge(record.data, write.data)
        owner_uid = data.get("ownerUid")
        if record is None:
            session.add(
                DocumentRecord(
                    path=write.path,
                    collection=collection,
                    owner_uid=owner_uid,
                    data=data,
                    version=1,
                )
            )
            session.flush()
            return
        result = session.connection().execute(
            update(DocumentRecord)
            .where(*conditions)
            .values(
                data=data,
                owner_uid=owner_uid,
                version=current_version + 1,
                updated_at=pendulum.now("UTC"),
            )
        )
        if expected is not None and result.rowcount != 1:
            raise WriteConflict(write.path)
