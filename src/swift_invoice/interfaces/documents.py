"""Document store interface used by the cache and the numbering sequencer.

Documents are JSON-like dictionaries addressed by ``collection/id`` paths.
Every store offers point reads, filtered queries, (merge-)writes, deletes and
optimistic read-modify-write transactions that are retried automatically when
another writer touched one of the documents in between.
"""
from __future__ import annotations

import asyncio
import copy
import logging
import operator
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence, TypeVar

from ..errors import TransactionConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")

OrderBy = tuple[str, str]

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda value, options: value in options,
}

BACKOFF_SECONDS = 0.005


class WriteConflict(Exception):
    """A transaction commit lost against a concurrent writer."""


@dataclass(frozen=True)
class FieldFilter:
    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in _OPERATORS:
            raise ValueError(f"Unsupported filter operator {self.op!r}")
        if isinstance(self.value, list):
            object.__setattr__(self, "value", tuple(self.value))

    def matches(self, data: dict[str, Any]) -> bool:
        value = lookup(data, self.field)
        if value is None and self.op not in {"==", "!="}:
            return False
        try:
            return bool(_OPERATORS[self.op](value, self.value))
        except TypeError:
            return False


def lookup(data: dict[str, Any], dotted: str) -> Any:
    current: Any = data
    for part in dotted.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def document_path(collection: str, document_id: str) -> str:
    return f"{collection}/{document_id}"


def split_path(path: str) -> tuple[str, str]:
    collection, _, document_id = path.partition("/")
    if not collection or not document_id or "/" in document_id:
        raise ValueError(f"Invalid document path {path!r}")
    return collection, document_id


def deep_merge(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Return ``base`` updated with ``patch``; nested mappings merge key by key."""

    merged = copy.deepcopy(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def apply_query(
    documents: Iterable[dict[str, Any]],
    filters: Sequence[FieldFilter],
    order_by: Optional[OrderBy],
    limit: Optional[int],
) -> list[dict[str, Any]]:
    selected = [doc for doc in documents if all(f.matches(doc) for f in filters)]
    if order_by is not None:
        name, direction = order_by
        present = [doc for doc in selected if lookup(doc, name) is not None]
        missing = [doc for doc in selected if lookup(doc, name) is None]
        present.sort(key=lambda doc: lookup(doc, name), reverse=direction.lower() == "desc")
        selected = present + missing
    if limit is not None:
        selected = selected[:limit]
    return selected


@dataclass
class PendingWrite:
    path: str
    data: Optional[dict[str, Any]]
    merge: bool = False

    @property
    def is_delete(self) -> bool:
        return self.data is None


@dataclass
class Transaction:
    """Read and write handle passed to ``run_transaction`` callbacks.

    Reads must happen before writes. Writes are buffered and applied
    atomically on commit, provided no document read here changed meanwhile.
    """

    store: "DocumentStore"
    reads: dict[str, int] = field(default_factory=dict)
    writes: list[PendingWrite] = field(default_factory=list)

    async def get(self, path: str) -> Optional[dict[str, Any]]:
        if self.writes:
            raise RuntimeError("Transactions must perform all reads before any write")
        data, version = await self.store._read_versioned(path)
        self.reads[path] = version
        return data

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        self.writes.append(PendingWrite(path, copy.deepcopy(data), merge))

    def delete(self, path: str) -> None:
        self.writes.append(PendingWrite(path, None))


class DocumentStore(ABC):
    """Asynchronous document database."""

    def __init__(self, max_attempts: int = 5) -> None:
        self.max_attempts = max_attempts

    @abstractmethod
    async def get_document(self, path: str) -> Optional[dict[str, Any]]:
        """Return the document or ``None`` when it does not exist."""

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """Return matching documents of a collection."""

    @abstractmethod
    async def set_document(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        """Create or replace a document; ``merge`` folds ``data`` into the stored one."""

    @abstractmethod
    async def delete_document(self, path: str) -> None:
        """Delete a document. Deleting a missing document is not an error."""

    @abstractmethod
    async def _read_versioned(self, path: str) -> tuple[Optional[dict[str, Any]], int]:
        """Return the document and its version (0 when missing)."""

    @abstractmethod
    async def _commit(self, reads: dict[str, int], writes: list[PendingWrite]) -> None:
        """Apply ``writes`` atomically or raise ``WriteConflict``."""

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        for attempt in range(1, self.max_attempts + 1):
            transaction = Transaction(self)
            result = await fn(transaction)
            try:
                await self._commit(transaction.reads, transaction.writes)
            except WriteConflict:
                logger.debug("Transaction conflict on attempt %s/%s", attempt, self.max_attempts)
                await asyncio.sleep(random.uniform(0, BACKOFF_SECONDS * attempt))
                continue
            return result
        raise TransactionConflictError(self.max_attempts)


class MemoryDocumentStore(DocumentStore):
    """Process-local store with the same semantics as the SQL one."""

    def __init__(self, max_attempts: int = 5) -> None:
        super().__init__(max_attempts)
        self._documents: dict[str, tuple[dict[str, Any], int]] = {}

    async def get_document(self, path: str) -> Optional[dict[str, Any]]:
        split_path(path)
        await asyncio.sleep(0)
        entry = self._documents.get(path)
        return copy.deepcopy(entry[0]) if entry else None

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        await asyncio.sleep(0)
        prefix = f"{collection}/"
        documents = [data for path, (data, _) in self._documents.items() if path.startswith(prefix)]
        return copy.deepcopy(apply_query(documents, filters, order_by, limit))

    async def set_document(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        split_path(path)
        await asyncio.sleep(0)
        self._apply(PendingWrite(path, copy.deepcopy(data), merge))

    async def delete_document(self, path: str) -> None:
        split_path(path)
        await asyncio.sleep(0)
        self._documents.pop(path, None)

    async def _read_versioned(self, path: str) -> tuple[Optional[dict[str, Any]], int]:
        split_path(path)
        await asyncio.sleep(0)
        entry = self._documents.get(path)
        if entry is None:
            return None, 0
        return copy.deepcopy(entry[0]), entry[1]

    async def _commit(self, reads: dict[str, int], writes: list[PendingWrite]) -> None:
        await asyncio.sleep(0)
        for path, expected in reads.items():
            current = self._documents.get(path)
            if (current[1] if current else 0) != expected:
                raise WriteConflict(path)
        for write in writes:
            self._apply(write)

    def _apply(self, write: PendingWrite) -> None:
        if write.is_delete:
            self._documents.pop(write.path, None)
            return
        current = self._documents.get(write.path)
        version = current[1] if current else 0
        data = write.data
        if write.merge and current is not None:
            data = deep_merge(current[0], write.data)
        self._documents[write.path] = (data, version + 1)
