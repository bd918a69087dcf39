"""Read-through cache with optimistic local writes.

Every (collection, owner, filters) combination that has been listed keeps an
ordered list of document ids; the documents themselves live in one id map per
collection shared by all lists. Reads after the first are served from memory.
Local saves and deletes update memory first and then hit the store once,
without re-querying, and win over the result of a query that was already
running. Nothing expires on its own; ``force=True`` re-queries.
"""
from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import pendulum

from ..events import ENTITY_DELETED, ENTITY_SAVED, EventBus
from ..interfaces.documents import DocumentStore, FieldFilter, document_path, lookup

logger = logging.getLogger(__name__)

ORDER_FIELD = "updatedAt"


def timestamp() -> str:
    """UTC timestamp with fixed width so string order equals time order."""

    return pendulum.now("UTC").format("YYYY-MM-DD[T]HH:mm:ss.SSSSSS[Z]")


@dataclass(frozen=True)
class CacheKey:
    collection: str
    owner_id: str
    filters: tuple[FieldFilter, ...] = ()

    def accepts(self, entity: dict[str, Any]) -> bool:
        return all(item.matches(entity) for item in self.filters)


class EntityCache:
    def __init__(self, store: DocumentStore, events: Optional[EventBus] = None, page_size: int = 100) -> None:
        self.store = store
        self.events = events
        self.page_size = page_size
        self._lists: dict[CacheKey, list[str]] = {}
        self._entities: dict[str, dict[str, dict[str, Any]]] = {}
        self._inflight: dict[CacheKey, asyncio.Future] = {}
        # Local writes made while store reads are running, by collection and id.
        self._written: dict[str, dict[str, int]] = {}
        self._generation = 0
        self._reads_running = 0

    def is_loaded(self, collection: str, owner_id: str, filters: Sequence[FieldFilter] = ()) -> bool:
        return CacheKey(collection, owner_id, tuple(filters)) in self._lists

    async def load_once(
        self,
        collection: str,
        owner_id: str,
        filters: Sequence[FieldFilter] = (),
        force: bool = False,
    ) -> list[dict[str, Any]]:
        key = CacheKey(collection, owner_id, tuple(filters))
        if not force:
            if key in self._lists:
                return self._materialise(key)
            pending = self._inflight.get(key)
            if pending is not None:
                await asyncio.shield(pending)
                return self._materialise(key)

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        started = self._begin_read()
        try:
            try:
                documents = await self.store.query(
                    collection,
                    [FieldFilter("ownerUid", "==", owner_id), *key.filters],
                    order_by=(ORDER_FIELD, "desc"),
                    limit=self.page_size,
                )
            except asyncio.CancelledError:
                future.cancel()
                raise
            except Exception as exc:
                future.set_exception(exc)
                # Waiters re-raise it; mark retrieved so an unobserved failure is not reported twice.
                future.exception()
                raise
            finally:
                if self._inflight.get(key) is future:
                    del self._inflight[key]
            self._store_list(key, documents, started, force)
        finally:
            self._end_read()

        logger.debug("Loaded %s %s documents for %s", len(documents), collection, owner_id)
        future.set_result(None)
        return self._materialise(key)

    async def get_by_id(self, collection: str, document_id: str) -> Optional[dict[str, Any]]:
        cached = self._entities.get(collection, {}).get(document_id)
        if cached is not None:
            return copy.deepcopy(cached)

        started = self._begin_read()
        try:
            document = await self.store.get_document(document_path(collection, document_id))
            if self._written_since(collection, document_id, started):
                return self.peek(collection, document_id)
        finally:
            self._end_read()
        if document is None:
            return None
        document.setdefault("id", document_id)
        self._entities.setdefault(collection, {})[document_id] = document
        owner_id = document.get("ownerUid")
        if owner_id:
            key = CacheKey(collection, owner_id)
            ids = self._lists.get(key)
            if ids is not None and document_id not in ids:
                self._splice(collection, ids, document)
        return copy.deepcopy(document)

    def peek(self, collection: str, document_id: str) -> Optional[dict[str, Any]]:
        """Return the cached document without touching the store."""

        cached = self._entities.get(collection, {}).get(document_id)
        return copy.deepcopy(cached) if cached is not None else None

    def save_local(self, collection: str, owner_id: str, entity: dict[str, Any]) -> dict[str, Any]:
        """Apply a save to memory only and return the document that will be written."""

        if not entity.get("id"):
            raise ValueError("Entities need an id before they can be cached")
        document = copy.deepcopy(entity)
        document["ownerUid"] = owner_id
        document[ORDER_FIELD] = timestamp()
        document_id = document["id"]

        self._entities.setdefault(collection, {})[document_id] = document
        self._record_write(collection, document_id)
        for key, ids in self._owner_lists(collection, owner_id):
            if document_id in ids:
                ids.remove(document_id)
            if key.accepts(document):
                ids.insert(0, document_id)
        return copy.deepcopy(document)

    async def save(self, collection: str, owner_id: str, entity: dict[str, Any]) -> dict[str, Any]:
        document = self.save_local(collection, owner_id, entity)
        await self.store.set_document(document_path(collection, document["id"]), document, merge=True)
        if self.events is not None:
            self.events.publish(ENTITY_SAVED, {"collection": collection, "ownerUid": owner_id, "id": document["id"]})
        return document

    def delete_local(self, collection: str, owner_id: str, document_id: str) -> None:
        self._entities.get(collection, {}).pop(document_id, None)
        self._record_write(collection, document_id)
        for _, ids in self._owner_lists(collection, owner_id):
            if document_id in ids:
                ids.remove(document_id)

    async def delete(self, collection: str, owner_id: str, document_id: str) -> None:
        self.delete_local(collection, owner_id, document_id)
        await self.store.delete_document(document_path(collection, document_id))
        if self.events is not None:
            self.events.publish(ENTITY_DELETED, {"collection": collection, "ownerUid": owner_id, "id": document_id})

    def evict_owner(self, owner_id: str) -> None:
        """Forget every list and document that belongs to ``owner_id``."""

        for key in [key for key in self._lists if key.owner_id == owner_id]:
            del self._lists[key]
        for entities in self._entities.values():
            for document_id in [i for i, doc in entities.items() if doc.get("ownerUid") == owner_id]:
                del entities[document_id]

    def _begin_read(self) -> int:
        self._reads_running += 1
        return self._generation

    def _end_read(self) -> None:
        self._reads_running -= 1
        if self._reads_running == 0:
            self._written.clear()

    def _record_write(self, collection: str, document_id: str) -> None:
        if self._reads_running:
            self._generation += 1
            self._written.setdefault(collection, {})[document_id] = self._generation

    def _written_since(self, collection: str, document_id: str, started: int) -> bool:
        return self._written.get(collection, {}).get(document_id, 0) > started

    def _store_list(self, key: CacheKey, documents: list[dict[str, Any]], started: int, force: bool) -> None:
        """Install a query result without undoing local writes made while it ran.

        A forced load also forgets the owner's documents that the store no
        longer returns and that no other loaded list refers to.
        """

        collection = key.collection
        entities = self._entities.setdefault(collection, {})
        fetched: list[str] = []
        for document in documents:
            if self._written_since(collection, document["id"], started):
                continue
            entities[document["id"]] = document
            fetched.append(document["id"])

        recent = sorted(
            (
                (generation, document_id)
                for document_id, generation in self._written.get(collection, {}).items()
                if generation > started
            ),
            reverse=True,
        )
        local: list[str] = []
        for _, document_id in recent:
            entity = entities.get(document_id)
            if entity is not None and entity.get("ownerUid") == key.owner_id and key.accepts(entity):
                local.append(document_id)
        ids = local + fetched

        if force:
            keep = set(ids)
            for other_key, other_ids in self._owner_lists(collection, key.owner_id):
                if other_key != key:
                    keep.update(other_ids)
            stale = [
                document_id
                for document_id, entity in entities.items()
                if entity.get("ownerUid") == key.owner_id
                and document_id not in keep
                and not self._written_since(collection, document_id, started)
            ]
            for document_id in stale:
                del entities[document_id]
        self._lists[key] = ids

    def _owner_lists(self, collection: str, owner_id: str):
        return [
            (key, ids)
            for key, ids in self._lists.items()
            if key.collection == collection and key.owner_id == owner_id
        ]

    def _materialise(self, key: CacheKey) -> list[dict[str, Any]]:
        entities = self._entities.get(key.collection, {})
        return [copy.deepcopy(entities[i]) for i in self._lists[key] if i in entities]

    def _splice(self, collection: str, ids: list[str], document: dict[str, Any]) -> None:
        entities = self._entities.get(collection, {})
        stamp = lookup(document, ORDER_FIELD) or ""
        position = len(ids)
        for index, other_id in enumerate(ids):
            other_stamp = lookup(entities.get(other_id, {}), ORDER_FIELD) or ""
            if stamp >= other_stamp:
                position = index
                break
        ids.insert(position, document["id"])
