from __future__ import annotations

import asyncio

import pytest

from swift_invoice.events import ENTITY_DELETED, ENTITY_SAVED, EventBus
from swift_invoice.interfaces.documents import FieldFilter, MemoryDocumentStore
from swift_invoice.services.cache import EntityCache


class CountingStore(MemoryDocumentStore):
    def __init__(self) -> None:
        super().__init__()
        self.queries = 0
        self.gets = 0
        self.writes: list[str] = []

    async def query(self, collection, filters=(), order_by=None, limit=None):
        self.queries += 1
        return await super().query(collection, filters, order_by, limit)

    async def get_document(self, path):
        self.gets += 1
        return await super().get_document(path)

    async def set_document(self, path, data, merge=False):
        self.writes.append(path)
        await super().set_document(path, data, merge)


async def _seed(store: MemoryDocumentStore, owner: str) -> None:
    for index, stamp in enumerate(["2025-01-01T10:00:00.000000Z", "2025-02-01T10:00:00.000000Z"]):
        await store.set_document(
            f"invoices/inv-{index}",
            {"id": f"inv-{index}", "ownerUid": owner, "status": "DRAFT", "updatedAt": stamp},
        )
    await store.set_document(
        "invoices/foreign",
        {"id": "foreign", "ownerUid": "someone-else", "status": "DRAFT", "updatedAt": "2025-03-01T10:00:00.000000Z"},
    )


@pytest.mark.asyncio
async def test_second_load_is_served_from_memory():
    store = CountingStore()
    await _seed(store, "alice")
    cache = EntityCache(store)

    first = await cache.load_once("invoices", "alice")
    second = await cache.load_once("invoices", "alice")

    assert [doc["id"] for doc in first] == ["inv-1", "inv-0"]
    assert second == first
    assert store.queries == 1


@pytest.mark.asyncio
async def test_force_issues_exactly_one_more_query():
    store = CountingStore()
    await _seed(store, "alice")
    cache = EntityCache(store)

    await cache.load_once("invoices", "alice")
    await store.set_document("invoices/late", {"id": "late", "ownerUid": "alice", "updatedAt": "2025-04-01T00:00:00.000000Z"})
    cached = await cache.load_once("invoices", "alice")
    refreshed = await cache.load_once("invoices", "alice", force=True)

    assert "late" not in [doc["id"] for doc in cached]
    assert refreshed[0]["id"] == "late"
    assert store.queries == 2


@pytest.mark.asyncio
async def test_concurrent_loads_share_one_query():
    store = CountingStore()
    await _seed(store, "alice")
    cache = EntityCache(store)

    results = await asyncio.gather(*(cache.load_once("invoices", "alice") for _ in range(5)))

    assert store.queries == 1
    assert all(result == results[0] for result in results)


@pytest.mark.asyncio
async def test_filtered_lists_are_cached_separately():
    store = CountingStore()
    await _seed(store, "alice")
    await store.set_document("invoices/paid", {"id": "paid", "ownerUid": "alice", "status": "PAID", "updatedAt": "2025-01-15T00:00:00.000000Z"})
    cache = EntityCache(store)
    paid_only = [FieldFilter("status", "==", "PAID")]

    everything = await cache.load_once("invoices", "alice")
    paid = await cache.load_once("invoices", "alice", paid_only)
    await cache.load_once("invoices", "alice", paid_only)

    assert len(everything) == 3
    assert [doc["id"] for doc in paid] == ["paid"]
    assert store.queries == 2


@pytest.mark.asyncio
async def test_local_save_is_visible_before_the_write_resolves():
    store = CountingStore()
    await _seed(store, "alice")
    cache = EntityCache(store)
    await cache.load_once("invoices", "alice")

    saved = cache.save_local("invoices", "alice", {"id": "new", "status": "DRAFT"})
    listed = await cache.load_once("invoices", "alice")

    assert listed[0]["id"] == "new"
    assert listed[0]["ownerUid"] == "alice"
    assert saved["updatedAt"]
    assert "invoices/new" not in store.writes
    assert store.queries == 1


@pytest.mark.asyncio
async def test_save_persists_moves_to_front_and_publishes():
    store = CountingStore()
    await _seed(store, "alice")
    events = EventBus()
    seen: list[dict] = []
    events.subscribe(ENTITY_SAVED, seen.append)
    cache = EntityCache(store, events)
    await cache.load_once("invoices", "alice")

    await cache.save("invoices", "alice", {"id": "inv-0", "status": "ISSUED"})
    listed = await cache.load_once("invoices", "alice")
    stored = await store.get_document("invoices/inv-0")

    assert [doc["id"] for doc in listed] == ["inv-0", "inv-1"]
    assert stored["status"] == "ISSUED"
    assert seen == [{"collection": "invoices", "ownerUid": "alice", "id": "inv-0"}]
    assert store.queries == 1


@pytest.mark.asyncio
async def test_save_updates_filtered_lists():
    store = CountingStore()
    await _seed(store, "alice")
    cache = EntityCache(store)
    drafts = [FieldFilter("status", "==", "DRAFT")]
    await cache.load_once("invoices", "alice", drafts)

    await cache.save("invoices", "alice", {"id": "inv-1", "status": "PAID"})
    remaining = await cache.load_once("invoices", "alice", drafts)

    assert [doc["id"] for doc in remaining] == ["inv-0"]


@pytest.mark.asyncio
async def test_get_by_id_reads_through_once_and_splices():
    store = CountingStore()
    cache = EntityCache(store)
    await store.set_document("invoices/a", {"id": "a", "ownerUid": "alice", "updatedAt": "2025-03-01T00:00:00.000000Z"})
    await cache.load_once("invoices", "alice")
    await store.set_document("invoices/b", {"id": "b", "ownerUid": "alice", "updatedAt": "2025-01-01T00:00:00.000000Z"})

    first = await cache.get_by_id("invoices", "b")
    second = await cache.get_by_id("invoices", "b")
    listed = await cache.load_once("invoices", "alice")

    assert first == second
    assert store.gets == 1
    assert [doc["id"] for doc in listed] == ["a", "b"]


@pytest.mark.asyncio
async def test_get_by_id_of_missing_document():
    cache = EntityCache(CountingStore())

    assert await cache.get_by_id("invoices", "missing") is None


@pytest.mark.asyncio
async def test_delete_removes_from_memory_and_store():
    store = CountingStore()
    await _seed(store, "alice")
    events = EventBus()
    deleted: list[dict] = []
    events.subscribe(ENTITY_DELETED, deleted.append)
    cache = EntityCache(store, events)
    await cache.load_once("invoices", "alice")

    await cache.delete("invoices", "alice", "inv-1")

    assert [doc["id"] for doc in await cache.load_once("invoices", "alice")] == ["inv-0"]
    assert cache.peek("invoices", "inv-1") is None
    assert await store.get_document("invoices/inv-1") is None
    assert deleted[0]["id"] == "inv-1"


@pytest.mark.asyncio
async def test_returned_documents_are_copies():
    store = CountingStore()
    await _seed(store, "alice")
    cache = EntityCache(store)

    listed = await cache.load_once("invoices", "alice")
    listed[0]["status"] = "tampered"

    assert cache.peek("invoices", listed[0]["id"])["status"] == "DRAFT"


@pytest.mark.asyncio
async def test_evict_owner_forgets_lists_and_documents():
    store = CountingStore()
    await _seed(store, "alice")
    cache = EntityCache(store)
    await cache.load_once("invoices", "alice")

    cache.evict_owner("alice")

    assert not cache.is_loaded("invoices", "alice")
    assert cache.peek("invoices", "inv-0") is None
    await cache.load_once("invoices", "alice")
    assert store.queries == 2


@pytest.mark.asyncio
async def test_failed_load_is_not_cached():
    class BrokenStore(CountingStore):
        async def query(self, collection, filters=(), order_by=None, limit=None):
            self.queries += 1
            raise RuntimeError("boom")

    store = BrokenStore()
    cache = EntityCache(store)

    with pytest.raises(RuntimeError):
        await cache.load_once("invoices", "alice")
    assert not cache.is_loaded("invoices", "alice")
    with pytest.raises(RuntimeError):
        await cache.load_once("invoices", "alice")
    assert store.queries == 2


def test_save_local_requires_an_id():
    cache = EntityCache(MemoryDocumentStore())

    with pytest.raises(ValueError):
        cache.save_local("invoices", "alice", {"status": "DRAFT"})


class SlowQueryStore(MemoryDocumentStore):
    """Takes its snapshot, then yields before handing the result back."""

    def __init__(self) -> None:
        super().__init__()
        self.snapshot_taken = asyncio.Event()
        self.release = asyncio.Event()

    async def query(self, collection, filters=(), order_by=None, limit=None):
        documents = await super().query(collection, filters, order_by, limit)
        self.snapshot_taken.set()
        await self.release.wait()
        return documents


@pytest.mark.asyncio
async def test_save_during_a_running_load_is_not_undone():
    store = SlowQueryStore()
    await store.set_document("invoices/a", {"id": "a", "ownerUid": "alice", "total": 1, "updatedAt": "2025-01-01T00:00:00.000000Z"})
    cache = EntityCache(store)

    loading = asyncio.ensure_future(cache.load_once("invoices", "alice"))
    await store.snapshot_taken.wait()
    await cache.save("invoices", "alice", {"id": "a", "total": 2})
    store.release.set()
    listed = await loading

    assert [doc["total"] for doc in listed] == [2]
    assert (await cache.get_by_id("invoices", "a"))["total"] == 2
    assert (await store.get_document("invoices/a"))["total"] == 2


@pytest.mark.asyncio
async def test_new_entity_saved_during_a_running_load_is_listed():
    store = SlowQueryStore()
    await store.set_document("invoices/a", {"id": "a", "ownerUid": "alice", "updatedAt": "2025-01-01T00:00:00.000000Z"})
    cache = EntityCache(store)

    loading = asyncio.ensure_future(cache.load_once("invoices", "alice"))
    await store.snapshot_taken.wait()
    cache.save_local("invoices", "alice", {"id": "b"})
    store.release.set()

    assert [doc["id"] for doc in await loading] == ["b", "a"]


@pytest.mark.asyncio
async def test_delete_during_a_running_load_stays_deleted():
    store = SlowQueryStore()
    await store.set_document("invoices/a", {"id": "a", "ownerUid": "alice", "updatedAt": "2025-01-01T00:00:00.000000Z"})
    await store.set_document("invoices/b", {"id": "b", "ownerUid": "alice", "updatedAt": "2025-02-01T00:00:00.000000Z"})
    cache = EntityCache(store)

    loading = asyncio.ensure_future(cache.load_once("invoices", "alice"))
    await store.snapshot_taken.wait()
    await cache.delete("invoices", "alice", "b")
    store.release.set()

    assert [doc["id"] for doc in await loading] == ["a"]
    assert cache.peek("invoices", "b") is None
    assert await cache.get_by_id("invoices", "b") is None


@pytest.mark.asyncio
async def test_forced_load_forgets_documents_the_store_never_kept():
    class RejectingStore(CountingStore):
        async def set_document(self, path, data, merge=False):
            raise RuntimeError("write rejected")

    store = RejectingStore()
    cache = EntityCache(store)

    with pytest.raises(RuntimeError):
        await cache.save("clients", "alice", {"id": "ghost", "name": "never stored"})
    assert cache.peek("clients", "ghost") is not None

    assert await cache.load_once("clients", "alice", force=True) == []
    assert cache.peek("clients", "ghost") is None
    assert await cache.get_by_id("clients", "ghost") is None


@pytest.mark.asyncio
async def test_forced_load_keeps_documents_of_other_lists():
    store = CountingStore()
    await _seed(store, "alice")
    await store.set_document("invoices/paid", {"id": "paid", "ownerUid": "alice", "status": "PAID", "updatedAt": "2025-01-15T00:00:00.000000Z"})
    cache = EntityCache(store, page_size=1)
    await cache.load_once("invoices", "alice", [FieldFilter("status", "==", "PAID")])
    await cache.get_by_id("invoices", "inv-0")

    refreshed = await cache.load_once("invoices", "alice", force=True)

    assert [doc["id"] for doc in refreshed] == ["inv-1"]
    assert cache.peek("invoices", "paid") is not None
    assert cache.peek("invoices", "inv-0") is None
