from __future__ import annotations

import asyncio
import datetime as dt

import pytest

from swift_invoice.errors import StoreError, TransactionConflictError
from swift_invoice.interfaces.documents import MemoryDocumentStore, WriteConflict
from swift_invoice.services.numbering import (
    billing_year,
    fallback_invoice_number,
    format_number,
    next_invoice_number,
    reserve_invoice_number,
)


class UnavailableStore(MemoryDocumentStore):
    async def _read_versioned(self, path):
        raise StoreError("offline", error_code="store-unavailable")


class AlwaysConflictingStore(MemoryDocumentStore):
    async def _commit(self, reads, writes):
        raise WriteConflict("settings")


def test_format_number_pads_sequence():
    assert format_number(2025, 1) == "20250001"
    assert format_number(2025, 13) == "20250013"
    assert format_number(2025, 12345) == "202512345"


def test_billing_year_uses_utc_for_aware_datetimes():
    madrid_new_year = dt.datetime(2025, 1, 1, 0, 30, tzinfo=dt.timezone(dt.timedelta(hours=1)))
    assert billing_year(madrid_new_year) == 2024
    assert billing_year(dt.date(2025, 6, 1)) == 2025
    assert billing_year(dt.datetime(2025, 12, 31, 23, 59)) == 2025


@pytest.mark.asyncio
async def test_first_number_of_a_year(store, owner_uid):
    reserved = await reserve_invoice_number(store, owner_uid, dt.date(2025, 3, 1))

    assert reserved.number == "20250001"
    assert reserved.provisional is False
    settings = await store.get_document(f"settings/{owner_uid}")
    assert settings["yearCounter"] == {"2025": 1}


@pytest.mark.asyncio
async def test_counter_continues_and_keeps_other_settings(owner_uid):
    store = MemoryDocumentStore()
    await store.set_document(
        f"settings/{owner_uid}",
        {"ownerUid": owner_uid, "yearCounter": {"2025": 12}, "defaultCurrency": "EUR"},
    )

    reserved = await reserve_invoice_number(store, owner_uid, dt.date(2025, 9, 30))

    assert reserved.number == "20250013"
    settings = await store.get_document(f"settings/{owner_uid}")
    assert settings["yearCounter"] == {"2025": 13}
    assert settings["defaultCurrency"] == "EUR"


@pytest.mark.asyncio
async def test_new_year_starts_at_one(owner_uid):
    store = MemoryDocumentStore()
    await store.set_document(f"settings/{owner_uid}", {"ownerUid": owner_uid, "yearCounter": {"2025": 40}})

    reserved = await reserve_invoice_number(store, owner_uid, dt.date(2026, 1, 2))

    assert reserved.number == "20260001"
    settings = await store.get_document(f"settings/{owner_uid}")
    assert settings["yearCounter"] == {"2025": 40, "2026": 1}


@pytest.mark.asyncio
async def test_concurrent_reservations_are_unique_and_gapless(store, owner_uid):
    results = await asyncio.gather(
        *(reserve_invoice_number(store, owner_uid, dt.date(2025, 5, 5)) for _ in range(8))
    )

    numbers = sorted(result.number for result in results)
    assert numbers == [format_number(2025, sequence) for sequence in range(1, 9)]
    settings = await store.get_document(f"settings/{owner_uid}")
    assert settings["yearCounter"]["2025"] == 8


@pytest.mark.asyncio
async def test_sequences_are_per_owner():
    store = MemoryDocumentStore()
    first = await reserve_invoice_number(store, "alice", dt.date(2025, 1, 10))
    second = await reserve_invoice_number(store, "bob", dt.date(2025, 1, 10))

    assert first.number == second.number == "20250001"


@pytest.mark.asyncio
async def test_retries_are_bounded():
    store = AlwaysConflictingStore(max_attempts=3)

    with pytest.raises(TransactionConflictError) as excinfo:
        await reserve_invoice_number(store, "alice", dt.date(2025, 1, 10))

    assert excinfo.value.details == {"attempts": 3}


@pytest.mark.asyncio
async def test_unavailable_store_yields_provisional_number():
    reserved = await next_invoice_number(UnavailableStore(), "alice", dt.date(2025, 4, 1))

    assert reserved.provisional is True
    assert reserved.number.startswith("2025")
    assert len(reserved.number) == 12


@pytest.mark.asyncio
async def test_exhausted_retries_also_fall_back():
    reserved = await next_invoice_number(AlwaysConflictingStore(max_attempts=2), "alice", dt.date(2025, 4, 1))

    assert reserved.provisional is True


def test_fallback_numbers_never_look_reserved():
    reserved = fallback_invoice_number(dt.date(2025, 4, 1))

    assert reserved.number.isdigit()
    assert len(reserved.number) != len(format_number(2025, 1))
