"""Sequential invoice numbers reserved per owner and billing year."""
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Union

import pendulum

from ..errors import StoreError
from ..interfaces.documents import DocumentStore, Transaction, document_path
from ..models import Collection

logger = logging.getLogger(__name__)

BillingDate = Union[dt.date, dt.datetime]


@dataclass(frozen=True)
class ReservedNumber:
    number: str
    year: int
    sequence: int
    provisional: bool = False


def billing_year(billing_date: BillingDate) -> int:
    """Year the sequence is keyed by. Datetimes count in UTC."""

    if isinstance(billing_date, dt.datetime):
        if billing_date.tzinfo is None:
            return billing_date.year
        return pendulum.instance(billing_date).in_timezone("UTC").year
    return billing_date.year


def format_number(year: int, sequence: int) -> str:
    return f"{year}{sequence:04d}"


async def reserve_invoice_number(store: DocumentStore, owner_uid: str, billing_date: BillingDate) -> ReservedNumber:
    """Atomically increment ``yearCounter[year]`` in the owner's settings document."""

    year = billing_year(billing_date)
    path = document_path(Collection.SETTINGS.value, owner_uid)

    async def increment(transaction: Transaction) -> int:
        settings = await transaction.get(path) or {}
        counters = settings.get("yearCounter") or {}
        sequence = int(counters.get(str(year), 0)) + 1
        transaction.set(path, {"ownerUid": owner_uid, "yearCounter": {str(year): sequence}}, merge=True)
        return sequence

    sequence = await store.run_transaction(increment)
    return ReservedNumber(number=format_number(year, sequence), year=year, sequence=sequence)


def fallback_invoice_number(billing_date: BillingDate) -> ReservedNumber:
    """Timestamp-derived number used when no sequence could be reserved.

    The suffix is eight digits (seconds and microseconds), so these numbers
    are longer than reserved ones and never equal them, but two fallbacks in
    the same microsecond would collide.
    """

    year = billing_year(billing_date)
    now = pendulum.now("UTC")
    return ReservedNumber(
        number=f"{year}{now.second:02d}{now.microsecond:06d}",
        year=year,
        sequence=0,
        provisional=True,
    )


async def next_invoice_number(store: DocumentStore, owner_uid: str, billing_date: BillingDate) -> ReservedNumber:
    try:
        return await reserve_invoice_number(store, owner_uid, billing_date)
    except StoreError as exc:
        fallback = fallback_invoice_number(billing_date)
        logger.warning(
            "Could not reserve an invoice number for %s (%s); using provisional number %s",
            owner_uid,
            exc.error_code,
            fallback.number,
        )
        return fallback
