"""Line amounts, invoice totals and the status guard."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Union

from ..models import InvoiceStatus
from ..schemas import Invoice, LineItem, TemplateItem

logger = logging.getLogger(__name__)

FINAL_STATUSES = {InvoiceStatus.ISSUED, InvoiceStatus.PAID}


@dataclass
class Totals:
    subtotal: float
    vat_amount: float
    irpf_amount: float
    total: float


def line_amount(quantity: float, unit_cost: float) -> float:
    return quantity * unit_cost


def compute_totals(items: Iterable[Union[LineItem, TemplateItem]], vat_rate: float, irpf_rate: float) -> Totals:
    """VAT is added to the subtotal, the IRPF withholding is subtracted."""

    subtotal = 0.0
    for item in items:
        item.amount = line_amount(item.quantity, item.unit_cost)
        subtotal += item.amount
    vat_amount = subtotal * vat_rate / 100
    irpf_amount = subtotal * irpf_rate / 100
    return Totals(
        subtotal=subtotal,
        vat_amount=vat_amount,
        irpf_amount=irpf_amount,
        total=subtotal + vat_amount - irpf_amount,
    )


def apply_totals(invoice: Invoice) -> Invoice:
    totals = compute_totals(invoice.items, invoice.vat_rate, invoice.irpf_rate)
    invoice.subtotal = totals.subtotal
    invoice.vat_amount = totals.vat_amount
    invoice.irpf_amount = totals.irpf_amount
    invoice.total = totals.total
    return invoice


def missing_address_fields(invoice: Invoice) -> list[str]:
    missing: list[str] = []
    for role in ("issuer", "recipient"):
        address = getattr(invoice, role).address
        for name in ("street", "city", "zip", "country"):
            if not getattr(address, name).strip():
                missing.append(f"{role}.address.{name}")
    return missing


def enforce_status(invoice: Invoice) -> bool:
    """Demote an ISSUED/PAID invoice to DRAFT when an address is incomplete.

    Returns True when the status had to be changed.
    """

    if invoice.status not in FINAL_STATUSES:
        return False
    missing = missing_address_fields(invoice)
    if not missing:
        return False
    logger.warning(
        "Invoice %s cannot be %s, incomplete address fields: %s",
        invoice.id,
        invoice.status.value,
        ", ".join(missing),
    )
    invoice.status = InvoiceStatus.DRAFT
    return True
