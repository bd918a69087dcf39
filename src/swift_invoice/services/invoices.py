"""Invoice editor operations on top of the cache and the numbering sequencer."""
from __future__ import annotations

import datetime as dt
import logging
from typing import Optional

import pendulum

from ..errors import NotFoundError, ValidationError
from ..interfaces.documents import FieldFilter
from ..models import Collection, InvoiceStatus, Language
from ..schemas import (
    Client,
    Invoice,
    InvoiceCreate,
    InvoiceUpdate,
    Issuer,
    LineItem,
    Party,
    Template,
)
from .issuers import resolve_issuer
from .numbering import next_invoice_number
from .parties import get_client, snapshot
from .recovery import reconciling
from .tax import apply_totals, enforce_status
from .templates import get_template

logger = logging.getLogger(__name__)

INVOICES = Collection.INVOICES.value


def today(timezone: str) -> dt.date:
    return pendulum.now(timezone).date()


def build_draft(
    issuer: Optional[Issuer],
    client: Optional[Client],
    billing_date: dt.date,
    payment_days: int,
    vat_rate: float,
    irpf_rate: float,
    lang: Language,
) -> Invoice:
    invoice = Invoice(
        issuer=snapshot(issuer) if issuer else Party(),
        recipient=snapshot(client) if client else Party(),
        client_id=client.id if client else "",
        date=billing_date,
        due_date=billing_date + dt.timedelta(days=payment_days),
        lang=lang,
        vat_rate=vat_rate,
        irpf_rate=irpf_rate,
    )
    return apply_totals(invoice)


def apply_template(
    template: Template,
    issuer: Optional[Issuer],
    client: Optional[Client],
    billing_date: dt.date,
    payment_days: int,
) -> Invoice:
    """Pre-populate a DRAFT invoice from a template.

    Snapshots stored on the template win over the active issuer and the
    selected client.
    """

    if template.issuer is not None:
        issuer_snapshot = snapshot(template.issuer)
    else:
        issuer_snapshot = snapshot(issuer) if issuer else Party()
    if client is not None:
        recipient = snapshot(client)
    elif template.recipient is not None:
        recipient = snapshot(template.recipient)
    else:
        recipient = Party()
    invoice = Invoice(
        issuer=issuer_snapshot,
        recipient=recipient,
        client_id=client.id if client else (template.client_id or ""),
        template_id=template.id,
        date=billing_date,
        due_date=billing_date + dt.timedelta(days=payment_days),
        lang=template.lang,
        items=[
            LineItem(description=item.description, quantity=item.quantity, unit_cost=item.unit_cost)
            for item in template.default_items
        ],
        vat_rate=template.vat_rate,
        irpf_rate=template.irpf_rate,
        is_recurring=template.is_recurring,
        notes=template.notes,
    )
    return apply_totals(invoice)


async def list_invoices(
    ctx,
    owner_uid: str,
    status: Optional[InvoiceStatus] = None,
    client_id: Optional[str] = None,
    force: bool = False,
) -> list[Invoice]:
    filters: list[FieldFilter] = []
    if status is not None:
        filters.append(FieldFilter("status", "==", status.value))
    if client_id is not None:
        filters.append(FieldFilter("clientId", "==", client_id))
    documents = await ctx.cache.load_once(INVOICES, owner_uid, filters, force=force)
    return [Invoice.model_validate(document) for document in documents]


async def get_invoice(ctx, owner_uid: str, invoice_id: str) -> Invoice:
    document = await ctx.cache.get_by_id(INVOICES, invoice_id)
    if document is None or document.get("ownerUid") != owner_uid:
        raise NotFoundError(INVOICES, invoice_id)
    return Invoice.model_validate(document)


async def _persist(ctx, owner_uid: str, invoice: Invoice) -> Invoice:
    if invoice.due_date < invoice.date:
        raise ValidationError(
            "The due date cannot be earlier than the billing date",
            error_code="invalid-due-date",
            details={"date": invoice.date.isoformat(), "dueDate": invoice.due_date.isoformat()},
        )
    apply_totals(invoice)
    enforce_status(invoice)
    invoice.owner_uid = owner_uid
    async with reconciling(ctx, INVOICES, owner_uid):
        saved = await ctx.cache.save(INVOICES, owner_uid, invoice.to_document())
    return Invoice.model_validate(saved)


async def create_invoice(ctx, owner_uid: str, payload: InvoiceCreate) -> Invoice:
    config = ctx.settings
    billing_date = payload.date or today(config.timezone)
    issuer = await resolve_issuer(ctx, owner_uid, payload.issuer_id)

    template = await get_template(ctx, owner_uid, payload.template_id) if payload.template_id else None
    client_id = payload.client_id or (template.client_id if template else None)
    client = await get_client(ctx, owner_uid, client_id) if client_id else None

    if template is not None:
        invoice = apply_template(template, issuer, client, billing_date, config.payment_terms_days)
        if payload.lang is not None:
            invoice.lang = payload.lang
    else:
        invoice = build_draft(
            issuer,
            client,
            billing_date,
            config.payment_terms_days,
            config.default_vat_rate,
            config.default_irpf_rate,
            payload.lang or Language(config.default_language),
        )

    reserved = await next_invoice_number(ctx.store, owner_uid, billing_date)
    invoice.number = reserved.number
    invoice.number_provisional = reserved.provisional
    return await _persist(ctx, owner_uid, invoice)


async def update_invoice(ctx, owner_uid: str, invoice_id: str, payload: InvoiceUpdate) -> Invoice:
    invoice = await get_invoice(ctx, owner_uid, invoice_id)
    changes = payload.model_dump(exclude_unset=True, exclude={"items", "client_id", "issuer", "recipient"})
    for name, value in changes.items():
        if value is None and name not in {"notes"}:
            continue
        setattr(invoice, name, value)
    if payload.issuer is not None:
        invoice.issuer = snapshot(payload.issuer)
    if payload.client_id is not None and payload.client_id != invoice.client_id:
        client = await get_client(ctx, owner_uid, payload.client_id)
        invoice.client_id = client.id
        invoice.recipient = snapshot(client)
    if payload.recipient is not None:
        invoice.recipient = snapshot(payload.recipient)
    if payload.items is not None:
        invoice.items = [
            LineItem(description=item.description, quantity=item.quantity, unit_cost=item.unit_cost)
            for item in payload.items
        ]
    return await _persist(ctx, owner_uid, invoice)


async def set_status(ctx, owner_uid: str, invoice_id: str, status: InvoiceStatus) -> Invoice:
    invoice = await get_invoice(ctx, owner_uid, invoice_id)
    invoice.status = status
    return await _persist(ctx, owner_uid, invoice)


async def delete_invoice(ctx, owner_uid: str, invoice_id: str) -> None:
    await get_invoice(ctx, owner_uid, invoice_id)
    async with reconciling(ctx, INVOICES, owner_uid):
        await ctx.cache.delete(INVOICES, owner_uid, invoice_id)
