"""Dashboard figures computed from the cached invoice list."""
from __future__ import annotations

import datetime as dt
from typing import Optional

from ..models import InvoiceStatus
from ..schemas import DashboardSummary
from .invoices import list_invoices, today

RECENT_LIMIT = 5


async def summarize(ctx, owner_uid: str, reference: Optional[dt.date] = None) -> DashboardSummary:
    reference = reference or today(ctx.settings.timezone)
    invoices = await list_invoices(ctx, owner_uid)
    billed = pending = paid = overdue = 0.0
    overdue_count = 0
    for invoice in invoices:
        if invoice.status in {InvoiceStatus.ISSUED, InvoiceStatus.PAID}:
            if (invoice.date.year, invoice.date.month) == (reference.year, reference.month):
                billed += invoice.total
        if invoice.status == InvoiceStatus.PAID:
            paid += invoice.total
        elif invoice.status == InvoiceStatus.ISSUED:
            pending += invoice.total
            if invoice.due_date < reference:
                overdue += invoice.total
                overdue_count += 1
    return DashboardSummary(
        billed_this_month=billed,
        pending=pending,
        paid=paid,
        overdue=overdue,
        overdue_count=overdue_count,
        recent=invoices[:RECENT_LIMIT],
    )
