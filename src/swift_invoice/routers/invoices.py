"""Invoice endpoints."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import StreamingResponse

from ..context import AppContext
from ..models import InvoiceStatus
from ..schemas import Invoice, InvoiceCreate, InvoiceUpdate, StatusChange
from ..security import get_context, get_current_user
from ..services import invoices as invoice_service
from ..services.auth import UserHandle
from ..services.pdf import generate_pdf

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.get("", response_model=list[Invoice])
async def list_invoices(
    status: Optional[InvoiceStatus] = None,
    client_id: Optional[str] = Query(default=None, alias="clientId"),
    force: bool = False,
    user: UserHandle = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> list[Invoice]:
    return await invoice_service.list_invoices(ctx, user.uid, status=status, client_id=client_id, force=force)


@router.post("", response_model=Invoice, status_code=201)
async def create_invoice(
    payload: InvoiceCreate,
    user: UserHandle = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> Invoice:
    return await invoice_service.create_invoice(ctx, user.uid, payload)


@router.get("/{invoice_id}", response_model=Invoice)
async def get_invoice(
    invoice_id: str,
    user: UserHandle = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> Invoice:
    return await invoice_service.get_invoice(ctx, user.uid, invoice_id)


@router.patch("/{invoice_id}", response_model=Invoice)
async def update_invoice(
    invoice_id: str,
    payload: InvoiceUpdate,
    user: UserHandle = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> Invoice:
    return await invoice_service.update_invoice(ctx, user.uid, invoice_id, payload)


@router.post("/{invoice_id}/status", response_model=Invoice)
async def change_status(
    invoice_id: str,
    payload: StatusChange,
    user: UserHandle = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> Invoice:
    return await invoice_service.set_status(ctx, user.uid, invoice_id, payload.status)


@router.delete("/{invoice_id}", status_code=204)
async def delete_invoice(
    invoice_id: str,
    user: UserHandle = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> Response:
    await invoice_service.delete_invoice(ctx, user.uid, invoice_id)
    return Response(status_code=204)


@router.get("/{invoice_id}/pdf")
async def download_pdf(
    invoice_id: str,
    user: UserHandle = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> Response:
    invoice = await invoice_service.get_invoice(ctx, user.uid, invoice_id)
    pdf = generate_pdf(invoice, currency=ctx.settings.default_currency)
    return StreamingResponse(
        iter([pdf.content]),
        media_type="application/pdf",
        headers={"Content-Disposition": f"inline; filename={pdf.filename}"},
    )
