"""Template endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from ..context import AppContext
from ..schemas import Invoice, InvoiceCreate, Template, TemplateApply, TemplateIn
from ..security import get_context, get_current_user
from ..services import invoices as invoice_service
from ..services import templates
from ..services.auth import UserHandle

router = APIRouter(prefix="/templates", tags=["templates"])


@router.get("", response_model=list[Template])
async def list_templates(
    force: bool = False,
    user: UserHandle = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> list[Template]:
    return await templates.list_templates(ctx, user.uid, force=force)


@router.post("", response_model=Template, status_code=201)
async def create_template(
    payload: TemplateIn,
    user: UserHandle = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> Template:
    return await templates.save_template(ctx, user.uid, payload)


@router.get("/{template_id}", response_model=Template)
async def get_template(
    template_id: str,
    user: UserHandle = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> Template:
    return await templates.get_template(ctx, user.uid, template_id)


@router.put("/{template_id}", response_model=Template)
async def update_template(
    template_id: str,
    payload: TemplateIn,
    user: UserHandle = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> Template:
    return await templates.save_template(ctx, user.uid, payload, template_id=template_id)


@router.delete("/{template_id}", status_code=204)
async def delete_template(
    template_id: str,
    user: UserHandle = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> Response:
    await templates.delete_template(ctx, user.uid, template_id)
    return Response(status_code=204)


@router.post("/{template_id}/apply", response_model=Invoice, status_code=201)
async def apply_template(
    template_id: str,
    payload: TemplateApply,
    user: UserHandle = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> Invoice:
    request = InvoiceCreate(template_id=template_id, client_id=payload.client_id, date=payload.date)
    return await invoice_service.create_invoice(ctx, user.uid, request)
