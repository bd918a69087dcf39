"""Client endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from ..context import AppContext
from ..schemas import Invoice, PartyIn, PartyRead
from ..security import get_context, get_current_user
from ..services import invoices as invoice_service
from ..services import parties
from ..services.auth import UserHandle

router = APIRouter(prefix="/clients", tags=["clients"])


@router.get("", response_model=list[PartyRead])
async def list_clients(
    force: bool = False,
    user: UserHandle = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> list[PartyRead]:
    clients = await parties.list_clients(ctx, user.uid, force=force)
    return [parties.to_read(client) for client in clients]


@router.post("", response_model=PartyRead, status_code=201)
async def create_client(
    payload: PartyIn,
    user: UserHandle = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> PartyRead:
    return parties.to_read(await parties.save_client(ctx, user.uid, payload))


@router.get("/{client_id}", response_model=PartyRead)
async def get_client(
    client_id: str,
    user: UserHandle = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> PartyRead:
    return parties.to_read(await parties.get_client(ctx, user.uid, client_id))


@router.put("/{client_id}", response_model=PartyRead)
async def update_client(
    client_id: str,
    payload: PartyIn,
    user: UserHandle = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> PartyRead:
    return parties.to_read(await parties.save_client(ctx, user.uid, payload, client_id=client_id))


@router.delete("/{client_id}", status_code=204)
async def delete_client(
    client_id: str,
    user: UserHandle = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> Response:
    await parties.delete_client(ctx, user.uid, client_id)
    return Response(status_code=204)


@router.get("/{client_id}/invoices", response_model=list[Invoice])
async def client_history(
    client_id: str,
    user: UserHandle = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> list[Invoice]:
    await parties.get_client(ctx, user.uid, client_id)
    return await invoice_service.list_invoices(ctx, user.uid, client_id=client_id)
