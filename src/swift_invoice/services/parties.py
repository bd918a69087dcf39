"""Client records, cached per owner."""
from __future__ import annotations

from typing import Optional, Union

from ..errors import NotFoundError
from ..models import Collection
from ..schemas import Client, Issuer, Party, PartyIn, PartyRead
from .recovery import reconciling
from .validators import is_valid_tax_id

CLIENTS = Collection.CLIENTS.value

SNAPSHOT_FIELDS = {"name", "tax_id", "address", "email"}


def snapshot(party: Party) -> Party:
    """Copy the shared party fields so later edits do not leak into invoices."""

    return Party(**party.model_dump(include=SNAPSHOT_FIELDS))


def to_read(party: Union[Client, Issuer]) -> PartyRead:
    return PartyRead(
        id=party.id,
        tax_id_valid=is_valid_tax_id(party.tax_id),
        alias=getattr(party, "alias", None),
        **party.model_dump(include=SNAPSHOT_FIELDS),
    )


async def list_clients(ctx, owner_uid: str, force: bool = False) -> list[Client]:
    documents = await ctx.cache.load_once(CLIENTS, owner_uid, force=force)
    return [Client.model_validate(document) for document in documents]


async def get_client(ctx, owner_uid: str, client_id: str) -> Client:
    document = await ctx.cache.get_by_id(CLIENTS, client_id)
    if document is None or document.get("ownerUid") != owner_uid:
        raise NotFoundError(CLIENTS, client_id)
    return Client.model_validate(document)


async def save_client(ctx, owner_uid: str, payload: PartyIn, client_id: Optional[str] = None) -> Client:
    if client_id is not None:
        await get_client(ctx, owner_uid, client_id)
        client = Client(id=client_id, owner_uid=owner_uid, **payload.model_dump())
    else:
        client = Client(owner_uid=owner_uid, **payload.model_dump())
    async with reconciling(ctx, CLIENTS, owner_uid):
        saved = await ctx.cache.save(CLIENTS, owner_uid, client.to_document())
    return Client.model_validate(saved)


async def delete_client(ctx, owner_uid: str, client_id: str) -> None:
    await get_client(ctx, owner_uid, client_id)
    async with reconciling(ctx, CLIENTS, owner_uid):
        await ctx.cache.delete(CLIENTS, owner_uid, client_id)
