"""Per-user settings singleton: issuers and the active issuer."""
from __future__ import annotations

from typing import Callable, Optional

from ..errors import NotFoundError
from ..interfaces.documents import Transaction, document_path
from ..models import Collection
from ..schemas import Issuer, IssuerIn, UserSettings


def _path(owner_uid: str) -> str:
    return document_path(Collection.SETTINGS.value, owner_uid)


async def load_settings(ctx, owner_uid: str) -> UserSettings:
    document = await ctx.store.get_document(_path(owner_uid))
    if document is None:
        return UserSettings(owner_uid=owner_uid, default_currency=ctx.settings.default_currency)
    return UserSettings.model_validate(document)


async def _mutate(ctx, owner_uid: str, change: Callable[[UserSettings], None]) -> UserSettings:
    """Apply ``change`` to the issuer list inside a transaction.

    Only the issuer fields are written back, so a concurrent number
    reservation on the same document is never overwritten.
    """

    async def run(transaction: Transaction) -> UserSettings:
        document = await transaction.get(_path(owner_uid))
        if document is None:
            current = UserSettings(owner_uid=owner_uid, default_currency=ctx.settings.default_currency)
        else:
            current = UserSettings.model_validate(document)
        change(current)
        serialized = current.to_document()
        transaction.set(
            _path(owner_uid),
            {
                "ownerUid": owner_uid,
                "issuers": serialized["issuers"],
                "activeIssuerId": serialized["activeIssuerId"],
                "defaultCurrency": serialized["defaultCurrency"],
            },
            merge=True,
        )
        return current

    return await ctx.store.run_transaction(run)


def _find(settings: UserSettings, issuer_id: str) -> Issuer:
    for issuer in settings.issuers:
        if issuer.id == issuer_id:
            return issuer
    raise NotFoundError("issuers", issuer_id)


async def add_issuer(ctx, owner_uid: str, payload: IssuerIn) -> Issuer:
    issuer = Issuer(**payload.model_dump())

    def change(settings: UserSettings) -> None:
        settings.issuers.append(issuer)
        if settings.active_issuer_id is None:
            settings.active_issuer_id = issuer.id

    await _mutate(ctx, owner_uid, change)
    return issuer


async def update_issuer(ctx, owner_uid: str, issuer_id: str, payload: IssuerIn) -> Issuer:
    updated = Issuer(id=issuer_id, **payload.model_dump())

    def change(settings: UserSettings) -> None:
        existing = _find(settings, issuer_id)
        settings.issuers[settings.issuers.index(existing)] = updated

    await _mutate(ctx, owner_uid, change)
    return updated


async def remove_issuer(ctx, owner_uid: str, issuer_id: str) -> UserSettings:
    def change(settings: UserSettings) -> None:
        settings.issuers.remove(_find(settings, issuer_id))
        if settings.active_issuer_id == issuer_id:
            settings.active_issuer_id = settings.issuers[0].id if settings.issuers else None

    return await _mutate(ctx, owner_uid, change)


async def set_active_issuer(ctx, owner_uid: str, issuer_id: str) -> UserSettings:
    def change(settings: UserSettings) -> None:
        settings.active_issuer_id = _find(settings, issuer_id).id

    return await _mutate(ctx, owner_uid, change)


async def resolve_issuer(ctx, owner_uid: str, issuer_id: Optional[str] = None) -> Optional[Issuer]:
    settings = await load_settings(ctx, owner_uid)
    if issuer_id:
        return _find(settings, issuer_id)
    return settings.active_issuer()
