"""Per-user settings endpoints: issuers and the active issuer."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..context import AppContext
from ..schemas import IssuerIn, PartyRead, SettingsRead, UserSettings
from ..security import get_context, get_current_user
from ..services import issuers
from ..services.auth import UserHandle
from ..services.parties import to_read

router = APIRouter(prefix="/settings", tags=["settings"])


def _settings_read(settings: UserSettings) -> SettingsRead:
    active = settings.active_issuer()
    return SettingsRead(
        issuers=[to_read(issuer) for issuer in settings.issuers],
        active_issuer_id=active.id if active else None,
        year_counter=settings.year_counter,
        default_currency=settings.default_currency,
    )


@router.get("", response_model=SettingsRead)
async def read_settings(
    user: UserHandle = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> SettingsRead:
    return _settings_read(await issuers.load_settings(ctx, user.uid))


@router.post("/issuers", response_model=PartyRead, status_code=201)
async def add_issuer(
    payload: IssuerIn,
    user: UserHandle = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> PartyRead:
    return to_read(await issuers.add_issuer(ctx, user.uid, payload))


@router.put("/issuers/{issuer_id}", response_model=PartyRead)
async def update_issuer(
    issuer_id: str,
    payload: IssuerIn,
    user: UserHandle = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> PartyRead:
    return to_read(await issuers.update_issuer(ctx, user.uid, issuer_id, payload))


@router.delete("/issuers/{issuer_id}", response_model=SettingsRead)
async def remove_issuer(
    issuer_id: str,
    user: UserHandle = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> SettingsRead:
    return _settings_read(await issuers.remove_issuer(ctx, user.uid, issuer_id))


@router.put("/active-issuer/{issuer_id}", response_model=SettingsRead)
async def set_active_issuer(
    issuer_id: str,
    user: UserHandle = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> SettingsRead:
    return _settings_read(await issuers.set_active_issuer(ctx, user.uid, issuer_id))
