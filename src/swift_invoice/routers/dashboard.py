"""Dashboard endpoint."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..context import AppContext
from ..schemas import DashboardSummary
from ..security import get_context, get_current_user
from ..services.auth import UserHandle
from ..services.dashboard import summarize

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("", response_model=DashboardSummary)
async def dashboard(
    user: UserHandle = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> DashboardSummary:
    return await summarize(ctx, user.uid)
