"""Account endpoints: sign-up, sign-in, sign-out and password reset."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from ..context import AppContext
from ..schemas import (
    AuthResponse,
    Credentials,
    PasswordResetConfirm,
    PasswordResetRequest,
    SignUpRequest,
    UserRead,
)
from ..security import get_bearer_token, get_context, get_current_user, get_language
from ..services.auth import UserHandle

router = APIRouter(prefix="/auth", tags=["auth"])


def _user_read(user: UserHandle) -> UserRead:
    return UserRead(uid=user.uid, email=user.email, display_name=user.display_name, language=user.language)


@router.post("/signup", response_model=AuthResponse, status_code=201)
def sign_up(payload: SignUpRequest, ctx: AppContext = Depends(get_context)) -> AuthResponse:
    user = ctx.auth.sign_up(payload)
    return AuthResponse(access_token=ctx.auth.issue_token(user), uid=user.uid)


@router.post("/login", response_model=AuthResponse)
def login(
    payload: Credentials,
    ctx: AppContext = Depends(get_context),
    language: str = Depends(get_language),
) -> AuthResponse:
    user = ctx.auth.authenticate(payload, language)
    return AuthResponse(access_token=ctx.auth.issue_token(user), uid=user.uid)


@router.post("/logout", status_code=204)
async def logout(
    token: str = Depends(get_bearer_token),
    ctx: AppContext = Depends(get_context),
) -> Response:
    ctx.auth.sign_out(token)
    return Response(status_code=204)


@router.get("/me", response_model=UserRead)
def me(user: UserHandle = Depends(get_current_user)) -> UserRead:
    return _user_read(user)


@router.post("/password-reset", status_code=202)
def request_password_reset(
    payload: PasswordResetRequest,
    ctx: AppContext = Depends(get_context),
    language: str = Depends(get_language),
) -> dict[str, str]:
    token = ctx.auth.request_password_reset(payload.email, language)
    if ctx.settings.return_reset_tokens:
        return {"status": "requested", "resetToken": token}
    return {"status": "requested"}


@router.post("/password-reset/confirm", status_code=204)
def confirm_password_reset(
    payload: PasswordResetConfirm,
    ctx: AppContext = Depends(get_context),
    language: str = Depends(get_language),
) -> Response:
    ctx.auth.confirm_password_reset(payload.token, payload.new_password, language)
    return Response(status_code=204)
