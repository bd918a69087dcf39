"""Request-level security: hardened headers and bearer-token authentication."""
from __future__ import annotations

from typing import Awaitable, Callable, Optional

from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

from .context import AppContext
from .errors import AuthError
from .i18n import normalise_language
from .services.auth import UserHandle

_bearer = HTTPBearer(auto_error=False)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add hardened security headers to every response."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        content_security_policy: str,
        referrer_policy: str,
        permissions_policy: str,
        strict_transport_security: str | None,
    ) -> None:
        super().__init__(app)
        self._content_security_policy = content_security_policy
        self._referrer_policy = referrer_policy
        self._permissions_policy = permissions_policy
        self._strict_transport_security = strict_transport_security

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        response: Response = await call_next(request)
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", self._referrer_policy)
        response.headers.setdefault("Permissions-Policy", self._permissions_policy)
        response.headers.setdefault("Cache-Control", "no-store")
        if self._content_security_policy:
            response.headers.setdefault("Content-Security-Policy", self._content_security_policy)
        if self._strict_transport_security and _is_https_request(request):
            response.headers.setdefault("Strict-Transport-Security", self._strict_transport_security)
        return response


def _is_https_request(request: Request) -> bool:
    if request.url.scheme.lower() == "https":
        return True
    forwarded_proto = request.headers.get("x-forwarded-proto", "")
    return forwarded_proto.split(",", 1)[0].strip().lower() == "https"


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_language(accept_language: Optional[str] = Header(default=None)) -> str:
    return normalise_language(accept_language)


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    language: str = Depends(get_language),
) -> str:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthError("invalid-token", language)
    return credentials.credentials


def get_current_user(
    token: str = Depends(get_bearer_token),
    ctx: AppContext = Depends(get_context),
    language: str = Depends(get_language),
) -> UserHandle:
    return ctx.auth.resolve(token, language)
