"""FastAPI application wiring for SwiftInvoice."""
from __future__ import annotations

import logging
import sys

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.httpsredirect import HTTPSRedirectMiddleware

from .config import Settings, get_settings
from .context import build_context
from .db import init_db
from .errors import SwiftInvoiceError
from .routers import auth, clients, dashboard, invoices, issuers, templates
from .security import SecurityHeadersMiddleware

settings = get_settings()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=level,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger("passlib").setLevel(logging.ERROR)


configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


def _build_strict_transport_security(config: Settings) -> str | None:
    """Return the Strict-Transport-Security header value if enabled."""

    if config.hsts_max_age <= 0:
        return None
    directives: list[str] = [f"max-age={config.hsts_max_age}"]
    if config.hsts_include_subdomains:
        directives.append("includeSubDomains")
    if config.hsts_preload:
        directives.append("preload")
    return "; ".join(directives)


fastapi_kwargs: dict[str, str | None] = {}
if not settings.expose_docs:
    fastapi_kwargs.update({"docs_url": None, "redoc_url": None, "openapi_url": None})

app = FastAPI(
    title="SwiftInvoice",
    description="Facturación con numeración anual, plantillas y clientes.",
    version="0.1.0",
    **fastapi_kwargs,
)
app.state.context = build_context(settings)

if settings.force_https:
    app.add_middleware(HTTPSRedirectMiddleware)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=[
        "Accept",
        "Accept-Language",
        "Authorization",
        "Content-Type",
        "Origin",
        "X-Requested-With",
    ],
    expose_headers=["Content-Disposition"],
    allow_credentials=False,
    max_age=86400,
)

app.add_middleware(
    SecurityHeadersMiddleware,
    content_security_policy=settings.content_security_policy,
    referrer_policy=settings.referrer_policy,
    permissions_policy=settings.permissions_policy,
    strict_transport_security=_build_strict_transport_security(settings),
)


@app.exception_handler(SwiftInvoiceError)
async def handle_application_error(request: Request, exc: SwiftInvoiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.on_event("startup")
def startup() -> None:
    init_db()
    logger.info("SwiftInvoice started with the %s document backend", settings.document_backend)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(auth.router)
app.include_router(invoices.router)
app.include_router(clients.router)
app.include_router(templates.router)
app.include_router(issuers.router)
app.include_router(dashboard.router)
