"""Application configuration and feature flags."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Central application configuration with sane defaults."""

    model_config = SettingsConfigDict(env_prefix="SWIFT_INVOICE_", case_sensitive=False)

    database_url: str = Field(
        "sqlite:///./swift_invoice.db",
        description="SQLAlchemy-compatible connection string for the document table.",
    )
    document_backend: Literal["sql", "memory"] = Field(
        "sql",
        description="Document store implementation. 'memory' keeps everything in process.",
    )
    secrets_path: Path = Field(
        Path("storage/secrets"),
        description="Location for the generated token signing key.",
    )
    timezone: str = Field(
        "Europe/Madrid",
        description="Canonical timezone for calendar computations (due dates, dashboard).",
    )
    log_level: str = Field(
        "INFO",
        description="Root logging level.",
    )
    page_size: int = Field(
        100,
        description="Maximum number of documents fetched by a single list query.",
    )
    transaction_max_attempts: int = Field(
        5,
        description="How often a conflicting transaction is retried before giving up.",
    )
    default_currency: str = Field("EUR", description="Currency shown on printed invoices.")
    default_language: Literal["ES", "EN"] = Field("ES", description="Default invoice language.")
    default_vat_rate: float = Field(21.0, description="VAT percentage applied to new invoices.")
    default_irpf_rate: float = Field(15.0, description="IRPF withholding percentage for new invoices.")
    payment_terms_days: int = Field(30, description="Days between billing date and due date.")
    min_password_length: int = Field(6, description="Shortest accepted password.")
    password_hash_rounds: int = Field(12, description="bcrypt cost factor.")
    auth_max_failed_attempts: int = Field(
        5,
        description="Failed sign-ins tolerated per email before throttling kicks in.",
    )
    auth_lockout_seconds: int = Field(
        300,
        description="Length of the throttling window after too many failed sign-ins.",
    )
    access_token_ttl_seconds: int = Field(3600, description="Lifetime of access tokens.")
    reset_token_ttl_seconds: int = Field(1800, description="Lifetime of password reset tokens.")
    return_reset_tokens: bool = Field(
        False,
        description="Return password reset tokens in the API response. No mail delivery exists.",
    )
    allowed_hosts: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: [
            "localhost",
            "127.0.0.1",
            "0.0.0.0",
            "swift-invoice",
            "testserver",
        ],
        description="Whitelisted host headers accepted by the API gateway.",
    )
    allowed_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost",
            "http://localhost:5173",
            "http://127.0.0.1",
            "http://127.0.0.1:5173",
            "https://localhost",
            "https://127.0.0.1",
        ],
        description="Origins allowed to perform CORS requests.",
    )
    expose_docs: bool = Field(
        False,
        description="Expose interactive API documentation endpoints.",
    )
    force_https: bool = Field(
        False,
        description="Redirect all HTTP traffic to HTTPS.",
    )
    hsts_max_age: int = Field(
        63072000,
        description="Strict-Transport-Security max-age in seconds.",
    )
    hsts_include_subdomains: bool = Field(True, description="Append includeSubDomains to the HSTS header.")
    hsts_preload: bool = Field(True, description="Append preload to the HSTS header.")
    content_security_policy: str = Field(
        "default-src 'self'; frame-ancestors 'none'; base-uri 'self'; form-action 'self'",
        description="Content-Security-Policy header value.",
    )
    referrer_policy: str = Field(
        "strict-origin-when-cross-origin",
        description="Referrer-Policy header value.",
    )
    permissions_policy: str = Field(
        "geolocation=(), microphone=(), camera=()",
        description="Permissions-Policy header value.",
    )

    @field_validator("secrets_path", mode="before")
    @classmethod
    def _ensure_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value
        return Path(str(value))

    @field_validator("allowed_hosts", "allowed_origins", mode="before")
    @classmethod
    def _split_comma_separated(cls, value: Any):
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("log_level")
    @classmethod
    def _normalise_level(cls, value: str) -> str:
        return value.upper()


@lru_cache
def get_settings() -> Settings:
    """Return memoized settings instance."""

    settings = Settings()
    settings.secrets_path.mkdir(parents=True, exist_ok=True)
    return settings
