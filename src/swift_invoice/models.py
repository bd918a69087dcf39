"""Database tables and shared enumerations."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

import pendulum
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class TimestampMixin(SQLModel):
    created_at: datetime = Field(default_factory=lambda: pendulum.now("UTC"))
    updated_at: datetime = Field(default_factory=lambda: pendulum.now("UTC"))

    def touch(self) -> None:
        self.updated_at = pendulum.now("UTC")


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    ISSUED = "ISSUED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class InvoiceType(str, Enum):
    RENT = "RENT"
    CLASS = "CLASS"
    SERVICE = "SERVICE"
    OTHER = "OTHER"


class Language(str, Enum):
    ES = "ES"
    EN = "EN"


class Collection(str, Enum):
    INVOICES = "invoices"
    CLIENTS = "clients"
    TEMPLATES = "templates"
    SETTINGS = "settings"


class DocumentRecord(TimestampMixin, table=True):
    """One JSON document of the document store, addressed by ``collection/id``."""

    __tablename__ = "document"

    path: str = Field(primary_key=True)
    collection: str = Field(index=True)
    owner_uid: Optional[str] = Field(default=None, index=True)
    data: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    version: int = Field(default=1)


class User(TimestampMixin, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    uid: str = Field(index=True, unique=True)
    email: str = Field(index=True, unique=True)
    display_name: Optional[str] = None
    hashed_password: str
    language: Language = Field(default=Language.ES)
    is_active: bool = Field(default=True)
