"""Pydantic schemas for stored documents and API payloads.

Documents are persisted with camelCase keys (``clientId``, ``unitCost``,
``vatRate`` ...); Python code works with the snake_case attribute names.
"""
from __future__ import annotations

import datetime as dt
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .models import InvoiceStatus, InvoiceType, Language


def new_id() -> str:
    return uuid4().hex


class Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Address(Document):
    street: str = ""
    city: str = ""
    zip: str = ""
    country: str = ""

    def is_complete(self) -> bool:
        return all(value.strip() for value in (self.street, self.city, self.zip, self.country))


class Party(Document):
    name: str = ""
    tax_id: str = ""
    address: Address = Field(default_factory=Address)
    email: str = ""


class Client(Party):
    id: str = Field(default_factory=new_id)
    owner_uid: Optional[str] = None
    updated_at: Optional[dt.datetime] = None


class Issuer(Party):
    id: str = Field(default_factory=new_id)
    alias: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.alias or self.name


class LineItem(Document):
    id: str = Field(default_factory=new_id)
    description: str = ""
    quantity: float = 1
    unit_cost: float = 0
    amount: float = 0


class Invoice(Document):
    id: str = Field(default_factory=new_id)
    owner_uid: Optional[str] = None
    number: str = ""
    number_provisional: bool = False
    issuer: Party = Field(default_factory=Party)
    recipient: Party = Field(default_factory=Party)
    client_id: str = ""
    template_id: Optional[str] = None
    date: dt.date
    due_date: dt.date
    status: InvoiceStatus = InvoiceStatus.DRAFT
    lang: Language = Language.ES
    items: list[LineItem] = Field(default_factory=list)
    subtotal: float = 0
    vat_rate: float = 0
    vat_amount: float = 0
    irpf_rate: float = 0
    irpf_amount: float = 0
    total: float = 0
    is_recurring: bool = False
    notes: Optional[str] = None
    updated_at: Optional[dt.datetime] = None


class TemplateItem(Document):
    description: str = ""
    quantity: float = 1
    unit_cost: float = 0
    amount: float = 0


class Template(Document):
    id: str = Field(default_factory=new_id)
    owner_uid: Optional[str] = None
    name: str
    type: InvoiceType = InvoiceType.SERVICE
    lang: Language = Language.ES
    issuer: Optional[Party] = None
    recipient: Optional[Party] = None
    client_id: Optional[str] = None
    default_items: list[TemplateItem] = Field(default_factory=list)
    vat_rate: float = 21
    irpf_rate: float = 15
    is_recurring: bool = False
    notes: Optional[str] = None
    updated_at: Optional[dt.datetime] = None


class UserSettings(Document):
    owner_uid: Optional[str] = None
    issuers: list[Issuer] = Field(default_factory=list)
    active_issuer_id: Optional[str] = None
    year_counter: dict[str, int] = Field(default_factory=dict)
    default_currency: str = "EUR"

    def active_issuer(self) -> Optional[Issuer]:
        for issuer in self.issuers:
            if issuer.id == self.active_issuer_id:
                return issuer
        return self.issuers[0] if self.issuers else None


# API payloads


class LineItemIn(Document):
    description: str = ""
    quantity: float = Field(default=1, ge=0)
    unit_cost: float = 0


class InvoiceCreate(Document):
    client_id: Optional[str] = None
    issuer_id: Optional[str] = None
    template_id: Optional[str] = None
    date: Optional[dt.date] = None
    lang: Optional[Language] = None


class InvoiceUpdate(Document):
    issuer: Optional[Party] = None
    recipient: Optional[Party] = None
    client_id: Optional[str] = None
    date: Optional[dt.date] = None
    due_date: Optional[dt.date] = None
    lang: Optional[Language] = None
    items: Optional[list[LineItemIn]] = None
    vat_rate: Optional[float] = Field(default=None, ge=0, le=100)
    irpf_rate: Optional[float] = Field(default=None, ge=0, le=100)
    status: Optional[InvoiceStatus] = None
    is_recurring: Optional[bool] = None
    notes: Optional[str] = None


class StatusChange(Document):
    status: InvoiceStatus


class PartyIn(Document):
    name: str
    tax_id: str = ""
    address: Address = Field(default_factory=Address)
    email: str = ""

    @field_validator("name")
    @classmethod
    def _name_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name must not be blank")
        return value.strip()


class IssuerIn(PartyIn):
    alias: Optional[str] = None


class PartyRead(Party):
    id: str
    tax_id_valid: bool
    alias: Optional[str] = None


class TemplateIn(Document):
    name: str
    type: InvoiceType = InvoiceType.SERVICE
    lang: Language = Language.ES
    issuer: Optional[Party] = None
    recipient: Optional[Party] = None
    client_id: Optional[str] = None
    default_items: list[LineItemIn] = Field(default_factory=list)
    vat_rate: float = Field(default=21, ge=0, le=100)
    irpf_rate: float = Field(default=15, ge=0, le=100)
    is_recurring: bool = False
    notes: Optional[str] = None


class TemplateApply(Document):
    client_id: Optional[str] = None
    date: Optional[dt.date] = None


class DashboardSummary(Document):
    billed_this_month: float
    pending: float
    paid: float
    overdue: float
    overdue_count: int
    recent: list[Invoice]


class SignUpRequest(Document):
    email: str
    password: str
    display_name: Optional[str] = None
    language: Language = Language.ES


class Credentials(Document):
    email: str
    password: str


class PasswordResetRequest(Document):
    email: str


class PasswordResetConfirm(Document):
    token: str
    new_password: str


class AuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    uid: str


class UserRead(Document):
    uid: str
    email: str
    display_name: Optional[str] = None
    language: Language


class SettingsRead(Document):
    issuers: list[PartyRead]
    active_issuer_id: Optional[str] = None
    year_counter: dict[str, int] = Field(default_factory=dict)
    default_currency: str = "EUR"
