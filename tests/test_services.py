from __future__ import annotations

import datetime as dt

import pytest

from swift_invoice.errors import NotFoundError, StoreError, ValidationError
from swift_invoice.events import STORE_ERROR, EventBus
from swift_invoice.interfaces.documents import MemoryDocumentStore
from swift_invoice.models import InvoiceStatus, InvoiceType, Language
from swift_invoice.schemas import (
    Address,
    InvoiceCreate,
    InvoiceUpdate,
    IssuerIn,
    LineItemIn,
    Party,
    PartyIn,
    TemplateIn,
)
from swift_invoice.services import dashboard, invoices, issuers, parties, templates

MADRID = Address(street="Calle Mayor 1", city="Madrid", zip="28013", country="España")


async def _issuer(ctx, uid, name="Ana García", **extra):
    return await issuers.add_issuer(ctx, uid, IssuerIn(name=name, tax_id="12345678Z", address=MADRID, **extra))


async def _client(ctx, uid, name="Academia Norte", address=MADRID):
    return await parties.save_client(ctx, uid, PartyIn(name=name, tax_id="B58378431", address=address))


@pytest.mark.asyncio
async def test_first_issuer_becomes_active(ctx, owner_uid):
    first = await _issuer(ctx, owner_uid, alias="Clases")
    second = await _issuer(ctx, owner_uid, name="Ana García Alquileres")

    settings = await issuers.load_settings(ctx, owner_uid)
    assert settings.active_issuer_id == first.id
    assert [issuer.id for issuer in settings.issuers] == [first.id, second.id]

    settings = await issuers.set_active_issuer(ctx, owner_uid, second.id)
    assert settings.active_issuer().id == second.id

    settings = await issuers.remove_issuer(ctx, owner_uid, second.id)
    assert settings.active_issuer_id == first.id


@pytest.mark.asyncio
async def test_issuer_changes_keep_the_year_counter(ctx, owner_uid):
    issuer = await _issuer(ctx, owner_uid)
    await invoices.create_invoice(ctx, owner_uid, InvoiceCreate(date=dt.date(2025, 2, 1)))

    await issuers.update_issuer(ctx, owner_uid, issuer.id, IssuerIn(name="Ana G.", address=MADRID))

    settings = await issuers.load_settings(ctx, owner_uid)
    assert settings.year_counter == {"2025": 1}
    assert settings.issuers[0].name == "Ana G."


@pytest.mark.asyncio
async def test_unknown_issuer(ctx, owner_uid):
    with pytest.raises(NotFoundError):
        await issuers.set_active_issuer(ctx, owner_uid, "missing")


def test_blank_party_name_is_rejected():
    with pytest.raises(ValueError):
        PartyIn(name="   ")


@pytest.mark.asyncio
async def test_clients_are_private_to_their_owner(ctx, owner_uid):
    client = await _client(ctx, owner_uid)

    assert (await parties.get_client(ctx, owner_uid, client.id)).name == "Academia Norte"
    with pytest.raises(NotFoundError):
        await parties.get_client(ctx, "intruder", client.id)
    assert parties.to_read(client).tax_id_valid is True


@pytest.mark.asyncio
async def test_invoice_from_active_issuer_and_client(ctx, owner_uid):
    await _issuer(ctx, owner_uid)
    client = await _client(ctx, owner_uid)

    invoice = await invoices.create_invoice(
        ctx, owner_uid, InvoiceCreate(client_id=client.id, date=dt.date(2025, 3, 1))
    )

    assert invoice.number == "20250001"
    assert invoice.number_provisional is False
    assert invoice.status == InvoiceStatus.DRAFT
    assert invoice.issuer.name == "Ana García"
    assert invoice.recipient.name == "Academia Norte"
    assert invoice.due_date == dt.date(2025, 3, 31)
    assert invoice.vat_rate == 21
    assert invoice.irpf_rate == 15
    assert invoice.lang == Language.ES


@pytest.mark.asyncio
async def test_snapshots_do_not_follow_client_edits(ctx, owner_uid):
    client = await _client(ctx, owner_uid)
    invoice = await invoices.create_invoice(ctx, owner_uid, InvoiceCreate(client_id=client.id))

    await parties.save_client(ctx, owner_uid, PartyIn(name="Academia Sur", address=MADRID), client_id=client.id)

    stored = await invoices.get_invoice(ctx, owner_uid, invoice.id)
    assert stored.recipient.name == "Academia Norte"


@pytest.mark.asyncio
async def test_update_recomputes_totals_and_guards_status(ctx, owner_uid):
    await _issuer(ctx, owner_uid)
    client = await _client(ctx, owner_uid, address=Address(street="Av. Sol 3", city="Sevilla", country="España"))
    invoice = await invoices.create_invoice(ctx, owner_uid, InvoiceCreate(client_id=client.id))

    updated = await invoices.update_invoice(
        ctx,
        owner_uid,
        invoice.id,
        InvoiceUpdate(items=[LineItemIn(description="Clase", quantity=2, unit_cost=100)], status=InvoiceStatus.ISSUED),
    )

    assert updated.total == pytest.approx(212)
    assert updated.status == InvoiceStatus.DRAFT


@pytest.mark.asyncio
async def test_status_change_with_complete_addresses(ctx, owner_uid):
    await _issuer(ctx, owner_uid)
    client = await _client(ctx, owner_uid)
    invoice = await invoices.create_invoice(ctx, owner_uid, InvoiceCreate(client_id=client.id))

    paid = await invoices.set_status(ctx, owner_uid, invoice.id, InvoiceStatus.PAID)

    assert paid.status == InvoiceStatus.PAID
    listed = await invoices.list_invoices(ctx, owner_uid, status=InvoiceStatus.PAID)
    assert [item.id for item in listed] == [invoice.id]


@pytest.mark.asyncio
async def test_due_date_before_billing_date_is_rejected(ctx, owner_uid):
    invoice = await invoices.create_invoice(ctx, owner_uid, InvoiceCreate(date=dt.date(2025, 3, 1)))

    with pytest.raises(ValidationError):
        await invoices.update_invoice(ctx, owner_uid, invoice.id, InvoiceUpdate(due_date=dt.date(2025, 2, 1)))


@pytest.mark.asyncio
async def test_delete_invoice(ctx, owner_uid):
    invoice = await invoices.create_invoice(ctx, owner_uid, InvoiceCreate())

    await invoices.delete_invoice(ctx, owner_uid, invoice.id)

    assert await invoices.list_invoices(ctx, owner_uid) == []
    with pytest.raises(NotFoundError):
        await invoices.get_invoice(ctx, owner_uid, invoice.id)


@pytest.mark.asyncio
async def test_template_prefills_a_draft(ctx, owner_uid):
    await _issuer(ctx, owner_uid)
    client = await _client(ctx, owner_uid)
    template = await templates.save_template(
        ctx,
        owner_uid,
        TemplateIn(
            name="Alquiler mensual",
            type=InvoiceType.RENT,
            lang=Language.EN,
            client_id=client.id,
            default_items=[LineItemIn(description="Rent", quantity=1, unit_cost=800)],
            vat_rate=0,
            irpf_rate=19,
            is_recurring=True,
        ),
    )
    assert template.default_items[0].amount == 800

    invoice = await invoices.create_invoice(
        ctx, owner_uid, InvoiceCreate(template_id=template.id, date=dt.date(2025, 7, 1))
    )

    assert invoice.template_id == template.id
    assert invoice.client_id == client.id
    assert invoice.lang == Language.EN
    assert invoice.is_recurring is True
    assert invoice.items[0].description == "Rent"
    assert invoice.total == pytest.approx(800 - 152)
    assert invoice.number == "20250001"


@pytest.mark.asyncio
async def test_template_snapshots_win_over_active_issuer(ctx, owner_uid):
    await _issuer(ctx, owner_uid)
    template = await templates.save_template(
        ctx, owner_uid, TemplateIn(name="Otra marca", issuer=Party(name="Marca B", address=MADRID))
    )

    invoice = invoices.apply_template(template, None, None, dt.date(2025, 1, 1), 30)

    assert invoice.issuer.name == "Marca B"
    assert invoice.status == InvoiceStatus.DRAFT


@pytest.mark.asyncio
async def test_dashboard_summary(ctx, owner_uid):
    await _issuer(ctx, owner_uid)
    client = await _client(ctx, owner_uid)
    items = [LineItemIn(description="Clase", quantity=1, unit_cost=100)]
    march = await invoices.create_invoice(ctx, owner_uid, InvoiceCreate(client_id=client.id, date=dt.date(2025, 3, 3)))
    await invoices.update_invoice(ctx, owner_uid, march.id, InvoiceUpdate(items=items, irpf_rate=0, status=InvoiceStatus.ISSUED))
    january = await invoices.create_invoice(ctx, owner_uid, InvoiceCreate(client_id=client.id, date=dt.date(2025, 1, 3)))
    await invoices.update_invoice(ctx, owner_uid, january.id, InvoiceUpdate(items=items, irpf_rate=0, status=InvoiceStatus.ISSUED))
    paid = await invoices.create_invoice(ctx, owner_uid, InvoiceCreate(client_id=client.id, date=dt.date(2025, 3, 10)))
    await invoices.update_invoice(ctx, owner_uid, paid.id, InvoiceUpdate(items=items, vat_rate=0, irpf_rate=0, status=InvoiceStatus.PAID))
    await invoices.create_invoice(ctx, owner_uid, InvoiceCreate(client_id=client.id, date=dt.date(2025, 3, 12)))

    summary = await dashboard.summarize(ctx, owner_uid, reference=dt.date(2025, 3, 15))

    assert summary.billed_this_month == pytest.approx(221)
    assert summary.pending == pytest.approx(242)
    assert summary.paid == pytest.approx(100)
    assert summary.overdue == pytest.approx(121)
    assert summary.overdue_count == 1
    assert len(summary.recent) == 4


class FailingWrites(MemoryDocumentStore):
    def __init__(self) -> None:
        super().__init__()
        self.fail = False
        self.queries = 0
        self.attempted: list[str] = []

    async def query(self, collection, filters=(), order_by=None, limit=None):
        self.queries += 1
        return await super().query(collection, filters, order_by, limit)

    async def set_document(self, path, data, merge=False):
        self.attempted.append(path)
        if self.fail:
            raise StoreError("offline", error_code="store-unavailable")
        await super().set_document(path, data, merge)


@pytest.mark.asyncio
async def test_failed_write_reloads_the_list(settings, owner_uid):
    from swift_invoice.context import build_context

    store = FailingWrites()
    ctx = build_context(settings, store=store)
    errors: list[dict] = []
    ctx.events.subscribe(STORE_ERROR, errors.append)
    await _client(ctx, owner_uid)
    await parties.list_clients(ctx, owner_uid)

    store.fail = True
    with pytest.raises(StoreError):
        await _client(ctx, owner_uid, name="Nunca guardado")

    names = [client.name for client in await parties.list_clients(ctx, owner_uid)]
    assert names == ["Academia Norte"]
    assert errors[0]["collection"] == "clients"
    assert store.queries == 2


def test_event_bus_isolates_failing_subscribers(caplog):
    bus = EventBus()
    received: list[str] = []

    def broken(payload):
        raise RuntimeError("boom")

    bus.subscribe("topic", broken)
    unsubscribe = bus.subscribe("topic", received.append)

    assert bus.publish("topic", "hola") == 1
    assert received == ["hola"]
    assert "boom" in caplog.text
    unsubscribe()
    assert bus.subscriber_count("topic") == 1


@pytest.mark.asyncio
async def test_failed_create_is_not_served_afterwards(settings, owner_uid):
    from swift_invoice.context import build_context

    store = FailingWrites()
    ctx = build_context(settings, store=store)
    store.fail = True

    with pytest.raises(StoreError):
        await _client(ctx, owner_uid, name="Nunca guardado")
    ghost_id = store.attempted[-1].split("/", 1)[1]

    with pytest.raises(NotFoundError):
        await parties.get_client(ctx, owner_uid, ghost_id)
    assert await parties.list_clients(ctx, owner_uid) == []
