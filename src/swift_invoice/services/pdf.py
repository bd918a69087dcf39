"""Printable invoice renderer."""
from __future__ import annotations

import io
from dataclasses import dataclass

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from ..i18n import labels
from ..models import InvoiceStatus
from ..schemas import Invoice, Party

DOCUMENT_LANG = {"ES": "es-ES", "EN": "en-GB"}


@dataclass
class PDFDocument:
    filename: str
    content: bytes


def _money(value: float, currency: str) -> str:
    return f"{value:,.2f} {currency}"


def _party_lines(party: Party) -> list[str]:
    address = party.address
    lines = [
        address.street,
        f"{address.zip} {address.city}".strip(),
        address.country,
        party.tax_id,
        party.email,
    ]
    return [line for line in lines if line]


def _apply_metadata(pdf: canvas.Canvas, invoice: Invoice) -> None:
    t = labels(invoice.lang.value)
    doc = pdf._doc  # type: ignore[attr-defined]
    doc.setLang(DOCUMENT_LANG.get(invoice.lang.value, "es-ES"))
    pdf.setTitle(f"{t['invoice']} {invoice.number}")
    pdf.setAuthor(invoice.issuer.name)
    pdf.setSubject(f"{t['invoice']} {invoice.number}")
    pdf.setCreator("SwiftInvoice")


def _draw_header(pdf: canvas.Canvas, invoice: Invoice) -> None:
    t = labels(invoice.lang.value)
    _, height = A4
    pdf.setFont("Helvetica-Bold", 20)
    pdf.drawString(20 * mm, height - 25 * mm, t["invoice"].upper())
    pdf.setFont("Helvetica", 10)
    pdf.drawString(20 * mm, height - 33 * mm, f"{t['number']}: {invoice.number}")
    pdf.drawString(20 * mm, height - 38 * mm, f"{t['date']}: {invoice.date.isoformat()}")
    pdf.drawString(20 * mm, height - 43 * mm, f"{t['dueDate']}: {invoice.due_date.isoformat()}")

    status_label = t["paid"] if invoice.status == InvoiceStatus.PAID else t["pending"]
    pdf.setFont("Helvetica-Bold", 9)
    pdf.drawRightString(190 * mm, height - 25 * mm, f"{t['status']}: {status_label}")

    for x, title, party in (
        (20 * mm, t["issuer"], invoice.issuer),
        (110 * mm, t["recipient"], invoice.recipient),
    ):
        y = height - 58 * mm
        pdf.setFont("Helvetica-Bold", 9)
        pdf.drawString(x, y, title.upper())
        y -= 5 * mm
        pdf.setFont("Helvetica-Bold", 10)
        pdf.drawString(x, y, party.name)
        pdf.setFont("Helvetica", 10)
        for line in _party_lines(party):
            y -= 5 * mm
            pdf.drawString(x, y, line)


def _draw_items(pdf: canvas.Canvas, invoice: Invoice, currency: str) -> float:
    t = labels(invoice.lang.value)
    _, height = A4
    y = height - 105 * mm
    pdf.setFont("Helvetica-Bold", 10)
    pdf.drawString(20 * mm, y, t["description"])
    pdf.drawRightString(130 * mm, y, t["unitCost"])
    pdf.drawRightString(155 * mm, y, t["quantity"])
    pdf.drawRightString(190 * mm, y, t["amount"])
    pdf.line(20 * mm, y - 2 * mm, 190 * mm, y - 2 * mm)
    pdf.setFont("Helvetica", 10)
    y -= 8 * mm
    for item in invoice.items:
        if y < 60 * mm:
            pdf.showPage()
            pdf.setFont("Helvetica", 10)
            y = height - 25 * mm
        pdf.drawString(20 * mm, y, item.description[:60])
        pdf.drawRightString(130 * mm, y, _money(item.unit_cost, currency))
        pdf.drawRightString(155 * mm, y, f"{item.quantity:g}")
        pdf.drawRightString(190 * mm, y, _money(item.amount, currency))
        y -= 6 * mm

    y -= 4 * mm
    rows = [
        (t["subtotal"], invoice.subtotal),
        (f"{t['vat']} ({invoice.vat_rate:g}%)", invoice.vat_amount),
    ]
    if invoice.irpf_rate:
        rows.append((f"{t['irpf']} ({invoice.irpf_rate:g}%)", -invoice.irpf_amount))
    for label, value in rows:
        pdf.drawRightString(155 * mm, y, label)
        pdf.drawRightString(190 * mm, y, _money(value, currency))
        y -= 5 * mm
    pdf.setFont("Helvetica-Bold", 12)
    pdf.drawRightString(155 * mm, y - 2 * mm, t["total"])
    pdf.drawRightString(190 * mm, y - 2 * mm, _money(invoice.total, currency))
    return y - 12 * mm


def _draw_footer(pdf: canvas.Canvas, invoice: Invoice, y: float) -> None:
    if invoice.notes:
        text = pdf.beginText(20 * mm, y)
        text.setFont("Helvetica", 9)
        for line in invoice.notes.splitlines():
            text.textLine(line)
        pdf.drawText(text)
    if invoice.status == InvoiceStatus.PAID:
        pdf.saveState()
        pdf.setFillColor(colors.green)
        pdf.setFont("Helvetica-Bold", 36)
        pdf.translate(105 * mm, 150 * mm)
        pdf.rotate(20)
        pdf.drawCentredString(0, 0, labels(invoice.lang.value)["paid"])
        pdf.restoreState()


def generate_pdf(invoice: Invoice, currency: str = "EUR") -> PDFDocument:
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4, pageCompression=1)
    _apply_metadata(pdf, invoice)
    _draw_header(pdf, invoice)
    y = _draw_items(pdf, invoice, currency)
    _draw_footer(pdf, invoice, y)
    pdf.showPage()
    pdf.save()
    return PDFDocument(
        filename=f"invoice-{invoice.number}.pdf",
        content=buffer.getvalue(),
    )
