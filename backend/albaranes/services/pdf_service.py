# Overview: Delivery note PDF rendering with reportlab.

from __future__ import annotations

import io
from datetime import datetime

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from ..validation import RenderOrStoreError
from albaranes.time_utils import to_utc_z


class RenderError(RenderOrStoreError):
    """Raised when a delivery note PDF cannot be produced."""
    pass


PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN = 18 * mm

TITLE_FONT = "Helvetica-Bold"
BODY_FONT = "Helvetica"

# Item table columns: (header, x offset from margin, right aligned)
COLUMNS = (
    ("Description", 0, False),
    ("Quantity", 100 * mm, True),
    ("Unit", 125 * mm, True),
    ("Price", 150 * mm, True),
    ("Amount", 174 * mm, True),
)


class _Page:
    """Cursor over a reportlab canvas that starts a new page when it runs out of room."""

    def __init__(self, pdf: canvas.Canvas):
        self.pdf = pdf
        self.y = PAGE_HEIGHT - MARGIN

    def ensure(self, height: float) -> None:
        if self.y - height < MARGIN:
            self.pdf.showPage()
            self.y = PAGE_HEIGHT - MARGIN

    def line(self, text: str, *, font: str = BODY_FONT, size: int = 11, gap: float = 6 * mm) -> None:
        self.ensure(gap)
        self.pdf.setFont(font, size)
        self.pdf.drawString(MARGIN, self.y, text)
        self.y -= gap

    def heading(self, text: str) -> None:
        self.y -= 2 * mm
        self.line(text, font=TITLE_FONT, size=13, gap=8 * mm)


def _fmt(value) -> str:
    if value is None:
        return "-"
    return f"{value:.2f}"


def _draw_items(page: _Page, items) -> None:
    pdf = page.pdf
    page.ensure(8 * mm)
    pdf.setFont(TITLE_FONT, 10)
    for header, x, right in COLUMNS:
        if right:
            pdf.drawRightString(MARGIN + x, page.y, header)
        else:
            pdf.drawString(MARGIN + x, page.y, header)
    page.y -= 7 * mm

    if not items:
        page.line("No items in this delivery note", size=10)
        return

    try:
        pdf.setFont(BODY_FONT, 10)
        for item in items:
            page.ensure(6 * mm)
            pdf.drawString(MARGIN, page.y, str(item.description)[:60])
            pdf.drawRightString(MARGIN + COLUMNS[1][1], page.y, _fmt(item.quantity))
            pdf.drawRightString(MARGIN + COLUMNS[2][1], page.y, str(item.unit))
            pdf.drawRightString(MARGIN + COLUMNS[3][1], page.y, _fmt(item.unit_price))
            pdf.drawRightString(MARGIN + COLUMNS[4][1], page.y, _fmt(item.amount))
            page.y -= 6 * mm
    except (TypeError, ValueError, AttributeError):
        page.line("Error processing items", size=10)


def _draw_signature(page: _Page, signature_image: bytes | None, signed_by: str | None,
                    signed_at: datetime | None) -> None:
    page.heading("Client signature")
    if signature_image is None:
        page.line("Space reserved for signature")
        page.y -= 25 * mm
        return

    page.ensure(35 * mm)
    try:
        page.pdf.drawImage(
            ImageReader(io.BytesIO(signature_image)),
            MARGIN,
            page.y - 30 * mm,
            width=60 * mm,
            height=30 * mm,
            preserveAspectRatio=True,
            mask="auto",
        )
        page.y -= 34 * mm
    except Exception:
        page.line("Error loading signature image")

    page.line(f"Signed by: {signed_by or 'Not specified'}")
    if signed_at is not None:
        page.line(f"Signed at: {to_utc_z(signed_at)}", size=10)


def render_delivery_note(note, project, client, signature_image: bytes | None = None,
                         signed_by: str | None = None, signed_at: datetime | None = None) -> bytes:
    """
    Render a delivery note to PDF bytes.

    With signature_image the signature block shows the image, the signer
    name and signed_at; without it the block is left blank for signing.

    Raises:
        RenderError: If note, project or client is missing, or drawing fails
    """
    if note is None or project is None or client is None:
        raise RenderError("Delivery note, project and client are required to render a PDF")

    buffer = io.BytesIO()
    try:
        pdf = canvas.Canvas(buffer, pagesize=A4)
        pdf.setTitle(f"Delivery note {note.number or ''}".strip())
        page = _Page(pdf)

        pdf.setFont(TITLE_FONT, 18)
        pdf.drawCentredString(PAGE_WIDTH / 2, page.y, "DELIVERY NOTE")
        page.y -= 12 * mm

        page.heading("Delivery note")
        page.line(f"Number: {note.number or 'Unnumbered'}")
        page.line(f"Date: {note.date.strftime('%Y-%m-%d') if note.date else '-'}")
        page.line(f"Project: {project.name}")

        page.heading("Client")
        page.line(f"Name: {client.name}")
        page.line(f"Tax id: {client.cif or 'Not specified'}")
        if client.contact_name:
            page.line(f"Contact: {client.contact_name}")
        if client.email:
            page.line(f"Email: {client.email}")
        if client.phone:
            page.line(f"Phone: {client.phone}")
        address = client.address_line()
        if address:
            page.line(f"Address: {address}")

        page.heading("Items")
        _draw_items(page, list(note.items or []))

        page.y -= 2 * mm
        page.line(f"Total: {_fmt(note.total)}", font=TITLE_FONT, size=12)

        if note.notes:
            page.heading("Notes")
            for text_line in note.notes.splitlines():
                page.line(text_line, size=10, gap=5 * mm)

        _draw_signature(page, signature_image, signed_by, signed_at)

        pdf.save()
    except RenderError:
        raise
    except Exception as exc:
        raise RenderError(f"Could not render delivery note {note.number}: {exc}") from exc

    return buffer.getvalue()
