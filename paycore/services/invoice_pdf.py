from __future__ import annotations

import json
import logging
from io import BytesIO

import qrcode
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from paycore.models.invoice import Invoice

logger = logging.getLogger(__name__)


def _qr_png(invoice: Invoice) -> BytesIO:
    """QR code carrying the invoice identity and charged total."""
    payload = {
        "transactionId": invoice.invoice_number,
        "amount": str(invoice.total_amount),
        "currency": invoice.currency.value,
        "customer": invoice.customer.email or invoice.customer.name,
        "date": invoice.issued_at.isoformat() if invoice.issued_at else None,
    }
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=2,
    )
    qr.add_data(json.dumps(payload))
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buffer = BytesIO()
    img.save(buffer, format="PNG")
    buffer.seek(0)
    return buffer


def render_invoice_pdf(invoice: Invoice) -> bytes:
    """Render *invoice* as a one-page A4 PDF (download or email attachment).

    Amounts are printed with the currency code ("INR 84.75") since the
    built-in PDF fonts have no rupee glyph.
    """
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    width, height = A4
    top = height - 50

    c.setFont("Helvetica-Bold", 20)
    c.drawString(40, top, invoice.seller.name)
    c.setFont("Helvetica", 9)
    if invoice.seller.address:
        c.drawString(40, top - 16, invoice.seller.address)
    if invoice.seller.gstin:
        c.drawString(40, top - 28, f"GSTIN: {invoice.seller.gstin}")
    c.setFont("Helvetica-Bold", 10)
    c.drawRightString(width - 40, top, f"Invoice {invoice.invoice_number}")

    y = top - 70
    c.setFont("Helvetica-Bold", 11)
    c.drawString(40, y, "BILL TO:")
    c.setFont("Helvetica", 11)
    c.drawString(40, y - 16, invoice.customer.name)
    if invoice.customer.email:
        c.drawString(40, y - 32, invoice.customer.email)

    c.setFont("Helvetica", 9)
    issued = invoice.issued_at.strftime("%d/%m/%Y") if invoice.issued_at else "N/A"
    c.drawString(width - 240, y, f"Invoice Date: {issued}")
    c.drawString(width - 240, y - 14, f"Status: {invoice.status.value.upper()}")
    c.drawString(width - 240, y - 28, f"Billing Cycle: {invoice.billing_cycle.value}")
    if invoice.service_period_end:
        c.drawString(width - 240, y - 42, f"Service Until: {invoice.service_period_end.strftime('%d/%m/%Y')}")

    y -= 80
    c.setFont("Helvetica-Bold", 10)
    c.drawString(40, y, "DESCRIPTION")
    c.drawString(330, y, "QTY")
    c.drawString(380, y, "PRICE")
    c.drawString(470, y, "AMOUNT")
    c.line(40, y - 6, width - 40, y - 6)

    c.setFont("Helvetica", 10)
    for item in invoice.line_items:
        y -= 22
        c.drawString(40, y, item.description)
        c.drawString(335, y, str(item.quantity))
        c.drawString(380, y, invoice.money(item.unit_price).format_code())
        c.drawString(470, y, invoice.money(item.amount).format_code())

    y -= 40
    c.drawString(380, y, "Subtotal:")
    c.drawString(470, y, invoice.money(invoice.base_amount).format_code())
    c.drawString(380, y - 16, f"{invoice.tax_label}:")
    c.drawString(470, y - 16, invoice.money(invoice.tax_amount).format_code())
    c.setFont("Helvetica-Bold", 12)
    c.drawString(380, y - 36, "Total:")
    c.drawString(470, y - 36, invoice.money(invoice.total_amount).format_code())

    c.drawImage(ImageReader(_qr_png(invoice)), 40, y - 60, width=90, height=90)
    c.setFont("Helvetica", 8)
    c.drawString(40, 40, f"{invoice.tax_label} is included in the total amount.")

    c.showPage()
    c.save()
    logger.info("Rendered invoice PDF %s", invoice.invoice_number)
    return buffer.getvalue()
