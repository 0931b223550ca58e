"""
PDF generation service for invoices.
Uses WeasyPrint to convert the HTML invoice to PDF and stores it in R2.
"""

import io
import logging
from dataclasses import dataclass, field
from datetime import datetime
from html import escape
from typing import Callable, List, Optional

from config import settings
from exceptions import RenderFailed
from r2_client import R2Storage, invoice_pdf_key

logger = logging.getLogger(__name__)


@dataclass
class InvoiceTotals:
    subtotal: float
    tax_amount: float
    grand_total: float


@dataclass
class InvoicePDFData:
    """Everything printed on the invoice, denormalized from invoice, company and client"""
    client_name: str
    client_email: Optional[str]
    company_name: str
    items: List[dict]
    due_date: datetime
    tax: float = 0.0
    total: Optional[float] = None  # Stored total, informational only
    company_address: str = ""
    company_tax_info: str = ""
    company_logo_url: str = ""
    payment_details: str = ""
    issued_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class RenderedInvoice:
    url: str
    pdf_bytes: bytes
    totals: InvoiceTotals


def calculate_invoice_totals(items: list, tax_percent: Optional[float]) -> InvoiceTotals:
    """
    Subtotal over items in the given order, tax as a percentage of it.

    The renderer always prints these numbers, not the invoice's stored total.
    """
    subtotal = 0.0
    for item in items or []:
        subtotal += float(item["qty"]) * float(item["price"])

    tax_amount = subtotal * ((tax_percent or 0) / 100)
    return InvoiceTotals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        grand_total=subtotal + tax_amount
    )


def format_money(amount: float, currency: str) -> str:
    return f"{currency} {amount:,.2f}"


def generate_invoice_html(invoice_id: int, data: InvoicePDFData, currency: str = None) -> str:
    """Generate the HTML document that WeasyPrint turns into the invoice PDF"""
    currency = currency or settings.INVOICE_CURRENCY
    totals = calculate_invoice_totals(data.items, data.tax)
    tax_percent = data.tax or 0

    company_name = escape(data.company_name)
    company_address = escape(data.company_address or "")
    company_tax_info = escape(data.company_tax_info or "")
    client_name = escape(data.client_name)
    client_email = escape(data.client_email or "")

    if data.items:
        rows = ""
        for i, item in enumerate(data.items, start=1):
            amount = float(item["qty"]) * float(item["price"])
            rows += f"""
            <tr>
                <td>{i}</td>
                <td>{escape(str(item.get('description', '')))}</td>
                <td class="num">{item['qty']}</td>
                <td class="num">{format_money(float(item['price']), currency)}</td>
                <td class="num">{format_money(amount, currency)}</td>
            </tr>"""
        items_html = f"""
        <table class="items">
            <thead>
                <tr><th>#</th><th>Description</th><th class="num">Qty</th><th class="num">Price</th><th class="num">Amount</th></tr>
            </thead>
            <tbody>{rows}
            </tbody>
        </table>"""
    else:
        items_html = "<p>No items listed.</p>"

    logo_html = f'<img src="{escape(data.company_logo_url)}" class="logo">' if data.company_logo_url else ""

    payment_html = ""
    if data.payment_details and data.payment_details.strip():
        payment_html = f"""
        <div class="section payment">
            <h3>Payment Details</h3>
            <p>{escape(data.payment_details).replace(chr(10), '<br>')}</p>
        </div>"""

    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <style>
        @page {{ size: A4; margin: 50px; }}
        body {{ font-family: Helvetica, Arial, sans-serif; font-size: 12px; color: #222; }}
        h1 {{ text-align: center; font-size: 22px; margin: 0 0 10px 0; }}
        h3 {{ font-size: 14px; text-decoration: underline; margin: 0 0 5px 0; }}
        .logo {{ max-width: 140px; max-height: 80px; }}
        .section {{ margin-bottom: 18px; }}
        .items {{ width: 100%; border-collapse: collapse; }}
        .items th {{ border-bottom: 2px solid #333; text-align: left; padding: 6px; }}
        .items td {{ border-bottom: 1px solid #ddd; padding: 6px; }}
        .num {{ text-align: right; }}
        .totals div {{ text-align: right; margin: 3px 0; }}
        .grand-total {{ font-size: 14px; font-weight: bold; text-decoration: underline; }}
        .payment {{ page-break-inside: avoid; }}
        .footer {{ text-align: center; font-size: 10px; margin-top: 30px; }}
    </style>
</head>
<body>
    <h1>INVOICE</h1>
    <div class="section">
        <div>Invoice ID: {invoice_id}</div>
        <div>Date: {data.issued_at.strftime('%d %b %Y')}</div>
        <div>Due Date: {data.due_date.strftime('%d %b %Y')}</div>
    </div>

    <div class="section">
        {logo_html}
        <h3>{company_name}</h3>
        {f'<div>Address: {company_address}</div>' if company_address else ''}
        {f'<div>GST: {company_tax_info}</div>' if company_tax_info else ''}
    </div>

    <div class="section">
        <h3>Bill To:</h3>
        <div>Name: {client_name}</div>
        {f'<div>Email: {client_email}</div>' if client_email else ''}
    </div>

    <div class="section">
        <h3>Items:</h3>
        {items_html}
    </div>

    <div class="section totals">
        <div>Subtotal: {format_money(totals.subtotal, currency)}</div>
        <div>Tax ({tax_percent:g}%): {format_money(totals.tax_amount, currency)}</div>
        <div class="grand-total">Total: {format_money(totals.grand_total, currency)}</div>
    </div>
    {payment_html}
    <div class="footer">
        <p>Thank you for your business!</p>
        <p>{company_name} &copy; {data.issued_at.year}</p>
    </div>
</body>
</html>"""


def html_to_pdf(html_content: str) -> bytes:
    """Convert HTML to PDF bytes with WeasyPrint"""
    from weasyprint import HTML

    pdf_buffer = io.BytesIO()
    HTML(string=html_content).write_pdf(pdf_buffer)
    return pdf_buffer.getvalue()


class InvoicePDFGenerator:
    """Renders invoices and keeps one PDF per invoice id in content storage"""

    def __init__(
        self,
        storage: R2Storage = None,
        html_renderer: Callable[[str], bytes] = html_to_pdf,
        currency: str = None
    ):
        self.storage = storage or R2Storage()
        self.html_renderer = html_renderer
        self.currency = currency or settings.INVOICE_CURRENCY

    async def render(self, invoice_id: int, data: InvoicePDFData) -> RenderedInvoice:
        """
        Render an invoice and upload it, replacing any earlier PDF for the same id.

        Raises:
            RenderFailed: If HTML conversion or the storage write fails
        """
        totals = calculate_invoice_totals(data.items, data.tax)

        try:
            html_content = generate_invoice_html(invoice_id, data, currency=self.currency)
            pdf_bytes = self.html_renderer(html_content)
        except Exception as e:
            logger.error(f"Failed to render PDF for invoice {invoice_id}: {str(e)}")
            raise RenderFailed(f"Failed to render invoice {invoice_id}") from e

        if not pdf_bytes:
            raise RenderFailed(f"Renderer produced an empty PDF for invoice {invoice_id}")

        key = invoice_pdf_key(invoice_id)
        try:
            await self.storage.put(key, pdf_bytes, "application/pdf")
        except Exception as e:
            logger.error(f"Failed to upload PDF for invoice {invoice_id}: {str(e)}")
            raise RenderFailed(f"Failed to upload invoice {invoice_id}") from e

        url = self.storage.public_url(key)
        logger.info(f"Generated PDF invoice {invoice_id} ({len(pdf_bytes)} bytes) at {url}")
        return RenderedInvoice(url=url, pdf_bytes=pdf_bytes, totals=totals)


def build_pdf_data(invoice, company) -> InvoicePDFData:
    """Collect the printable fields from an invoice row and its company"""
    logo_url = ""
    if company.logo_url:
        if company.logo_url.startswith("http") or not settings.R2_PUBLIC_URL:
            logo_url = company.logo_url
        else:
            logo_url = f"{settings.R2_PUBLIC_URL}/{company.logo_url}"

    return InvoicePDFData(
        client_name=invoice.client_name,
        client_email=invoice.client_email,
        company_name=company.name,
        company_address=company.address or "",
        company_tax_info=company.tax_info or "",
        company_logo_url=logo_url,
        items=list(invoice.items or []),
        tax=invoice.tax or 0.0,
        total=invoice.total,
        due_date=invoice.due_date,
        payment_details=invoice.payment_details or ""
    )
