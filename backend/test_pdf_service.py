from datetime import datetime

import pytest

from conftest import FakeStorage, fake_html_renderer
from exceptions import RenderFailed
from pdf_service import (
    InvoicePDFData, InvoicePDFGenerator, calculate_invoice_totals, generate_invoice_html
)


def sample_data(**overrides):
    data = dict(
        client_name="Globex",
        client_email="billing@globex.io",
        company_name="Acme Pvt Ltd",
        company_address="12 MG Road",
        company_tax_info="29ABCDE1234F1Z5",
        items=[{"description": "Design", "qty": 2, "price": 100}, {"description": "Hosting", "qty": 1, "price": 50}],
        tax=10,
        total=999.0,
        due_date=datetime(2026, 11, 1),
        issued_at=datetime(2026, 10, 19),
    )
    data.update(overrides)
    return InvoicePDFData(**data)


def test_totals_are_computed_from_items():
    totals = calculate_invoice_totals([{"qty": 2, "price": 100}, {"qty": 1, "price": 50}], 10)
    assert totals.subtotal == pytest.approx(250)
    assert totals.tax_amount == pytest.approx(25)
    assert totals.grand_total == pytest.approx(275)


def test_totals_keep_duplicates_and_handle_empty_lists():
    line = {"description": "Hour", "qty": 1, "price": 40}
    assert calculate_invoice_totals([line, line], None).grand_total == pytest.approx(80)
    assert calculate_invoice_totals([], 18).grand_total == 0


def test_html_prints_its_own_totals_not_the_stored_total():
    html = generate_invoice_html(42, sample_data(), currency="INR")

    assert "Invoice ID: 42" in html
    assert "Subtotal: INR 250.00" in html
    assert "Tax (10%): INR 25.00" in html
    assert "Total: INR 275.00" in html
    assert "999" not in html
    assert html.index("Design") < html.index("Hosting")


def test_html_blocks_and_escaping():
    html = generate_invoice_html(1, sample_data(client_name="<script>x</script>", payment_details="  "))
    assert "&lt;script&gt;" in html
    assert "<script>x" not in html
    assert "Payment Details" not in html
    assert "GST: 29ABCDE1234F1Z5" in html
    assert "Thank you for your business!" in html

    with_payment = generate_invoice_html(1, sample_data(payment_details="UPI: acme@bank", items=[]))
    assert "Payment Details" in with_payment
    assert "UPI: acme@bank" in with_payment
    assert "No items listed." in with_payment


async def test_render_overwrites_a_stable_key():
    storage = FakeStorage()
    generator = InvoicePDFGenerator(storage=storage, html_renderer=fake_html_renderer, currency="INR")

    first = await generator.render(7, sample_data())
    second = await generator.render(7, sample_data(client_name="Initech"))

    assert first.url == second.url == "https://cdn.example.test/invoices/7.pdf"
    assert storage.puts == ["invoices/7.pdf", "invoices/7.pdf"]
    assert b"Initech" in storage.objects["invoices/7.pdf"]
    assert second.totals.grand_total == pytest.approx(275)


async def test_storage_failure_raises_render_failed():
    generator = InvoicePDFGenerator(storage=FakeStorage(fail=True), html_renderer=fake_html_renderer)
    with pytest.raises(RenderFailed):
        await generator.render(7, sample_data())


async def test_renderer_failure_raises_render_failed():
    def broken_renderer(html):
        raise RuntimeError("no fonts")

    storage = FakeStorage()
    generator = InvoicePDFGenerator(storage=storage, html_renderer=broken_renderer)
    with pytest.raises(RenderFailed):
        await generator.render(7, sample_data())
    assert storage.puts == []


def test_html_without_client_email_omits_the_email_line():
    html = generate_invoice_html(1, sample_data(client_email=None))
    assert "Name: Globex" in html
    assert "Email:" not in html
