from datetime import datetime, timedelta

import httpx
import pytest_asyncio

from auth import get_current_active_user
from conftest import create_user, create_company
from database import get_db
from dependencies import get_pdf_generator, get_email_service


@pytest_asyncio.fixture
async def api(db, session_factory, pdf_generator, email_service):
    from main import app

    user = await create_user(db)
    company = await create_company(db, user)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_active_user] = lambda: user
    app.dependency_overrides[get_pdf_generator] = lambda: pdf_generator
    app.dependency_overrides[get_email_service] = lambda: email_service

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        client.company_id = company.id
        yield client
    app.dependency_overrides.clear()


def payload(company_id):
    return {
        "company_id": company_id,
        "client_name": "Globex",
        "client_email": "billing@globex.io",
        "items": [{"description": "Design", "qty": 2, "price": 100}],
        "tax": 10,
        "due_date": (datetime.utcnow() + timedelta(days=14)).isoformat(),
    }


async def test_create_then_quota_exceeded(api):
    for _ in range(5):
        response = await api.post("/invoices", json=payload(api.company_id))
        assert response.status_code == 201
        assert response.json()["invoice"]["status"] == "pending"
        assert response.json()["warning"] is None

    response = await api.post("/invoices", json=payload(api.company_id))
    assert response.status_code == 403
    assert response.json()["error"] == "QuotaExceeded"

    response = await api.get("/invoices")
    assert len(response.json()) == 5


async def test_unknown_invoice_is_404(api):
    assert (await api.get("/invoices/9999")).status_code == 404
    assert (await api.get("/invoices/9999/pdf")).status_code == 404
    assert (await api.post("/invoices/9999/send")).status_code == 404


async def test_pdf_and_send_endpoints(api, email_service):
    invoice = (await api.post("/invoices", json=payload(api.company_id))).json()["invoice"]

    response = await api.get(f"/invoices/{invoice['id']}/pdf")
    assert response.json()["pdf_url"] == f"https://cdn.example.test/invoices/{invoice['id']}.pdf"

    response = await api.post(f"/invoices/{invoice['id']}/send", json={"subject": "March invoice"})
    assert response.status_code == 200
    assert email_service.sent[0]["subject"] == "March invoice"


async def test_invalid_payload_is_422(api):
    body = payload(api.company_id)
    body["items"] = [{"description": "Design", "qty": 0, "price": 100}]
    assert (await api.post("/invoices", json=body)).status_code == 422
