from datetime import datetime

import pytest

import analytics_service
from conftest import create_user, create_company, create_client
from models import Invoice, InvoiceStatus


async def seed_invoices(db):
    user = await create_user(db)
    other = await create_user(db, email="other@example.com")
    company = await create_company(db, user)
    other_company = await create_company(db, other, name="Other Co")
    await create_client(db, user)

    def make(owner, company, client_name, total, status, created_at):
        return Invoice(user_id=owner.id, company_id=company.id, client_name=client_name,
                       client_email=f"{client_name.lower()}@example.io", items=[], tax=0, total=total,
                       due_date=created_at, status=status, created_at=created_at)

    db.add_all([
        make(user, company, "Globex", 100, InvoiceStatus.PAID, datetime(2026, 1, 5)),
        make(user, company, "Globex", 50, InvoiceStatus.PAID, datetime(2026, 2, 10)),
        make(user, company, "Initech", 300, InvoiceStatus.PAID, datetime(2026, 2, 20)),
        make(user, company, "Initech", 80, InvoiceStatus.PENDING, datetime(2026, 3, 1)),
        make(user, company, "Umbrella", 40, InvoiceStatus.OVERDUE, datetime(2026, 3, 2)),
        make(other, other_company, "Globex", 999, InvoiceStatus.PAID, datetime(2026, 1, 5)),
    ])
    await db.commit()
    return user


async def test_dashboard_stats_are_owner_scoped(db):
    user = await seed_invoices(db)

    stats = await analytics_service.get_dashboard_stats(db, user.id)

    assert stats == {"total_revenue": pytest.approx(450), "total_invoices": 5, "open_invoices": 2, "total_clients": 1}


async def test_overview_with_date_range(db):
    user = await seed_invoices(db)

    overview = await analytics_service.get_overview(db, user.id, datetime(2026, 2, 1), datetime(2026, 2, 28))

    assert overview["total_invoices"] == 2
    assert overview["total_revenue"] == pytest.approx(350)


async def test_status_summary_includes_every_status(db):
    user = await seed_invoices(db)

    assert await analytics_service.get_status_summary(db, user.id) == {
        "paid": 3, "pending": 1, "unpaid": 0, "overdue": 1
    }


async def test_top_clients_and_monthly_revenue(db):
    user = await seed_invoices(db)

    top = await analytics_service.get_top_clients(db, user.id)
    assert [(c["client_name"], c["revenue"]) for c in top] == [("Initech", 300), ("Globex", 150)]

    monthly = await analytics_service.get_monthly_revenue(db, user.id)
    assert monthly == [{"month": "2026-01", "revenue": 100}, {"month": "2026-02", "revenue": 350}]
