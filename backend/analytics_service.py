"""
Owner-scoped invoice analytics for the dashboard.
Optional start/end dates filter on invoice creation time.
"""

from collections import defaultdict
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, func, desc
from sqlalchemy.ext.asyncio import AsyncSession

from models import Invoice, InvoiceStatus, Client


def _created_between(query, start_date: Optional[datetime], end_date: Optional[datetime]):
    if start_date and end_date:
        query = query.where(Invoice.created_at >= start_date, Invoice.created_at <= end_date)
    return query


async def count_clients(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(select(func.count(Client.id)).where(Client.user_id == user_id))
    return result.scalar() or 0


async def get_overview(
    db: AsyncSession,
    user_id: int,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None
) -> dict:
    total_invoices = await db.execute(
        _created_between(select(func.count(Invoice.id)).where(Invoice.user_id == user_id), start_date, end_date)
    )
    total_revenue = await db.execute(
        _created_between(
            select(func.coalesce(func.sum(Invoice.total), 0.0))
            .where(Invoice.user_id == user_id, Invoice.status == InvoiceStatus.PAID),
            start_date, end_date
        )
    )

    return {
        "total_invoices": total_invoices.scalar() or 0,
        "total_revenue": float(total_revenue.scalar() or 0.0),
        "total_clients": await count_clients(db, user_id),
    }


async def get_dashboard_stats(db: AsyncSession, user_id: int) -> dict:
    rows = await db.execute(
        select(Invoice.status, func.count(Invoice.id), func.coalesce(func.sum(Invoice.total), 0.0))
        .where(Invoice.user_id == user_id)
        .group_by(Invoice.status)
    )

    total_invoices = 0
    open_invoices = 0
    total_revenue = 0.0
    for status, count, amount in rows.all():
        total_invoices += count
        if status == InvoiceStatus.PAID:
            total_revenue += float(amount)
        else:
            open_invoices += count

    return {
        "total_revenue": total_revenue,
        "total_invoices": total_invoices,
        "open_invoices": open_invoices,
        "total_clients": await count_clients(db, user_id),
    }


async def get_status_summary(
    db: AsyncSession,
    user_id: int,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None
) -> dict:
    rows = await db.execute(
        _created_between(
            select(Invoice.status, func.count(Invoice.id)).where(Invoice.user_id == user_id),
            start_date, end_date
        ).group_by(Invoice.status)
    )
    summary = {status.value: 0 for status in InvoiceStatus}
    for status, count in rows.all():
        summary[status.value] = count
    return summary


async def get_top_clients(
    db: AsyncSession,
    user_id: int,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: int = 5
) -> List[dict]:
    revenue = func.sum(Invoice.total).label("revenue")
    rows = await db.execute(
        _created_between(
            select(Invoice.client_email, Invoice.client_name, revenue)
            .where(Invoice.user_id == user_id, Invoice.status == InvoiceStatus.PAID),
            start_date, end_date
        )
        .group_by(Invoice.client_email, Invoice.client_name)
        .order_by(desc(revenue))
        .limit(limit)
    )
    return [
        {"client_name": name, "client_email": email, "revenue": float(amount or 0.0)}
        for email, name, amount in rows.all()
    ]


async def get_monthly_revenue(
    db: AsyncSession,
    user_id: int,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None
) -> List[dict]:
    """Paid revenue bucketed by creation month (YYYY-MM), oldest first"""
    rows = await db.execute(
        _created_between(
            select(Invoice.created_at, Invoice.total)
            .where(Invoice.user_id == user_id, Invoice.status == InvoiceStatus.PAID),
            start_date, end_date
        )
    )

    buckets = defaultdict(float)
    for created_at, total in rows.all():
        buckets[created_at.strftime("%Y-%m")] += float(total or 0.0)

    return [{"month": month, "revenue": buckets[month]} for month in sorted(buckets)]
