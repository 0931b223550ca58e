"""
Analytics API Endpoints
Dashboard figures computed from the current user's invoices
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime
from typing import List, Optional

import analytics_service
from auth import get_current_active_user
from database import get_db
from models import User
from schemas import AnalyticsOverview, DashboardStats, InvoiceStatusSummary, TopClient, MonthlyRevenue

router = APIRouter(tags=["analytics"])


@router.get("/dashboard/stats", response_model=DashboardStats)
async def dashboard_stats(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    return await analytics_service.get_dashboard_stats(db, current_user.id)


@router.get("/analytics/overview", response_model=AnalyticsOverview)
async def analytics_overview(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    return await analytics_service.get_overview(db, current_user.id, start_date, end_date)


@router.get("/analytics/monthly-revenue", response_model=List[MonthlyRevenue])
async def monthly_revenue(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    return await analytics_service.get_monthly_revenue(db, current_user.id, start_date, end_date)


@router.get("/analytics/top-clients", response_model=List[TopClient])
async def top_clients(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    return await analytics_service.get_top_clients(db, current_user.id, start_date, end_date)


@router.get("/analytics/status-summary", response_model=InvoiceStatusSummary)
async def status_summary(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    return await analytics_service.get_status_summary(db, current_user.id, start_date, end_date)
