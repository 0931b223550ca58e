"""
Plan Policy - maps a user's subscription to invoice quotas.

free:    5 invoices, lifetime
starter: 50 invoices per calendar month
pro:     100 invoices per calendar month (or unlimited when the limit is None)
"""

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from models import Invoice, Subscription, SubscriptionStatus, PlanName


class QuotaWindow(str, enum.Enum):
    ALL_TIME = "all_time"
    CALENDAR_MONTH = "calendar_month"


@dataclass(frozen=True)
class PlanPolicy:
    plan_name: str
    invoice_limit: Optional[int]  # None = unlimited
    window: QuotaWindow

    @property
    def is_unlimited(self) -> bool:
        return self.invoice_limit is None

    def describe(self) -> str:
        if self.is_unlimited:
            return f"Using {self.plan_name.capitalize()} plan (Unlimited invoices)"
        if self.window == QuotaWindow.ALL_TIME:
            return f"Using {self.plan_name} plan ({self.invoice_limit} invoices total)"
        return f"Using {self.plan_name.capitalize()} plan ({self.invoice_limit} invoices/month)"


def get_plan_policy(
    subscription: Optional[Subscription],
    *,
    free_limit: int = 5,
    starter_limit: int = 50,
    pro_limit: Optional[int] = 100
) -> PlanPolicy:
    """
    Resolve the quota policy for a subscription lookup result.

    Anything that is not an active starter/pro subscription falls back to free.
    """
    if subscription is None or subscription.status != SubscriptionStatus.ACTIVE.value:
        return PlanPolicy(PlanName.FREE.value, free_limit, QuotaWindow.ALL_TIME)

    if subscription.plan_name == PlanName.STARTER.value:
        return PlanPolicy(PlanName.STARTER.value, starter_limit, QuotaWindow.CALENDAR_MONTH)
    if subscription.plan_name == PlanName.PRO.value:
        return PlanPolicy(PlanName.PRO.value, pro_limit, QuotaWindow.CALENDAR_MONTH)

    return PlanPolicy(PlanName.FREE.value, free_limit, QuotaWindow.ALL_TIME)


def quota_window_start(policy: PlanPolicy, now: datetime) -> Optional[datetime]:
    """First instant counted against the quota, or None for lifetime windows"""
    if policy.window == QuotaWindow.CALENDAR_MONTH:
        return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return None


def plan_limits_from_settings() -> dict:
    """Keyword arguments for get_plan_policy taken from the deployment settings"""
    from config import settings

    return {
        "free_limit": settings.FREE_PLAN_INVOICE_LIMIT,
        "starter_limit": settings.STARTER_PLAN_MONTHLY_LIMIT,
        "pro_limit": settings.PRO_PLAN_MONTHLY_LIMIT,
    }


async def count_invoices_in_window(db: AsyncSession, user_id: int, policy: PlanPolicy, now: datetime) -> int:
    query = select(func.count(Invoice.id)).where(Invoice.user_id == user_id)
    window_start = quota_window_start(policy, now)
    if window_start is not None:
        query = query.where(Invoice.created_at >= window_start)

    result = await db.execute(query)
    return result.scalar() or 0


async def get_authoritative_subscription(db: AsyncSession, user_id: int) -> Optional[Subscription]:
    """Newest active subscription governs when a user has several"""
    result = await db.execute(
        select(Subscription)
        .where(
            Subscription.user_id == user_id,
            Subscription.status == SubscriptionStatus.ACTIVE.value
        )
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()
