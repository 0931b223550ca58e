"""
Subscription API Endpoints
Handles subscription creation, plan status and Razorpay webhooks
"""

from fastapi import APIRouter, Depends, Request, Header
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime
from typing import Optional
import logging

from auth import get_current_active_user
from database import get_db
from dependencies import get_razorpay_service, get_reconciler
from models import User
from plan_policy import (
    get_authoritative_subscription, get_plan_policy, count_invoices_in_window, plan_limits_from_settings
)
from razorpay_service import RazorpayService, create_subscription_for_user
from schemas import (
    SubscriptionCreateRequest,
    SubscriptionResponse,
    SubscriptionStatusResponse,
    WebhookAck
)
from subscription_webhooks import SubscriptionReconciler

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/razorpay", tags=["subscription"])


@router.post("/create-subscription", response_model=SubscriptionResponse)
async def create_subscription(
    request: SubscriptionCreateRequest,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayService = Depends(get_razorpay_service)
):
    """Create a Razorpay subscription; it becomes active once the webhook confirms it"""
    return await create_subscription_for_user(db, current_user.id, request.plan_id, gateway)


@router.get("/status", response_model=SubscriptionStatusResponse)
async def get_subscription_status(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    """Current plan (free/starter/pro), its invoice limit and usage in the quota window"""
    subscription = await get_authoritative_subscription(db, current_user.id)
    policy = get_plan_policy(subscription, **plan_limits_from_settings())
    used = await count_invoices_in_window(db, current_user.id, policy, datetime.utcnow())

    return SubscriptionStatusResponse(
        plan=policy.plan_name,
        plan_name=subscription.plan_name if subscription else None,
        status=subscription.status if subscription else None,
        start_date=subscription.start_date if subscription else None,
        end_date=subscription.end_date if subscription else None,
        invoices_limit=policy.invoice_limit,
        invoices_used=used,
        message=policy.describe()
    )


@router.post("/webhook", response_model=WebhookAck)
async def razorpay_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
    reconciler: SubscriptionReconciler = Depends(get_reconciler)
):
    """
    Razorpay webhook receiver.
    The signature is checked against the raw body bytes, so the body is read unparsed.
    """
    raw_body = await request.body()
    await reconciler.handle(db, raw_body, x_razorpay_signature)
    return WebhookAck()
