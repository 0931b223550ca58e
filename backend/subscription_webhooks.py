"""
Subscription Reconciler
Applies verified Razorpay webhook events to subscription rows.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from exceptions import InvalidSignature, InvalidPayload
from models import Subscription, SubscriptionStatus
from razorpay_service import verify_webhook_signature

logger = logging.getLogger(__name__)

ACTIVATING_EVENTS = {"subscription.activated", "subscription.charged"}
CANCELLING_EVENTS = {"subscription.cancelled"}


@dataclass
class WebhookResult:
    event: Optional[str]
    subscription_id: Optional[str] = None
    rows_updated: int = 0


def extract_subscription_id(body: dict) -> Optional[str]:
    try:
        return body["payload"]["subscription"]["entity"]["id"]
    except (KeyError, TypeError):
        return None


class SubscriptionReconciler:
    """Stateless handler; the secret is injected at construction"""

    def __init__(self, webhook_secret: str = None):
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.RAZORPAY_WEBHOOK_SECRET

    async def handle(self, db: AsyncSession, raw_body: bytes, signature: Optional[str]) -> WebhookResult:
        """
        Verify and apply one webhook delivery.

        Unknown events and unknown subscription ids are acknowledged without
        changes so the gateway never retries them.

        Raises:
            InvalidSignature: Signature does not match; nothing is read or written
            InvalidPayload: Signed body is not a JSON object
        """
        if not verify_webhook_signature(raw_body, signature, self.webhook_secret):
            logger.warning("❌ Invalid webhook signature")
            raise InvalidSignature("Invalid signature")

        try:
            body = json.loads(raw_body)
        except (ValueError, UnicodeDecodeError) as e:
            raise InvalidPayload("Webhook body is not valid JSON") from e
        if not isinstance(body, dict):
            raise InvalidPayload("Webhook body must be a JSON object")

        event = body.get("event")
        if event in ACTIVATING_EVENTS:
            new_status = SubscriptionStatus.ACTIVE.value
        elif event in CANCELLING_EVENTS:
            new_status = SubscriptionStatus.CANCELED.value
        else:
            logger.info(f"Ignoring webhook event {event}")
            return WebhookResult(event=event)

        subscription_id = extract_subscription_id(body)
        if not subscription_id:
            logger.warning(f"Webhook event {event} without a subscription id - ignored")
            return WebhookResult(event=event)

        now = datetime.utcnow()
        result = await db.execute(
            update(Subscription)
            .where(Subscription.external_subscription_id == subscription_id)
            .values(status=new_status, updated_at=now)
            .execution_options(synchronize_session=False)
        )

        if new_status == SubscriptionStatus.CANCELED.value:
            await db.execute(
                update(Subscription)
                .where(
                    Subscription.external_subscription_id == subscription_id,
                    Subscription.end_date.is_(None)
                )
                .values(end_date=now)
                .execution_options(synchronize_session=False)
            )

        await db.commit()

        rows_updated = result.rowcount or 0
        logger.info(f"✅ Webhook {event}: {rows_updated} subscription row(s) for {subscription_id} set to {new_status}")
        return WebhookResult(event=event, subscription_id=subscription_id, rows_updated=rows_updated)
