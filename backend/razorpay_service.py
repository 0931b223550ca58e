"""
Razorpay Payment Service
Creates subscriptions via the Razorpay API and verifies webhook signatures
"""

import hashlib
import hmac
import logging
from datetime import datetime
from typing import Any, Dict, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from exceptions import GatewayError
from models import PlanName, Subscription

logger = logging.getLogger(__name__)


def build_plan_map() -> Dict[str, str]:
    """Razorpay plan id -> internal plan name, from settings"""
    plan_map = {}
    if settings.RAZORPAY_STARTER_PLAN_ID:
        plan_map[settings.RAZORPAY_STARTER_PLAN_ID] = PlanName.STARTER.value
    if settings.RAZORPAY_PRO_PLAN_ID:
        plan_map[settings.RAZORPAY_PRO_PLAN_ID] = PlanName.PRO.value
    return plan_map


def verify_webhook_signature(payload: bytes, signature: Optional[str], secret: str) -> bool:
    """
    Verify a Razorpay webhook signature.

    Args:
        payload: Raw request body bytes, exactly as received
        signature: X-Razorpay-Signature header value (hex HMAC-SHA256)
        secret: Webhook secret configured in the Razorpay dashboard

    Returns:
        True if signature is valid, False otherwise
    """
    if not signature or not secret:
        return False

    computed_signature = hmac.new(
        secret.encode('utf-8'),
        payload,
        hashlib.sha256
    ).hexdigest()

    # The header may carry non-ASCII text, so compare as bytes
    return hmac.compare_digest(computed_signature.encode('utf-8'), signature.strip().encode('utf-8'))


class RazorpayService:
    """Service for Razorpay subscription operations"""

    BASE_URL = "https://api.razorpay.com/v1"

    def __init__(
        self,
        key_id: str = None,
        key_secret: str = None,
        plan_map: Dict[str, str] = None,
        total_count: int = None,
        transport: httpx.AsyncBaseTransport = None
    ):
        self.key_id = key_id if key_id is not None else settings.RAZORPAY_KEY_ID
        self.key_secret = key_secret if key_secret is not None else settings.RAZORPAY_KEY_SECRET
        self.plan_map = plan_map if plan_map is not None else build_plan_map()
        self.total_count = total_count or settings.RAZORPAY_TOTAL_COUNT
        self.transport = transport

    def is_configured(self) -> bool:
        """Check if Razorpay keys are configured"""
        return bool(self.key_id and self.key_secret)

    def plan_name_for(self, plan_id: str) -> str:
        """Unknown plan ids map to the free plan"""
        return self.plan_map.get(plan_id, PlanName.FREE.value)

    async def create_subscription(self, plan_id: str) -> Dict[str, Any]:
        """
        Create a subscription for a plan.

        Returns:
            Razorpay subscription entity (id, status, plan_id, ...)

        Raises:
            GatewayError: If keys are missing or Razorpay rejects the request
        """
        if not self.is_configured():
            raise GatewayError("Razorpay keys are not configured")

        payload = {
            "plan_id": plan_id,
            "customer_notify": 1,
            "total_count": self.total_count
        }

        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.post(
                    f"{self.BASE_URL}/subscriptions",
                    auth=(self.key_id, self.key_secret),
                    json=payload,
                    timeout=30.0
                )
        except httpx.TimeoutException as e:
            raise GatewayError("Connection timeout - unable to reach Razorpay API") from e
        except httpx.HTTPError as e:
            raise GatewayError(f"Connection error: {str(e)}") from e

        if response.status_code not in (200, 201):
            try:
                detail = response.json().get("error", {}).get("description", response.text)
            except ValueError:
                detail = response.text
            logger.error(f"Razorpay subscription creation failed: {response.status_code} - {detail}")
            raise GatewayError(f"Razorpay error: {detail}")

        data = response.json()
        logger.info(f"Created Razorpay subscription {data.get('id')} for plan {plan_id} ({data.get('status')})")
        return data


async def create_subscription_for_user(
    db: AsyncSession,
    user_id: int,
    plan_id: str,
    gateway: RazorpayService
) -> Subscription:
    """
    Start a gateway subscription and record it.
    The stored status is whatever Razorpay reported; webhooks activate it later.
    """
    remote = await gateway.create_subscription(plan_id)

    subscription = Subscription(
        user_id=user_id,
        external_subscription_id=remote["id"],
        plan_name=gateway.plan_name_for(plan_id),
        status=remote.get("status", "created"),
        start_date=datetime.utcnow()
    )
    db.add(subscription)
    await db.commit()
    await db.refresh(subscription)

    logger.info(f"Recorded subscription {subscription.external_subscription_id} ({subscription.plan_name}) for user {user_id}")
    return subscription
