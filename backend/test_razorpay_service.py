import json

import httpx
import pytest

from auth import get_current_active_user
from conftest import create_user, create_subscription
from database import get_db
from dependencies import get_razorpay_service
from exceptions import GatewayError
from razorpay_service import RazorpayService, create_subscription_for_user

PLAN_MAP = {"plan_starter": "starter", "plan_pro": "pro"}


def gateway(handler) -> RazorpayService:
    return RazorpayService(
        key_id="rzp_test_key",
        key_secret="rzp_test_secret",
        plan_map=PLAN_MAP,
        total_count=12,
        transport=httpx.MockTransport(handler)
    )


async def test_create_subscription_records_gateway_entity(db):
    user = await create_user(db)
    requests = []

    def handler(request: httpx.Request):
        requests.append(request)
        return httpx.Response(200, json={"id": "sub_abc", "status": "created", "plan_id": "plan_pro"})

    subscription = await create_subscription_for_user(db, user.id, "plan_pro", gateway(handler))

    assert subscription.external_subscription_id == "sub_abc"
    assert subscription.plan_name == "pro"
    assert subscription.status == "created"

    [request] = requests
    assert request.url == "https://api.razorpay.com/v1/subscriptions"
    assert request.headers["authorization"].startswith("Basic ")
    assert json.loads(request.content) == {"plan_id": "plan_pro", "customer_notify": 1, "total_count": 12}


async def test_unknown_plan_id_is_recorded_as_free(db):
    user = await create_user(db)
    service = gateway(lambda request: httpx.Response(200, json={"id": "sub_x", "status": "created"}))

    subscription = await create_subscription_for_user(db, user.id, "plan_mystery", service)
    assert subscription.plan_name == "free"


async def test_gateway_rejection_raises_gateway_error():
    service = gateway(lambda request: httpx.Response(
        400, json={"error": {"description": "The id provided does not exist"}}
    ))

    with pytest.raises(GatewayError) as exc_info:
        await service.create_subscription("plan_missing")
    assert "does not exist" in exc_info.value.message


async def test_missing_keys_raise_gateway_error_without_calling_out():
    def handler(request):
        raise AssertionError("gateway must not be called")

    service = RazorpayService(key_id="", key_secret="", plan_map=PLAN_MAP,
                              transport=httpx.MockTransport(handler))
    assert not service.is_configured()
    with pytest.raises(GatewayError):
        await service.create_subscription("plan_starter")


async def test_subscription_endpoints(db, session_factory):
    from main import app

    user = await create_user(db)
    await create_subscription(db, user, plan_name="starter", status="active", external_id="sub_live")

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_active_user] = lambda: user
    app.dependency_overrides[get_razorpay_service] = lambda: gateway(
        lambda request: httpx.Response(200, json={"id": "sub_new", "status": "created"})
    )
    try:
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/razorpay/status")
            assert response.status_code == 200
            assert response.json()["plan"] == "starter"
            assert response.json()["invoices_limit"] == 50
            assert response.json()["invoices_used"] == 0

            response = await client.post("/razorpay/create-subscription", json={"plan_id": "plan_pro"})
            assert response.status_code == 200
            assert response.json()["external_subscription_id"] == "sub_new"
            assert response.json()["plan_name"] == "pro"
    finally:
        app.dependency_overrides.clear()
