from __future__ import annotations

import json

import httpx
import pytest

from core.config import PayPalSettings
from core.identity import IdentityContext
from core.models import ToolCallRequest
from core.payments import PayPalClient
from tools import payment_server

SETTINGS = PayPalSettings(
    client_id="client-id",
    client_secret="client-secret",
    return_url="https://shop.example/return",
    cancel_url="https://shop.example/cancel",
)

ORDER_ARGS = {
    "intent": "CAPTURE",
    "purchase_units": [{"amount": {"currency_code": "USD", "value": "25.00"}, "description": "T-shirt"}],
    "merchant_id": "MERCHANT1",
}


class FakePayPal:
    """Records requests and answers like the PayPal REST API."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.token_requests = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/v1/oauth2/token":
            self.token_requests += 1
            return httpx.Response(200, json={"access_token": "token-1", "expires_in": 32400})
        assert request.headers["Authorization"] == "Bearer token-1"

        if path == "/v2/checkout/orders" and request.method == "POST":
            body = json.loads(request.content)
            if body["purchase_units"][0]["amount"]["value"] == "0.00":
                return httpx.Response(422, json={"name": "UNPROCESSABLE_ENTITY", "message": "Amount must be positive"})
            return httpx.Response(201, json={
                "id": "ORDER-1",
                "status": "CREATED",
                "links": [{"rel": "approve", "href": "https://paypal.example/approve"}],
            })
        if path == "/v2/checkout/orders/ORDER-1/capture":
            return httpx.Response(201, json={
                "id": "ORDER-1",
                "status": "COMPLETED",
                "purchase_units": [{"payments": {"captures": [{"id": "CAPTURE-1"}]}}],
            })
        if path == "/v2/checkout/orders/ORDER-1":
            return httpx.Response(200, json={"id": "ORDER-1", "status": "APPROVED"})
        if path == "/v1/billing/plans":
            return httpx.Response(201, json={"id": "PLAN-1", "status": "ACTIVE"})
        if path == "/v1/billing/subscriptions":
            return httpx.Response(201, json={"id": "SUB-1", "status": "APPROVAL_PENDING", "links": []})
        if path == "/v1/billing/subscriptions/SUB-1/cancel":
            return httpx.Response(204)
        if path == "/v1/billing/subscriptions/SUB-1":
            return httpx.Response(200, json={"id": "SUB-1", "status": "CANCELLED"})
        if path == "/v2/payments/captures/CAPTURE-1/refund":
            return httpx.Response(201, json={
                "id": "REFUND-1",
                "status": "COMPLETED",
                "amount": {"value": "10.00", "currency_code": "USD"},
            })
        if path == "/v1/payments/payouts":
            return httpx.Response(201, json={
                "batch_header": {"payout_batch_id": "BATCH-1", "batch_status": "PENDING"},
                "links": [],
            })
        return httpx.Response(404, json={"message": f"no route for {path}"})

    def last(self, path: str) -> httpx.Request:
        return [r for r in self.requests if r.url.path == path][-1]


@pytest.fixture
def paypal() -> FakePayPal:
    return FakePayPal()


@pytest.fixture
def dispatcher(paypal: FakePayPal, identity_context: IdentityContext):
    client = PayPalClient(SETTINGS, transport=httpx.MockTransport(paypal.handler))
    return payment_server.build_dispatcher(client, identity_context)


def _json(envelope) -> dict:
    assert envelope.is_error is False, envelope.text()
    return json.loads(envelope.text())


def test_tool_table_order() -> None:
    assert payment_server.TOOLS.names() == [
        "create_paypal_order",
        "capture_paypal_order",
        "get_order_details",
        "create_paypal_subscription",
        "cancel_subscription",
        "create_refund",
        "create_paypal_payout",
        "get_paypal_aztp_identity",
    ]


@pytest.mark.asyncio
async def test_create_order(dispatcher, paypal: FakePayPal) -> None:
    envelope = await dispatcher.call_tool(ToolCallRequest(name="create_paypal_order", arguments=ORDER_ARGS))

    assert _json(envelope) == {
        "orderId": "ORDER-1",
        "status": "CREATED",
        "links": [{"rel": "approve", "href": "https://paypal.example/approve"}],
    }
    sent = paypal.last("/v2/checkout/orders")
    assert sent.headers["Prefer"] == "return=representation"
    body = json.loads(sent.content)
    assert body["application_context"] == {
        "return_url": "https://shop.example/return",
        "cancel_url": "https://shop.example/cancel",
    }
    assert body["purchase_units"] == [{"amount": {"value": "25.00", "currency_code": "USD"}, "description": "T-shirt"}]


@pytest.mark.asyncio
async def test_token_is_reused(dispatcher, paypal: FakePayPal) -> None:
    await dispatcher.call_tool(ToolCallRequest(name="create_paypal_order", arguments=ORDER_ARGS))
    await dispatcher.call_tool(ToolCallRequest(
        name="get_order_details", arguments={"order_id": "ORDER-1", "merchant_id": "MERCHANT1"},
    ))

    assert paypal.token_requests == 1


@pytest.mark.asyncio
async def test_provider_rejection_is_a_per_call_error(dispatcher) -> None:
    bad_order = {**ORDER_ARGS, "purchase_units": [{"amount": {"currency_code": "USD", "value": "0.00"}}]}

    envelope = await dispatcher.call_tool(ToolCallRequest(name="create_paypal_order", arguments=bad_order))

    assert envelope.is_error is True
    assert envelope.text() == "Error: PayPal order creation failed: Amount must be positive"

    follow_up = await dispatcher.call_tool(ToolCallRequest(name="create_paypal_order", arguments=ORDER_ARGS))
    assert follow_up.is_error is False


@pytest.mark.asyncio
async def test_invalid_intent_never_reaches_paypal(dispatcher, paypal: FakePayPal) -> None:
    envelope = await dispatcher.call_tool(ToolCallRequest(
        name="create_paypal_order", arguments={**ORDER_ARGS, "intent": "STEAL"},
    ))

    assert envelope.is_error is True
    assert "intent" in envelope.text()
    assert paypal.requests == []


@pytest.mark.asyncio
async def test_capture_and_details(dispatcher) -> None:
    capture = await dispatcher.call_tool(ToolCallRequest(
        name="capture_paypal_order", arguments={"order_id": "ORDER-1", "merchant_id": "MERCHANT1"},
    ))
    details = await dispatcher.call_tool(ToolCallRequest(
        name="get_order_details", arguments={"order_id": "ORDER-1", "merchant_id": "MERCHANT1"},
    ))

    assert _json(capture) == {"orderId": "ORDER-1", "status": "COMPLETED", "captureId": "CAPTURE-1"}
    assert _json(details) == {"id": "ORDER-1", "status": "APPROVED"}


@pytest.mark.asyncio
async def test_create_subscription_creates_plan_then_subscription(dispatcher, paypal: FakePayPal) -> None:
    envelope = await dispatcher.call_tool(ToolCallRequest(
        name="create_paypal_subscription",
        arguments={
            "product_id": "PROD-1",
            "merchant_id": "MERCHANT1",
            "subscriber_email": "buyer@example.com",
            "billing_cycles": [{
                "frequency": {"interval_unit": "MONTH", "interval_count": 1},
                "tenure_type": "REGULAR",
                "sequence": 1,
                "total_cycles": 12,
                "pricing_scheme": {"fixed_price": {"value": "9.99", "currency_code": "USD"}},
            }],
        },
    ))

    assert _json(envelope) == {"subscriptionId": "SUB-1", "planId": "PLAN-1", "status": "APPROVAL_PENDING", "links": []}
    plan = json.loads(paypal.last("/v1/billing/plans").content)
    assert plan["name"] == "Subscription Plan"
    assert plan["billing_cycles"][0]["total_cycles"] == 12
    subscription = json.loads(paypal.last("/v1/billing/subscriptions").content)
    assert subscription["plan_id"] == "PLAN-1"
    assert subscription["subscriber"]["email_address"] == "buyer@example.com"
    assert subscription["application_context"]["return_url"] == "https://shop.example/return"


@pytest.mark.asyncio
async def test_cancel_subscription_reads_back_status(dispatcher, paypal: FakePayPal) -> None:
    envelope = await dispatcher.call_tool(ToolCallRequest(
        name="cancel_subscription", arguments={"subscription_id": "SUB-1", "merchant_id": "MERCHANT1"},
    ))

    assert _json(envelope) == {
        "subscriptionId": "SUB-1",
        "status": "CANCELLED",
        "message": "Subscription cancelled successfully",
    }
    assert json.loads(paypal.last("/v1/billing/subscriptions/SUB-1/cancel").content) == {
        "reason": "Merchant initiated cancellation",
    }


@pytest.mark.asyncio
async def test_partial_refund(dispatcher, paypal: FakePayPal) -> None:
    envelope = await dispatcher.call_tool(ToolCallRequest(
        name="create_refund",
        arguments={
            "capture_id": "CAPTURE-1",
            "merchant_id": "MERCHANT1",
            "amount": {"value": "10.00", "currency_code": "USD"},
        },
    ))

    assert _json(envelope)["refundId"] == "REFUND-1"
    sent = json.loads(paypal.last("/v2/payments/captures/CAPTURE-1/refund").content)
    assert sent == {
        "amount": {"value": "10.00", "currency_code": "USD"},
        "note_to_payer": "Refund from merchant",
    }


@pytest.mark.asyncio
async def test_payout(dispatcher, paypal: FakePayPal) -> None:
    envelope = await dispatcher.call_tool(ToolCallRequest(
        name="create_paypal_payout",
        arguments={
            "sender_batch_id": "batch-2024-01",
            "merchant_id": "MERCHANT1",
            "items": [{
                "recipient_type": "EMAIL",
                "amount": {"value": "5.00", "currency": "USD"},
                "receiver": "seller@example.com",
            }],
        },
    ))

    assert _json(envelope) == {"batchId": "BATCH-1", "status": "PENDING", "links": []}
    sent = json.loads(paypal.last("/v1/payments/payouts").content)
    assert sent["sender_batch_header"]["sender_batch_id"] == "batch-2024-01"
    assert sent["items"][0] == {
        "recipient_type": "EMAIL",
        "amount": {"value": "5.00", "currency": "USD"},
        "receiver": "seller@example.com",
    }


@pytest.mark.asyncio
async def test_identity_tool_before_handshake(dispatcher) -> None:
    envelope = await dispatcher.call_tool(ToolCallRequest(name="get_paypal_aztp_identity", arguments={}))

    assert envelope.is_error is True
    assert "not yet established" in envelope.text()
