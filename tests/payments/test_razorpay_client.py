import json
from decimal import Decimal

import httpx
import pytest

from application.dtos.payments import CreateOrderRequest, VerifyPaymentRequest
from core.settings import RazorpaySettings
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRateLimitedError,
    PaymentRecoverableError,
)
from infrastructure.external.payments.razorpay_client import RazorpayClient, checkout_signature


CONFIG = RazorpaySettings(key_id="rzp_test_key", key_secret="secret")


def _client(handler) -> RazorpayClient:
    return RazorpayClient(CONFIG, transport=httpx.MockTransport(handler))


def test_missing_credentials_rejected():
    with pytest.raises(RuntimeError):
        RazorpayClient(RazorpaySettings())


@pytest.mark.asyncio
async def test_create_order_sends_minor_units():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "id": "order_1",
            "amount": 45000,
            "currency": "INR",
            "receipt": seen["body"]["receipt"],
            "status": "created",
        })

    client = _client(handler)
    order = await client.create_order(
        CreateOrderRequest(amount=Decimal("450.00"), notes={"shipment_ref": 42}),
        receipt="rcpt_1",
    )
    await client.aclose()

    assert seen["path"] == "/v1/orders"
    assert seen["auth"].startswith("Basic ")
    assert seen["body"] == {"amount": 45000, "currency": "INR", "receipt": "rcpt_1", "notes": {"shipment_ref": "42"}}
    assert order.id == "order_1"
    assert order.amount == 45000
    assert order.status == "created"


@pytest.mark.asyncio
async def test_client_error_maps_to_provider_error():
    def handler(request):
        return httpx.Response(400, json={"error": {"code": "BAD_REQUEST_ERROR", "description": "amount too small"}})

    client = _client(handler)
    with pytest.raises(PaymentProviderError) as exc_info:
        await client.create_order(CreateOrderRequest(amount=Decimal("0.10")), receipt="rcpt_1")
    await client.aclose()

    assert exc_info.value.message == "amount too small"
    assert exc_info.value.details["provider_code"] == "BAD_REQUEST_ERROR"


@pytest.mark.asyncio
@pytest.mark.parametrize("status, error", [(429, PaymentRateLimitedError), (502, PaymentRecoverableError)])
async def test_server_side_failures(status, error):
    client = _client(lambda request: httpx.Response(status))
    with pytest.raises(error):
        await client.fetch_payment("pay_1")
    await client.aclose()


@pytest.mark.asyncio
async def test_fetch_payment_maps_status():
    def handler(request):
        assert request.url.path == "/v1/payments/pay_1"
        return httpx.Response(200, json={
            "id": "pay_1",
            "status": "captured",
            "amount": 45000,
            "currency": "INR",
            "order_id": "order_1",
            "method": "upi",
        })

    client = _client(handler)
    details = await client.fetch_payment("pay_1")
    await client.aclose()

    assert details.status == "succeeded"
    assert details.provider_status == "captured"
    assert details.order_id == "order_1"
    assert details.method == "upi"


def test_verify_signature():
    client = RazorpayClient(CONFIG)
    good = checkout_signature("order_1", "pay_1", "secret")

    assert client.verify_signature(VerifyPaymentRequest(
        razorpay_order_id="order_1", razorpay_payment_id="pay_1", razorpay_signature=good,
    ))
    assert not client.verify_signature(VerifyPaymentRequest(
        razorpay_order_id="order_1", razorpay_payment_id="pay_2", razorpay_signature=good,
    ))
