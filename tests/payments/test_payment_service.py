from decimal import Decimal

import pytest

from application.dtos.payments import (
    CreateOrderRequest,
    GatewayOrder,
    PaymentDetails,
    VerifyPaymentRequest,
)
from application.ports.payment_gateway import OrderGateway
from application.services.payment_service import PaymentService, stable_receipt


class StubGateway:
    provider = "stub"

    def __init__(self) -> None:
        self.receipts = []
        self.closed = False

    async def create_order(self, req: CreateOrderRequest, *, receipt: str) -> GatewayOrder:
        self.receipts.append(receipt)
        return GatewayOrder(id="order_1", amount=req.amount_minor, currency=req.currency, receipt=receipt, provider=self.provider)

    def verify_signature(self, req: VerifyPaymentRequest) -> bool:
        return req.razorpay_signature == "good"

    async def fetch_payment(self, payment_id: str) -> PaymentDetails:
        return PaymentDetails(id=payment_id, status="succeeded", provider_status="captured", amount=100, currency="INR")

    async def aclose(self) -> None:
        self.closed = True


def test_stub_satisfies_port():
    assert isinstance(StubGateway(), OrderGateway)


def test_receipt_is_stable_and_short():
    req = CreateOrderRequest(amount=Decimal("450.00"), notes={"shipment_ref": "S-1"})
    same = CreateOrderRequest(amount=Decimal("450.00"), notes={"shipment_ref": "S-1"})
    other = CreateOrderRequest(amount=Decimal("450.00"), notes={"shipment_ref": "S-2"})

    assert stable_receipt(req) == stable_receipt(same)
    assert stable_receipt(req) != stable_receipt(other)
    assert len(stable_receipt(req)) <= 40
    assert stable_receipt(CreateOrderRequest(amount=Decimal("1.00"), receipt="mine")) == "mine"


def test_currency_validated():
    with pytest.raises(ValueError):
        CreateOrderRequest(amount=Decimal("1.00"), currency="XYZ")
    assert CreateOrderRequest(amount=Decimal("1.00"), currency="usd").currency == "USD"


@pytest.mark.asyncio
async def test_create_order_uses_stable_receipt():
    gateway = StubGateway()
    svc = PaymentService(gateway=gateway)
    req = CreateOrderRequest(amount=Decimal("450.50"))

    order = await svc.create_order(req)

    assert order.amount == 45050
    assert gateway.receipts == [stable_receipt(req)]


@pytest.mark.asyncio
async def test_verify_and_close():
    gateway = StubGateway()
    svc = PaymentService(gateway=gateway)

    result = svc.verify_payment(VerifyPaymentRequest(
        razorpay_order_id="order_1", razorpay_payment_id="pay_1", razorpay_signature="bad",
    ))
    await svc.aclose()

    assert result.valid is False
    assert result.payment_id == "pay_1"
    assert gateway.closed
