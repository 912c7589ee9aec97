"""
Application service for the order backend used by checkout.

Depends only on the OrderGateway port and DTOs. The gateway implementation is
injected from the composition root (API), keeping dependencies one-way.
"""
from __future__ import annotations

import hashlib

from application.dtos.payments import (
    CreateOrderRequest,
    GatewayOrder,
    PaymentDetails,
    VerifyPaymentRequest,
    VerifyPaymentResult,
)
from application.ports.payment_gateway import OrderGateway
from core.logging_config import get_logger


logger = get_logger(__name__)


def stable_receipt(req: CreateOrderRequest) -> str:
    """Receipt derived from business identifiers (no timestamp), max 40 chars."""
    if req.receipt:
        return req.receipt
    hint = req.notes.get("idempotency_hint") or req.notes.get("shipment_ref") or ""
    base = f"create|{req.amount_minor}|{req.currency}|{hint}"
    return "rcpt_" + hashlib.sha256(base.encode("utf-8")).hexdigest()[:32]


class PaymentService:
    def __init__(self, gateway: OrderGateway) -> None:
        self.gateway = gateway

    async def create_order(self, req: CreateOrderRequest) -> GatewayOrder:
        receipt = stable_receipt(req)
        logger.info(
            "order_create_request",
            amount_minor=req.amount_minor,
            currency=req.currency,
            provider=self.gateway.provider,
            receipt=receipt,
        )
        order = await self.gateway.create_order(req, receipt=receipt)
        logger.info(
            "order_create_response",
            order_id=order.id,
            provider=order.provider,
            status=order.status,
        )
        return order

    def verify_payment(self, req: VerifyPaymentRequest) -> VerifyPaymentResult:
        valid = self.gateway.verify_signature(req)
        log = logger.info if valid else logger.warning
        log(
            "payment_signature_checked",
            order_id=req.razorpay_order_id,
            payment_id=req.razorpay_payment_id,
            valid=valid,
        )
        return VerifyPaymentResult(
            valid=valid,
            order_id=req.razorpay_order_id,
            payment_id=req.razorpay_payment_id,
        )

    async def fetch_payment(self, payment_id: str) -> PaymentDetails:
        logger.info("payment_fetch_request", payment_id=payment_id, provider=self.gateway.provider)
        return await self.gateway.fetch_payment(payment_id)

    async def aclose(self) -> None:
        await self.gateway.aclose()
