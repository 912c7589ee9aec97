"""
Razorpay Orders/Payments adapter over the REST API (basic auth with key id/secret).

Checkout signatures are HMAC-SHA256 of "order_id|payment_id" keyed with the
key secret, hex encoded.
"""
from __future__ import annotations

import hashlib
import hmac
from typing import Any, Optional

import httpx

from application.dtos.payments import (
    CreateOrderRequest,
    GatewayOrder,
    PaymentDetails,
    VerifyPaymentRequest,
)
from infrastructure.external.payments.base import BasePaymentClient
from core.settings import payment_settings, RazorpaySettings


def checkout_signature(order_id: str, payment_id: str, key_secret: str) -> str:
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(key_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class RazorpayClient(BasePaymentClient):
    provider = "razorpay"

    def __init__(
        self,
        config: Optional[RazorpaySettings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        cfg = config or payment_settings.razorpay
        if not cfg.key_id or not cfg.key_secret:
            raise RuntimeError("PAYMENT__RAZORPAY__KEY_ID / KEY_SECRET not configured")
        super().__init__(
            base_url=cfg.api_base,
            auth=(cfg.key_id, cfg.key_secret),
            timeouts=payment_settings.timeouts.model_dump(),
            retry={"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
            transport=transport,
        )
        self.key_id = cfg.key_id
        self._key_secret = cfg.key_secret

    async def create_order(self, req: CreateOrderRequest, *, receipt: str) -> GatewayOrder:
        payload: dict[str, Any] = {
            "amount": req.amount_minor,
            "currency": req.currency,
            "receipt": receipt,
            "notes": {k: str(v) for k, v in req.notes.items()},
        }
        data = await self._request("POST", "/orders", json=payload)
        order = GatewayOrder(
            id=str(data["id"]),
            amount=int(data.get("amount", payload["amount"])),
            currency=str(data.get("currency", req.currency)),
            receipt=data.get("receipt"),
            status=self._map_status(str(data.get("status", "created"))),
            provider=self.provider,
        )
        self._log("razorpay_order_created", order_id=order.id, amount=order.amount, currency=order.currency)
        return order

    def verify_signature(self, req: VerifyPaymentRequest) -> bool:
        expected = checkout_signature(req.razorpay_order_id, req.razorpay_payment_id, self._key_secret)
        return hmac.compare_digest(expected, req.razorpay_signature)

    async def fetch_payment(self, payment_id: str) -> PaymentDetails:
        data = await self._request("GET", f"/payments/{payment_id}")
        provider_status = str(data.get("status", ""))
        return PaymentDetails(
            id=str(data.get("id", payment_id)),
            status=self._map_status(provider_status),
            provider_status=provider_status,
            amount=int(data.get("amount") or 0),
            currency=str(data.get("currency") or ""),
            order_id=data.get("order_id"),
            method=data.get("method"),
            email=data.get("email"),
            contact=data.get("contact"),
            error_code=data.get("error_code"),
            error_description=data.get("error_description"),
            provider=self.provider,
        )
