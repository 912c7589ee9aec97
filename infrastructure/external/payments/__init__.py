"""
Factory for order gateway clients.
"""
from __future__ import annotations

from typing import Optional

from core.settings import payment_settings
from application.ports.payment_gateway import OrderGateway


def get_order_gateway(provider: Optional[str] = None) -> OrderGateway:
    name = (provider or payment_settings.default_provider).lower()
    if name in {"razorpay", "rzp"}:
        from .razorpay_client import RazorpayClient
        return RazorpayClient()
    raise ValueError(f"Unsupported payment provider: {name}")
