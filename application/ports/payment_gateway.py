"""
Order gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from application.dtos.payments import (
    CreateOrderRequest,
    GatewayOrder,
    PaymentDetails,
    VerifyPaymentRequest,
)


@runtime_checkable
class OrderGateway(Protocol):
    """Server-side gateway API: orders are created before the widget opens.

    Implementations should be async and side-effect free beyond IO.
    """

    provider: str

    async def create_order(self, req: CreateOrderRequest, *, receipt: str) -> GatewayOrder: ...

    def verify_signature(self, req: VerifyPaymentRequest) -> bool: ...

    async def fetch_payment(self, payment_id: str) -> PaymentDetails: ...

    async def aclose(self) -> None: ...
