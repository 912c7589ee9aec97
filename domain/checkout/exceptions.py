"""
Checkout lifecycle errors mapped onto BusinessException.

Gateway and network failures are converted into `failed` state transitions at
the adapter boundary; these types are what handlers.on_error receives.
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import (
    INITIALIZATION_ERROR,
    INVALID_PAYMENT_RESPONSE,
    PaymentCode,
)


class CheckoutError(BusinessException):
    """Base for checkout errors; `state_code` is what lands in PaymentState.error.code."""

    state_code: str = INITIALIZATION_ERROR


class ScriptLoadError(CheckoutError):
    def __init__(self, url: str, attempts: int, reason: Optional[str] = None):
        super().__init__(
            code=PaymentCode.SCRIPT_LOAD_FAILED,
            message=f"Failed to load checkout script after {attempts} attempts",
            error_type="ScriptLoadError",
            details={"url": url, "attempts": attempts, "reason": reason},
        )
        self.url = url
        self.attempts = attempts


class GatewayInitError(CheckoutError):
    def __init__(self, reason: str):
        super().__init__(
            code=PaymentCode.GATEWAY_INIT_FAILED,
            message=f"Failed to initialize checkout: {reason}",
            error_type="GatewayInitError",
            details={"reason": reason},
        )


class PaymentFailedError(CheckoutError):
    def __init__(
        self,
        error_code: str,
        description: str = "",
        *,
        order_id: Optional[str] = None,
        payment_id: Optional[str] = None,
    ):
        super().__init__(
            code=PaymentCode.PAYMENT_FAILED,
            message=description or "Payment failed",
            error_type="PaymentFailed",
            details={
                "gateway_code": error_code,
                "order_id": order_id,
                "payment_id": payment_id,
            },
        )
        self.state_code = error_code


class InvalidPaymentResponse(CheckoutError):
    state_code = INVALID_PAYMENT_RESPONSE

    def __init__(self, reason: str = "payment id missing", *, order_id: Optional[str] = None):
        super().__init__(
            code=PaymentCode.INVALID_PAYMENT_RESPONSE,
            message=f"Invalid payment response: {reason}",
            error_type="InvalidPaymentResponse",
            details={"order_id": order_id, "reason": reason},
        )


class OrderPersistenceError(BusinessException):
    """Payment captured by the gateway but the shipment order was not stored."""

    def __init__(self, payment_id: str, order_id: Optional[str], reason: Optional[str] = None):
        super().__init__(
            code=PaymentCode.ORDER_PERSISTENCE_FAILED,
            message=(
                "Payment was received but the order could not be saved. "
                f"Please contact support with payment id {payment_id}"
            ),
            error_type="OrderPersistenceError",
            details={"payment_id": payment_id, "order_id": order_id, "reason": reason},
        )
        self.payment_id = payment_id
        self.order_id = order_id
