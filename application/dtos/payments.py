"""
Order backend DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, Field, field_validator
from pydantic.types import condecimal

# Currencies the checkout is enabled for
ISO_4217 = {
    "INR", "USD", "EUR", "GBP", "SGD", "AED",
}


def _upper_currency(v: str) -> str:
    u = (v or "").upper()
    if len(u) != 3 or not u.isalpha():
        raise ValueError("currency must be ISO-4217 alpha-3")
    if u not in ISO_4217:
        raise ValueError("unsupported currency")
    return u


class CreateOrderRequest(BaseModel):
    """Amount is given in major units (rupees) and converted to paise for the gateway."""

    amount: condecimal(gt=0, decimal_places=2)  # type: ignore[valid-type]
    currency: str = Field(default="INR")
    receipt: Optional[str] = Field(default=None, max_length=40)
    notes: dict[str, Any] = Field(default_factory=dict)

    @field_validator("currency")
    @classmethod
    def _validate_currency(cls, v: str) -> str:
        return _upper_currency(v)

    @property
    def amount_minor(self) -> int:
        return int((Decimal(self.amount) * 100).to_integral_value())


class GatewayOrder(BaseModel):
    id: str
    amount: int  # minor unit
    currency: str
    receipt: Optional[str] = None
    status: str = "created"
    provider: str = "razorpay"


class VerifyPaymentRequest(BaseModel):
    razorpay_order_id: str = Field(min_length=1)
    razorpay_payment_id: str = Field(min_length=1)
    razorpay_signature: str = Field(min_length=1)


class VerifyPaymentResult(BaseModel):
    valid: bool
    order_id: str
    payment_id: str


class PaymentDetails(BaseModel):
    id: str
    status: str  # internal status, see PROVIDER_STATUS_TO_INTERNAL
    provider_status: str
    amount: int
    currency: str
    order_id: Optional[str] = None
    method: Optional[str] = None
    email: Optional[str] = None
    contact: Optional[str] = None
    error_code: Optional[str] = None
    error_description: Optional[str] = None
    provider: str = "razorpay"
