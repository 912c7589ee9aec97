"""
Payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002
    TIMEOUT = 60003
    RATE_LIMITED = 60004

    # Checkout lifecycle (61xxx)
    SCRIPT_LOAD_FAILED = 61000
    GATEWAY_INIT_FAILED = 61001
    PAYMENT_FAILED = 61002
    INVALID_PAYMENT_RESPONSE = 61003
    ORDER_PERSISTENCE_FAILED = 61004


# Error codes carried in PaymentState.error.code (shared with the browser UI)
INITIALIZATION_ERROR = "INITIALIZATION_ERROR"
INVALID_PAYMENT_RESPONSE = "INVALID_PAYMENT_RESPONSE"
UNKNOWN_GATEWAY_ERROR = "UNKNOWN_ERROR"


# Provider→internal status mapping (payments and orders share the namespace)
PROVIDER_STATUS_TO_INTERNAL = {
    "razorpay": {
        # Payment.status
        "created": "created",
        "authorized": "processing",
        "captured": "succeeded",
        "refunded": "refunded",
        "failed": "failed",
        # Order.status
        "attempted": "pending",
        "paid": "succeeded",
    },
}
