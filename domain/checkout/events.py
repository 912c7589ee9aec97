"""
Checkout events.

The gateway adapter translates native widget callbacks into these events and
feeds them to the state machine. Domain remains free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .entity import PaymentError


@dataclass(frozen=True)
class CheckoutEvent:
    order_id: Optional[str] = None


@dataclass(frozen=True)
class CheckoutOpened(CheckoutEvent):
    session_id: Optional[str] = None


@dataclass(frozen=True)
class CheckoutInitFailed(CheckoutEvent):
    error: Optional[PaymentError] = None


@dataclass(frozen=True)
class PaymentSubmitted(CheckoutEvent):
    pass


@dataclass(frozen=True)
class ExternalRedirect(CheckoutEvent):
    pass


@dataclass(frozen=True)
class PaymentAuthorized(CheckoutEvent):
    payment_id: Optional[str] = None


@dataclass(frozen=True)
class PaymentSucceeded(CheckoutEvent):
    payment_id: Optional[str] = None
    signature: Optional[str] = None


@dataclass(frozen=True)
class PaymentFailed(CheckoutEvent):
    error: Optional[PaymentError] = None
    payment_id: Optional[str] = None


@dataclass(frozen=True)
class CheckoutDismissed(CheckoutEvent):
    pass


@dataclass(frozen=True)
class CheckoutReset(CheckoutEvent):
    pass
