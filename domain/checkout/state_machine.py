"""
Checkout state machine - a pure reducer over PaymentState.

    idle -> initiated -> {processing | authenticating | redirected}* -> {success | failed | cancelled}

A terminal state only accepts a fresh `initiated` (new attempt) or a reset.
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import DomainValidationException
from .entity import ACTIVE_STATUSES, PaymentState, PaymentStatus
from .events import (
    CheckoutDismissed,
    CheckoutEvent,
    CheckoutInitFailed,
    CheckoutOpened,
    CheckoutReset,
    ExternalRedirect,
    PaymentAuthorized,
    PaymentFailed,
    PaymentSubmitted,
    PaymentSucceeded,
)


ANY_STATUS = frozenset(PaymentStatus)

# event type -> (allowed source states, target state)
TRANSITIONS: dict[type, tuple[frozenset, PaymentStatus]] = {
    CheckoutOpened: (ANY_STATUS, PaymentStatus.INITIATED),
    CheckoutInitFailed: (ANY_STATUS, PaymentStatus.FAILED),
    PaymentSubmitted: (ACTIVE_STATUSES, PaymentStatus.AUTHENTICATING),
    ExternalRedirect: (ACTIVE_STATUSES, PaymentStatus.REDIRECTED),
    PaymentAuthorized: (ACTIVE_STATUSES, PaymentStatus.PROCESSING),
    PaymentSucceeded: (ACTIVE_STATUSES, PaymentStatus.SUCCESS),
    PaymentFailed: (ACTIVE_STATUSES, PaymentStatus.FAILED),
    CheckoutDismissed: (ACTIVE_STATUSES, PaymentStatus.CANCELLED),
    CheckoutReset: (ANY_STATUS, PaymentStatus.IDLE),
}


class InvalidTransition(DomainValidationException):
    def __init__(self, current: PaymentStatus, event: CheckoutEvent):
        super().__init__(
            f"{type(event).__name__} is not valid in state {current.value}",
            field="state",
            details={"current": current.value, "event": type(event).__name__},
        )
        self.current = current
        self.event = event


def can_transition(current: PaymentStatus, event: CheckoutEvent) -> bool:
    rule = TRANSITIONS.get(type(event))
    return rule is not None and current in rule[0]


def reduce(current: PaymentState, event: CheckoutEvent, *, timestamp: int) -> PaymentState:
    """Apply one event; raises InvalidTransition when the event is not allowed."""
    rule = TRANSITIONS.get(type(event))
    if rule is None or current.state not in rule[0]:
        raise InvalidTransition(current.state, event)
    target = rule[1]

    if target is PaymentStatus.IDLE:
        return PaymentState(state=target, timestamp=timestamp)

    if isinstance(event, CheckoutOpened):
        # New attempt: nothing carries over from the previous one
        return PaymentState(
            state=target,
            timestamp=timestamp,
            session_id=event.session_id,
            order_id=event.order_id,
        )

    payment_id: Optional[str] = getattr(event, "payment_id", None) or current.payment_id
    return PaymentState(
        state=target,
        timestamp=timestamp,
        session_id=current.session_id,
        payment_id=payment_id,
        order_id=event.order_id or current.order_id,
        error=getattr(event, "error", None),
    )
