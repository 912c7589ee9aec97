"""
Checkout lifecycle entities - payment state snapshot and recoverable session.

Both are persisted as JSON blobs in shared storage, so each carries its own
dict (de)serialization. Timestamps are epoch milliseconds.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Optional

from domain.common.exceptions import DomainValidationException


Clock = Callable[[], int]


def now_ms() -> int:
    """Wall-clock epoch milliseconds."""
    return int(time.time() * 1000)


class PaymentStatus(str, Enum):
    """Lifecycle states of one checkout attempt."""
    IDLE = "idle"
    INITIATED = "initiated"
    PROCESSING = "processing"
    AUTHENTICATING = "authenticating"
    REDIRECTED = "redirected"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


ACTIVE_STATUSES = frozenset({
    PaymentStatus.INITIATED,
    PaymentStatus.PROCESSING,
    PaymentStatus.AUTHENTICATING,
    PaymentStatus.REDIRECTED,
})

TERMINAL_STATUSES = frozenset({
    PaymentStatus.SUCCESS,
    PaymentStatus.FAILED,
    PaymentStatus.CANCELLED,
})


@dataclass(frozen=True)
class PaymentError:
    code: str
    description: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "description": self.description}

    @classmethod
    def from_dict(cls, data: Any) -> "PaymentError":
        if isinstance(data, PaymentError):
            return data
        if not isinstance(data, dict):
            raise DomainValidationException("payment error must be an object", field="error")
        return cls(code=str(data.get("code") or ""), description=str(data.get("description") or ""))


@dataclass(frozen=True)
class PaymentState:
    """
    Latest lifecycle snapshot broadcast to every tab.

    Only the most recent value is retained; an absent value means idle.
    """

    state: PaymentStatus
    timestamp: int
    session_id: Optional[str] = None
    payment_id: Optional[str] = None
    order_id: Optional[str] = None
    error: Optional[PaymentError] = None

    @classmethod
    def idle(cls, timestamp: Optional[int] = None) -> "PaymentState":
        return cls(state=PaymentStatus.IDLE, timestamp=now_ms() if timestamp is None else timestamp)

    @property
    def is_active(self) -> bool:
        return self.state.is_active

    def data(self) -> dict[str, Any]:
        """Optional fields only, in the shape accepted by the broadcaster."""
        out: dict[str, Any] = {}
        if self.session_id is not None:
            out["session_id"] = self.session_id
        if self.payment_id is not None:
            out["payment_id"] = self.payment_id
        if self.order_id is not None:
            out["order_id"] = self.order_id
        if self.error is not None:
            out["error"] = self.error.to_dict()
        return out

    def to_dict(self) -> dict[str, Any]:
        return {"state": self.state.value, "timestamp": self.timestamp, **self.data()}

    @classmethod
    def from_dict(cls, data: Any) -> "PaymentState":
        if not isinstance(data, dict):
            raise DomainValidationException("payment state must be an object", field="state")
        try:
            status = PaymentStatus(data.get("state"))
        except ValueError as exc:
            raise DomainValidationException(f"unknown payment state: {data.get('state')}", field="state") from exc
        error = data.get("error")
        return cls(
            state=status,
            timestamp=int(data.get("timestamp") or 0),
            session_id=data.get("session_id"),
            payment_id=data.get("payment_id"),
            order_id=data.get("order_id"),
            error=PaymentError.from_dict(error) if error is not None else None,
        )


@dataclass(frozen=True)
class PaymentSession:
    """
    Durable record of one checkout attempt, used to resume after a reload,
    a closed dialog or from another tab.

    Rules:
    1. order_id is the gateway order and is reused on resume
    2. amount is in the minor currency unit
    3. valid only while now < expires_at
    """

    order_id: str
    amount: int
    currency: str = "INR"
    form_snapshot: dict[str, Any] = field(default_factory=dict)
    name: Optional[str] = None
    description: Optional[str] = None
    saved_at: Optional[int] = None
    expires_at: Optional[int] = None

    def stamped(self, now: int, ttl_ms: int) -> "PaymentSession":
        return replace(self, saved_at=now, expires_at=now + ttl_ms)

    def is_valid_at(self, now: int) -> bool:
        return self.expires_at is not None and now < self.expires_at

    def remaining_ms(self, now: int) -> int:
        if self.expires_at is None:
            return 0
        return max(0, self.expires_at - now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "amount": self.amount,
            "currency": self.currency,
            "form_snapshot": dict(self.form_snapshot or {}),
            "name": self.name,
            "description": self.description,
            "saved_at": self.saved_at,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "PaymentSession":
        if not isinstance(data, dict) or not data.get("order_id"):
            raise DomainValidationException("payment session requires order_id", field="order_id")
        snapshot = data.get("form_snapshot") or {}
        return cls(
            order_id=str(data["order_id"]),
            amount=int(data.get("amount") or 0),
            currency=str(data.get("currency") or "INR"),
            form_snapshot=snapshot if isinstance(snapshot, dict) else {},
            name=data.get("name"),
            description=data.get("description"),
            saved_at=data.get("saved_at"),
            expires_at=data.get("expires_at"),
        )


@dataclass(frozen=True)
class ReconciliationNotice:
    """Payment captured by the gateway with no stored shipment order; shown until support resolves it."""

    payment_id: str
    order_id: Optional[str]
    amount: int
    currency: str
    recorded_at: int
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "payment_id": self.payment_id,
            "order_id": self.order_id,
            "amount": self.amount,
            "currency": self.currency,
            "recorded_at": self.recorded_at,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "ReconciliationNotice":
        if not isinstance(data, dict) or not data.get("payment_id"):
            raise DomainValidationException("reconciliation notice requires payment_id", field="payment_id")
        return cls(
            payment_id=str(data["payment_id"]),
            order_id=data.get("order_id"),
            amount=int(data.get("amount") or 0),
            currency=str(data.get("currency") or "INR"),
            recorded_at=int(data.get("recorded_at") or 0),
            message=str(data.get("message") or ""),
        )
