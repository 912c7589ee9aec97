"""
Checkout DTOs: widget options, UI handlers, gateway callback payloads and the
shipment form captured for recovery.

Gateway payloads are duck-typed JSON from the SDK; they are validated into a
tagged union here before anything reaches the state machine.
"""
from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Annotated, Any, Callable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from core.logging_config import get_logger
from domain.checkout.entity import PaymentSession
from domain.shipment.entity import Address, PackageDetails, Party


logger = get_logger(__name__)


# Gateway event names (widget.on / options.handler / options.modal.ondismiss)
EVENT_SUCCESS = "payment.success"
EVENT_FAILED = "payment.failed"
EVENT_SUBMIT = "payment.submit"
EVENT_REDIRECT = "payment.external_website_redirect"
EVENT_AUTHORIZED = "payment.authorized"
EVENT_DISMISS = "modal.ondismiss"

WIRED_EVENTS = (EVENT_FAILED, EVENT_SUBMIT, EVENT_REDIRECT, EVENT_AUTHORIZED)


class CheckoutOptions(BaseModel):
    """What the UI passes to open a checkout. `amount` is in the minor unit."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    order_id: str = Field(min_length=1)
    amount: int = Field(gt=0)
    currency: str = "INR"
    name: Optional[str] = None
    description: Optional[str] = None
    key: Optional[str] = None
    prefill: dict[str, str] = Field(default_factory=dict)
    notes: dict[str, str] = Field(default_factory=dict)
    theme_color: Optional[str] = None
    form_snapshot: dict[str, Any] = Field(default_factory=dict)

    def to_session(self) -> PaymentSession:
        return PaymentSession(
            order_id=self.order_id,
            amount=self.amount,
            currency=self.currency,
            form_snapshot=dict(self.form_snapshot),
            name=self.name,
            description=self.description,
        )


@dataclass(frozen=True)
class PaymentResult:
    payment_id: Optional[str]
    order_id: Optional[str] = None
    signature: Optional[str] = None
    shipment_order_id: Optional[str] = None

    def to_dict(self) -> dict[str, Optional[str]]:
        return {
            "payment_id": self.payment_id,
            "order_id": self.order_id,
            "signature": self.signature,
            "shipment_order_id": self.shipment_order_id,
        }


async def invoke_callback(callback: Optional[Callable[..., Any]], *args: Any, name: str = "callback") -> None:
    """Call a UI callback (sync or async); its failures are logged, never raised."""
    if callback is None:
        return
    try:
        result = callback(*args)
        if inspect.isawaitable(result):
            await result
    except Exception as exc:
        logger.error("checkout_callback_failed", callback=name, error=str(exc), exc_info=True)


@dataclass
class CheckoutHandlers:
    on_success: Optional[Callable[[PaymentResult], Any]] = None
    on_error: Optional[Callable[[Exception], Any]] = None
    on_modal_close: Optional[Callable[[], Any]] = None

    async def success(self, result: PaymentResult) -> None:
        await invoke_callback(self.on_success, result, name="on_success")

    async def error(self, exc: Exception) -> None:
        await invoke_callback(self.on_error, exc, name="on_error")

    async def modal_closed(self) -> None:
        await invoke_callback(self.on_modal_close, name="on_modal_close")


class RecoveryOffer(BaseModel):
    available: bool
    session: Optional[dict[str, Any]] = None
    remaining_ms: int = 0

    @classmethod
    def none(cls) -> "RecoveryOffer":
        return cls(available=False)

    @classmethod
    def of(cls, session: PaymentSession, now: int) -> "RecoveryOffer":
        return cls(available=True, session=session.to_dict(), remaining_ms=session.remaining_ms(now))


# --- gateway payloads ---------------------------------------------------------

class _GatewayPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class SuccessPayload(_GatewayPayload):
    event: Literal["payment.success"]
    razorpay_payment_id: str = Field(min_length=1)
    razorpay_order_id: Optional[str] = None
    razorpay_signature: Optional[str] = None


class GatewayErrorBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    code: str = "UNKNOWN_ERROR"
    description: str = ""
    source: Optional[str] = None
    step: Optional[str] = None
    reason: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class FailedPayload(_GatewayPayload):
    event: Literal["payment.failed"]
    error: GatewayErrorBody = Field(default_factory=GatewayErrorBody)

    @property
    def payment_id(self) -> Optional[str]:
        value = self.error.metadata.get("payment_id")
        return str(value) if value else None


class SubmitPayload(_GatewayPayload):
    event: Literal["payment.submit"]
    method: Optional[str] = None


class RedirectPayload(_GatewayPayload):
    event: Literal["payment.external_website_redirect"]


class AuthorizedPayload(_GatewayPayload):
    event: Literal["payment.authorized"]
    razorpay_payment_id: Optional[str] = None


class DismissPayload(_GatewayPayload):
    event: Literal["modal.ondismiss"]


GatewayPayload = Annotated[
    Union[
        SuccessPayload,
        FailedPayload,
        SubmitPayload,
        RedirectPayload,
        AuthorizedPayload,
        DismissPayload,
    ],
    Field(discriminator="event"),
]

_payload_adapter: TypeAdapter[GatewayPayload] = TypeAdapter(GatewayPayload)


def parse_gateway_payload(event: str, raw: Any) -> GatewayPayload:
    """Tag a raw callback payload with its event name and validate it.

    Raises pydantic.ValidationError for unknown events or malformed bodies.
    """
    data = dict(raw) if isinstance(raw, dict) else {}
    data["event"] = event
    return _payload_adapter.validate_python(data)


# --- shipment form ------------------------------------------------------------

class ShipmentForm(BaseModel):
    """Create-shipment form as the portal submits it (camelCase keys)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    from_name: str = ""
    from_email: str = ""
    from_phone: str = ""
    from_street: str = ""
    from_city: str = ""
    from_state: str = ""
    from_pincode: str = ""
    from_landmark: str = ""

    to_name: str = ""
    to_email: str = ""
    to_phone: str = ""
    to_street: str = ""
    to_city: str = ""
    to_state: str = ""
    to_pincode: str = ""
    to_landmark: str = ""

    weight: Optional[float] = None
    package_size: str = "Medium"
    package_category: str = "Standard"
    package_description: str = ""
    service_type: str = "Standard"

    def sender(self) -> Party:
        return Party(
            name=self.from_name,
            phone=self.from_phone,
            email=self.from_email,
            address=Address(
                street=self.from_street,
                city=self.from_city,
                state=self.from_state,
                pincode=self.from_pincode,
                landmark=self.from_landmark,
            ),
        )

    def recipient(self) -> Party:
        return Party(
            name=self.to_name,
            phone=self.to_phone,
            email=self.to_email,
            address=Address(
                street=self.to_street,
                city=self.to_city,
                state=self.to_state,
                pincode=self.to_pincode,
                landmark=self.to_landmark,
            ),
        )

    def package(self) -> PackageDetails:
        return PackageDetails(
            weight=self.weight or 0.0,
            size=self.package_size,
            category=self.package_category,
            description=self.package_description,
        )


# --- HTTP request/response bodies -------------------------------------------

class GatewayEventRequest(BaseModel):
    """A widget callback relayed by the browser."""

    instance_id: str = Field(min_length=1)
    event: str = Field(min_length=1)
    payload: Optional[dict[str, Any]] = None


class FrameReport(BaseModel):
    src: str
    width: float = 0.0
    height: float = 0.0
    top: float = 0.0
    left: float = 0.0
    display: str = "block"
    visibility: str = "visible"


class LayoutReport(BaseModel):
    """Browser-side layout snapshot used by the headless visibility/popup checks."""

    frames: list[FrameReport] = Field(default_factory=list)
    viewport_width: float = 1280.0
    viewport_height: float = 800.0
    popup_blocked: Optional[bool] = None


class OpenCheckoutResponse(BaseModel):
    instance_id: str
    state: dict[str, Any]
    widget_options: dict[str, Any]
    script_url: str


class DiagnosticsReport(BaseModel):
    popup_blocked: bool
    visible: bool
    reason: Optional[str] = None


def _utc_now_z() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class Envelope(BaseModel):
    """WebSocket message: state | ping | pong | error."""

    type: str
    data: dict[str, Any] = Field(default_factory=dict)
    ts: str = Field(default_factory=_utc_now_z)
