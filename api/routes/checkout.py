"""
Checkout routes - the browser drives the profile's coordinator over HTTP.

The real widget runs in the browser; it relays every widget callback to
POST /checkout/events and receives the outcome recorded by the handlers.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends

from api.dependencies import get_payment_coordinator
from application.dtos.checkout import (
    CheckoutHandlers,
    CheckoutOptions,
    GatewayEventRequest,
    LayoutReport,
    OpenCheckoutResponse,
    PaymentResult,
)
from application.services.checkout_gateway_adapter import GatewayInstance
from application.services.payment_coordinator import PaymentCoordinator
from core.config import settings
from core.response import success_response
from domain.common.exceptions import BusinessException


router = APIRouter(prefix="/checkout", tags=["Checkout"])


@dataclass
class RecordingHandlers(CheckoutHandlers):
    """Keeps the outcome of one attempt so the HTTP response can report it."""

    result: Optional[PaymentResult] = None
    failure: Optional[Exception] = None
    dismissed: bool = False

    def __post_init__(self) -> None:
        self.on_success = self._record_success
        self.on_error = self._record_failure
        self.on_modal_close = self._record_dismiss

    def _record_success(self, result: PaymentResult) -> None:
        self.result = result

    def _record_failure(self, exc: Exception) -> None:
        self.failure = exc

    def _record_dismiss(self) -> None:
        self.dismissed = True

    def outcome(self) -> dict[str, Any]:
        error = None
        if isinstance(self.failure, BusinessException):
            error = {
                "code": int(self.failure.code),
                "type": self.failure.error_type,
                "message": self.failure.message,
                "details": self.failure.details,
            }
        elif self.failure is not None:
            error = {"type": type(self.failure).__name__, "message": str(self.failure)}
        return {
            "result": self.result.to_dict() if self.result else None,
            "error": error,
            "dismissed": self.dismissed,
        }


async def _opened(
    coordinator: PaymentCoordinator,
    instance: Optional[GatewayInstance],
    handlers: RecordingHandlers,
):
    if instance is None:
        # Initialization failed; the handler received the CheckoutError
        if isinstance(handlers.failure, BusinessException):
            raise handlers.failure
        raise RuntimeError("checkout failed to open")
    public_options = getattr(instance.widget, "public_options", None)
    body = OpenCheckoutResponse(
        instance_id=instance.id,
        state=(await coordinator.current_state()).to_dict(),
        widget_options=public_options() if callable(public_options) else {},
        script_url=settings.checkout.script_url,
    )
    return success_response(data=body.model_dump(), message="Checkout opened")


@router.post("/open", summary="Open checkout")
async def open_checkout(options: CheckoutOptions, coordinator: PaymentCoordinator = Depends(get_payment_coordinator)):
    handlers = RecordingHandlers()
    instance = await coordinator.open_checkout(options, handlers)
    return await _opened(coordinator, instance, handlers)


@router.post("/events", summary="Relay a widget callback")
async def gateway_event(payload: GatewayEventRequest, coordinator: PaymentCoordinator = Depends(get_payment_coordinator)):
    instance = coordinator.adapter.instance
    accepted = await coordinator.deliver_gateway_event(payload.instance_id, payload.event, payload.payload)
    data: dict[str, Any] = {
        "accepted": accepted,
        "state": (await coordinator.current_state()).to_dict(),
    }
    if accepted and instance is not None and isinstance(instance.handlers, RecordingHandlers):
        data.update(instance.handlers.outcome())
    return success_response(data=data, message="Event processed" if accepted else "Event ignored")


@router.post("/close", summary="Close checkout")
async def close_checkout(coordinator: PaymentCoordinator = Depends(get_payment_coordinator)):
    await coordinator.close_checkout()
    return success_response(message="Checkout closed")


@router.get("/state", summary="Current payment state")
async def payment_state(coordinator: PaymentCoordinator = Depends(get_payment_coordinator)):
    state = await coordinator.current_state()
    return success_response(data={**state.to_dict(), "active": state.is_active})


@router.get("/session", summary="Recoverable session")
async def recoverable_session(coordinator: PaymentCoordinator = Depends(get_payment_coordinator)):
    offer = await coordinator.check_recovery()
    return success_response(data=offer.model_dump())


@router.post("/session/resume", summary="Resume the saved session")
async def resume_session(coordinator: PaymentCoordinator = Depends(get_payment_coordinator)):
    handlers = RecordingHandlers()
    instance = await coordinator.resume_payment(handlers)
    return await _opened(coordinator, instance, handlers)


@router.delete("/session", summary="Discard the saved session")
async def discard_session(coordinator: PaymentCoordinator = Depends(get_payment_coordinator)):
    await coordinator.discard_recovery()
    return success_response(message="Session discarded")


@router.post("/diagnostics", summary="Popup blocker and frame visibility")
async def diagnostics(
    layout: Optional[LayoutReport] = Body(default=None),
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
):
    report = coordinator.diagnostics(layout)
    return success_response(data=report.model_dump())


@router.get("/reconciliation", summary="Payments captured without a stored order")
async def reconciliation_notices(coordinator: PaymentCoordinator = Depends(get_payment_coordinator)):
    notices = await coordinator.get_reconciliation_notices()
    return success_response(data=[n.to_dict() for n in notices])
