"""
CheckoutGatewayAdapter - owns the single hosted checkout widget of a tab.

Native widget callbacks are validated into gateway payloads, translated into
checkout events and run through the state machine; every accepted transition
is published through the broadcaster. Only script loading is retried. A
gateway failure ends the attempt and closes the widget.
"""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import ValidationError

from application.dtos.checkout import (
    EVENT_DISMISS,
    EVENT_SUCCESS,
    WIRED_EVENTS,
    AuthorizedPayload,
    CheckoutHandlers,
    CheckoutOptions,
    DismissPayload,
    FailedPayload,
    PaymentResult,
    RedirectPayload,
    SubmitPayload,
    SuccessPayload,
    parse_gateway_payload,
)
from application.ports.checkout_gateway import (
    CheckoutHost,
    CheckoutWidget,
    OverlayElement,
    ScriptLoaderPort,
    VisibilityProbe,
    VisibilityResult,
)
from application.services.order_finalizer import OrderFinalizer
from application.services.payment_session_store import PaymentSessionStore
from application.services.payment_state_broadcaster import PaymentStateBroadcaster
from core.config import CheckoutSettings
from core.logging_config import get_logger
from domain.checkout.entity import Clock, PaymentError, PaymentState, now_ms
from domain.checkout.events import (
    CheckoutDismissed,
    CheckoutEvent,
    CheckoutInitFailed,
    CheckoutOpened,
    ExternalRedirect,
    PaymentAuthorized,
    PaymentFailed,
    PaymentSubmitted,
    PaymentSucceeded,
)
from domain.checkout.exceptions import (
    CheckoutError,
    GatewayInitError,
    InvalidPaymentResponse,
    OrderPersistenceError,
    PaymentFailedError,
)
from domain.checkout.state_machine import InvalidTransition, reduce
from shared.codes.payment_codes import INITIALIZATION_ERROR, INVALID_PAYMENT_RESPONSE


logger = get_logger(__name__)

OVERLAY_STYLE = {
    "position": "fixed",
    "top": "0",
    "left": "0",
    "width": "100vw",
    "height": "100vh",
    "background-color": "rgba(0, 0, 0, 0.5)",
    "pointer-events": "auto",
}


@dataclass
class GatewayInstance:
    """The live widget, its overlay and the attempt it serves."""

    id: str
    widget: CheckoutWidget
    overlay: OverlayElement
    options: CheckoutOptions
    handlers: CheckoutHandlers
    state: PaymentState
    widget_options: dict[str, Any] = field(default_factory=dict)
    closed: bool = False
    finalized: bool = False

    @property
    def session_id(self) -> str:
        return self.id


class CheckoutGatewayAdapter:
    def __init__(
        self,
        *,
        host: CheckoutHost,
        script_loader: ScriptLoaderPort,
        visibility_probe: VisibilityProbe,
        session_store: PaymentSessionStore,
        broadcaster: PaymentStateBroadcaster,
        finalizer: Optional[OrderFinalizer],
        config: CheckoutSettings,
        key_id: Optional[str] = None,
        clock: Clock = now_ms,
    ) -> None:
        self._host = host
        self._script_loader = script_loader
        self._visibility_probe = visibility_probe
        self._session_store = session_store
        self._broadcaster = broadcaster
        self._finalizer = finalizer
        self._config = config
        self._key_id = key_id
        self._clock = clock
        self._instance: Optional[GatewayInstance] = None
        self._open_lock = asyncio.Lock()

    @property
    def instance(self) -> Optional[GatewayInstance]:
        return self._instance

    async def open(
        self,
        options: CheckoutOptions,
        handlers: Optional[CheckoutHandlers] = None,
    ) -> Optional[GatewayInstance]:
        """Open the widget for one attempt; returns None when initialization failed.

        Concurrent calls are serialized so a tab never holds more than one widget.
        """
        async with self._open_lock:
            return await self._open(options, handlers or CheckoutHandlers())

    async def _open(self, options: CheckoutOptions, handlers: CheckoutHandlers) -> Optional[GatewayInstance]:
        await self.close()
        await self._session_store.save(options.to_session(), ttl_minutes=self._config.session_ttl_minutes)

        instance_id = uuid.uuid4().hex
        attempt_state = PaymentState.idle(self._clock())
        try:
            factory = await self._script_loader.ensure_loaded()
            widget_options = self._widget_options(options, instance_id)
            try:
                widget = factory(widget_options)
            except Exception as exc:
                raise GatewayInitError(str(exc) or type(exc).__name__) from exc
        except CheckoutError as exc:
            await self._fail_initialization(attempt_state, options, handlers, exc)
            return None

        overlay = OverlayElement(
            id=f"checkout-overlay-{instance_id}",
            z_index=self._config.overlay_z_index,
            style=dict(OVERLAY_STYLE),
        )
        instance = GatewayInstance(
            id=instance_id,
            widget=widget,
            overlay=overlay,
            options=options,
            handlers=handlers,
            state=attempt_state,
            widget_options=widget_options,
        )
        for event_name in WIRED_EVENTS:
            widget.on(event_name, self._callback(instance_id, event_name))
        if self._instance is not None:
            await self.close()
        self._host.insert_overlay(overlay)
        self._instance = instance

        await self._transition(instance, CheckoutOpened(order_id=options.order_id, session_id=instance_id))
        try:
            await widget.open()
        except Exception as exc:
            await self._teardown(instance)
            await self._fail_initialization(
                instance.state, options, handlers, GatewayInitError(str(exc) or type(exc).__name__)
            )
            return None

        logger.info(
            "checkout_opened",
            instance_id=instance_id,
            order_id=options.order_id,
            amount=options.amount,
            currency=options.currency,
        )
        return instance

    async def close(self) -> None:
        """Close the widget, remove its overlay and forget it; no-op without an instance."""
        instance = self._instance
        if instance is None:
            return
        await self._teardown(instance)
        logger.info("checkout_closed", instance_id=instance.id, state=instance.state.state.value)

    async def handle_gateway_event(self, instance_id: str, event_name: str, payload: Any = None) -> None:
        """Entry point for every native callback of a widget created by this adapter."""
        instance = self._instance
        if instance is None or instance.id != instance_id or instance.closed:
            logger.warning("checkout_event_from_stale_instance", instance_id=instance_id, gateway_event=event_name)
            return
        if instance.state.state.is_terminal:
            logger.warning(
                "checkout_event_after_terminal",
                instance_id=instance_id,
                gateway_event=event_name,
                state=instance.state.state.value,
            )
            return

        try:
            parsed = parse_gateway_payload(event_name, payload)
        except ValidationError as exc:
            if event_name == EVENT_SUCCESS:
                await self._reject_success(instance, exc)
            else:
                logger.warning("gateway_payload_rejected", gateway_event=event_name, errors=exc.errors())
            return

        order_id = instance.options.order_id
        if isinstance(parsed, SuccessPayload):
            await self._on_success(instance, parsed)
        elif isinstance(parsed, FailedPayload):
            await self._on_failed(instance, parsed)
        elif isinstance(parsed, DismissPayload):
            await self._on_dismissed(instance)
        elif isinstance(parsed, SubmitPayload):
            await self._transition(instance, PaymentSubmitted(order_id=order_id))
        elif isinstance(parsed, RedirectPayload):
            await self._transition(instance, ExternalRedirect(order_id=order_id))
        elif isinstance(parsed, AuthorizedPayload):
            await self._transition(
                instance, PaymentAuthorized(order_id=order_id, payment_id=parsed.razorpay_payment_id)
            )

    def detect_popup_blocker(self) -> bool:
        """Open and immediately close a blank popup; True when it was blocked."""
        try:
            popup = self._host.open_popup("about:blank")
        except Exception as exc:
            logger.warning("popup_probe_failed", error=str(exc))
            return True
        if popup is None or getattr(popup, "closed", False):
            return True
        popup.close()
        return False

    def check_visibility(self) -> VisibilityResult:
        result = self._visibility_probe.check()
        if not result.visible:
            logger.info("checkout_frame_not_visible", reason=result.reason)
        return result

    def _widget_options(self, options: CheckoutOptions, instance_id: str) -> dict[str, Any]:
        async def handler(response: Any = None) -> None:
            await self.handle_gateway_event(instance_id, EVENT_SUCCESS, response)

        async def ondismiss(payload: Any = None) -> None:
            await self.handle_gateway_event(instance_id, EVENT_DISMISS, payload)

        return {
            "key": options.key or self._key_id,
            "amount": options.amount,
            "currency": options.currency,
            "order_id": options.order_id,
            "name": options.name or self._config.merchant_name,
            "description": options.description or "",
            "prefill": dict(options.prefill),
            "notes": dict(options.notes),
            "theme": {"color": options.theme_color or self._config.theme_color},
            "modal": {
                # Payment must be cancelled explicitly, not by a stray keypress or click
                "escape": False,
                "backdropclose": False,
                "ondismiss": ondismiss,
            },
            "handler": handler,
        }

    def _callback(self, instance_id: str, event_name: str):
        async def callback(payload: Any = None) -> None:
            await self.handle_gateway_event(instance_id, event_name, payload)
        return callback

    async def _transition(self, instance: GatewayInstance, event: CheckoutEvent) -> bool:
        try:
            next_state = reduce(instance.state, event, timestamp=self._clock())
        except InvalidTransition:
            logger.warning(
                "checkout_transition_ignored",
                instance_id=instance.id,
                checkout_event=type(event).__name__,
                state=instance.state.state.value,
            )
            return False
        instance.state = next_state
        await self._broadcaster.publish(next_state.state, next_state.data())
        return True

    async def _on_success(self, instance: GatewayInstance, payload: SuccessPayload) -> None:
        result = PaymentResult(
            payment_id=payload.razorpay_payment_id,
            order_id=payload.razorpay_order_id or instance.options.order_id,
            signature=payload.razorpay_signature,
        )
        event = PaymentSucceeded(order_id=result.order_id, payment_id=result.payment_id, signature=result.signature)
        if not await self._transition(instance, event):
            return
        await self._teardown(instance)
        logger.info("checkout_payment_succeeded", instance_id=instance.id, payment_id=result.payment_id)

        if self._finalizer is not None and not instance.finalized:
            instance.finalized = True
            try:
                order_ref = await self._finalizer.finalize(result, instance.options.to_session())
            except (OrderPersistenceError, InvalidPaymentResponse) as exc:
                await instance.handlers.error(exc)
                return
            result = PaymentResult(
                payment_id=result.payment_id,
                order_id=result.order_id,
                signature=result.signature,
                shipment_order_id=order_ref,
            )
        await instance.handlers.success(result)

    async def _on_failed(self, instance: GatewayInstance, payload: FailedPayload) -> None:
        error = PaymentError(code=payload.error.code, description=payload.error.description)
        event = PaymentFailed(order_id=instance.options.order_id, error=error, payment_id=payload.payment_id)
        if not await self._transition(instance, event):
            return
        await self._teardown(instance)
        logger.warning(
            "checkout_payment_failed",
            instance_id=instance.id,
            order_id=instance.options.order_id,
            gateway_code=error.code,
            reason=payload.error.reason,
        )
        await instance.handlers.error(PaymentFailedError(
            error.code,
            error.description,
            order_id=instance.options.order_id,
            payment_id=payload.payment_id,
        ))

    async def _on_dismissed(self, instance: GatewayInstance) -> None:
        if not await self._transition(instance, CheckoutDismissed(order_id=instance.options.order_id)):
            return
        await self._teardown(instance)
        logger.info("checkout_dismissed", instance_id=instance.id, order_id=instance.options.order_id)
        await instance.handlers.modal_closed()

    async def _reject_success(self, instance: GatewayInstance, exc: ValidationError) -> None:
        logger.error(
            "invalid_payment_response",
            instance_id=instance.id,
            order_id=instance.options.order_id,
            errors=exc.errors(),
        )
        error = InvalidPaymentResponse(order_id=instance.options.order_id)
        failed = PaymentFailed(
            order_id=instance.options.order_id,
            error=PaymentError(code=INVALID_PAYMENT_RESPONSE, description=error.message),
        )
        await self._transition(instance, failed)
        await self._teardown(instance)
        await instance.handlers.error(error)

    async def _fail_initialization(
        self,
        current: PaymentState,
        options: CheckoutOptions,
        handlers: CheckoutHandlers,
        exc: CheckoutError,
    ) -> None:
        logger.error(
            "checkout_initialization_failed",
            order_id=options.order_id,
            error_type=exc.error_type,
            error=exc.message,
        )
        failed = reduce(
            current,
            CheckoutInitFailed(
                order_id=options.order_id,
                error=PaymentError(code=INITIALIZATION_ERROR, description=exc.message),
            ),
            timestamp=self._clock(),
        )
        await self._broadcaster.publish(failed.state, failed.data())
        await handlers.error(exc)

    async def _teardown(self, instance: GatewayInstance) -> None:
        if self._instance is instance:
            self._instance = None
        if instance.closed:
            return
        instance.closed = True
        try:
            await instance.widget.close()
        except Exception as exc:
            logger.warning("checkout_widget_close_failed", instance_id=instance.id, error=str(exc))
        finally:
            self._host.remove_overlay(instance.overlay.id)
