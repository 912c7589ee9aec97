"""
PaymentCoordinator - the payment lifecycle of one tab.

Owns the session store, broadcaster, gateway adapter, recovery flow and order
finalizer bound to a single shared-storage view, and releases them in
aclose(). The HTTP service keeps one coordinator per browser profile in a
PaymentCoordinatorRegistry.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

from application.dtos.checkout import (
    CheckoutHandlers,
    CheckoutOptions,
    DiagnosticsReport,
    LayoutReport,
    RecoveryOffer,
)
from application.ports.checkout_gateway import (
    CheckoutHost,
    FrameInfo,
    LayoutAware,
    ScriptLoaderPort,
    Viewport,
    VisibilityProbe,
)
from application.ports.shared_storage import SharedStoragePort
from application.services.checkout_gateway_adapter import CheckoutGatewayAdapter, GatewayInstance
from application.services.order_finalizer import OrderFinalizer, ReconciliationNotices
from application.services.payment_recovery import FormRestorer, PaymentRecoveryFlow
from application.services.payment_session_store import PaymentSessionStore
from application.services.payment_state_broadcaster import PaymentStateBroadcaster, StateSubscriber
from core.config import CheckoutSettings
from core.logging_config import get_logger
from domain.checkout.entity import Clock, PaymentSession, PaymentState, ReconciliationNotice, now_ms
from domain.common.exceptions import ResourceNotFoundException
from domain.shipment.repository import ShipmentRepository


logger = get_logger(__name__)


class PaymentCoordinator:
    def __init__(
        self,
        *,
        storage: SharedStoragePort,
        host: CheckoutHost,
        repository: ShipmentRepository,
        script_loader: ScriptLoaderPort,
        visibility_probe: VisibilityProbe,
        config: CheckoutSettings,
        key_id: Optional[str] = None,
        clock: Clock = now_ms,
    ) -> None:
        self._storage = storage
        self._host = host
        self.session_store = PaymentSessionStore(
            storage,
            session_key=config.session_key,
            state_key=config.state_key,
            default_ttl_minutes=config.session_ttl_minutes,
            clock=clock,
        )
        self.broadcaster = PaymentStateBroadcaster(storage, state_key=config.state_key, clock=clock)
        self.notices = ReconciliationNotices(storage, key=config.reconciliation_key)
        self.finalizer = OrderFinalizer(
            repository,
            self.session_store,
            self.notices,
            carrier=config.carrier,
            default_currency=config.default_currency,
            clock=clock,
        )
        self.adapter = CheckoutGatewayAdapter(
            host=host,
            script_loader=script_loader,
            visibility_probe=visibility_probe,
            session_store=self.session_store,
            broadcaster=self.broadcaster,
            finalizer=self.finalizer,
            config=config,
            key_id=key_id,
            clock=clock,
        )
        self.recovery = PaymentRecoveryFlow(
            self.session_store,
            self.broadcaster,
            self.adapter,
            config,
            clock=clock,
        )

    @property
    def tab_id(self) -> str:
        return self._storage.tab_id

    def subscribe_to_payment_state_changes(self, callback: StateSubscriber) -> Callable[[], None]:
        return self.broadcaster.subscribe(callback)

    async def open_checkout(
        self,
        options: CheckoutOptions,
        handlers: Optional[CheckoutHandlers] = None,
    ) -> Optional[GatewayInstance]:
        return await self.adapter.open(options, handlers)

    async def close_checkout(self) -> None:
        await self.adapter.close()

    async def get_recoverable_session(self) -> Optional[PaymentSession]:
        return await self.session_store.get()

    async def check_recovery(self) -> RecoveryOffer:
        return await self.recovery.check()

    async def resume_payment(
        self,
        handlers: Optional[CheckoutHandlers] = None,
        restore_form: Optional[FormRestorer] = None,
    ) -> Optional[GatewayInstance]:
        session = await self.session_store.get()
        if session is None:
            raise ResourceNotFoundException("PaymentSession")
        return await self.recovery.resume(session, handlers, restore_form)

    async def discard_recovery(self) -> None:
        await self.recovery.discard()

    async def has_active_payment(self) -> bool:
        """Also the gate for the before-unload warning."""
        return await self.broadcaster.has_active_payment()

    async def current_state(self) -> PaymentState:
        return await self.broadcaster.current_state()

    async def get_reconciliation_notices(self) -> list[ReconciliationNotice]:
        return await self.notices.load()

    def diagnostics(self, layout: Optional[LayoutReport] = None) -> DiagnosticsReport:
        if layout is not None and isinstance(self._host, LayoutAware):
            self._host.apply_layout(
                [FrameInfo(**frame.model_dump()) for frame in layout.frames],
                Viewport(width=layout.viewport_width, height=layout.viewport_height),
                popup_blocked=layout.popup_blocked,
            )
        visibility = self.adapter.check_visibility()
        return DiagnosticsReport(
            popup_blocked=self.adapter.detect_popup_blocker(),
            visible=visibility.visible,
            reason=visibility.reason,
        )

    async def deliver_gateway_event(self, instance_id: str, event: str, payload: Any = None) -> bool:
        """Relay a widget callback reported by the browser; False when the instance is not live."""
        instance = self.adapter.instance
        if instance is None or instance.id != instance_id:
            logger.warning("gateway_event_for_unknown_instance", instance_id=instance_id, gateway_event=event)
            return False
        emit = getattr(instance.widget, "emit", None)
        if emit is not None:
            await emit(event, payload)
        else:
            await self.adapter.handle_gateway_event(instance_id, event, payload)
        return True

    async def aclose(self) -> None:
        await self.recovery.aclose()
        await self.adapter.close()
        await self.broadcaster.aclose()
        await self._storage.aclose()


CoordinatorFactory = Callable[[str], Awaitable[PaymentCoordinator]]


class PaymentCoordinatorRegistry:
    """One coordinator per profile id, created on first use."""

    def __init__(self, factory: CoordinatorFactory) -> None:
        self._factory = factory
        self._coordinators: dict[str, PaymentCoordinator] = {}
        self._lock = asyncio.Lock()

    async def get(self, profile_id: str) -> PaymentCoordinator:
        coordinator = self._coordinators.get(profile_id)
        if coordinator is not None:
            return coordinator
        async with self._lock:
            coordinator = self._coordinators.get(profile_id)
            if coordinator is None:
                coordinator = await self._factory(profile_id)
                self._coordinators[profile_id] = coordinator
                logger.info("payment_coordinator_created", profile_id=profile_id, tab_id=coordinator.tab_id)
        return coordinator

    async def aclose(self) -> None:
        coordinators, self._coordinators = list(self._coordinators.values()), {}
        for coordinator in coordinators:
            try:
                await coordinator.aclose()
            except Exception as exc:
                logger.error("payment_coordinator_close_failed", tab_id=coordinator.tab_id, error=str(exc), exc_info=True)
