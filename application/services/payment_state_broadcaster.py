"""
PaymentStateBroadcaster - publishes lifecycle state to every tab of a profile.

Delivery paths:
- same tab: local subscribers are called directly by publish()
- other tabs: the shared-storage change event, decoded here

Both paths hand subscribers a full PaymentState; consumers treat repeated
payloads as idempotent.
"""
from __future__ import annotations

import inspect
import json
from typing import Any, Callable, Optional

from application.ports.shared_storage import SharedStoragePort, StorageEvent
from core.logging_config import get_logger
from domain.checkout.entity import Clock, PaymentError, PaymentState, PaymentStatus, now_ms
from domain.common.exceptions import DomainValidationException


logger = get_logger(__name__)

StateSubscriber = Callable[[PaymentState], Any]


class PaymentStateBroadcaster:
    def __init__(self, storage: SharedStoragePort, *, state_key: str, clock: Clock = now_ms) -> None:
        self._storage = storage
        self._state_key = state_key
        self._clock = clock
        self._subscribers: list[StateSubscriber] = []
        self._remove_listener: Optional[Callable[[], None]] = storage.add_listener(self._on_storage_event)

    async def publish(self, state: Any, data: Optional[dict[str, Any]] = None) -> Optional[PaymentState]:
        """Persist and announce a new state; unknown states are logged and ignored."""
        try:
            status = PaymentStatus(state)
        except ValueError:
            logger.warning("payment_state_rejected", state=str(state))
            return None

        data = data or {}
        error = data.get("error")
        snapshot = PaymentState(
            state=status,
            timestamp=self._clock(),
            session_id=data.get("session_id"),
            payment_id=data.get("payment_id"),
            order_id=data.get("order_id"),
            error=PaymentError.from_dict(error) if error else None,
        )
        try:
            await self._storage.set_item(self._state_key, json.dumps(snapshot.to_dict()))
        except Exception as exc:
            # Other tabs miss this one; this tab still sees it
            logger.error("payment_state_persist_failed", state=status.value, error=str(exc), exc_info=True)
        logger.info(
            "payment_state_published",
            state=status.value,
            order_id=snapshot.order_id,
            payment_id=snapshot.payment_id,
            tab_id=self._storage.tab_id,
        )
        await self._dispatch(snapshot)
        return snapshot

    def subscribe(self, callback: StateSubscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def current_state(self) -> PaymentState:
        raw = await self._storage.get_item(self._state_key)
        if raw is None:
            return PaymentState.idle(self._clock())
        try:
            return PaymentState.from_dict(json.loads(raw))
        except (ValueError, TypeError, DomainValidationException) as exc:
            logger.warning("payment_state_malformed", error=str(exc))
            return PaymentState.idle(self._clock())

    async def has_active_payment(self) -> bool:
        return (await self.current_state()).is_active

    async def clear(self) -> None:
        await self._storage.remove_item(self._state_key)

    async def aclose(self) -> None:
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        self._subscribers.clear()

    async def _on_storage_event(self, event: StorageEvent) -> None:
        if event.key != self._state_key:
            return
        if event.new_value is None:
            snapshot = PaymentState.idle(self._clock())
        else:
            try:
                snapshot = PaymentState.from_dict(json.loads(event.new_value))
            except (ValueError, TypeError, DomainValidationException) as exc:
                logger.warning("payment_state_event_malformed", origin=event.origin, error=str(exc))
                return
        await self._dispatch(snapshot)

    async def _dispatch(self, snapshot: PaymentState) -> None:
        for callback in list(self._subscribers):
            try:
                result = callback(snapshot)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.error(
                    "payment_state_subscriber_failed",
                    state=snapshot.state.value,
                    error=str(exc),
                    exc_info=True,
                )
