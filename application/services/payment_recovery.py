"""
PaymentRecoveryFlow - offers resume-or-discard for an unexpired session.

Never resumes on its own. Every offer arms a countdown that discards the
session when it expires, unless it was replaced or resumed in the meantime.
"""
from __future__ import annotations

import asyncio
import contextlib
import inspect
from typing import Any, Callable, Optional

from application.dtos.checkout import CheckoutHandlers, CheckoutOptions, RecoveryOffer
from application.services.checkout_gateway_adapter import CheckoutGatewayAdapter, GatewayInstance
from application.services.payment_session_store import PaymentSessionStore
from application.services.payment_state_broadcaster import PaymentStateBroadcaster
from core.config import CheckoutSettings
from core.logging_config import get_logger
from domain.checkout.entity import Clock, PaymentSession, PaymentStatus, now_ms


logger = get_logger(__name__)

FormRestorer = Callable[[dict[str, Any]], Any]


class PaymentRecoveryFlow:
    def __init__(
        self,
        session_store: PaymentSessionStore,
        broadcaster: PaymentStateBroadcaster,
        adapter: CheckoutGatewayAdapter,
        config: CheckoutSettings,
        *,
        clock: Clock = now_ms,
    ) -> None:
        self._session_store = session_store
        self._broadcaster = broadcaster
        self._adapter = adapter
        self._config = config
        self._clock = clock
        self._countdown: Optional[asyncio.Task] = None

    async def check(self) -> RecoveryOffer:
        """Offer the stored session, if any, and arm its expiry countdown."""
        session = await self._session_store.get()
        if session is None:
            return RecoveryOffer.none()
        offer = RecoveryOffer.of(session, self._clock())
        logger.info("payment_recovery_available", order_id=session.order_id, remaining_ms=offer.remaining_ms)
        self.start_countdown(session)
        return offer

    @property
    def countdown(self) -> Optional[asyncio.Task]:
        return self._countdown

    def remaining_ms(self, session: PaymentSession) -> int:
        return session.remaining_ms(self._clock())

    async def resume(
        self,
        session: PaymentSession,
        handlers: Optional[CheckoutHandlers] = None,
        restore_form: Optional[FormRestorer] = None,
    ) -> Optional[GatewayInstance]:
        """Reopen checkout for the same gateway order; no new order is created."""
        self.cancel_countdown()
        if restore_form is not None:
            try:
                result = restore_form(dict(session.form_snapshot))
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.error("payment_recovery_restore_failed", order_id=session.order_id, error=str(exc), exc_info=True)

        options = CheckoutOptions(
            order_id=session.order_id,
            amount=session.amount,
            currency=session.currency,
            name=session.name or self._config.merchant_name,
            description=session.description or self._config.recovery_description,
            form_snapshot=dict(session.form_snapshot),
        )
        logger.info("payment_recovery_resumed", order_id=session.order_id, amount=session.amount)
        return await self._adapter.open(options, handlers)

    async def discard(self) -> None:
        self.cancel_countdown()
        await self._session_store.clear()
        await self._broadcaster.publish(PaymentStatus.IDLE)
        logger.info("payment_recovery_discarded")

    def start_countdown(self, session: PaymentSession) -> asyncio.Task:
        self.cancel_countdown()
        self._countdown = asyncio.create_task(self._run_countdown(session))
        return self._countdown

    def cancel_countdown(self) -> None:
        task, self._countdown = self._countdown, None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

    async def aclose(self) -> None:
        task, self._countdown = self._countdown, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _run_countdown(self, session: PaymentSession) -> None:
        await asyncio.sleep(self.remaining_ms(session) / 1000)
        stored = await self._session_store.peek()
        if stored is not None and (stored.order_id, stored.saved_at) != (session.order_id, session.saved_at):
            logger.info("payment_recovery_countdown_skipped", order_id=session.order_id, reason="replaced")
            return
        logger.info("payment_recovery_countdown_expired", order_id=session.order_id)
        await self.discard()


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
