"""
OrderFinalizer - turns a confirmed gateway payment into a stored shipment order.

The order is written once per payment id. When the write fails after the money
moved, a reconciliation notice is kept in shared storage for every tab and the
caller receives OrderPersistenceError; no automatic retry happens.
"""
from __future__ import annotations

import json
from dataclasses import replace
from decimal import Decimal
from typing import Optional

from pydantic import ValidationError

from application.dtos.checkout import PaymentResult, ShipmentForm
from application.ports.shared_storage import SharedStoragePort
from application.services.payment_session_store import PaymentSessionStore
from core.logging_config import get_logger
from domain.checkout.entity import Clock, PaymentSession, ReconciliationNotice, now_ms
from domain.checkout.exceptions import InvalidPaymentResponse, OrderPersistenceError
from domain.common.exceptions import DomainValidationException
from domain.shipment.entity import CostBreakdown, PaymentRecord, ShipmentOrder
from domain.shipment.repository import ShipmentRepository


logger = get_logger(__name__)


class ReconciliationNotices:
    """Persistent 'payment captured but order not saved' records, keyed by payment id."""

    def __init__(self, storage: SharedStoragePort, *, key: str) -> None:
        self._storage = storage
        self._key = key

    async def load(self) -> list[ReconciliationNotice]:
        raw = await self._storage.get_item(self._key)
        if raw is None:
            return []
        try:
            items = json.loads(raw)
        except ValueError as exc:
            logger.warning("reconciliation_notices_malformed", error=str(exc))
            return []
        notices = []
        for item in items if isinstance(items, list) else []:
            try:
                notices.append(ReconciliationNotice.from_dict(item))
            except DomainValidationException as exc:
                logger.warning("reconciliation_notice_skipped", error=str(exc))
        return notices

    async def record(self, notice: ReconciliationNotice) -> None:
        notices = [n for n in await self.load() if n.payment_id != notice.payment_id]
        notices.append(notice)
        await self._storage.set_item(self._key, json.dumps([n.to_dict() for n in notices]))


class OrderFinalizer:
    def __init__(
        self,
        repository: ShipmentRepository,
        session_store: PaymentSessionStore,
        notices: ReconciliationNotices,
        *,
        carrier: str = "FreightFox",
        default_currency: str = "INR",
        clock: Clock = now_ms,
    ) -> None:
        self._repository = repository
        self._session_store = session_store
        self._notices = notices
        self._carrier = carrier
        self._default_currency = default_currency
        self._clock = clock

    async def finalize(self, result: PaymentResult, session: Optional[PaymentSession] = None) -> str:
        """Write the shipment order for a confirmed payment; returns the order reference.

        The repository is the source of truth for idempotency: an order already
        stored for the payment id is returned instead of writing a second one.
        """
        if not result.payment_id:
            logger.error("invalid_payment_response", order_id=result.order_id, reason="payment id missing")
            raise InvalidPaymentResponse(order_id=result.order_id)

        payment_id = result.payment_id
        if session is None:
            session = await self._session_store.peek()
        order = self._build_order(result, session)

        try:
            existing = await self._repository.get_by_payment_id(payment_id)
            if existing is not None and existing.id is not None:
                logger.info("order_already_finalized", payment_id=payment_id, shipment_order_id=existing.id)
                return existing.id
            order_ref = await self._repository.create_order(order)
        except Exception as exc:
            logger.critical(
                "order_persistence_failed",
                payment_id=payment_id,
                order_id=result.order_id,
                error=str(exc),
                exc_info=True,
            )
            error = OrderPersistenceError(payment_id, result.order_id, str(exc))
            await self._record_notice(error, order)
            raise error from exc

        await self._session_store.clear()
        logger.info(
            "order_finalized",
            payment_id=payment_id,
            order_id=result.order_id,
            shipment_order_id=order_ref,
            tracking_id=order.tracking_id,
        )
        return order_ref

    async def _record_notice(self, error: OrderPersistenceError, order: ShipmentOrder) -> None:
        notice = ReconciliationNotice(
            payment_id=error.payment_id,
            order_id=error.order_id,
            amount=order.payment.amount,
            currency=order.payment.currency,
            recorded_at=self._clock(),
            message=error.message,
        )
        try:
            await self._notices.record(notice)
        except Exception as exc:
            # The caller still gets OrderPersistenceError; the log line is the last record
            logger.critical(
                "reconciliation_notice_write_failed",
                payment_id=error.payment_id,
                order_id=error.order_id,
                amount=notice.amount,
                error=str(exc),
                exc_info=True,
            )

    def _build_order(self, result: PaymentResult, session: Optional[PaymentSession]) -> ShipmentOrder:
        snapshot = session.form_snapshot if session is not None else {}
        try:
            form = ShipmentForm.model_validate(snapshot)
        except ValidationError as exc:
            # The payment is captured either way; keep the order with blank details
            logger.warning("shipment_form_snapshot_invalid", payment_id=result.payment_id, errors=exc.errors())
            form = ShipmentForm()

        currency = session.currency if session is not None else self._default_currency
        amount = session.amount if session is not None else 0
        package = form.package()
        cost = CostBreakdown.quote(package, form.service_type, currency)
        if amount:
            # The amount charged at checkout is authoritative
            cost = replace(cost, total_amount=Decimal(amount) / 100)

        return ShipmentOrder(
            sender=form.sender(),
            recipient=form.recipient(),
            package=package,
            cost=cost,
            payment=PaymentRecord(
                id=result.payment_id or "",
                order_id=result.order_id,
                signature=result.signature,
                status="completed",
                amount=amount,
                currency=currency,
            ),
            service_type=form.service_type,
            carrier=self._carrier,
        )
