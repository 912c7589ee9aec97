"""
Shipment repository implementations - SQLAlchemy and in-process memory.
"""
from __future__ import annotations

import uuid
from dataclasses import asdict
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.logging_config import get_logger
from domain.common.exceptions import ResourceNotFoundException
from domain.shipment.entity import (
    Address,
    CostBreakdown,
    PackageDetails,
    Party,
    PaymentRecord,
    ShipmentOrder,
)
from domain.shipment.repository import ShipmentRepository
from infrastructure.models.shipment_order import ShipmentOrderModel


logger = get_logger(__name__)

# Fields a status update may touch
UPDATABLE_FIELDS = {"status", "is_paid", "carrier", "service_type"}


def _party(data: dict[str, Any]) -> Party:
    return Party(
        name=data.get("name", ""),
        phone=data.get("phone", ""),
        email=data.get("email", ""),
        address=Address(**(data.get("address") or {})),
    )


def _cost(data: dict[str, Any]) -> CostBreakdown:
    return CostBreakdown(
        base_price=Decimal(str(data["base_price"])),
        weight_cost=Decimal(str(data["weight_cost"])),
        size_multiplier=Decimal(str(data["size_multiplier"])),
        category_multiplier=Decimal(str(data["category_multiplier"])),
        service_multiplier=Decimal(str(data["service_multiplier"])),
        total_amount=Decimal(str(data["total_amount"])),
        currency=data.get("currency", "INR"),
    )


class SQLAlchemyShipmentRepository(ShipmentRepository):
    """One short transaction per call; the coordinator outlives any request session."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    def _to_entity(self, model: ShipmentOrderModel) -> ShipmentOrder:
        return ShipmentOrder(
            id=model.id,
            sender=_party(model.sender),
            recipient=_party(model.recipient),
            package=PackageDetails(**model.package),
            cost=_cost(model.cost),
            payment=PaymentRecord(**model.payment),
            service_type=model.service_type,
            carrier=model.carrier,
            tracking_id=model.tracking_id,
            status=model.status,
            is_paid=model.is_paid,
            created_at=model.created_at,
        )

    def _to_model(self, order: ShipmentOrder, order_id: str) -> ShipmentOrderModel:
        data = order.to_dict()
        return ShipmentOrderModel(
            id=order_id,
            tracking_id=order.tracking_id,
            status=order.status,
            is_paid=order.is_paid,
            service_type=order.service_type,
            carrier=order.carrier,
            payment_id=order.payment.id,
            gateway_order_id=order.payment.order_id,
            amount=order.payment.amount,
            currency=order.payment.currency,
            total_amount=order.cost.total_amount,
            sender=data["sender"],
            recipient=data["recipient"],
            package=data["package"],
            cost=data["cost"],
            payment=asdict(order.payment),
            created_at=order.created_at,
        )

    async def create_order(self, order: ShipmentOrder) -> str:
        order_id = order.id or str(uuid.uuid4())
        try:
            async with self._session_factory() as session, session.begin():
                session.add(self._to_model(order, order_id))
        except IntegrityError:
            # Same payment written by another tab or process: return its order
            existing = await self.get_by_payment_id(order.payment.id)
            if existing is None or existing.id is None:
                raise
            logger.warning("shipment_order_exists", payment_id=order.payment.id, shipment_order_id=existing.id)
            return existing.id
        order.id = order_id
        logger.info(
            "shipment_order_created",
            shipment_order_id=order_id,
            payment_id=order.payment.id,
            tracking_id=order.tracking_id,
        )
        return order_id

    async def update_order_status(self, order_id: str, fields: dict[str, Any]) -> None:
        async with self._session_factory() as session, session.begin():
            model = await session.get(ShipmentOrderModel, order_id)
            if model is None:
                raise ResourceNotFoundException("ShipmentOrder", order_id)
            for key, value in fields.items():
                if key in UPDATABLE_FIELDS:
                    setattr(model, key, value)
        logger.info("shipment_order_updated", shipment_order_id=order_id, fields=sorted(fields))

    async def get_by_payment_id(self, payment_id: str) -> Optional[ShipmentOrder]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ShipmentOrderModel).where(ShipmentOrderModel.payment_id == payment_id)
            )
            model = result.scalar_one_or_none()
            return self._to_entity(model) if model else None


class InMemoryShipmentRepository(ShipmentRepository):
    """Single-process store, used when no database is configured and in tests."""

    def __init__(self) -> None:
        self.orders: dict[str, ShipmentOrder] = {}

    async def create_order(self, order: ShipmentOrder) -> str:
        existing = await self.get_by_payment_id(order.payment.id)
        if existing is not None and existing.id is not None:
            return existing.id
        order.id = order.id or str(uuid.uuid4())
        self.orders[order.id] = order
        logger.info("shipment_order_created", shipment_order_id=order.id, payment_id=order.payment.id)
        return order.id

    async def update_order_status(self, order_id: str, fields: dict[str, Any]) -> None:
        order = self.orders.get(order_id)
        if order is None:
            raise ResourceNotFoundException("ShipmentOrder", order_id)
        for key, value in fields.items():
            if key in UPDATABLE_FIELDS:
                setattr(order, key, value)

    async def get_by_payment_id(self, payment_id: str) -> Optional[ShipmentOrder]:
        for order in self.orders.values():
            if order.payment.id == payment_id:
                return order
        return None
