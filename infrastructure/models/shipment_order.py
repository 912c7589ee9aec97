"""
Shipment order ORM model.
Infrastructure detail only; business rules live in domain.shipment.entity.
"""
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Index, Integer, Numeric, String

from .base import Base


class ShipmentOrderModel(Base):
    __tablename__ = "shipment_orders"

    id = Column(String(36), primary_key=True)
    tracking_id = Column(String(8), unique=True, index=True, nullable=False)
    status = Column(String(50), nullable=False, default="Processing", index=True)
    is_paid = Column(Boolean, nullable=False, default=True)
    service_type = Column(String(50), nullable=False, default="Standard")
    carrier = Column(String(100), nullable=False)

    # One order per captured payment
    payment_id = Column(String(100), unique=True, index=True, nullable=False)
    gateway_order_id = Column(String(100), nullable=True, index=True)
    amount = Column(Integer, nullable=False, comment="minor unit")
    currency = Column(String(3), nullable=False, default="INR")
    total_amount = Column(Numeric(precision=15, scale=2), nullable=False)

    sender = Column(JSON, nullable=False)
    recipient = Column(JSON, nullable=False)
    package = Column(JSON, nullable=False)
    cost = Column(JSON, nullable=False)
    payment = Column(JSON, nullable=False)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_shipment_orders_status_created", "status", "created_at"),
    )

    def __repr__(self):
        return (
            f"<ShipmentOrderModel(id='{self.id}', tracking_id='{self.tracking_id}', "
            f"payment_id='{self.payment_id}', status='{self.status}')>"
        )
