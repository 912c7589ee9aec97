"""Shipment domain exports."""
from .entity import ShipmentOrder, CostBreakdown
from .repository import ShipmentRepository

__all__ = ["ShipmentOrder", "CostBreakdown", "ShipmentRepository"]
