"""Infrastructure models package exports."""
from .base import Base, metadata
from .shipment_order import ShipmentOrderModel

__all__ = [
    "Base",
    "metadata",
    "ShipmentOrderModel",
]
