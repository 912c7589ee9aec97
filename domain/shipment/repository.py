"""
Shipment repository interface.
"""
from abc import ABC, abstractmethod
from typing import Any, Optional

from .entity import ShipmentOrder


class ShipmentRepository(ABC):

    @abstractmethod
    async def create_order(self, order: ShipmentOrder) -> str:
        """Persist the order and return its id."""
        pass

    @abstractmethod
    async def update_order_status(self, order_id: str, fields: dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def get_by_payment_id(self, payment_id: str) -> Optional[ShipmentOrder]:
        pass
