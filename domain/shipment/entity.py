"""
Shipment order aggregate - written once, after the gateway reports success.
"""
from __future__ import annotations

import secrets
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from domain.common.exceptions import DomainValidationException


BASE_PRICE = Decimal("300")
WEIGHT_RATE = Decimal("50")

SIZE_MULTIPLIERS = {
    "Small": Decimal("1.0"),
    "Medium": Decimal("1.5"),
    "Large": Decimal("2.0"),
    "Extra Large": Decimal("2.5"),
}
CATEGORY_MULTIPLIERS = {
    "Standard": Decimal("1.0"),
    "Fragile": Decimal("1.2"),
    "Electronics": Decimal("1.3"),
    "Perishable": Decimal("1.4"),
}
SERVICE_MULTIPLIERS = {
    "Standard": Decimal("1.0"),
    "Express": Decimal("1.5"),
    "Next Day": Decimal("1.8"),
    "Same Day": Decimal("2.0"),
}


def generate_tracking_id() -> str:
    """8-digit numeric tracking id."""
    return str(10_000_000 + secrets.randbelow(90_000_000))


@dataclass(frozen=True)
class Address:
    street: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""
    landmark: str = ""


@dataclass(frozen=True)
class Party:
    name: str
    phone: str
    email: str = ""
    address: Address = field(default_factory=Address)


@dataclass(frozen=True)
class PackageDetails:
    weight: float
    size: str = "Medium"
    category: str = "Standard"
    description: str = ""


@dataclass(frozen=True)
class CostBreakdown:
    """Price snapshot captured before checkout; amounts in major units."""

    base_price: Decimal
    weight_cost: Decimal
    size_multiplier: Decimal
    category_multiplier: Decimal
    service_multiplier: Decimal
    total_amount: Decimal
    currency: str = "INR"

    @property
    def total_minor(self) -> int:
        return int((self.total_amount * 100).to_integral_value(rounding=ROUND_HALF_UP))

    @classmethod
    def quote(cls, package: PackageDetails, service_type: str, currency: str = "INR") -> "CostBreakdown":
        """
        base × size × category × service + weight × 50, rounded to 2 places.

        Unknown labels fall back to a multiplier of 1.0; a non-positive weight
        is charged as 1 kg.
        """
        size = SIZE_MULTIPLIERS.get(package.size, Decimal("1.0"))
        category = CATEGORY_MULTIPLIERS.get(package.category, Decimal("1.0"))
        service = SERVICE_MULTIPLIERS.get(service_type, Decimal("1.0"))
        weight = Decimal(str(package.weight)) if package.weight and package.weight > 0 else Decimal("1")
        weight_cost = weight * WEIGHT_RATE
        total = (BASE_PRICE * size * category * service + weight_cost).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )
        return cls(
            base_price=BASE_PRICE,
            weight_cost=weight_cost,
            size_multiplier=size,
            category_multiplier=category,
            service_multiplier=service,
            total_amount=total,
            currency=currency,
        )


@dataclass(frozen=True)
class PaymentRecord:
    id: str
    order_id: Optional[str]
    signature: Optional[str]
    status: str
    amount: int
    currency: str


@dataclass
class ShipmentOrder:
    """
    Shipment order aggregate.

    Rules:
    1. only created with a confirmed payment record
    2. tracking_id is an 8-digit number
    3. starts in status `Processing`
    """

    sender: Party
    recipient: Party
    package: PackageDetails
    cost: CostBreakdown
    payment: PaymentRecord
    service_type: str = "Standard"
    carrier: str = "FreightFox"
    tracking_id: str = field(default_factory=generate_tracking_id)
    status: str = "Processing"
    is_paid: bool = True
    id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if not self.payment.id:
            raise DomainValidationException("shipment order requires a payment id", field="payment.id")
        if not (len(self.tracking_id) == 8 and self.tracking_id.isdigit()):
            raise DomainValidationException("tracking id must be 8 digits", field="tracking_id")

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["cost"] = {
            key: (str(value) if isinstance(value, Decimal) else value)
            for key, value in data["cost"].items()
        }
        data["created_at"] = self.created_at.isoformat()
        return data
