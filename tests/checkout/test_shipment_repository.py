from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from domain.common.exceptions import ResourceNotFoundException
from domain.shipment.entity import (
    Address,
    CostBreakdown,
    PackageDetails,
    Party,
    PaymentRecord,
    ShipmentOrder,
)
from infrastructure.models import Base
from infrastructure.repositories.shipment_repository import SQLAlchemyShipmentRepository


@pytest_asyncio.fixture
async def repository(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield SQLAlchemyShipmentRepository(async_sessionmaker(bind=engine, expire_on_commit=False))
    await engine.dispose()


def _order(payment_id="pay_1") -> ShipmentOrder:
    package = PackageDetails(weight=2.0, size="Large", category="Fragile")
    return ShipmentOrder(
        sender=Party(name="Asha Rao", phone="9800000001", address=Address(city="Bengaluru", pincode="560001")),
        recipient=Party(name="Vikram Shah", phone="9800000002", address=Address(city="Mumbai", pincode="400002")),
        package=package,
        cost=CostBreakdown.quote(package, "Express"),
        payment=PaymentRecord(
            id=payment_id,
            order_id="order_1",
            signature="sig",
            status="completed",
            amount=118000,
            currency="INR",
        ),
        service_type="Express",
    )


@pytest.mark.asyncio
async def test_create_and_read_back(repository):
    order = _order()

    order_id = await repository.create_order(order)
    stored = await repository.get_by_payment_id("pay_1")

    assert stored.id == order_id
    assert stored.tracking_id == order.tracking_id
    assert stored.status == "Processing"
    assert stored.is_paid is True
    assert stored.sender.address.city == "Bengaluru"
    assert stored.cost.total_amount == Decimal("1180.00")
    assert stored.payment.amount == 118000


@pytest.mark.asyncio
async def test_second_write_for_payment_returns_existing(repository):
    first = await repository.create_order(_order())
    second = await repository.create_order(_order())

    assert second == first


@pytest.mark.asyncio
async def test_update_status(repository):
    order_id = await repository.create_order(_order())

    await repository.update_order_status(order_id, {"status": "In Transit", "tracking_id": "ignored"})

    stored = await repository.get_by_payment_id("pay_1")
    assert stored.status == "In Transit"
    assert stored.tracking_id != "ignored"


@pytest.mark.asyncio
async def test_update_unknown_order(repository):
    with pytest.raises(ResourceNotFoundException):
        await repository.update_order_status("missing", {"status": "Delivered"})


@pytest.mark.asyncio
async def test_unknown_payment(repository):
    assert await repository.get_by_payment_id("pay_404") is None
