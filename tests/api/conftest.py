import uuid

import pytest
from fastapi.testclient import TestClient

from application.services.payment_coordinator import PaymentCoordinatorRegistry
from infrastructure.repositories.shipment_repository import InMemoryShipmentRepository
from main import app, build_coordinator_factory


@pytest.fixture
def orders() -> InMemoryShipmentRepository:
    return InMemoryShipmentRepository()


@pytest.fixture
def client(orders):
    with TestClient(app) as c:
        # No network: the widget global is installed without fetching checkout.js
        app.state.coordinators = PaymentCoordinatorRegistry(build_coordinator_factory(orders, fetch_scripts=False))
        yield c


@pytest.fixture
def profile() -> dict[str, str]:
    return {"X-Profile-ID": f"profile-{uuid.uuid4().hex[:8]}"}
