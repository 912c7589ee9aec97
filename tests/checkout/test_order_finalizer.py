from decimal import Decimal

import pytest

from application.dtos.checkout import PaymentResult
from application.services.order_finalizer import OrderFinalizer, ReconciliationNotices
from application.services.payment_session_store import PaymentSessionStore
from domain.checkout.entity import PaymentSession
from domain.checkout.exceptions import InvalidPaymentResponse, OrderPersistenceError
from infrastructure.repositories.shipment_repository import InMemoryShipmentRepository


class CountingRepository(InMemoryShipmentRepository):
    def __init__(self, fail: bool = False, fail_lookup: bool = False) -> None:
        super().__init__()
        self.create_calls = 0
        self.fail = fail
        self.fail_lookup = fail_lookup

    async def get_by_payment_id(self, payment_id):
        if self.fail_lookup:
            raise ConnectionError("database unavailable")
        return await super().get_by_payment_id(payment_id)

    async def create_order(self, order):
        self.create_calls += 1
        if self.fail:
            raise ConnectionError("database unavailable")
        return await super().create_order(order)


@pytest.fixture
def storage(hub):
    return hub.profile("p1").tab()


@pytest.fixture
def session_store(storage, checkout_config, clock):
    return PaymentSessionStore(
        storage,
        session_key=checkout_config.session_key,
        state_key=checkout_config.state_key,
        clock=clock,
    )


@pytest.fixture
def notices(storage, checkout_config):
    return ReconciliationNotices(storage, key=checkout_config.reconciliation_key)


def _finalizer(repository, session_store, notices, clock):
    return OrderFinalizer(repository, session_store, notices, carrier="FreightFox", clock=clock)


@pytest.mark.asyncio
async def test_missing_payment_id_writes_nothing(session_store, notices, clock):
    repository = CountingRepository()
    finalizer = _finalizer(repository, session_store, notices, clock)

    with pytest.raises(InvalidPaymentResponse):
        await finalizer.finalize(PaymentResult(payment_id=None, order_id="order_1"))
    with pytest.raises(InvalidPaymentResponse):
        await finalizer.finalize(PaymentResult(payment_id="", order_id="order_1"))

    assert repository.create_calls == 0


@pytest.mark.asyncio
async def test_order_built_from_saved_session(session_store, notices, clock, shipment_form):
    repository = CountingRepository()
    finalizer = _finalizer(repository, session_store, notices, clock)
    await session_store.save(PaymentSession(order_id="order_1", amount=118000, form_snapshot=shipment_form))

    ref = await finalizer.finalize(PaymentResult(payment_id="pay_1", order_id="order_1", signature="sig"))

    order = repository.orders[ref]
    assert order.payment.id == "pay_1"
    assert order.payment.order_id == "order_1"
    assert order.payment.signature == "sig"
    assert order.payment.amount == 118000
    assert order.payment.status == "completed"
    assert order.status == "Processing"
    assert order.is_paid is True
    assert order.carrier == "FreightFox"
    assert order.service_type == "Express"
    assert len(order.tracking_id) == 8 and order.tracking_id.isdigit()
    assert order.sender.name == "Asha Rao"
    assert order.sender.address.city == "Bengaluru"
    assert order.recipient.address.pincode == "400002"
    assert order.package.size == "Large"
    # 300 x 2.0 x 1.2 x 1.5 + 2 x 50
    assert order.cost.size_multiplier == Decimal("2.0")
    assert order.cost.total_amount == Decimal("1180")
    # the session is cleared once the order is stored
    assert await session_store.peek() is None


@pytest.mark.asyncio
async def test_finalize_is_idempotent_per_payment(session_store, notices, clock, shipment_form):
    repository = CountingRepository()
    finalizer = _finalizer(repository, session_store, notices, clock)
    session = PaymentSession(order_id="order_1", amount=45000, form_snapshot=shipment_form)

    first = await finalizer.finalize(PaymentResult(payment_id="pay_1", order_id="order_1"), session)
    second = await finalizer.finalize(PaymentResult(payment_id="pay_1", order_id="order_1"), session)

    assert first == second
    assert repository.create_calls == 1
    assert len(repository.orders) == 1


@pytest.mark.asyncio
async def test_existing_order_for_payment_is_returned(session_store, notices, clock, shipment_form):
    repository = CountingRepository()
    session = PaymentSession(order_id="order_1", amount=45000, form_snapshot=shipment_form)
    first = await _finalizer(repository, session_store, notices, clock).finalize(
        PaymentResult(payment_id="pay_1", order_id="order_1"), session
    )

    # another tab with its own finalizer
    again = await _finalizer(repository, session_store, notices, clock).finalize(
        PaymentResult(payment_id="pay_1", order_id="order_1"), session
    )

    assert again == first
    assert repository.create_calls == 1


@pytest.mark.asyncio
async def test_invalid_form_snapshot_still_stores_order(session_store, notices, clock):
    repository = CountingRepository()
    finalizer = _finalizer(repository, session_store, notices, clock)
    session = PaymentSession(order_id="order_1", amount=45000, form_snapshot={"weight": "heavy"})

    ref = await finalizer.finalize(PaymentResult(payment_id="pay_1", order_id="order_1"), session)

    order = repository.orders[ref]
    assert order.payment.amount == 45000
    assert order.cost.total_amount == Decimal("450")


@pytest.mark.asyncio
async def test_write_failure_records_reconciliation_notice(hub, session_store, notices, clock, shipment_form):
    repository = CountingRepository(fail=True)
    finalizer = _finalizer(repository, session_store, notices, clock)
    await session_store.save(PaymentSession(order_id="order_1", amount=45000, form_snapshot=shipment_form))

    with pytest.raises(OrderPersistenceError) as excinfo:
        await finalizer.finalize(PaymentResult(payment_id="pay_1", order_id="order_1"))

    assert excinfo.value.payment_id == "pay_1"
    assert excinfo.value.order_id == "order_1"
    assert "pay_1" in excinfo.value.message
    [notice] = await notices.load()
    assert notice.payment_id == "pay_1"
    assert notice.amount == 45000
    assert notice.recorded_at == clock.now
    # the session is kept for support
    assert await session_store.peek() is not None

    # every tab of the profile sees the notice
    other_tab = ReconciliationNotices(hub.profile("p1").tab(), key="freightfox_unreconciled_payments")
    assert [n.payment_id for n in await other_tab.load()] == ["pay_1"]


@pytest.mark.asyncio
async def test_repeated_failures_keep_one_notice_per_payment(session_store, notices, clock):
    finalizer = _finalizer(CountingRepository(fail=True), session_store, notices, clock)
    session = PaymentSession(order_id="order_1", amount=100)

    for _ in range(2):
        with pytest.raises(OrderPersistenceError):
            await finalizer.finalize(PaymentResult(payment_id="pay_1", order_id="order_1"), session)
    with pytest.raises(OrderPersistenceError):
        await finalizer.finalize(PaymentResult(payment_id="pay_2", order_id="order_2"), session)

    assert [n.payment_id for n in await notices.load()] == ["pay_1", "pay_2"]


@pytest.mark.asyncio
async def test_lookup_failure_records_reconciliation_notice(session_store, notices, clock, shipment_form):
    repository = CountingRepository(fail_lookup=True)
    finalizer = _finalizer(repository, session_store, notices, clock)
    await session_store.save(PaymentSession(order_id="order_1", amount=45000, form_snapshot=shipment_form))

    with pytest.raises(OrderPersistenceError) as excinfo:
        await finalizer.finalize(PaymentResult(payment_id="pay_1", order_id="order_1"))

    assert excinfo.value.payment_id == "pay_1"
    assert isinstance(excinfo.value.__cause__, ConnectionError)
    assert repository.create_calls == 0
    [notice] = await notices.load()
    assert notice.payment_id == "pay_1"
    assert notice.amount == 45000
    assert await session_store.peek() is not None


class BrokenNotices(ReconciliationNotices):
    async def record(self, notice):
        raise OSError("storage quota exceeded")


@pytest.mark.asyncio
async def test_notice_write_failure_still_raises_persistence_error(storage, session_store, checkout_config, clock):
    notices = BrokenNotices(storage, key=checkout_config.reconciliation_key)
    finalizer = _finalizer(CountingRepository(fail=True), session_store, notices, clock)
    session = PaymentSession(order_id="order_1", amount=100)

    with pytest.raises(OrderPersistenceError) as excinfo:
        await finalizer.finalize(PaymentResult(payment_id="pay_1", order_id="order_1"), session)

    assert excinfo.value.payment_id == "pay_1"
    assert isinstance(excinfo.value.__cause__, ConnectionError)


@pytest.mark.asyncio
async def test_finalizer_keeps_no_per_payment_cache(session_store, notices, clock, shipment_form):
    repository = CountingRepository()
    finalizer = _finalizer(repository, session_store, notices, clock)
    session = PaymentSession(order_id="order_1", amount=45000, form_snapshot=shipment_form)

    for n in range(5):
        await finalizer.finalize(PaymentResult(payment_id=f"pay_{n}", order_id="order_1"), session)

    assert repository.create_calls == 5
    assert not [name for name in vars(finalizer) if isinstance(getattr(finalizer, name), dict)]
