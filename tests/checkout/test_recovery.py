import asyncio

import pytest

from application.dtos.checkout import EVENT_DISMISS, CheckoutOptions
from domain.checkout.entity import PaymentSession, PaymentStatus
from domain.common.exceptions import ResourceNotFoundException


async def _abandoned(tab, recorder, shipment_form, order_id="order_1"):
    options = CheckoutOptions(
        order_id=order_id,
        amount=45000,
        currency="INR",
        name="Shipment #42",
        description="Express, 2 kg",
        form_snapshot=shipment_form,
    )
    await tab.coordinator.open_checkout(options, recorder.handlers())
    await tab.widget.fire(EVENT_DISMISS)


@pytest.mark.asyncio
async def test_check_offers_unexpired_session(make_tab, recorder, shipment_form, clock):
    tab = make_tab()
    await _abandoned(tab, recorder, shipment_form)
    clock.advance(5 * 60_000)

    offer = await tab.coordinator.check_recovery()

    assert offer.available is True
    assert offer.session["order_id"] == "order_1"
    assert offer.remaining_ms == 25 * 60_000
    # never resumes on its own
    assert len(tab.factory.widgets) == 1
    await tab.coordinator.aclose()


@pytest.mark.asyncio
async def test_check_after_expiry_offers_nothing(make_tab, recorder, shipment_form, clock):
    tab = make_tab()
    await _abandoned(tab, recorder, shipment_form)
    clock.advance(30 * 60_000)

    offer = await tab.coordinator.check_recovery()

    assert offer.available is False
    assert await tab.coordinator.get_recoverable_session() is None
    assert tab.coordinator.recovery.countdown is None


@pytest.mark.asyncio
async def test_saved_session_returned_and_discard_removes_it(make_tab, recorder, shipment_form):
    tab = make_tab()
    await _abandoned(tab, recorder, shipment_form)
    tab.coordinator.subscribe_to_payment_state_changes(recorder.on_state)

    session = await tab.coordinator.get_recoverable_session()
    assert session.order_id == "order_1"
    assert session.form_snapshot == shipment_form

    await tab.coordinator.discard_recovery()

    assert await tab.coordinator.get_recoverable_session() is None
    assert recorder.state_names == ["idle"]
    assert not await tab.coordinator.has_active_payment()


@pytest.mark.asyncio
async def test_resume_reuses_gateway_order_and_restores_form(make_tab, recorder, shipment_form):
    tab = make_tab()
    await _abandoned(tab, recorder, shipment_form)
    restored = []

    instance = await tab.coordinator.resume_payment(recorder.handlers(), restore_form=restored.append)

    assert restored == [shipment_form]
    assert instance is not None
    options = tab.widget.options
    assert options["order_id"] == "order_1"
    assert options["amount"] == 45000
    assert options["currency"] == "INR"
    assert options["name"] == "Shipment #42"
    assert options["description"] == "Express, 2 kg"
    assert (await tab.coordinator.current_state()).state is PaymentStatus.INITIATED


@pytest.mark.asyncio
async def test_resume_uses_recovery_labels_when_session_has_none(make_tab, recorder, checkout_config):
    tab = make_tab()
    await tab.coordinator.session_store.save(PaymentSession(order_id="order_7", amount=1000))

    await tab.coordinator.resume_payment(recorder.handlers())

    assert tab.widget.options["name"] == checkout_config.merchant_name
    assert tab.widget.options["description"] == checkout_config.recovery_description


@pytest.mark.asyncio
async def test_resume_without_session_raises_not_found(make_tab):
    tab = make_tab()
    with pytest.raises(ResourceNotFoundException):
        await tab.coordinator.resume_payment()


@pytest.mark.asyncio
async def test_recovery_from_another_tab(make_tab, recorder, shipment_form):
    tab_a = make_tab("p1")
    tab_b = make_tab("p1")
    await _abandoned(tab_a, recorder, shipment_form)

    offer = await tab_b.coordinator.check_recovery()

    assert offer.available
    assert offer.session["form_snapshot"] == shipment_form
    await tab_b.coordinator.aclose()


@pytest.mark.asyncio
async def test_countdown_discards_at_zero(make_tab, recorder, shipment_form, clock):
    tab = make_tab()
    await _abandoned(tab, recorder, shipment_form)
    session = await tab.coordinator.get_recoverable_session()
    clock.advance(session.remaining_ms(clock.now) - 10)

    assert tab.coordinator.recovery.remaining_ms(session) == 10
    await asyncio.wait_for(tab.coordinator.recovery.start_countdown(session), timeout=2)

    assert await tab.coordinator.session_store.peek() is None
    assert (await tab.coordinator.current_state()).state is PaymentStatus.IDLE


@pytest.mark.asyncio
async def test_countdown_skips_replaced_session(make_tab, recorder, shipment_form, clock):
    tab = make_tab()
    await _abandoned(tab, recorder, shipment_form)
    session = await tab.coordinator.get_recoverable_session()
    clock.advance(session.remaining_ms(clock.now) - 10)
    task = tab.coordinator.recovery.start_countdown(session)

    await tab.coordinator.session_store.save(PaymentSession(order_id="order_2", amount=500))
    await asyncio.wait_for(task, timeout=2)

    assert (await tab.coordinator.session_store.peek()).order_id == "order_2"


@pytest.mark.asyncio
async def test_resume_cancels_countdown(make_tab, recorder, shipment_form):
    tab = make_tab()
    await _abandoned(tab, recorder, shipment_form)
    session = await tab.coordinator.get_recoverable_session()
    task = tab.coordinator.recovery.start_countdown(session)

    await tab.coordinator.resume_payment(recorder.handlers())
    await asyncio.sleep(0)

    assert task.cancelled()
    assert await tab.coordinator.get_recoverable_session() is not None


@pytest.mark.asyncio
async def test_offered_session_expires_to_idle(make_tab, recorder, shipment_form, clock):
    tab = make_tab()
    await _abandoned(tab, recorder, shipment_form)
    tab.coordinator.subscribe_to_payment_state_changes(recorder.on_state)
    session = await tab.coordinator.get_recoverable_session()
    clock.advance(session.remaining_ms(clock.now) - 10)

    offer = await tab.coordinator.check_recovery()
    assert offer.available and offer.remaining_ms == 10
    assert tab.coordinator.recovery.countdown is not None
    await asyncio.wait_for(tab.coordinator.recovery.countdown, timeout=2)

    assert recorder.state_names == ["idle"]
    assert await tab.coordinator.session_store.peek() is None
    assert not await tab.coordinator.has_active_payment()


@pytest.mark.asyncio
async def test_repeated_checks_keep_one_countdown(make_tab, recorder, shipment_form):
    tab = make_tab()
    await _abandoned(tab, recorder, shipment_form)

    await tab.coordinator.check_recovery()
    first = tab.coordinator.recovery.countdown
    await tab.coordinator.check_recovery()
    await asyncio.sleep(0)

    assert first.cancelled()
    assert not tab.coordinator.recovery.countdown.done()
    await tab.coordinator.aclose()
    assert tab.coordinator.recovery.countdown is None
