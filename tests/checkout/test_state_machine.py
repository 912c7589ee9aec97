import pytest

from domain.checkout.entity import PaymentError, PaymentState, PaymentStatus
from domain.checkout.events import (
    CheckoutDismissed,
    CheckoutInitFailed,
    CheckoutOpened,
    CheckoutReset,
    ExternalRedirect,
    PaymentAuthorized,
    PaymentFailed,
    PaymentSubmitted,
    PaymentSucceeded,
)
from domain.checkout.state_machine import InvalidTransition, can_transition, reduce


def _initiated() -> PaymentState:
    return reduce(PaymentState.idle(0), CheckoutOpened(order_id="order_1", session_id="s1"), timestamp=1)


def test_open_starts_fresh_attempt():
    state = _initiated()
    assert state.state is PaymentStatus.INITIATED
    assert state.order_id == "order_1"
    assert state.session_id == "s1"
    assert state.timestamp == 1


@pytest.mark.parametrize(
    "event, expected",
    [
        (PaymentSubmitted(), PaymentStatus.AUTHENTICATING),
        (ExternalRedirect(), PaymentStatus.REDIRECTED),
        (PaymentAuthorized(payment_id="pay_1"), PaymentStatus.PROCESSING),
        (PaymentSucceeded(payment_id="pay_1"), PaymentStatus.SUCCESS),
        (PaymentFailed(error=PaymentError("BAD_REQUEST_ERROR", "declined")), PaymentStatus.FAILED),
        (CheckoutDismissed(), PaymentStatus.CANCELLED),
    ],
)
def test_events_accepted_from_active_state(event, expected):
    state = reduce(_initiated(), event, timestamp=2)
    assert state.state is expected
    assert state.session_id == "s1"
    assert state.order_id == "order_1"


def test_intermediate_states_chain_in_any_order():
    state = _initiated()
    for event in (PaymentSubmitted(), PaymentAuthorized(payment_id="pay_1"), ExternalRedirect(), PaymentSubmitted()):
        state = reduce(state, event, timestamp=3)
    assert state.state is PaymentStatus.AUTHENTICATING
    assert state.payment_id == "pay_1"


@pytest.mark.parametrize("terminal", [
    PaymentSucceeded(payment_id="pay_1"),
    PaymentFailed(error=PaymentError("X")),
    CheckoutDismissed(),
])
def test_nothing_but_a_new_attempt_after_terminal(terminal):
    state = reduce(_initiated(), terminal, timestamp=2)
    for event in (PaymentSubmitted(), PaymentSucceeded(payment_id="pay_2"), CheckoutDismissed()):
        assert not can_transition(state.state, event)
        with pytest.raises(InvalidTransition):
            reduce(state, event, timestamp=3)
    again = reduce(state, CheckoutOpened(order_id="order_2", session_id="s2"), timestamp=4)
    assert again.state is PaymentStatus.INITIATED
    assert again.payment_id is None
    assert again.error is None


def test_idle_rejects_gateway_events():
    with pytest.raises(InvalidTransition):
        reduce(PaymentState.idle(0), PaymentSubmitted(), timestamp=1)


def test_init_failure_allowed_from_any_state():
    error = PaymentError("INITIALIZATION_ERROR", "script")
    for current in (PaymentState.idle(0), _initiated()):
        state = reduce(current, CheckoutInitFailed(order_id="order_1", error=error), timestamp=5)
        assert state.state is PaymentStatus.FAILED
        assert state.error == error


def test_reset_returns_to_idle():
    state = reduce(_initiated(), CheckoutReset(), timestamp=9)
    assert state == PaymentState(state=PaymentStatus.IDLE, timestamp=9)


def test_failed_state_serializes_error():
    state = reduce(_initiated(), PaymentFailed(error=PaymentError("GATEWAY_ERROR", "down")), timestamp=2)
    data = state.to_dict()
    assert data["state"] == "failed"
    assert data["error"] == {"code": "GATEWAY_ERROR", "description": "down"}
    assert PaymentState.from_dict(data) == state
