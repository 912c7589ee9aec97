"""Pytest bootstrap configuration.

Pin settings that would otherwise reach real services before application
modules are imported, and provide the shared checkout test doubles.
"""
import os

# Keep everything in process: in-memory storage and shipment orders
os.environ["REDIS__URL"] = ""
os.environ["DATABASE__URL"] = ""
os.environ.setdefault("DEBUG", "false")

from typing import Any, Optional

import pytest

from application.dtos.checkout import EVENT_DISMISS, EVENT_SUCCESS, CheckoutHandlers
from application.ports.checkout_gateway import ScriptInjectionError
from application.services.payment_coordinator import PaymentCoordinator
from core.config import CheckoutSettings
from infrastructure.checkout import CheckoutScriptLoader, FrameVisibilityProbe, HeadlessCheckoutHost
from infrastructure.repositories.shipment_repository import InMemoryShipmentRepository
from infrastructure.shared_storage import InMemoryStorageHub


class FakeClock:
    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeWidget:
    """Records calls; fire() plays the SDK role of invoking callbacks."""

    def __init__(self, options: dict[str, Any]) -> None:
        self.options = options
        self.listeners: dict[str, Any] = {}
        self.opened = False
        self.closed = False

    async def open(self) -> None:
        self.opened = True

    async def close(self) -> None:
        self.closed = True

    def on(self, event: str, callback) -> None:
        self.listeners[event] = callback

    async def fire(self, event: str, payload: Optional[dict] = None) -> None:
        if event == EVENT_SUCCESS:
            await self.options["handler"](payload)
        elif event == EVENT_DISMISS:
            await self.options["modal"]["ondismiss"](payload)
        else:
            await self.listeners[event](payload)


class WidgetFactory:
    """Stands in for the `Razorpay` constructor global."""

    def __init__(self, fail_with: Optional[Exception] = None) -> None:
        self.widgets: list[FakeWidget] = []
        self.fail_with = fail_with

    def __call__(self, options: dict[str, Any]) -> FakeWidget:
        if self.fail_with is not None:
            raise self.fail_with
        widget = FakeWidget(options)
        self.widgets.append(widget)
        return widget


class FlakyFetcher:
    """Script fetcher failing the first `failures` attempts."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.calls = 0

    async def __call__(self, src: str) -> None:
        self.calls += 1
        if self.calls <= self.failures:
            raise ScriptInjectionError("net::ERR_CONNECTION_RESET")


class Recorder:
    """Collects handler callbacks and published states."""

    def __init__(self) -> None:
        self.results: list = []
        self.errors: list = []
        self.dismissals = 0
        self.states: list = []

    def on_success(self, result) -> None:
        self.results.append(result)

    def on_error(self, exc) -> None:
        self.errors.append(exc)

    def on_modal_close(self) -> None:
        self.dismissals += 1

    def on_state(self, state) -> None:
        self.states.append(state)

    @property
    def state_names(self) -> list[str]:
        return [s.state.value for s in self.states]

    def handlers(self) -> CheckoutHandlers:
        return CheckoutHandlers(
            on_success=self.on_success,
            on_error=self.on_error,
            on_modal_close=self.on_modal_close,
        )


class Tab:
    """One coordinator plus the doubles behind it."""

    def __init__(self, coordinator, host, factory, fetcher) -> None:
        self.coordinator = coordinator
        self.host = host
        self.factory = factory
        self.fetcher = fetcher

    @property
    def widget(self) -> FakeWidget:
        return self.factory.widgets[-1]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def checkout_config() -> CheckoutSettings:
    return CheckoutSettings(script_retry_delay_s=0, script_timeout_s=1)


@pytest.fixture
def hub() -> InMemoryStorageHub:
    return InMemoryStorageHub()


@pytest.fixture
def repository() -> InMemoryShipmentRepository:
    return InMemoryShipmentRepository()


@pytest.fixture
def make_tab(hub, repository, checkout_config, clock):
    """Build a tab on a profile: make_tab(profile="p1", failures=0, factory_error=None)."""

    def build(profile: str = "p1", *, failures: int = 0, factory_error: Optional[Exception] = None) -> Tab:
        factory = WidgetFactory(fail_with=factory_error)
        fetcher = FlakyFetcher(failures)
        host = HeadlessCheckoutHost(fetcher=fetcher, globals_on_load={checkout_config.script_global: factory})
        coordinator = PaymentCoordinator(
            storage=hub.profile(profile).tab(),
            host=host,
            repository=repository,
            script_loader=CheckoutScriptLoader(host, checkout_config),
            visibility_probe=FrameVisibilityProbe(host, checkout_config.frame_src_pattern),
            config=checkout_config,
            key_id="rzp_test_key",
            clock=clock,
        )
        return Tab(coordinator, host, factory, fetcher)

    return build


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def shipment_form() -> dict[str, Any]:
    return dict(SHIPMENT_FORM)


SHIPMENT_FORM = {
    "fromName": "Asha Rao",
    "fromPhone": "9800000001",
    "fromEmail": "asha@example.com",
    "fromStreet": "12 MG Road",
    "fromCity": "Bengaluru",
    "fromState": "KA",
    "fromPincode": "560001",
    "toName": "Vikram Shah",
    "toPhone": "9800000002",
    "toStreet": "4 Marine Drive",
    "toCity": "Mumbai",
    "toState": "MH",
    "toPincode": "400002",
    "weight": 2,
    "packageSize": "Large",
    "packageCategory": "Fragile",
    "serviceType": "Express",
}
