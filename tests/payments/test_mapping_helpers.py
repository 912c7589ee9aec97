from infrastructure.external.payments.base import BasePaymentClient


class _MapClient(BasePaymentClient):
    provider = "razorpay"


def test_provider_status_mapping():
    c = _MapClient()
    assert c._map_status("captured") == "succeeded"
    assert c._map_status("authorized") == "processing"
    assert c._map_status("attempted") == "pending"
    assert c._map_status("paid") == "succeeded"


def test_unknown_status_passes_through():
    c = _MapClient()
    assert c._map_status("on_hold") == "on_hold"
