"""Checkout page model, script loading and the remote widget bridge."""
from .host import HeadlessCheckoutHost, HeadlessPopup, HttpScriptFetcher
from .remote_widget import RemoteCheckoutWidget
from .script_loader import CheckoutScriptLoader
from .visibility import FrameVisibilityProbe

__all__ = [
    "HeadlessCheckoutHost",
    "HeadlessPopup",
    "HttpScriptFetcher",
    "RemoteCheckoutWidget",
    "CheckoutScriptLoader",
    "FrameVisibilityProbe",
]
