"""
Remote checkout widget.

Stands in for the SDK instance when the real widget runs in the user's
browser: open() and close() only record intent, and the browser relays the
widget's callbacks back through emit().
"""
from __future__ import annotations

import inspect
from typing import Any, Optional

from application.dtos.checkout import EVENT_DISMISS, EVENT_SUCCESS
from application.ports.checkout_gateway import GatewayCallback
from core.logging_config import get_logger


logger = get_logger(__name__)

# Options the browser needs to build the real widget; callbacks stay server side
PUBLIC_OPTION_KEYS = ("key", "amount", "currency", "order_id", "name", "description", "prefill", "notes", "theme")


class RemoteCheckoutWidget:
    def __init__(self, options: dict[str, Any]) -> None:
        self.options = options
        self.is_open = False
        self._listeners: dict[str, GatewayCallback] = {}

    async def open(self) -> None:
        self.is_open = True

    async def close(self) -> None:
        self.is_open = False

    def on(self, event: str, callback: GatewayCallback) -> None:
        self._listeners[event] = callback

    async def emit(self, event: str, payload: Any = None) -> None:
        if event == EVENT_SUCCESS:
            callback: Optional[Any] = self.options.get("handler")
        elif event == EVENT_DISMISS:
            callback = (self.options.get("modal") or {}).get("ondismiss")
        else:
            callback = self._listeners.get(event)
        if callback is None:
            logger.warning("remote_widget_event_unhandled", gateway_event=event)
            return
        result = callback(payload)
        if inspect.isawaitable(result):
            await result

    def public_options(self) -> dict[str, Any]:
        public = {k: self.options[k] for k in PUBLIC_OPTION_KEYS if k in self.options}
        modal = self.options.get("modal") or {}
        public["modal"] = {k: v for k, v in modal.items() if not callable(v)}
        return public
