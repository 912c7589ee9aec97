"""
Checkout gateway ports.

The adapter drives a hosted checkout widget through the narrow
`{open, close, on}` contract and reaches the page only through CheckoutHost,
so the lifecycle logic has no dependency on a real browser.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Protocol, runtime_checkable


GatewayCallback = Callable[[Any], Awaitable[None]]


@runtime_checkable
class CheckoutWidget(Protocol):
    """Instance created by the gateway SDK constructor."""

    async def open(self) -> None: ...

    async def close(self) -> None: ...

    def on(self, event: str, callback: GatewayCallback) -> None: ...


# Constructor exposed by the loaded script (the `Razorpay` global)
WidgetFactory = Callable[[dict[str, Any]], CheckoutWidget]


@dataclass
class ScriptTag:
    src: str
    id: str
    loaded: bool = False
    failed: bool = False


@dataclass
class OverlayElement:
    id: str
    z_index: int
    style: dict[str, str] = field(default_factory=dict)


@dataclass
class FrameInfo:
    """Layout snapshot of an embedded iframe."""

    src: str
    width: float = 0.0
    height: float = 0.0
    top: float = 0.0
    left: float = 0.0
    display: str = "block"
    visibility: str = "visible"


@dataclass
class Viewport:
    width: float = 1280.0
    height: float = 800.0


@runtime_checkable
class CheckoutHost(Protocol):
    """The page hosting the checkout: script tags, globals, overlay, frames, popups."""

    def get_global(self, name: str) -> Optional[WidgetFactory]: ...

    def find_scripts(self, src: str) -> list[ScriptTag]: ...

    def remove_script(self, tag: ScriptTag) -> None: ...

    async def inject_script(self, src: str) -> ScriptTag:
        """Append a <script> and await its load; raises on the error event."""
        ...

    def insert_overlay(self, overlay: OverlayElement) -> None: ...

    def remove_overlay(self, overlay_id: str) -> None: ...

    def overlays(self) -> list[OverlayElement]: ...

    def frames(self) -> list[FrameInfo]: ...

    def viewport(self) -> Viewport: ...

    def open_popup(self, url: str) -> Optional[Any]:
        """window.open; None when a blocker prevented it."""
        ...


class VisibilityProbe(Protocol):
    def check(self) -> "VisibilityResult": ...


@dataclass(frozen=True)
class VisibilityResult:
    visible: bool
    reason: Optional[str] = None  # no-frame | hidden-frame | out-of-viewport


__all__ = [
    "GatewayCallback",
    "CheckoutWidget",
    "WidgetFactory",
    "ScriptTag",
    "OverlayElement",
    "FrameInfo",
    "Viewport",
    "CheckoutHost",
    "VisibilityProbe",
    "VisibilityResult",
    "ScriptInjectionError",
    "ScriptLoaderPort",
    "LayoutAware",
]


class ScriptInjectionError(Exception):
    """A <script> failed to load (error event, fetch failure or timeout)."""


@runtime_checkable
class ScriptLoaderPort(Protocol):
    async def ensure_loaded(self) -> WidgetFactory:
        """Return the SDK constructor, loading the script if needed; raises ScriptLoadError."""
        ...


@runtime_checkable
class LayoutAware(Protocol):
    """Hosts whose layout is reported from elsewhere (a remote browser)."""

    def apply_layout(
        self,
        frames: list[FrameInfo],
        viewport: Viewport,
        popup_blocked: Optional[bool] = None,
    ) -> None: ...
