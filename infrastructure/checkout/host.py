"""
Headless checkout host.

A page model for running the checkout coordinator without a DOM: script tags
are "loaded" by fetching their source over HTTP, globals appear once a script
loads, and the layout of the gateway iframe is reported by the browser.
"""
from __future__ import annotations

import uuid
from typing import Any, Awaitable, Callable, Optional

import httpx

from application.ports.checkout_gateway import (
    FrameInfo,
    OverlayElement,
    ScriptInjectionError,
    ScriptTag,
    Viewport,
    WidgetFactory,
)
from core.logging_config import get_logger


logger = get_logger(__name__)

ScriptFetcher = Callable[[str], Awaitable[None]]


class HttpScriptFetcher:
    """Checks that a script is reachable; any failure is a ScriptInjectionError."""

    def __init__(self, *, timeout_s: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._timeout = httpx.Timeout(timeout_s)
        self._transport = transport

    async def __call__(self, src: str) -> None:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.get(src)
        except httpx.HTTPError as exc:
            raise ScriptInjectionError(f"{type(exc).__name__}: {exc}") from exc
        if resp.status_code >= 400:
            raise ScriptInjectionError(f"HTTP {resp.status_code}")


class HeadlessPopup:
    def __init__(self, url: str) -> None:
        self.url = url
        self.closed = False

    def close(self) -> None:
        self.closed = True


class HeadlessCheckoutHost:
    def __init__(
        self,
        *,
        fetcher: Optional[ScriptFetcher] = None,
        globals_on_load: Optional[dict[str, WidgetFactory]] = None,
        viewport: Optional[Viewport] = None,
    ) -> None:
        self._fetcher = fetcher
        self._globals_on_load = dict(globals_on_load or {})
        self._globals: dict[str, WidgetFactory] = {}
        self._scripts: list[ScriptTag] = []
        self._overlays: list[OverlayElement] = []
        self._frames: list[FrameInfo] = []
        self._viewport = viewport or Viewport()
        self.popups_blocked = False

    def get_global(self, name: str) -> Optional[WidgetFactory]:
        return self._globals.get(name)

    def find_scripts(self, src: str) -> list[ScriptTag]:
        return [tag for tag in self._scripts if tag.src == src]

    def scripts(self) -> list[ScriptTag]:
        return list(self._scripts)

    def remove_script(self, tag: ScriptTag) -> None:
        if tag in self._scripts:
            self._scripts.remove(tag)

    async def inject_script(self, src: str) -> ScriptTag:
        tag = ScriptTag(src=src, id=f"script-{uuid.uuid4().hex[:8]}")
        self._scripts.append(tag)
        if self._fetcher is not None:
            try:
                await self._fetcher(src)
            except ScriptInjectionError:
                tag.failed = True
                raise
        tag.loaded = True
        self._globals.update(self._globals_on_load)
        return tag

    def insert_overlay(self, overlay: OverlayElement) -> None:
        self._overlays.append(overlay)

    def remove_overlay(self, overlay_id: str) -> None:
        self._overlays = [o for o in self._overlays if o.id != overlay_id]

    def overlays(self) -> list[OverlayElement]:
        return list(self._overlays)

    def frames(self) -> list[FrameInfo]:
        return list(self._frames)

    def viewport(self) -> Viewport:
        return self._viewport

    def open_popup(self, url: str) -> Optional[Any]:
        if self.popups_blocked:
            return None
        return HeadlessPopup(url)

    def apply_layout(
        self,
        frames: list[FrameInfo],
        viewport: Viewport,
        popup_blocked: Optional[bool] = None,
    ) -> None:
        self._frames = list(frames)
        self._viewport = viewport
        if popup_blocked is not None:
            self.popups_blocked = popup_blocked
        logger.debug("checkout_layout_applied", frames=len(frames), popup_blocked=self.popups_blocked)
