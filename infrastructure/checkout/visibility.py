"""Gateway iframe visibility probe. Reads the layout only; never rewrites a frame."""
from __future__ import annotations

from typing import Optional

from application.ports.checkout_gateway import CheckoutHost, FrameInfo, Viewport, VisibilityResult


NO_FRAME = "no-frame"
HIDDEN_FRAME = "hidden-frame"
OUT_OF_VIEWPORT = "out-of-viewport"


def frame_problem(frame: FrameInfo, viewport: Viewport) -> Optional[str]:
    if frame.display == "none" or frame.visibility == "hidden" or frame.width <= 0 or frame.height <= 0:
        return HIDDEN_FRAME
    bottom = frame.top + frame.height
    right = frame.left + frame.width
    if bottom < 0 or frame.top > viewport.height or right < 0 or frame.left > viewport.width:
        return OUT_OF_VIEWPORT
    return None


class FrameVisibilityProbe:
    def __init__(self, host: CheckoutHost, src_pattern: str) -> None:
        self._host = host
        self._src_pattern = src_pattern

    def check(self) -> VisibilityResult:
        frames = [f for f in self._host.frames() if self._src_pattern in (f.src or "")]
        if not frames:
            return VisibilityResult(visible=False, reason=NO_FRAME)
        viewport = self._host.viewport()
        for frame in frames:
            problem = frame_problem(frame, viewport)
            if problem is not None:
                return VisibilityResult(visible=False, reason=problem)
        return VisibilityResult(visible=True)
