"""Screen plus webcam picture-in-picture compositing.

Frames are drawn on the event loop by a self-rescheduling ``call_later``
callback. Each tick builds a fresh frame and swaps it in, so readers on other
threads (the encoder feed) never observe a half-drawn surface.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Optional, Tuple

import cv2
import numpy as np

from ..application.interfaces import VideoSource

logger = logging.getLogger(__name__)

DEFAULT_SURFACE_SIZE = (1920, 1080)
WEBCAM_WIDTH_RATIO = 0.2
WEBCAM_ASPECT = 0.75
INSET_MARGIN = 20
CORNER_RADIUS = 12
BORDER_WIDTH = 2
BORDER_ALPHA = 0.3


class CompositorState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


def inset_geometry(surface_width: int, surface_height: int) -> Tuple[int, int, int, int]:
    """Return ``(x, y, width, height)`` of the bottom-right webcam inset."""
    width = int(round(surface_width * WEBCAM_WIDTH_RATIO))
    height = int(round(width * WEBCAM_ASPECT))
    x = surface_width - width - INSET_MARGIN
    y = surface_height - height - INSET_MARGIN
    return x, y, width, height


def rounded_rect_mask(width: int, height: int, radius: int) -> np.ndarray:
    mask = np.zeros((height, width), dtype=np.uint8)
    r = max(0, min(radius, width // 2, height // 2))
    cv2.rectangle(mask, (r, 0), (width - 1 - r, height - 1), 255, -1)
    cv2.rectangle(mask, (0, r), (width - 1, height - 1 - r), 255, -1)
    for cx, cy in (
        (r, r),
        (width - 1 - r, r),
        (r, height - 1 - r),
        (width - 1 - r, height - 1 - r),
    ):
        cv2.circle(mask, (cx, cy), r, 255, -1)
    return mask


class Compositor:
    def __init__(self, *, refresh_interval: float = 1 / 60) -> None:
        self._refresh_interval = refresh_interval
        self._state = CompositorState.STOPPED
        self._screen: Optional[VideoSource] = None
        self._webcam: Optional[VideoSource] = None
        self._size = DEFAULT_SURFACE_SIZE
        self._frame: Optional[np.ndarray] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._handle: Optional[asyncio.TimerHandle] = None
        self._inset = (0, 0, 0, 0)
        self._inset_mask: Optional[np.ndarray] = None
        self._border_mask: Optional[np.ndarray] = None
        self.frames_drawn = 0

    @property
    def state(self) -> CompositorState:
        return self._state

    @property
    def size(self) -> Tuple[int, int]:
        return self._size

    @property
    def latest_frame(self) -> Optional[np.ndarray]:
        return self._frame

    def initialize(
        self, screen: VideoSource, webcam: Optional[VideoSource] = None
    ) -> np.ndarray:
        width, height = screen.width, screen.height
        if not width or not height:
            logger.info("Screen size unavailable; using %dx%d", *DEFAULT_SURFACE_SIZE)
            width, height = DEFAULT_SURFACE_SIZE
        self._screen = screen
        self._webcam = webcam
        self._size = (width, height)
        self._frame = np.zeros((height, width, 3), dtype=np.uint8)

        self._inset = inset_geometry(width, height)
        _, _, inset_w, inset_h = self._inset
        outer = rounded_rect_mask(inset_w, inset_h, CORNER_RADIUS)
        kernel = np.ones((2 * BORDER_WIDTH + 1, 2 * BORDER_WIDTH + 1), dtype=np.uint8)
        inner = cv2.erode(
            outer, kernel, borderType=cv2.BORDER_CONSTANT, borderValue=0
        )
        self._inset_mask = outer > 0
        self._border_mask = (outer > 0) & ~(inner > 0)
        return self._frame

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        if self._screen is None:
            raise RuntimeError("Compositor.start() called before initialize()")
        if self._state is CompositorState.RUNNING:
            return
        self._loop = loop or asyncio.get_running_loop()
        self._state = CompositorState.RUNNING
        self._schedule()

    def stop(self) -> None:
        self._state = CompositorState.STOPPED
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def get_output_stream(self, frame_rate: int = 30) -> "CompositedVideoSource":
        return CompositedVideoSource(self, frame_rate)

    def draw_frame(self) -> np.ndarray:
        width, height = self._size
        frame = self._screen.read() if self._screen is not None else None
        if frame is None:
            canvas = self._frame.copy()
        elif frame.shape[1] != width or frame.shape[0] != height:
            canvas = cv2.resize(frame, (width, height), interpolation=cv2.INTER_AREA)
        else:
            canvas = frame.copy()

        webcam = self._webcam
        if webcam is not None and webcam.active:
            inset = webcam.read()
            if inset is not None:
                self._draw_inset(canvas, inset)

        self._frame = canvas
        self.frames_drawn += 1
        return canvas

    def _draw_inset(self, canvas: np.ndarray, inset: np.ndarray) -> None:
        x, y, width, height = self._inset
        scaled = cv2.resize(inset, (width, height), interpolation=cv2.INTER_AREA)
        region = canvas[y : y + height, x : x + width]
        region[self._inset_mask] = scaled[self._inset_mask]
        edge = region[self._border_mask].astype(np.float32)
        region[self._border_mask] = (
            edge * (1 - BORDER_ALPHA) + 255 * BORDER_ALPHA
        ).astype(np.uint8)

    def _schedule(self) -> None:
        self._handle = self._loop.call_later(self._refresh_interval, self._tick)

    def _tick(self) -> None:
        # A tick that was already dispatched when stop() ran is dropped.
        if self._state is not CompositorState.RUNNING:
            return
        try:
            self.draw_frame()
        except Exception:
            logger.exception("Compositor frame failed")
        self._schedule()


class CompositedVideoSource:
    """Exposes the compositor surface as a video source for the encoder."""

    def __init__(self, compositor: Compositor, frame_rate: int) -> None:
        self._compositor = compositor
        self.frame_rate = frame_rate

    @property
    def width(self) -> int:
        return self._compositor.size[0]

    @property
    def height(self) -> int:
        return self._compositor.size[1]

    @property
    def active(self) -> bool:
        return self._compositor.state is CompositorState.RUNNING

    def read(self) -> Optional[np.ndarray]:
        return self._compositor.latest_frame

    def stop(self) -> None:
        self._compositor.stop()
