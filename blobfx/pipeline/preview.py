"""
Live preview.

Plays the source in real time, running detection on a downscaled copy of
each frame for speed and drawing overlays at full resolution. Tracking
uses the wall clock, so results depend on how fast the machine is; use
the export driver for deterministic output.
"""

import logging
import time

import cv2
import numpy as np

from blobfx.core.config import PreviewOptions
from blobfx.core.video import VideoSource
from blobfx.pipeline.processor import FrameProcessor, ProcessedFrame

logger = logging.getLogger(__name__)

QUIT_KEYS = (ord("q"), 27)


def preview_scale(width: int, height: int, max_dimension: int) -> float:
    """Downscale factor that fits the larger side into max_dimension."""
    largest = max(width, height)
    return largest / max_dimension if largest > max_dimension else 1.0


class PreviewLoop:
    """
    Real-time preview driver.

    Example:
        with VideoSource("input.mp4") as source:
            PreviewLoop(source, FrameProcessor(settings)).run()
    """

    def __init__(
        self,
        source: VideoSource,
        processor: FrameProcessor,
        options: PreviewOptions | None = None,
    ):
        self.source = source
        self.processor = processor
        self.options = options or PreviewOptions()

        width, height = source.frame_size
        self.width = width
        self.height = height
        self.scale = preview_scale(width, height, self.options.max_dimension)
        self.process_size = (
            max(1, int(width / self.scale)),
            max(1, int(height / self.scale)),
        )
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def stop(self) -> None:
        """Ask run() to return after the current frame."""
        self._running = False

    def _downscale(self, frame: np.ndarray) -> np.ndarray:
        if self.scale == 1.0:
            return frame
        return cv2.resize(frame, self.process_size, interpolation=cv2.INTER_AREA)

    def step(self, frame: np.ndarray | None, now_ms: float | None = None) -> ProcessedFrame:
        """
        Process one preview frame.

        Args:
            frame: Full-resolution frame, or None to render overlays only
            now_ms: Clock in milliseconds (default: wall clock)
        """
        if now_ms is None:
            now_ms = time.monotonic() * 1000.0
        detect = self._downscale(frame) if frame is not None else None
        return self.processor.process(
            frame,
            now=now_ms,
            time_ms=now_ms,
            scale_factor=self.scale,
            detect_frame=detect,
            size=(self.width, self.height),
        )

    def run(self) -> None:
        """Play the source in a window until it ends or q/Esc is pressed."""
        fps = self.source.properties.fps or 30.0
        delay_ms = max(1, int(1000 / fps))
        self._running = True

        logger.info(
            "Preview %dx%d, processing at %dx%d (scale 1:%.1f)",
            self.width, self.height, *self.process_size, self.scale,
        )

        with self.processor.claim("preview"):
            frames_since_rewind = 0
            try:
                while self._running:
                    ret, frame = self.source.read()
                    if not ret:
                        if not self.options.loop or frames_since_rewind == 0:
                            break
                        self.source.rewind(0.0)
                        frames_since_rewind = 0
                        continue
                    frames_since_rewind += 1

                    result = self.step(frame)
                    cv2.imshow(self.options.window_name, result.image)
                    key = cv2.waitKey(delay_ms) & 0xFF
                    if key in QUIT_KEYS:
                        break
            finally:
                self._running = False
                cv2.destroyWindow(self.options.window_name)
