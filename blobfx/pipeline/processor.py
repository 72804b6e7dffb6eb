"""
Per-frame processing shared by the preview and export pipelines.

FrameProcessor owns one extractor, tracker and overlay renderer. Only one
pipeline may drive a processor at a time; call reset() when handing it
from one to the other.
"""

import contextlib
import logging
import time
from dataclasses import dataclass
from typing import Iterator

import numpy as np

from blobfx.core.base import RegionExtractor
from blobfx.core.config import TrackerSettings
from blobfx.core.errors import BackendUnavailable
from blobfx.outputs.overlay import OverlayRenderer
from blobfx.processing.extractor import ContourExtractor
from blobfx.tracking.blob import TrackedBlob
from blobfx.tracking.tracker import BlobTracker

logger = logging.getLogger(__name__)


@dataclass
class ProcessingStats:
    """Timing and count statistics for one processed frame."""
    fps: int
    blob_count: int
    resolution: str
    render_time_ms: float

    def to_dict(self) -> dict:
        return {
            "fps": self.fps,
            "blob_count": self.blob_count,
            "resolution": self.resolution,
            "render_time_ms": self.render_time_ms,
        }


@dataclass
class ProcessedFrame:
    """Output of FrameProcessor.process()."""
    blobs: list[TrackedBlob]
    image: np.ndarray
    stats: ProcessingStats


class FrameProcessor:
    """
    Extract, track and composite one frame at a time.

    Example:
        >>> processor = FrameProcessor(settings)
        >>> result = processor.process(frame, now=t_ms, time_ms=t_ms)
        >>> cv2.imshow("blobfx", result.image)
    """

    def __init__(
        self,
        settings: TrackerSettings | None = None,
        extractor: RegionExtractor | None = None,
        tracker: BlobTracker | None = None,
    ):
        self.settings = (settings or TrackerSettings()).coerced()
        self.extractor = extractor or ContourExtractor()
        self.tracker = tracker or BlobTracker(
            history_length=self.settings.history_length,
            min_area=self.settings.min_area,
        )
        self.renderer = OverlayRenderer(self.settings)
        self.stats: ProcessingStats | None = None
        self._owner: str | None = None

    def update_settings(self, settings: TrackerSettings) -> None:
        """Apply new settings; takes effect from the next frame."""
        self.settings = settings.coerced()
        self.tracker.configure(
            history_length=self.settings.history_length,
            min_area=self.settings.min_area,
        )
        self.renderer.update_settings(self.settings)

    @property
    def owner(self) -> str | None:
        """Name of the pipeline currently driving this processor."""
        return self._owner

    @contextlib.contextmanager
    def claim(self, owner: str) -> Iterator["FrameProcessor"]:
        """
        Hold exclusive use of the processor for one pipeline.

        Raises:
            BackendUnavailable: If another pipeline holds it
        """
        if self._owner is not None:
            raise BackendUnavailable(f"Processor is in use by {self._owner}")
        self._owner = owner
        try:
            yield self
        finally:
            self._owner = None

    def reset(self) -> None:
        """Drop all tracking state and working buffers (full-resolution restart)."""
        self.extractor.reset()
        self.tracker.reset()
        self.stats = None
        logger.debug("Processor reset")

    def process(
        self,
        frame: np.ndarray | None,
        now: float,
        time_ms: float,
        scale_factor: float = 1.0,
        detect_frame: np.ndarray | None = None,
        size: tuple[int, int] | None = None,
    ) -> ProcessedFrame:
        """
        Process one frame.

        Args:
            frame: Full-resolution BGR frame, or None if it could not be read
            now: Tracker clock in milliseconds
            time_ms: Render time in milliseconds for smoothing and colors
            scale_factor: Ratio of full resolution to detect_frame resolution
            detect_frame: Downscaled copy used for detection (default: frame)
            size: (width, height) of the output when frame is None

        Returns:
            ProcessedFrame with the blobs of this frame and the composite
        """
        start = time.perf_counter()

        source = detect_frame if detect_frame is not None else frame
        if source is None:
            regions = []
        else:
            regions = self.extractor.extract(source, self.settings, scale_factor)

        blobs = self.tracker.match(regions, now, scale_factor)
        image = self.renderer.compose(frame, blobs, time_ms, size=size)

        elapsed_ms = (time.perf_counter() - start) * 1000.0
        height, width = image.shape[:2]
        resolution = f"{width}x{height}"
        if scale_factor != 1.0:
            resolution += f" (Preview scale 1:{scale_factor:.1f})"
        self.stats = ProcessingStats(
            fps=round(1000.0 / max(1.0, elapsed_ms)),
            blob_count=len(blobs),
            resolution=resolution,
            render_time_ms=elapsed_ms,
        )
        return ProcessedFrame(blobs=blobs, image=image, stats=self.stats)
