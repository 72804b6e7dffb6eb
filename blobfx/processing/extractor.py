"""
Candidate region extraction with OpenCV.

Thresholds a blurred grayscale copy of the frame and reports the bounding
box of every external contour. This is the thin vision adapter in front
of the tracker; it does no identity work of its own.
"""

import logging

import cv2
import numpy as np

from blobfx.core.config import TrackerSettings
from blobfx.core.errors import FrameAcquisitionFailure
from blobfx.tracking.blob import CandidateRegion

logger = logging.getLogger(__name__)


def odd_kernel(size: int) -> int:
    """Coerce a blur kernel size to a positive odd integer."""
    size = max(1, int(size))
    return size if size % 2 == 1 else size + 1


class ContourExtractor:
    """
    Extracts candidate regions from BGR, BGRA or grayscale frames.

    Working buffers are allocated once per frame size and reused until the
    size changes or reset() is called.

    Example:
        >>> extractor = ContourExtractor()
        >>> regions = extractor.extract(frame, settings, scale_factor=2.0)
    """

    def __init__(self):
        self._gray: np.ndarray | None = None
        self._binary: np.ndarray | None = None
        self._size: tuple[int, int] = (0, 0)

    def _ensure_buffers(self, width: int, height: int) -> None:
        if self._gray is not None and self._size == (width, height):
            return
        self.reset()
        self._gray = np.empty((height, width), dtype=np.uint8)
        self._binary = np.empty((height, width), dtype=np.uint8)
        self._size = (width, height)

    def reset(self) -> None:
        """Release working buffers."""
        self._gray = None
        self._binary = None
        self._size = (0, 0)

    def _to_gray(self, frame: np.ndarray) -> np.ndarray:
        if frame is None or frame.ndim not in (2, 3) or frame.size == 0:
            raise FrameAcquisitionFailure("Empty or malformed frame buffer")

        height, width = frame.shape[:2]
        self._ensure_buffers(width, height)

        if frame.ndim == 2:
            np.copyto(self._gray, frame.astype(np.uint8, copy=False))
        elif frame.shape[2] == 4:
            cv2.cvtColor(frame, cv2.COLOR_BGRA2GRAY, dst=self._gray)
        elif frame.shape[2] == 3:
            cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY, dst=self._gray)
        else:
            raise FrameAcquisitionFailure(f"Unsupported channel count: {frame.shape[2]}")
        return self._gray

    def _find_contours(self, frame: np.ndarray, settings: TrackerSettings) -> list:
        gray = self._to_gray(frame)
        k = odd_kernel(settings.blur_size)
        cv2.GaussianBlur(gray, (k, k), 0, dst=gray)
        cv2.threshold(gray, settings.threshold, 255, cv2.THRESH_BINARY, dst=self._binary)
        contours, _ = cv2.findContours(
            self._binary, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE
        )
        return contours

    def extract(
        self,
        frame: np.ndarray,
        settings: TrackerSettings,
        scale_factor: float = 1.0,
    ) -> list[CandidateRegion]:
        """
        Extract candidate regions from a frame.

        Args:
            frame: Pixel buffer at processing resolution
            settings: Provides threshold and blur_size
            scale_factor: Multiplier from processing to output coordinates

        Returns:
            Regions with output-space positions and working-scale areas.
            An empty list if the frame could not be read.
        """
        try:
            contours = self._find_contours(frame, settings)
        except (FrameAcquisitionFailure, cv2.error) as e:
            logger.warning("Frame access error, skipping detection: %s", e)
            return []

        regions = []
        for contour in contours:
            area = cv2.contourArea(contour)
            x, y, w, h = cv2.boundingRect(contour)
            regions.append(CandidateRegion(
                x=(x + w / 2) * scale_factor,
                y=(y + h / 2) * scale_factor,
                w=w * scale_factor,
                h=h * scale_factor,
                area=float(area),
            ))
        return regions
