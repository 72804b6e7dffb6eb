"""
Video decoding for blobfx.

VideoSource wraps an OpenCV VideoCapture with the two access patterns the
pipelines need: sequential reads for live preview, and timestamp seeks
awaited from the export loop.
"""

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

import cv2
import numpy as np

from blobfx.core.errors import BackendUnavailable, DecoderError

logger = logging.getLogger(__name__)


@dataclass
class VideoProperties:
    """Properties of a video file."""
    width: int
    height: int
    fps: float
    frame_count: int

    @classmethod
    def from_capture(cls, cap: cv2.VideoCapture) -> "VideoProperties":
        """Create VideoProperties from an OpenCV VideoCapture."""
        return cls(
            width=int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            height=int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            fps=cap.get(cv2.CAP_PROP_FPS),
            frame_count=int(cap.get(cv2.CAP_PROP_FRAME_COUNT)),
        )

    def to_dict(self) -> dict:
        return {
            "width": self.width,
            "height": self.height,
            "fps": self.fps,
            "frame_count": self.frame_count,
            "duration": self.duration,
        }

    @property
    def duration(self) -> float:
        """Duration in seconds (0 if the frame rate is unknown)."""
        return self.frame_count / self.fps if self.fps > 0 else 0.0

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"


class VideoSource:
    """
    Seekable video decoder backed by OpenCV.

    Example:
        with VideoSource("input.mp4") as source:
            await source.seek(1.5)
            frame = source.current_frame()
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._cap: cv2.VideoCapture | None = None
        self._props: VideoProperties | None = None
        self._frame: np.ndarray | None = None
        self._position = 0.0
        self._lock = threading.Lock()
        # Seeks decode on a private single worker, never the loop's default executor
        self._executor: ThreadPoolExecutor | None = None
        self._generation = 0
        self._pending_rewind: float | None = None

    def open(self) -> "VideoSource":
        """Open the video file."""
        if not self.path.exists():
            raise FileNotFoundError(f"Video file not found: {self.path}")

        self._cap = cv2.VideoCapture(str(self.path))
        if not self._cap.isOpened():
            self._cap = None
            raise DecoderError(f"Failed to open video: {self.path}")

        self._props = VideoProperties.from_capture(self._cap)
        logger.info(
            "Opened %s (%s @ %.2f fps, %.2fs)",
            self.path.name, self._props.resolution, self._props.fps, self._props.duration,
        )
        return self

    def close(self) -> None:
        """
        Close the video file.

        Queued seeks are dropped. A decode already in flight is allowed to
        finish before the capture is released.
        """
        self._generation += 1
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        with self._lock:
            if self._cap:
                self._cap.release()
                self._cap = None
            self._frame = None
            self._pending_rewind = None

    @property
    def is_ready(self) -> bool:
        return self._cap is not None

    @property
    def properties(self) -> VideoProperties:
        if self._props is None:
            raise BackendUnavailable("Video not opened. Call open() first.")
        return self._props

    @property
    def duration(self) -> float:
        return self.properties.duration

    @property
    def frame_size(self) -> tuple[int, int]:
        return self.properties.width, self.properties.height

    @property
    def position(self) -> float:
        return self._position

    def _decoder(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="blobfx-decode")
        return self._executor

    def _seek_and_decode(self, timestamp: float, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            if self._cap is None:
                raise BackendUnavailable("Video not opened. Call open() first.")
            try:
                self._cap.set(cv2.CAP_PROP_POS_MSEC, timestamp * 1000.0)
                ret, frame = self._cap.read()
            except cv2.error as e:
                raise DecoderError(f"Seek to {timestamp:.3f}s failed: {e}") from e
            if generation != self._generation:
                logger.debug("Dropping stale decode at %.3fs", timestamp)
                return
            self._frame = frame if ret else None
            self._position = timestamp

    async def seek(self, timestamp: float) -> None:
        """
        Seek to a timestamp in seconds and decode the frame there.

        Every call supersedes earlier ones: a decode that finishes after a
        newer seek or a rewind does not publish its frame or position. The
        awaitable can be abandoned (e.g. by asyncio.wait_for) without
        blocking the caller on the decoder.
        """
        self._generation += 1
        self._pending_rewind = None
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(self._decoder(), self._seek_and_decode, timestamp, self._generation)

    def current_frame(self) -> np.ndarray | None:
        """Return the most recently decoded frame."""
        return self._frame

    def _apply_pending_rewind(self) -> None:
        if self._pending_rewind is not None and self._cap is not None:
            self._cap.set(cv2.CAP_PROP_POS_MSEC, self._pending_rewind * 1000.0)
        self._pending_rewind = None

    def read(self) -> tuple[bool, np.ndarray | None]:
        """Read the next frame sequentially."""
        with self._lock:
            if self._cap is None:
                raise BackendUnavailable("Video not opened. Call open() first.")
            self._apply_pending_rewind()
            ret, frame = self._cap.read()
            self._frame = frame if ret else None
            self._position = self._cap.get(cv2.CAP_PROP_POS_MSEC) / 1000.0
            return ret, self._frame

    def rewind(self, timestamp: float = 0.0) -> None:
        """
        Reposition for sequential reads without decoding.

        Never waits on the decoder: if a decode is in flight the capture is
        repositioned by the next read().
        """
        self._generation += 1
        self._position = timestamp
        self._pending_rewind = timestamp
        if self._lock.acquire(blocking=False):
            try:
                self._apply_pending_rewind()
            finally:
                self._lock.release()

    def __enter__(self) -> "VideoSource":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False


def get_video_properties(path: str | Path) -> VideoProperties:
    """Get properties of a video file without keeping it open."""
    cap = cv2.VideoCapture(str(path))
    if not cap.isOpened():
        raise DecoderError(f"Failed to open video: {path}")
    try:
        return VideoProperties.from_capture(cap)
    finally:
        cap.release()
