"""
Protocols for the collaborators the processing core talks to.

The core never decodes, encodes or segments pixels itself. It drives
objects that satisfy these protocols, which keeps the export driver
testable with in-memory fakes.
"""

from typing import Protocol, runtime_checkable

import numpy as np

from blobfx.core.config import TrackerSettings
from blobfx.tracking.blob import CandidateRegion


@runtime_checkable
class RegionExtractor(Protocol):
    """Turns a pixel buffer into candidate regions."""

    def extract(
        self,
        frame: np.ndarray,
        settings: TrackerSettings,
        scale_factor: float = 1.0,
    ) -> list[CandidateRegion]:
        """
        Extract candidate regions from a frame.

        Positions and sizes are reported in output coordinates (multiplied
        by scale_factor); area stays in the frame's own working scale.
        """
        ...

    def reset(self) -> None:
        """Release any per-resolution working buffers."""
        ...


@runtime_checkable
class FrameSource(Protocol):
    """A seekable video decoder."""

    @property
    def is_ready(self) -> bool:
        """True once the source is open and can be seeked."""
        ...

    @property
    def duration(self) -> float:
        """Source duration in seconds."""
        ...

    @property
    def frame_size(self) -> tuple[int, int]:
        """(width, height) of decoded frames."""
        ...

    @property
    def position(self) -> float:
        """Current position in seconds."""
        ...

    async def seek(self, timestamp: float) -> None:
        """Seek to a timestamp in seconds and decode the frame there."""
        ...

    def current_frame(self) -> np.ndarray | None:
        """Return the most recently decoded frame, or None."""
        ...

    def rewind(self, timestamp: float = 0.0) -> None:
        """Reposition without decoding, used to restore the initial position."""
        ...


@runtime_checkable
class EncodeSink(Protocol):
    """Accepts composited frames and produces an encoded artifact."""

    @property
    def paced(self) -> bool:
        """True if frames are submitted explicitly, False for free-running capture."""
        ...

    def open(self, width: int, height: int) -> None:
        """Prepare the sink for frames of the given size."""
        ...

    def submit_frame(self, frame: np.ndarray) -> None:
        """Encode exactly one output frame (paced sinks)."""
        ...

    def present(self, frame: np.ndarray) -> None:
        """Make a frame visible to the autonomous sampler (free-running sinks)."""
        ...

    async def finalize(self) -> tuple[bytes, str]:
        """Signal end of stream and return (artifact bytes, format id)."""
        ...

    def discard(self) -> None:
        """Abort encoding and drop any partial output."""
        ...
