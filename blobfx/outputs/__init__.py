"""
Outputs module - Overlay rendering and encode sinks.

This module provides:
- OverlayRenderer: Trails, corner brackets, crosshair and HUD labels
- FFmpegSink: Paced encoding through an FFmpeg pipe
- OpenCVSink: Paced encoding with cv2.VideoWriter
- SampledSink: Free-running capture around a paced sink

Example:
    >>> from blobfx.outputs import create_sink
    >>> sink = create_sink(candidate, fps=30)
    >>> sink.open(1920, 1080)
"""

from blobfx.outputs.overlay import OverlayRenderer
from blobfx.outputs.sink import (
    BaseSink,
    FFmpegSink,
    OpenCVSink,
    SampledSink,
    create_sink,
)

__all__ = [
    "OverlayRenderer",
    "BaseSink",
    "FFmpegSink",
    "OpenCVSink",
    "SampledSink",
    "create_sink",
]
