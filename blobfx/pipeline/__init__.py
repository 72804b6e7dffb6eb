"""
Pipeline module - Live preview and frame-accurate export.

This module provides:
- FrameProcessor: Extraction, tracking and compositing for one frame
- PreviewLoop: Real-time, downscaled preview with an OpenCV window
- ExportDriver: Fixed-rate, seek-synchronized export to an encode sink

Example:
    >>> from blobfx.pipeline import ExportDriver, FrameProcessor
    >>> driver = ExportDriver(source, FrameProcessor(settings))
    >>> result = asyncio.run(driver.run())
"""

from blobfx.pipeline.processor import FrameProcessor, ProcessedFrame, ProcessingStats
from blobfx.pipeline.export import (
    ExportDriver,
    ExportResult,
    ExportState,
    SeekResult,
    default_sink_factory,
    progress_percent,
)
from blobfx.pipeline.preview import PreviewLoop, preview_scale

__all__ = [
    "FrameProcessor",
    "ProcessedFrame",
    "ProcessingStats",
    "ExportDriver",
    "ExportResult",
    "ExportState",
    "SeekResult",
    "default_sink_factory",
    "progress_percent",
    "PreviewLoop",
    "preview_scale",
]
