"""
blobfx - Tracked blob overlays for video
========================================

Detects bright moving regions in a video, gives each one a stable identity
and draws stylized markers over them, either live or as a frame-accurate
export.

Main modules:
- blobfx.tracking: Blob identity tracking and motion smoothing
- blobfx.processing: Candidate region extraction and overlay colors
- blobfx.outputs: Overlay rendering and encode sinks
- blobfx.pipeline: Live preview and offline export drivers
- blobfx.core: Configuration, errors, video decoding and format negotiation

Quick start:
    >>> from blobfx import BlobTracker, CandidateRegion
    >>> tracker = BlobTracker(history_length=15, min_area=100)
    >>> blobs = tracker.match([CandidateRegion(10, 10, 20, 20, 400)], now=0.0)
"""

__version__ = "0.1.0"

# Convenience imports
from blobfx.core.config import Config, TrackerSettings, ExportOptions, PreviewOptions
from blobfx.tracking import BlobTracker, CandidateRegion, TrackedBlob, MotionSmoother
from blobfx.pipeline import ExportDriver, ExportResult, ExportState, FrameProcessor, PreviewLoop

__all__ = [
    "__version__",
    "Config",
    "TrackerSettings",
    "ExportOptions",
    "PreviewOptions",
    "BlobTracker",
    "CandidateRegion",
    "TrackedBlob",
    "MotionSmoother",
    "ExportDriver",
    "ExportResult",
    "ExportState",
    "FrameProcessor",
    "PreviewLoop",
]
