"""
Tracking module - Blob identity tracking and motion smoothing.

This module provides:
- BlobTracker: Greedy nearest-neighbour identity assignment with pruning
- MotionSmoother: Lagging, jittered display positions for rendering
- Data model types for candidate regions and tracked blobs

Example:
    >>> from blobfx.tracking import BlobTracker
    >>> tracker = BlobTracker(history_length=15, min_area=100)
    >>> for now, regions in detections:
    ...     blobs = tracker.match(regions, now)
"""

from blobfx.tracking.blob import CandidateRegion, Point, TrackedBlob, TrackerState
from blobfx.tracking.tracker import (
    BlobTracker,
    TrackingStats,
    BLOB_TIMEOUT_MS,
    MAX_TRACKING_DISTANCE_BASE,
)
from blobfx.tracking.smoother import (
    MotionSmoother,
    SmoothedPosition,
    jitter_offset,
    lerp_factor,
    smooth_position,
)

__all__ = [
    "CandidateRegion",
    "Point",
    "TrackedBlob",
    "TrackerState",
    "BlobTracker",
    "TrackingStats",
    "BLOB_TIMEOUT_MS",
    "MAX_TRACKING_DISTANCE_BASE",
    "MotionSmoother",
    "SmoothedPosition",
    "jitter_offset",
    "lerp_factor",
    "smooth_position",
]
