"""
Blob identity tracking.

This module provides the BlobTracker class which turns an unordered list of
per-frame detections into stable integer identities using greedy
nearest-neighbour assignment.
"""

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping

from blobfx.tracking.blob import CandidateRegion, Point, TrackedBlob, TrackerState

logger = logging.getLogger(__name__)

# Matching radius at full resolution, scaled up for downscaled processing.
MAX_TRACKING_DISTANCE_BASE = 100.0

# Blobs not matched for longer than this many milliseconds are dropped.
BLOB_TIMEOUT_MS = 500.0


@dataclass
class TrackingStats:
    """Statistics from a single match() call."""
    frame: int
    candidates: int
    matched: int
    created: int
    pruned: int
    active: int

    def to_dict(self) -> dict[str, int]:
        """Convert to dictionary."""
        return {
            "frame": self.frame,
            "candidates": self.candidates,
            "matched": self.matched,
            "created": self.created,
            "pruned": self.pruned,
            "active": self.active,
        }


class BlobTracker:
    """
    Greedy nearest-neighbour blob tracker.

    Candidates are assigned in input order, each to the closest blob that
    has not been claimed yet this frame. This is order-sensitive and not an
    optimal assignment, which keeps identities stable for the sparse,
    well-separated regions thresholding usually produces.

    Attributes:
        history_length: Maximum number of past positions kept per blob
        min_area: Minimum full-resolution-equivalent area for a candidate
        max_distance: Matching radius at scale factor 1
        timeout_ms: Time without a match after which a blob is removed

    Example:
        >>> tracker = BlobTracker(history_length=15, min_area=100)
        >>> for now, regions in detections:
        ...     blobs = tracker.match(regions, now)
    """

    def __init__(
        self,
        history_length: int = 15,
        min_area: float = 100.0,
        max_distance: float = MAX_TRACKING_DISTANCE_BASE,
        timeout_ms: float = BLOB_TIMEOUT_MS,
    ):
        self.history_length = max(0, int(history_length))
        self.min_area = float(min_area)
        self.max_distance = float(max_distance)
        self.timeout_ms = float(timeout_ms)

        self._state = TrackerState()
        self.frame_count = 0
        self.stats: TrackingStats | None = None

    @property
    def active_blobs(self) -> Mapping[int, TrackedBlob]:
        """Read-only view of the active blobs keyed by id."""
        return MappingProxyType(self._state.active)

    @property
    def next_id(self) -> int:
        return self._state.next_id

    def configure(
        self,
        history_length: int | None = None,
        min_area: float | None = None,
    ) -> None:
        """
        Apply changed settings.

        A shorter history_length trims every active blob immediately; the
        area threshold applies from the next match() call.
        """
        if history_length is not None:
            self.history_length = max(0, int(history_length))
            for blob in self._state.active.values():
                self._trim_history(blob)
        if min_area is not None:
            self.min_area = float(min_area)

    def reset(self) -> None:
        """Forget every blob and restart identities at 1."""
        self._state = TrackerState()
        self.frame_count = 0
        self.stats = None

    def matching_radius(self, scale_factor: float = 1.0) -> float:
        """Matching radius in output coordinates for the given processing scale."""
        return self.max_distance * max(1.0, scale_factor)

    def _accept(self, candidates: Iterable[CandidateRegion], scale_factor: float) -> list[CandidateRegion]:
        """Drop non-finite candidates and normalise area to full resolution."""
        area_scale = scale_factor * scale_factor
        accepted = []
        for cand in candidates:
            if not cand.is_finite():
                logger.debug("Ignoring non-finite candidate %s", cand)
                continue
            real_area = cand.area * area_scale
            if real_area > self.min_area:
                accepted.append(
                    CandidateRegion(cand.x, cand.y, cand.w, cand.h, real_area)
                )
        return accepted

    def _push_history(self, blob: TrackedBlob) -> None:
        blob.history.append(Point(blob.x, blob.y))
        self._trim_history(blob)

    def _trim_history(self, blob: TrackedBlob) -> None:
        excess = len(blob.history) - self.history_length
        if excess > 0:
            del blob.history[:excess]

    def match(
        self,
        candidates: Iterable[CandidateRegion],
        now: float,
        scale_factor: float = 1.0,
    ) -> list[TrackedBlob]:
        """
        Assign identities to this frame's candidates.

        Args:
            candidates: Detections for the frame, in extractor order
            now: Timestamp in milliseconds, non-decreasing between calls
            scale_factor: Ratio of output resolution to processing resolution

        Returns:
            Blobs matched or created this frame, in candidate order
        """
        accepted = self._accept(candidates, scale_factor)
        radius = self.matching_radius(scale_factor)
        active = self._state.active

        assigned: set[int] = set()
        result: list[TrackedBlob] = []
        created = 0

        for cand in accepted:
            closest: TrackedBlob | None = None
            min_dist = radius

            for blob_id, blob in active.items():
                if blob_id in assigned:
                    continue
                dist = blob.distance_to(cand.x, cand.y)
                if dist < min_dist:
                    min_dist = dist
                    closest = blob

            if closest is not None:
                self._push_history(closest)
                closest.x = cand.x
                closest.y = cand.y
                closest.w = cand.w
                closest.h = cand.h
                closest.area = cand.area
                closest.last_seen = now
                assigned.add(closest.id)
                result.append(closest)
            else:
                blob = TrackedBlob(
                    id=self._state.allocate_id(),
                    x=cand.x,
                    y=cand.y,
                    w=cand.w,
                    h=cand.h,
                    area=cand.area,
                    last_seen=now,
                    visual_x=cand.x,
                    visual_y=cand.y,
                )
                active[blob.id] = blob
                assigned.add(blob.id)
                result.append(blob)
                created += 1

        pruned = self._prune(now)

        self.frame_count += 1
        self.stats = TrackingStats(
            frame=self.frame_count,
            candidates=len(accepted),
            matched=len(result) - created,
            created=created,
            pruned=pruned,
            active=len(active),
        )
        return result

    def _prune(self, now: float) -> int:
        """Remove blobs whose last match is older than the timeout."""
        active = self._state.active
        stale = [
            blob_id for blob_id, blob in active.items()
            if now - blob.last_seen > self.timeout_ms
        ]
        for blob_id in stale:
            del active[blob_id]
        if stale:
            logger.debug("Pruned %d stale blob(s): %s", len(stale), stale)
        return len(stale)
