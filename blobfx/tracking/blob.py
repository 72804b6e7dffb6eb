"""
Data model for detected regions and tracked blobs.
"""

import math
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Point:
    """A 2D position in output coordinates."""
    x: float
    y: float


@dataclass(frozen=True)
class CandidateRegion:
    """
    One per-frame detection before identity assignment.

    Attributes:
        x, y: Bounding-box centre in output coordinates
        w, h: Bounding-box size in output coordinates
        area: Contour area in the extractor's working scale
    """
    x: float
    y: float
    w: float
    h: float
    area: float

    def is_finite(self) -> bool:
        """Check that every coordinate is a finite number."""
        return all(math.isfinite(v) for v in (self.x, self.y, self.w, self.h, self.area))


@dataclass
class TrackedBlob:
    """
    A persistent object identity.

    Detection fields are overwritten on every match. visual_x/visual_y
    belong to the motion smoother and start at the first detected position.
    """
    id: int
    x: float
    y: float
    w: float
    h: float
    area: float
    last_seen: float
    visual_x: float
    visual_y: float
    history: list[Point] = field(default_factory=list)

    @property
    def position(self) -> Point:
        return Point(self.x, self.y)

    @property
    def visual_position(self) -> Point:
        return Point(self.visual_x, self.visual_y)

    def distance_to(self, x: float, y: float) -> float:
        """Euclidean distance from the last known position."""
        return math.hypot(x - self.x, y - self.y)


@dataclass
class TrackerState:
    """State owned by a single BlobTracker instance."""
    next_id: int = 1
    active: dict[int, TrackedBlob] = field(default_factory=dict)

    def allocate_id(self) -> int:
        blob_id = self.next_id
        self.next_id += 1
        return blob_id
