"""
Visual motion smoothing.

The rendered position of a blob trails its tracked position (drift) and
wobbles around it with deterministic trigonometric noise (jitter). The
result is used for drawing only and never fed back into tracking.
"""

import math
from dataclasses import dataclass

from blobfx.core.config import TrackerSettings
from blobfx.tracking.blob import TrackedBlob

JITTER_AMPLITUDE = 20.0


@dataclass(frozen=True)
class SmoothedPosition:
    """Result of one smoothing step."""
    visual_x: float
    visual_y: float
    draw_x: float
    draw_y: float


def lerp_factor(drift: float) -> float:
    """Interpolation rate toward the true position, in [0.1, 0.8]."""
    drift = max(0.0, min(1.0, drift))
    return 0.8 - drift * 0.7


def jitter_offset(time_ms: float, blob_id: int, jitter: float) -> tuple[float, float]:
    """Bounded pseudo-noise offset for a blob at a given time."""
    amp = jitter * JITTER_AMPLITUDE
    nx = (math.sin(time_ms * 0.01 + blob_id) + math.cos(time_ms * 0.05)) * amp
    ny = (math.cos(time_ms * 0.01 + blob_id) + math.sin(time_ms * 0.03)) * amp
    return nx, ny


def smooth_position(
    visual: tuple[float, float],
    target: tuple[float, float],
    time_ms: float,
    blob_id: int,
    jitter: float,
    drift: float,
) -> SmoothedPosition:
    """
    Advance a display position one step toward its target.

    Args:
        visual: Previous display position
        target: True tracked position
        time_ms: Render time in milliseconds
        blob_id: Identity used to decorrelate the noise between blobs
        jitter: Noise amplitude, 0-1
        drift: Lag amount, 0-1 (higher lags more)

    Returns:
        The new display position and the jittered draw position
    """
    k = lerp_factor(drift)
    vx = visual[0] + (target[0] - visual[0]) * k
    vy = visual[1] + (target[1] - visual[1]) * k
    nx, ny = jitter_offset(time_ms, blob_id, jitter)
    return SmoothedPosition(vx, vy, vx + nx, vy + ny)


class MotionSmoother:
    """
    Applies smooth_position to tracked blobs, owning their visual fields.

    Example:
        >>> smoother = MotionSmoother(settings)
        >>> draw_x, draw_y = smoother.apply(blob, time_ms)
    """

    def __init__(self, settings: TrackerSettings | None = None):
        self.settings = settings or TrackerSettings()

    def apply(self, blob: TrackedBlob, time_ms: float) -> tuple[float, float]:
        """Update blob.visual_x/visual_y in place and return the draw position."""
        step = smooth_position(
            (blob.visual_x, blob.visual_y),
            (blob.x, blob.y),
            time_ms,
            blob.id,
            self.settings.jitter,
            self.settings.drift,
        )
        blob.visual_x = step.visual_x
        blob.visual_y = step.visual_y
        return step.draw_x, step.draw_y
