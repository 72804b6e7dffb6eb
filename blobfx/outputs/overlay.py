"""
Overlay rendering.

Draws the stylized markers for tracked blobs: history trails, corner
brackets, a centre crosshair and an optional HUD label, with a soft glow
around the strokes.
"""

import math

import cv2
import numpy as np

from blobfx.core.config import TrackerSettings
from blobfx.processing.color import blob_color
from blobfx.tracking.blob import TrackedBlob
from blobfx.tracking.smoother import MotionSmoother

TRAIL_ALPHA = 0.6
CROSSHAIR_HALF = 5
GLOW_SIGMA = 6.0
HUD_FONT = cv2.FONT_HERSHEY_PLAIN
HUD_SCALE = 0.9


class OverlayRenderer:
    """
    Composites blob markers onto frames.

    Every call to compose() advances each blob's smoothed display position
    once, so call it exactly once per processed frame.

    Example:
        >>> renderer = OverlayRenderer(settings)
        >>> out = renderer.compose(frame, blobs, time_ms=1000.0)
    """

    def __init__(self, settings: TrackerSettings | None = None):
        self.settings = settings or TrackerSettings()
        self.smoother = MotionSmoother(self.settings)

    def update_settings(self, settings: TrackerSettings) -> None:
        self.settings = settings
        self.smoother.settings = settings

    def _draw_trail(
        self,
        vis: np.ndarray,
        blob: TrackedBlob,
        draw_pos: tuple[int, int],
        color: tuple[int, int, int],
    ) -> None:
        pts = [(int(round(p.x)), int(round(p.y))) for p in blob.history]
        pts.append(draw_pos)
        layer = vis.copy()
        cv2.polylines(
            layer, [np.array(pts, dtype=np.int32)], False, color, 1, cv2.LINE_AA
        )
        cv2.addWeighted(layer, TRAIL_ALPHA, vis, 1.0 - TRAIL_ALPHA, 0, dst=vis)

    def _draw_marker(
        self,
        canvas: np.ndarray,
        blob: TrackedBlob,
        cx: float,
        cy: float,
        color: tuple[int, int, int],
    ) -> None:
        """Corner brackets sized from the area, plus a centre crosshair."""
        size = math.sqrt(max(blob.area, 0.0)) * 0.8
        half = size / 2
        corner = size * 0.3
        left, right = cx - half, cx + half
        top, bottom = cy - half, cy + half

        segments = [
            # top left
            ((left, top + corner), (left, top)), ((left, top), (left + corner, top)),
            # top right
            ((right - corner, top), (right, top)), ((right, top), (right, top + corner)),
            # bottom right
            ((right, bottom - corner), (right, bottom)), ((right, bottom), (right - corner, bottom)),
            # bottom left
            ((left + corner, bottom), (left, bottom)), ((left, bottom), (left, bottom - corner)),
            # crosshair
            ((cx - CROSSHAIR_HALF, cy), (cx + CROSSHAIR_HALF, cy)),
            ((cx, cy - CROSSHAIR_HALF), (cx, cy + CROSSHAIR_HALF)),
        ]
        for p0, p1 in segments:
            cv2.line(
                canvas,
                (int(round(p0[0])), int(round(p0[1]))),
                (int(round(p1[0])), int(round(p1[1]))),
                color, 2, cv2.LINE_AA,
            )

    def _draw_label(
        self,
        canvas: np.ndarray,
        blob: TrackedBlob,
        cx: float,
        cy: float,
        color: tuple[int, int, int],
    ) -> None:
        half = math.sqrt(max(blob.area, 0.0)) * 0.4
        cv2.putText(
            canvas,
            f"TRK_{blob.id} [{math.floor(blob.area)}]",
            (int(round(cx + half + 5)), int(round(cy - half))),
            HUD_FONT, HUD_SCALE, color, 1, cv2.LINE_AA,
        )

    def compose(
        self,
        frame: np.ndarray | None,
        blobs: list[TrackedBlob],
        time_ms: float,
        size: tuple[int, int] | None = None,
    ) -> np.ndarray:
        """
        Render overlays for one frame.

        Args:
            frame: BGR background frame; ignored when show_video is off
            blobs: Blobs returned by the tracker for this frame
            time_ms: Render time in milliseconds
            size: (width, height) of the output when frame is None

        Returns:
            A new BGR image with overlays drawn on it
        """
        if frame is not None and self.settings.show_video:
            vis = frame[:, :, :3].copy() if frame.ndim == 3 else cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
        else:
            if frame is not None:
                height, width = frame.shape[:2]
            elif size is not None:
                width, height = size
            else:
                raise ValueError("Either frame or size is required")
            vis = np.zeros((height, width, 3), dtype=np.uint8)

        if not blobs:
            return vis

        strokes = np.zeros_like(vis) if self.settings.glow else vis

        for blob in blobs:
            color = blob_color(blob.id, time_ms, self.settings)
            draw_x, draw_y = self.smoother.apply(blob, time_ms)
            draw_pos = (int(round(draw_x)), int(round(draw_y)))

            if self.settings.show_trails and len(blob.history) > 1:
                self._draw_trail(vis, blob, draw_pos, color)

            self._draw_marker(strokes, blob, draw_x, draw_y, color)

            if self.settings.show_hud:
                self._draw_label(vis, blob, draw_x, draw_y, color)

        if self.settings.glow:
            glow = cv2.GaussianBlur(strokes, (0, 0), GLOW_SIGMA)
            cv2.add(vis, glow, dst=vis)
            mask = strokes.any(axis=2)
            vis[mask] = strokes[mask]

        return vis
