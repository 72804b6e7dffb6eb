"""
Tests for overlay compositing.
"""

import numpy as np
import pytest

from blobfx.core.config import TrackerSettings
from blobfx.outputs.overlay import OverlayRenderer
from blobfx.tracking import BlobTracker, CandidateRegion


def tracked(*positions, area=900.0):
    tracker = BlobTracker(min_area=0)
    return tracker.match([CandidateRegion(x, y, 30, 30, area) for x, y in positions], now=0)


STILL = dict(jitter=0.0, drift=0.0)


class TestOverlayRenderer:
    """Tests for OverlayRenderer.compose()."""

    def test_returns_new_image(self):
        frame = np.full((120, 160, 3), 40, dtype=np.uint8)
        original = frame.copy()

        out = OverlayRenderer(TrackerSettings(**STILL)).compose(frame, tracked((80, 60)), 0.0)

        assert out.shape == frame.shape
        assert out is not frame
        np.testing.assert_array_equal(frame, original)
        assert not np.array_equal(out, frame)

    def test_no_blobs_is_plain_copy(self):
        frame = np.random.default_rng(0).integers(0, 255, (60, 80, 3), dtype=np.uint8)
        out = OverlayRenderer().compose(frame, [], 0.0)

        np.testing.assert_array_equal(out, frame)

    def test_marker_drawn_in_base_color(self):
        settings = TrackerSettings(base_color="#ff0000", glow=False, show_hud=False, **STILL)
        out = OverlayRenderer(settings).compose(
            np.zeros((120, 160, 3), dtype=np.uint8), tracked((80, 60)), 0.0,
        )

        # crosshair centre
        b, g, r = out[60, 80]
        assert (b, g) == (0, 0)
        assert r >= 200
        # far corner is untouched
        assert tuple(out[0, 0]) == (0, 0, 0)

    def test_hide_video_draws_on_black(self):
        frame = np.full((120, 160, 3), 200, dtype=np.uint8)
        settings = TrackerSettings(show_video=False, glow=False, **STILL)

        out = OverlayRenderer(settings).compose(frame, tracked((80, 60)), 0.0)

        assert tuple(out[0, 0]) == (0, 0, 0)
        assert out.any()

    def test_no_frame_uses_size(self):
        out = OverlayRenderer(TrackerSettings(**STILL)).compose(
            None, tracked((50, 50)), 0.0, size=(100, 80),
        )

        assert out.shape == (80, 100, 3)
        assert out.any()

    def test_no_frame_and_no_size(self):
        with pytest.raises(ValueError):
            OverlayRenderer().compose(None, [], 0.0)

    def test_glow_spreads_light(self):
        frame = np.zeros((120, 160, 3), dtype=np.uint8)
        plain = OverlayRenderer(TrackerSettings(glow=False, show_hud=False, **STILL))
        glowing = OverlayRenderer(TrackerSettings(glow=True, show_hud=False, **STILL))

        a = plain.compose(frame, tracked((80, 60)), 0.0)
        b = glowing.compose(frame, tracked((80, 60)), 0.0)

        assert np.count_nonzero(b) > np.count_nonzero(a)

    def test_same_inputs_same_pixels(self):
        frame = np.zeros((120, 160, 3), dtype=np.uint8)
        settings = TrackerSettings(jitter=0.7, drift=0.5, color_mode="cycle")

        a = OverlayRenderer(settings).compose(frame, tracked((40, 40), (120, 80)), 1234.0)
        b = OverlayRenderer(settings).compose(frame, tracked((40, 40), (120, 80)), 1234.0)

        np.testing.assert_array_equal(a, b)

    def test_trail_drawn_from_history(self):
        tracker = BlobTracker(min_area=0, history_length=10)
        for i in range(5):
            blobs = tracker.match([CandidateRegion(20 + i * 20, 60, 10, 10, 100)], now=i * 33)
        settings = TrackerSettings(glow=False, show_hud=False, **STILL)

        with_trail = OverlayRenderer(settings).compose(
            np.zeros((120, 160, 3), dtype=np.uint8), blobs, 0.0,
        )
        settings.show_trails = False
        blobs[0].visual_x, blobs[0].visual_y = blobs[0].x, blobs[0].y
        without = OverlayRenderer(settings).compose(
            np.zeros((120, 160, 3), dtype=np.uint8), blobs, 0.0,
        )

        assert with_trail[60, 30:50].any()
        assert not without[60, 30:50].any()

    def test_grayscale_frame(self):
        frame = np.zeros((60, 80), dtype=np.uint8)
        out = OverlayRenderer(TrackerSettings(**STILL)).compose(frame, tracked((40, 30)), 0.0)

        assert out.shape == (60, 80, 3)
