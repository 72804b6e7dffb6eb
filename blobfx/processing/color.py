"""
Per-identity overlay colors.

Colors are pure functions of (blob id, render time, settings) so a frame
re-rendered with the same inputs always gets the same pixels.
"""

import colorsys

from blobfx.core.config import TrackerSettings

# Golden angle in degrees, spreads consecutive ids around the hue wheel.
GOLDEN_ANGLE = 137.508

OVERLAY_SATURATION = 1.0
OVERLAY_LIGHTNESS = 0.6


def hex_to_bgr(hex_color: str) -> tuple[int, int, int]:
    """
    Convert '#rrggbb' to an OpenCV BGR tuple.

    Args:
        hex_color: Six-digit hex color, with or without leading '#'

    Returns:
        (b, g, r) tuple of ints in 0-255
    """
    hx = hex_color.lstrip("#")
    if len(hx) != 6:
        raise ValueError(f"Invalid hex color: {hex_color}")
    return int(hx[4:6], 16), int(hx[2:4], 16), int(hx[0:2], 16)


def hsl_to_bgr(
    hue: float,
    saturation: float = OVERLAY_SATURATION,
    lightness: float = OVERLAY_LIGHTNESS,
) -> tuple[int, int, int]:
    """
    Convert an HSL color to an OpenCV BGR tuple.

    Args:
        hue: Hue in degrees (wrapped to 0-360)
        saturation: Saturation, 0-1
        lightness: Lightness, 0-1
    """
    r, g, b = colorsys.hls_to_rgb((hue % 360.0) / 360.0, lightness, saturation)
    return round(b * 255), round(g * 255), round(r * 255)


def cycle_hue(blob_id: int, time_ms: float) -> float:
    """Hue that rotates over time, offset per identity."""
    return (time_ms * 0.1 + blob_id * 30) % 360.0


def identity_hue(blob_id: int) -> float:
    """Stable hue hashed from the identity."""
    return (blob_id * GOLDEN_ANGLE) % 360.0


def blob_color(blob_id: int, time_ms: float, settings: TrackerSettings) -> tuple[int, int, int]:
    """
    Overlay color for a blob.

    Args:
        blob_id: Tracked identity
        time_ms: Render time in milliseconds
        settings: Settings providing color_mode and base_color

    Returns:
        BGR color tuple
    """
    if settings.color_mode == "cycle":
        return hsl_to_bgr(cycle_hue(blob_id, time_ms))
    if settings.color_mode == "random":
        return hsl_to_bgr(identity_hue(blob_id))
    return hex_to_bgr(settings.base_color)
