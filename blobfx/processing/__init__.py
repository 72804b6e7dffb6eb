"""
Processing module - Region extraction and overlay colors.

This module provides:
- ContourExtractor: Threshold/contour based candidate region extraction
- Per-identity color helpers for the overlay renderer
"""

from blobfx.processing.extractor import ContourExtractor, odd_kernel
from blobfx.processing.color import (
    blob_color,
    cycle_hue,
    hex_to_bgr,
    hsl_to_bgr,
    identity_hue,
)

__all__ = [
    "ContourExtractor",
    "odd_kernel",
    "blob_color",
    "cycle_hue",
    "hex_to_bgr",
    "hsl_to_bgr",
    "identity_hue",
]
