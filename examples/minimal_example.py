#!/usr/bin/env python3
"""
Minimal Example: blobfx API Usage
=================================

Shows the essential API calls without extra boilerplate.
This is the "quick reference" version.
"""

import asyncio
from pathlib import Path

import numpy as np

from blobfx import BlobTracker, CandidateRegion, ExportDriver, ExportOptions, FrameProcessor, TrackerSettings
from blobfx.core.video import VideoSource


# =============================================================================
# STEP 1: TRACKING ONLY
# Feed detections in, get stable identities out.
# =============================================================================

tracker = BlobTracker(history_length=15, min_area=100)

frames = [
    [CandidateRegion(10, 10, 20, 20, 400), CandidateRegion(600, 600, 20, 20, 400)],
    [CandidateRegion(15, 12, 20, 20, 400)],
]
for i, regions in enumerate(frames):
    blobs = tracker.match(regions, now=i * 33.0)
    print(f"frame {i}:", [(b.id, round(b.x), round(b.y)) for b in blobs])


# =============================================================================
# STEP 2: ONE FRAME THROUGH THE FULL PROCESSOR
# Extract, track and composite a synthetic frame.
# =============================================================================

settings = TrackerSettings(threshold=120, jitter=0.2, drift=0.3, color_mode="random")
processor = FrameProcessor(settings)

frame = np.zeros((240, 320, 3), dtype=np.uint8)
frame[100:140, 60:100] = 255
frame[40:70, 220:250] = 255

result = processor.process(frame, now=0.0, time_ms=0.0)
print("blobs:", [b.id for b in result.blobs], result.stats.to_dict())


# =============================================================================
# STEP 3: FRAME-ACCURATE EXPORT
# Equivalent to: blobfx export input.mp4 -o input_blobs --fps 30
# =============================================================================

input_video = "input.mp4"

if Path(input_video).exists():
    with VideoSource(input_video) as source:
        driver = ExportDriver(
            source,
            FrameProcessor(settings),
            ExportOptions(fps=30.0),
            progress_callback=lambda p: print(f"\r{p}%", end=""),
        )
        export = asyncio.run(driver.run())

    if export.ok:
        output = Path(f"input_blobs.{export.extension}")
        output.write_bytes(export.data)
        print(f"\nWrote {export.frames} frames to {output} ({export.format_id})")
    else:
        print(f"\nExport {export.state.value}: {export.error}")
