"""
Tests for the frame-accurate export driver.

The driver is exercised against an in-memory source and sink so the tests
do not depend on which codecs the machine has.
"""

import asyncio

import numpy as np
import pytest

from blobfx.core.codecs import EncoderCapabilities, FormatCandidate, SinkBackend
from blobfx.core.config import ExportOptions, TrackerSettings
from blobfx.core.errors import BackendUnavailable, DecoderError, SinkError
from blobfx.pipeline import ExportDriver, ExportState, FrameProcessor
from blobfx.pipeline.export import SeekResult, progress_percent

WIDTH, HEIGHT = 160, 120
BACKGROUND = 50


class FakeSource:
    """Decoder whose frames show one square moving right and one tiny square."""

    def __init__(self, duration=2.0, ready=True, hang=False, fail_at=None):
        self._duration = duration
        self._ready = ready
        self.hang = hang
        self.fail_at = fail_at
        self.seeks = []
        self.rewinds = []
        self._t = 0.0
        self._position = 0.75

    @property
    def is_ready(self):
        return self._ready

    @property
    def duration(self):
        return self._duration

    @property
    def frame_size(self):
        return WIDTH, HEIGHT

    @property
    def position(self):
        return self._position

    async def seek(self, timestamp):
        self.seeks.append(timestamp)
        if self.fail_at is not None and timestamp >= self.fail_at:
            raise DecoderError(f"corrupt packet at {timestamp:.2f}s")
        self._t = timestamp
        self._position = timestamp
        if self.hang:
            await asyncio.sleep(60)

    def current_frame(self):
        frame = np.full((HEIGHT, WIDTH, 3), BACKGROUND, dtype=np.uint8)
        x = 20 + int(self._t * 40)
        frame[50:66, x:x + 16] = 255
        frame[10:18, 130:138] = 255
        return frame

    def rewind(self, timestamp=0.0):
        self.rewinds.append(timestamp)
        self._position = timestamp


class FakeSink:
    """Records submitted or presented frames."""

    def __init__(self, paced=True, fail_after=None):
        self.paced = paced
        self.fail_after = fail_after
        self.frames = []
        self.opened = None
        self.discarded = False
        self.finalized = False

    def open(self, width, height):
        self.opened = (width, height)

    def submit_frame(self, frame):
        if self.fail_after is not None and len(self.frames) >= self.fail_after:
            raise SinkError("encoder crashed")
        self.frames.append(frame.copy())

    def present(self, frame):
        self.submit_frame(frame)

    async def finalize(self):
        self.finalized = True
        return b"encoded", "test/fake"

    def discard(self):
        self.discarded = True


def always(result):
    return lambda candidate, caps: result


FORMATS = [FormatCandidate("test/fake", "bin", SinkBackend.OPENCV, "none", predicate=always(True))]
CAPS = EncoderCapabilities(ffmpeg_path="/nonexistent/ffmpeg")


def make_driver(source=None, sink=None, formats=FORMATS, processor=None, **options):
    sink = sink if sink is not None else FakeSink()
    created = []

    def factory(candidate, opts):
        created.append(candidate)
        return sink

    driver = ExportDriver(
        source if source is not None else FakeSource(),
        processor or FrameProcessor(TrackerSettings(blur_size=1)),
        ExportOptions(**options),
        formats=formats,
        sink_factory=factory,
        caps=CAPS,
    )
    return driver, sink, created


class TestProgressPercent:

    @pytest.mark.parametrize("timestamp,duration,expected", [
        (0.0, 2.0, 0),
        (1.0, 2.0, 50),
        (2.5, 2.0, 100),
        (0.0, 0.0, 100),
    ])
    def test_progress_percent(self, timestamp, duration, expected):
        assert progress_percent(timestamp, duration) == expected


class TestExportDriver:
    """Tests for a normal export run."""

    def test_exact_frame_count(self):
        """Two seconds at 30 fps is exactly 60 frames."""
        source = FakeSource(duration=2.0)
        driver, sink, _ = make_driver(source, fps=30)

        result = asyncio.run(driver.run())

        assert result.state == ExportState.COMPLETED
        assert result.ok
        assert result.frames == 60
        assert len(sink.frames) == 60
        assert len(source.seeks) == 60
        assert source.seeks[1] == pytest.approx(1 / 30)
        assert source.seeks[-1] == pytest.approx(59 / 30)

    def test_result_carries_artifact(self):
        driver, sink, created = make_driver(FakeSource(duration=0.5), fps=10)

        result = asyncio.run(driver.run())

        assert result.data == b"encoded"
        assert result.format_id == "test/fake"
        assert result.extension == "bin"
        assert sink.opened == (WIDTH, HEIGHT)
        assert sink.finalized
        assert created == FORMATS

    def test_frames_match_source_size(self):
        driver, sink, _ = make_driver(FakeSource(duration=0.3), fps=10)
        asyncio.run(driver.run())

        assert all(f.shape == (HEIGHT, WIDTH, 3) for f in sink.frames)

    def test_progress_monotonic_and_complete(self):
        source = FakeSource(duration=1.0)
        driver, _, _ = make_driver(source, fps=20)
        reported = []
        driver.progress_callback = reported.append

        asyncio.run(driver.run())

        assert len(reported) >= 20
        assert reported == sorted(reported)
        assert reported[-1] == 100
        assert driver.progress == 100

    def test_state_transitions(self):
        driver, _, _ = make_driver(FakeSource(duration=0.2), fps=10)
        states = []
        driver.state_callback = states.append

        asyncio.run(driver.run())

        assert states == [
            ExportState.PREPARING,
            ExportState.EXPORTING,
            ExportState.FINALIZING,
            ExportState.COMPLETED,
        ]
        assert driver.state.is_terminal

    def test_source_position_restored(self):
        source = FakeSource(duration=0.5)
        driver, _, _ = make_driver(source, fps=10)

        asyncio.run(driver.run())

        assert source.rewinds == [0.75]

    def test_zero_duration(self):
        driver, sink, _ = make_driver(FakeSource(duration=0.0), fps=30)

        result = asyncio.run(driver.run())

        assert result.state == ExportState.COMPLETED
        assert result.frames == 0
        assert sink.frames == []
        assert driver.progress == 100

    def test_invalid_fps(self):
        with pytest.raises(ValueError):
            make_driver(fps=0)


class TestSeekTimeout:
    """Tests for bounded seek waits."""

    def test_timed_out_seeks_still_advance(self):
        source = FakeSource(duration=0.3, hang=True)
        driver, sink, _ = make_driver(source, fps=10, seek_timeout=0.01)

        result = asyncio.run(driver.run())

        assert result.state == ExportState.COMPLETED
        assert result.frames == 3
        assert result.seek_timeouts == 3
        assert len(sink.frames) == 3

    def test_await_seek_result(self):
        async def check():
            fast, _, _ = make_driver(FakeSource(), seek_timeout=0.5)
            slow, _, _ = make_driver(FakeSource(hang=True), seek_timeout=0.01)
            return await fast._await_seek(0.1), await slow._await_seek(0.1)

        assert asyncio.run(check()) == (SeekResult.CONFIRMED, SeekResult.TIMED_OUT)


class TestExportTracking:
    """Tests for tracking behaviour during export."""

    def test_tracker_reset_before_export(self):
        processor = FrameProcessor(TrackerSettings(blur_size=1))
        busy = np.zeros((HEIGHT, WIDTH, 3), dtype=np.uint8)
        busy[10:40, 10:40] = 255
        busy[80:110, 100:130] = 255
        processor.process(busy, now=0.0, time_ms=0.0)
        assert processor.tracker.next_id == 3

        driver, _, _ = make_driver(FakeSource(duration=1.0), processor=processor, fps=10)
        asyncio.run(driver.run())

        # one moving square, the 8x8 square is below min_area
        assert list(processor.tracker.active_blobs) == [1]

    def test_export_is_deterministic(self):
        settings = TrackerSettings(blur_size=1, jitter=0.8, drift=0.6, color_mode="cycle")

        def render():
            driver, sink, _ = make_driver(
                FakeSource(duration=0.5), processor=FrameProcessor(settings), fps=20,
            )
            asyncio.run(driver.run())
            return sink.frames

        first, second = render(), render()

        assert len(first) == len(second) == 10
        for a, b in zip(first, second):
            np.testing.assert_array_equal(a, b)

    def test_overlays_only(self):
        driver, sink, _ = make_driver(FakeSource(duration=0.2), fps=10, overlays_only=True)

        asyncio.run(driver.run())

        assert all(tuple(f[HEIGHT - 1, 0]) == (0, 0, 0) for f in sink.frames)
        assert all(f.any() for f in sink.frames)

    def test_with_video(self):
        driver, sink, _ = make_driver(FakeSource(duration=0.2), fps=10)

        asyncio.run(driver.run())

        assert all(tuple(f[HEIGHT - 1, 0]) == (BACKGROUND,) * 3 for f in sink.frames)


class TestExportCancellation:
    """Tests for cooperative and task cancellation."""

    def test_cancel_mid_export(self):
        source = FakeSource(duration=2.0)
        driver, sink, _ = make_driver(source, fps=30)

        def on_progress(_):
            if len(sink.frames) == 5:
                driver.cancel()

        driver.progress_callback = on_progress
        result = asyncio.run(driver.run())

        assert result.state == ExportState.CANCELLED
        assert result.data is None
        assert result.frames == 5
        assert len(sink.frames) == 5
        assert sink.discarded
        assert not sink.finalized
        assert source.rewinds == [0.75]

    def test_cancel_before_first_frame(self):
        driver, sink, _ = make_driver(FakeSource(duration=1.0), fps=10)
        driver.cancel()

        result = asyncio.run(driver.run())

        assert result.state == ExportState.CANCELLED
        assert sink.frames == []

    def test_task_cancellation_propagates(self):
        source = FakeSource(duration=5.0, hang=True)
        driver, sink, _ = make_driver(source, fps=10, seek_timeout=30.0)

        async def run():
            task = asyncio.create_task(driver.run())
            await asyncio.sleep(0.05)
            task.cancel()
            await task

        with pytest.raises(asyncio.CancelledError):
            asyncio.run(run())

        assert driver.state == ExportState.CANCELLED
        assert sink.discarded
        assert source.rewinds == [0.75]
        assert driver.processor.owner is None


class TestExportFailures:
    """Tests for fatal errors and precondition checks."""

    def test_no_supported_format(self):
        formats = [FormatCandidate("test/none", "bin", SinkBackend.OPENCV, "none", predicate=always(False))]
        source = FakeSource(duration=1.0)
        driver, sink, created = make_driver(source, formats=formats)

        result = asyncio.run(driver.run())

        assert result.state == ExportState.FAILED
        assert "test/none" in result.error
        assert created == []
        assert source.seeks == []
        assert sink.frames == []

    def test_decoder_error(self):
        source = FakeSource(duration=1.0, fail_at=0.5)
        driver, sink, _ = make_driver(source, fps=10)

        result = asyncio.run(driver.run())

        assert result.state == ExportState.FAILED
        assert "corrupt packet" in result.error
        assert result.frames == 5
        assert sink.discarded
        assert result.data is None

    def test_sink_error(self):
        driver, sink, _ = make_driver(FakeSource(duration=1.0), sink=FakeSink(fail_after=3), fps=10)

        result = asyncio.run(driver.run())

        assert result.state == ExportState.FAILED
        assert "encoder crashed" in result.error
        assert sink.discarded

    def test_unexpected_error_fails_export(self):
        class BrokenSource(FakeSource):
            async def seek(self, timestamp):
                await super().seek(timestamp)
                if timestamp >= 0.3:
                    raise RuntimeError("decoder thread died")

        source = BrokenSource(duration=1.0)
        driver, sink, _ = make_driver(source, fps=10)
        states = []
        driver.state_callback = states.append

        result = asyncio.run(driver.run())

        assert result.state == ExportState.FAILED
        assert driver.state == ExportState.FAILED
        assert states[-1] == ExportState.FAILED
        assert "decoder thread died" in result.error
        assert result.frames == 3
        assert sink.discarded
        assert source.rewinds == [0.75]

    def test_source_not_ready(self):
        driver, sink, _ = make_driver(FakeSource(ready=False))

        with pytest.raises(BackendUnavailable):
            asyncio.run(driver.run())

        assert driver.state == ExportState.IDLE
        assert sink.opened is None

    def test_runs_once(self):
        driver, _, _ = make_driver(FakeSource(duration=0.1), fps=10)
        asyncio.run(driver.run())

        with pytest.raises(RuntimeError):
            asyncio.run(driver.run())

    def test_processor_in_use(self):
        processor = FrameProcessor()
        driver, _, _ = make_driver(FakeSource(duration=0.1), processor=processor)

        with processor.claim("preview"):
            with pytest.raises(BackendUnavailable):
                asyncio.run(driver.run())

        assert driver.state == ExportState.IDLE


class TestFreeRunningExport:
    """Tests for the sampled sink path."""

    def test_frames_presented_and_held(self):
        sink = FakeSink(paced=False)
        driver, _, _ = make_driver(FakeSource(duration=0.1), sink=sink, fps=30)

        result = asyncio.run(driver.run())

        assert result.state == ExportState.COMPLETED
        assert len(sink.frames) == 3
