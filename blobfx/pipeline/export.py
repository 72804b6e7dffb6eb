"""
Frame-accurate offline export.

The export driver replaces wall-clock playback with a fixed-rate loop:
for every output frame it seeks the source, waits (bounded) for the
decoder, extracts and tracks at full resolution, composites the overlay
for that exact timestamp and hands one frame to the encode sink. How long
each step takes on the real machine does not affect the output.

State machine:
    IDLE -> PREPARING -> EXPORTING -> FINALIZING -> COMPLETED
                     \\-> FAILED     \\-> CANCELLED / FAILED
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from blobfx.core.base import EncodeSink, FrameSource
from blobfx.core.codecs import EncoderCapabilities, FormatCandidate, negotiate_format
from blobfx.core.config import ExportOptions
from blobfx.core.errors import (
    BackendUnavailable,
    DecoderError,
    ExportCancelled,
    FormatNegotiationFailure,
    SinkError,
)
from blobfx.outputs.sink import create_sink
from blobfx.pipeline.processor import FrameProcessor

logger = logging.getLogger(__name__)


class ExportState(Enum):
    """Export driver states."""
    IDLE = "idle"
    PREPARING = "preparing"
    EXPORTING = "exporting"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ExportState.COMPLETED, ExportState.CANCELLED, ExportState.FAILED)


class SeekResult(Enum):
    """Outcome of waiting for a decoder seek. Both mean "proceed"."""
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"


@dataclass
class ExportResult:
    """
    Outcome of an export run.

    data, format_id and extension are only set for COMPLETED exports.
    """
    state: ExportState
    data: bytes | None = None
    format_id: str | None = None
    extension: str | None = None
    frames: int = 0
    seek_timeouts: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.state == ExportState.COMPLETED


SinkFactory = Callable[[FormatCandidate, ExportOptions], EncodeSink]


def default_sink_factory(candidate: FormatCandidate, options: ExportOptions) -> EncodeSink:
    """Create an FFmpeg or OpenCV sink for the negotiated format."""
    return create_sink(
        candidate,
        fps=options.fps,
        bitrate=options.bitrate,
        free_running=options.free_running,
    )


def progress_percent(timestamp: float, duration: float) -> int:
    """Export progress for a frame timestamp, clamped to 0-100."""
    if duration <= 0:
        return 100
    return max(0, min(100, round(100 * timestamp / duration)))


class ExportDriver:
    """
    Drives one export of a source video through a frame processor.

    A driver runs once. Cancellation is cooperative: cancel() sets a flag
    that is checked after each seek and at the per-frame yield, so the
    frame being processed always completes first.

    Example:
        >>> driver = ExportDriver(source, processor, ExportOptions(fps=30))
        >>> result = asyncio.run(driver.run())
        >>> if result.ok:
        ...     Path(f"out.{result.extension}").write_bytes(result.data)
    """

    def __init__(
        self,
        source: FrameSource,
        processor: FrameProcessor,
        options: ExportOptions | None = None,
        formats: list[FormatCandidate] | None = None,
        sink_factory: SinkFactory | None = None,
        caps: EncoderCapabilities | None = None,
        progress_callback: Callable[[int], None] | None = None,
        state_callback: Callable[[ExportState], None] | None = None,
    ):
        """
        Initialize the export driver.

        Args:
            source: Seekable decoder, already open
            processor: Processor to reset and drive at full resolution
            options: Frame rate, seek timeout, bitrate and output toggles
            formats: Format priority list (default: DEFAULT_FORMATS)
            sink_factory: Creates the sink for the negotiated format
            caps: Encoder capabilities used for negotiation
            progress_callback: Called with 0-100 at least once per frame
            state_callback: Called on every state transition
        """
        self.source = source
        self.processor = processor
        self.options = options or ExportOptions()
        self.formats = formats
        self.sink_factory = sink_factory or default_sink_factory
        self.caps = caps
        self.progress_callback = progress_callback
        self.state_callback = state_callback

        if self.options.fps <= 0:
            raise ValueError(f"Export fps must be positive, got {self.options.fps}")

        self._state = ExportState.IDLE
        self._progress = 0
        self._cancel_requested = False
        self.seek_timeouts = 0

    @property
    def state(self) -> ExportState:
        return self._state

    @property
    def progress(self) -> int:
        return self._progress

    @property
    def frame_duration(self) -> float:
        return 1.0 / self.options.fps

    def cancel(self) -> None:
        """Request cancellation at the next yield point."""
        self._cancel_requested = True

    def _set_state(self, state: ExportState) -> None:
        logger.debug("Export state: %s -> %s", self._state.value, state.value)
        self._state = state
        if self.state_callback:
            self.state_callback(state)

    def _report_progress(self, value: int) -> None:
        self._progress = max(self._progress, min(100, max(0, value)))
        if self.progress_callback:
            self.progress_callback(self._progress)

    def _check_cancel(self) -> None:
        if self._cancel_requested:
            raise ExportCancelled()

    async def _await_seek(self, timestamp: float) -> SeekResult:
        try:
            await asyncio.wait_for(self.source.seek(timestamp), timeout=self.options.seek_timeout)
        except asyncio.TimeoutError:
            self.seek_timeouts += 1
            logger.debug("Seek to %.3fs not confirmed after %.3fs", timestamp, self.options.seek_timeout)
            return SeekResult.TIMED_OUT
        return SeekResult.CONFIRMED

    def _prepare(self) -> tuple[FormatCandidate, EncodeSink]:
        self.processor.reset()
        candidate = negotiate_format(self.formats, self.caps)
        sink = self.sink_factory(candidate, self.options)
        width, height = self.source.frame_size
        sink.open(width, height)
        return candidate, sink

    async def _export_frame(self, index: int, sink: EncodeSink) -> None:
        timestamp = index / self.options.fps
        await self._await_seek(timestamp)
        self._check_cancel()

        frame = self.source.current_frame()
        if frame is None:
            logger.warning("No decoded frame at %.3fs, skipping detection", timestamp)

        time_ms = timestamp * 1000.0
        result = self.processor.process(
            None if self.options.overlays_only else frame,
            now=time_ms,
            time_ms=time_ms,
            scale_factor=1.0,
            detect_frame=frame,
            size=self.source.frame_size,
        )

        if sink.paced:
            sink.submit_frame(result.image)
        else:
            # Hold the frame long enough for the sampler to capture it
            sink.present(result.image)
            await asyncio.sleep(self.frame_duration)

        self._report_progress(progress_percent(timestamp, self.source.duration))

    async def run(self) -> ExportResult:
        """
        Run the export to completion, cancellation or failure.

        Returns:
            ExportResult; only COMPLETED results carry data

        Raises:
            BackendUnavailable: If the source is not ready or the processor
                is busy; nothing has started and the caller may retry
            RuntimeError: If this driver has already run
        """
        if self._state != ExportState.IDLE:
            raise RuntimeError("An ExportDriver can only run once")
        if not self.source.is_ready:
            raise BackendUnavailable("Video source is not ready")

        with self.processor.claim("export"):
            return await self._run()

    async def _run(self) -> ExportResult:
        duration = self.source.duration
        initial_position = self.source.position
        sink: EncodeSink | None = None
        frames = 0

        try:
            self._set_state(ExportState.PREPARING)
            candidate, sink = self._prepare()

            self._set_state(ExportState.EXPORTING)
            logger.info(
                "Exporting %.2fs at %.2f fps as %s",
                duration, self.options.fps, candidate.format_id,
            )
            while frames / self.options.fps < duration:
                await self._export_frame(frames, sink)
                frames += 1
                await asyncio.sleep(0)
                self._check_cancel()

            self._set_state(ExportState.FINALIZING)
            finishing, sink = sink, None
            data, format_id = await finishing.finalize()
            self._report_progress(100)
            self._set_state(ExportState.COMPLETED)
            logger.info("Export complete: %d frames, %d bytes", frames, len(data))
            return ExportResult(
                state=ExportState.COMPLETED,
                data=data,
                format_id=format_id,
                extension=candidate.extension,
                frames=frames,
                seek_timeouts=self.seek_timeouts,
            )

        except ExportCancelled:
            logger.info("Export cancelled after %d frames", frames)
            self._set_state(ExportState.CANCELLED)
            return ExportResult(
                state=ExportState.CANCELLED,
                frames=frames,
                seek_timeouts=self.seek_timeouts,
            )

        except asyncio.CancelledError:
            self._set_state(ExportState.CANCELLED)
            raise

        except (FormatNegotiationFailure, DecoderError, SinkError) as e:
            logger.error("Export failed: %s", e)
            self._set_state(ExportState.FAILED)
            return ExportResult(
                state=ExportState.FAILED,
                frames=frames,
                seek_timeouts=self.seek_timeouts,
                error=str(e),
            )

        except Exception as e:
            logger.exception("Export failed unexpectedly")
            self._set_state(ExportState.FAILED)
            return ExportResult(
                state=ExportState.FAILED,
                frames=frames,
                seek_timeouts=self.seek_timeouts,
                error=str(e) or type(e).__name__,
            )

        finally:
            if sink is not None:
                sink.discard()
            self.source.rewind(initial_position)
