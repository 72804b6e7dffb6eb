"""
Encode sinks.

Sinks accept composited frames and return the encoded artifact as bytes.
Paced sinks encode exactly one output frame per submit_frame() call.
SampledSink models a free-running capture device: it samples whatever
frame is currently presented at a fixed rate, so the caller has to hold
each frame for about one frame duration.
"""

import asyncio
import contextlib
import logging
import os
import subprocess
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

import cv2
import numpy as np

from blobfx.core.codecs import (
    EncoderCapabilities,
    FormatCandidate,
    HWEncodeArgs,
    SinkBackend,
    get_capabilities,
    hw_encode_args,
)
from blobfx.core.errors import SinkError

logger = logging.getLogger(__name__)


class BaseSink(ABC):
    """
    Abstract base class for encode sinks.

    Output is written to a temporary file that is read back and deleted
    by finalize(), or deleted unread by discard().
    """

    paced = True

    def __init__(self, candidate: FormatCandidate, fps: float):
        self.candidate = candidate
        self.fps = fps
        self.width = 0
        self.height = 0
        self.frames_written = 0
        self.output_path: Path | None = None

    @property
    def format_id(self) -> str:
        return self.candidate.format_id

    def _make_temp_path(self) -> Path:
        fd, path = tempfile.mkstemp(prefix="blobfx_", suffix=f".{self.candidate.extension}")
        os.close(fd)
        return Path(path)

    def _remove_output(self) -> None:
        if self.output_path is not None:
            with contextlib.suppress(FileNotFoundError):
                self.output_path.unlink()
            self.output_path = None

    def _read_output(self) -> bytes:
        if self.output_path is None or not self.output_path.exists():
            raise SinkError("Encoder produced no output file")
        data = self.output_path.read_bytes()
        self._remove_output()
        if not data:
            raise SinkError("Encoder produced an empty file")
        return data

    @abstractmethod
    def open(self, width: int, height: int) -> None:
        """Prepare the sink for frames of the given size."""
        pass

    @abstractmethod
    def submit_frame(self, frame: np.ndarray) -> None:
        """Encode exactly one output frame."""
        pass

    def present(self, frame: np.ndarray) -> None:
        """Paced sinks have no sampler; presenting is submitting."""
        self.submit_frame(frame)

    @abstractmethod
    async def finalize(self) -> tuple[bytes, str]:
        """Finish encoding and return (artifact bytes, format id)."""
        pass

    @abstractmethod
    def discard(self) -> None:
        """Abort encoding and delete partial output."""
        pass

    def _check_frame(self, frame: np.ndarray) -> np.ndarray:
        if frame.shape[0] != self.height or frame.shape[1] != self.width:
            raise SinkError(
                f"Frame size {frame.shape[1]}x{frame.shape[0]} does not match "
                f"sink size {self.width}x{self.height}"
            )
        if not frame.flags["C_CONTIGUOUS"]:
            frame = np.ascontiguousarray(frame)
        return frame


class FFmpegSink(BaseSink):
    """
    Pipes raw BGR frames into an FFmpeg process.

    Example:
        sink = FFmpegSink(candidate, fps=30)
        sink.open(1920, 1080)
        for frame in frames:
            sink.submit_frame(frame)
        data, format_id = await sink.finalize()
    """

    def __init__(
        self,
        candidate: FormatCandidate,
        fps: float,
        bitrate: str = "25M",
        caps: EncoderCapabilities | None = None,
    ):
        super().__init__(candidate, fps)
        self.bitrate = bitrate
        self.caps = caps or get_capabilities()
        self._process: subprocess.Popen | None = None

    def _build_command(self) -> list[str]:
        codec = self.candidate.resolved_codec(self.caps)
        hardware = self.candidate.codec == "hw"

        # yuv420p needs even dimensions, hardware encoders want multiples of 16
        align = 16 if hardware else 2
        out_w = ((self.width + align - 1) // align) * align
        out_h = ((self.height + align - 1) // align) * align

        args = hw_encode_args(self.caps.hw_backend) if hardware else HWEncodeArgs()

        cmd = [
            self.caps.ffmpeg_path, "-y", "-hide_banner", "-loglevel", "error",
            *args.input_args,
            "-f", "rawvideo",
            "-pix_fmt", "bgr24",
            "-s", f"{self.width}x{self.height}",
            "-r", str(self.fps),
            "-i", "-",
        ]
        filters = []
        if out_w != self.width or out_h != self.height:
            filters.append(f"pad={out_w}:{out_h}:0:0:black")
        if args.upload_filter:
            filters.append(args.upload_filter)
        if filters:
            cmd.extend(["-vf", ",".join(filters)])

        cmd.extend(["-c:v", codec, *args.output_args])
        if self.bitrate:
            cmd.extend(["-b:v", self.bitrate])
        if args.pix_fmt:
            cmd.extend(["-pix_fmt", args.pix_fmt])

        cmd.append(str(self.output_path))
        return cmd

    def open(self, width: int, height: int) -> None:
        if not self.caps.ffmpeg_available:
            raise SinkError("FFmpeg not found")
        self.width, self.height = width, height
        self.output_path = self._make_temp_path()
        cmd = self._build_command()
        logger.debug("Starting encoder: %s", " ".join(cmd))
        try:
            self._process = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except (FileNotFoundError, subprocess.SubprocessError) as e:
            self._remove_output()
            raise SinkError(f"Failed to start FFmpeg: {e}") from e

    def _stderr_tail(self) -> str:
        if self._process is None or self._process.stderr is None:
            return ""
        with contextlib.suppress(OSError, ValueError):
            return self._process.stderr.read().decode(errors="replace").strip()[-500:]
        return ""

    def submit_frame(self, frame: np.ndarray) -> None:
        if self._process is None or self._process.stdin is None:
            raise SinkError("Sink not open")
        frame = self._check_frame(frame)
        try:
            self._process.stdin.write(frame.tobytes())
        except (BrokenPipeError, OSError) as e:
            self._process.kill()
            raise SinkError(f"FFmpeg encoder stopped: {self._stderr_tail() or e}") from e
        self.frames_written += 1

    def _close(self) -> int:
        self._process.stdin.close()
        return self._process.wait()

    async def finalize(self) -> tuple[bytes, str]:
        if self._process is None:
            raise SinkError("Sink not open")
        try:
            returncode = await asyncio.to_thread(self._close)
            if returncode != 0:
                raise SinkError(f"FFmpeg exited with code {returncode}: {self._stderr_tail()}")
            data = self._read_output()
        except BaseException:
            self._remove_output()
            raise
        finally:
            self._process = None
        logger.info("Encoded %d frames (%d bytes, %s)", self.frames_written, len(data), self.format_id)
        return data, self.format_id

    def discard(self) -> None:
        if self._process is not None:
            with contextlib.suppress(OSError):
                if self._process.stdin:
                    self._process.stdin.close()
            self._process.terminate()
            self._process.wait()
            self._process = None
        self._remove_output()


class OpenCVSink(BaseSink):
    """Encodes with cv2.VideoWriter using the candidate's fourcc."""

    def __init__(self, candidate: FormatCandidate, fps: float):
        super().__init__(candidate, fps)
        self._writer: cv2.VideoWriter | None = None

    def open(self, width: int, height: int) -> None:
        self.width, self.height = width, height
        self.output_path = self._make_temp_path()
        fourcc = cv2.VideoWriter_fourcc(*self.candidate.codec)
        self._writer = cv2.VideoWriter(str(self.output_path), fourcc, self.fps, (width, height))
        if not self._writer.isOpened():
            self._writer = None
            self._remove_output()
            raise SinkError(f"OpenCV could not open a {self.candidate.codec} writer")

    def submit_frame(self, frame: np.ndarray) -> None:
        if self._writer is None:
            raise SinkError("Sink not open")
        self._writer.write(self._check_frame(frame))
        self.frames_written += 1

    async def finalize(self) -> tuple[bytes, str]:
        if self._writer is None:
            raise SinkError("Sink not open")
        self._writer.release()
        self._writer = None
        data = self._read_output()
        logger.info("Encoded %d frames (%d bytes, %s)", self.frames_written, len(data), self.format_id)
        return data, self.format_id

    def discard(self) -> None:
        if self._writer is not None:
            self._writer.release()
            self._writer = None
        self._remove_output()


class SampledSink(BaseSink):
    """
    Free-running capture around a paced sink.

    A background task copies the currently presented frame into the inner
    sink every 1/fps seconds, regardless of how fast frames are presented.
    Must be used from a running event loop.
    """

    paced = False

    def __init__(self, inner: BaseSink):
        super().__init__(inner.candidate, inner.fps)
        self.inner = inner
        self._latest: np.ndarray | None = None
        self._task: asyncio.Task | None = None
        self._error: BaseException | None = None

    def open(self, width: int, height: int) -> None:
        self.width, self.height = width, height
        self.inner.open(width, height)

    def submit_frame(self, frame: np.ndarray) -> None:
        raise SinkError("Free-running sink does not accept paced frames; use present()")

    def present(self, frame: np.ndarray) -> None:
        if self._error is not None:
            raise SinkError(f"Capture failed: {self._error}") from self._error
        self._latest = self._check_frame(frame).copy()
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._sample())

    async def _sample(self) -> None:
        interval = 1.0 / self.fps
        try:
            while True:
                if self._latest is not None:
                    self.inner.submit_frame(self._latest)
                    self.frames_written += 1
                await asyncio.sleep(interval)
        except Exception as e:
            logger.error("Capture stopped after %d frames: %s", self.frames_written, e)
            self._error = e

    async def _stop_sampler(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def finalize(self) -> tuple[bytes, str]:
        await self._stop_sampler()
        if self._error is not None:
            self.inner.discard()
            raise SinkError(f"Capture failed: {self._error}") from self._error
        return await self.inner.finalize()

    def discard(self) -> None:
        # A cancelled sampler is parked in sleep() and never reaches inner again
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self.inner.discard()


def create_sink(
    candidate: FormatCandidate,
    fps: float,
    bitrate: str = "25M",
    free_running: bool = False,
    caps: EncoderCapabilities | None = None,
) -> BaseSink:
    """
    Create the sink that encodes a negotiated format.

    Args:
        candidate: Negotiated format
        fps: Output frame rate
        bitrate: Target bitrate for FFmpeg encoders
        free_running: Wrap the sink in a fixed-rate sampler
        caps: Encoder capabilities (default: process-wide cache)
    """
    if candidate.backend == SinkBackend.FFMPEG:
        sink: BaseSink = FFmpegSink(candidate, fps, bitrate=bitrate, caps=caps)
    else:
        sink = OpenCVSink(candidate, fps)
    if free_running:
        sink = SampledSink(sink)
    return sink
