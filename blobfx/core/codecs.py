"""
Encode format negotiation.

Export output is encoded by whichever backend is available on the machine:
FFmpeg (hardware H.264, libx264, libvpx-vp9) or OpenCV's built-in writers.
Candidates are checked in priority order and the first supported one wins.

Usage:
    from blobfx.core.codecs import DEFAULT_FORMATS, negotiate_format

    fmt = negotiate_format(DEFAULT_FORMATS)
    print(fmt.format_id, fmt.extension)

The list is plain data, so callers can pass their own ordering or add
candidates for new backends without touching the export driver.
"""

import logging
import os
import platform
import shutil
import subprocess
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable

import cv2
import numpy as np

from blobfx.core.errors import FormatNegotiationFailure

logger = logging.getLogger(__name__)


class HWAccelBackend(Enum):
    """Hardware H.264 encoder families."""
    NONE = "none"
    VIDEOTOOLBOX = "videotoolbox"  # macOS
    VAAPI = "vaapi"                # Linux (Intel/AMD)
    NVENC = "nvenc"                # NVIDIA
    QSV = "qsv"                    # Intel QuickSync


HW_ENCODERS = {
    HWAccelBackend.VIDEOTOOLBOX: "h264_videotoolbox",
    HWAccelBackend.NVENC: "h264_nvenc",
    HWAccelBackend.VAAPI: "h264_vaapi",
    HWAccelBackend.QSV: "h264_qsv",
}

VAAPI_DEVICE = "/dev/dri/renderD128"


@dataclass(frozen=True)
class HWEncodeArgs:
    """
    Extra FFmpeg arguments a hardware encoder needs around raw BGR input.

    Attributes:
        input_args: Global options placed before the input (device setup)
        upload_filter: Filter that moves frames into encoder memory
        output_args: Encoder options placed after -c:v
        pix_fmt: Output pixel format, or None when the filter chain sets it
    """
    input_args: tuple[str, ...] = ()
    upload_filter: str | None = None
    output_args: tuple[str, ...] = ()
    pix_fmt: str | None = "yuv420p"


HW_ENCODE_ARGS = {
    HWAccelBackend.VIDEOTOOLBOX: HWEncodeArgs(output_args=("-allow_sw", "1")),
    HWAccelBackend.VAAPI: HWEncodeArgs(
        input_args=("-vaapi_device", VAAPI_DEVICE),
        upload_filter="format=nv12,hwupload",
        pix_fmt=None,
    ),
    HWAccelBackend.QSV: HWEncodeArgs(pix_fmt="nv12"),
}


def hw_encode_args(backend: HWAccelBackend) -> HWEncodeArgs:
    """Arguments for a hardware backend; software defaults otherwise."""
    return HW_ENCODE_ARGS.get(backend, HWEncodeArgs())


class SinkBackend(Enum):
    """Which library performs the encoding."""
    FFMPEG = "ffmpeg"
    OPENCV = "opencv"


@dataclass
class EncoderCapabilities:
    """
    Cached check results for the encoders available on this machine.

    Checks run subprocesses, so results are computed lazily and kept for
    the lifetime of the object.
    """
    ffmpeg_path: str | None = None
    _ffmpeg_encoders: str | None = field(default=None, repr=False)
    _fourcc_cache: dict[str, bool] = field(default_factory=dict, repr=False)
    _hw_backend: HWAccelBackend | None = field(default=None, repr=False)
    _hw_encode_ok: bool | None = field(default=None, repr=False)

    def __post_init__(self):
        if self.ffmpeg_path is None:
            self.ffmpeg_path = shutil.which("ffmpeg")

    @property
    def ffmpeg_available(self) -> bool:
        return self.ffmpeg_path is not None

    def ffmpeg_encoders(self) -> str:
        """Raw output of `ffmpeg -encoders`, or an empty string."""
        if self._ffmpeg_encoders is None:
            self._ffmpeg_encoders = ""
            if self.ffmpeg_available:
                try:
                    result = subprocess.run(
                        [self.ffmpeg_path, "-hide_banner", "-encoders"],
                        capture_output=True,
                        text=True,
                        timeout=5,
                    )
                    self._ffmpeg_encoders = result.stdout
                except (subprocess.TimeoutExpired, FileNotFoundError) as e:
                    logger.warning("Could not list FFmpeg encoders: %s", e)
        return self._ffmpeg_encoders

    def has_ffmpeg_encoder(self, encoder: str) -> bool:
        """Check if FFmpeg lists a specific encoder."""
        if not encoder:
            return False
        return any(
            len(parts) > 1 and parts[1] == encoder
            for parts in (line.split() for line in self.ffmpeg_encoders().splitlines())
        )

    def has_opencv_fourcc(self, fourcc: str, extension: str) -> bool:
        """Check if OpenCV can open a writer for a fourcc/container pair."""
        key = f"{fourcc}.{extension}"
        if key not in self._fourcc_cache:
            self._fourcc_cache[key] = _try_opencv_writer(fourcc, extension)
        return self._fourcc_cache[key]

    @property
    def hw_backend(self) -> HWAccelBackend:
        if self._hw_backend is None:
            self._hw_backend = _detect_hw_backend()
        return self._hw_backend

    @property
    def hw_encoder(self) -> str:
        """FFmpeg hardware H.264 encoder name for this platform, or ''."""
        return HW_ENCODERS.get(self.hw_backend, "")

    def hw_encoder_works(self) -> bool:
        """
        Check that the hardware encoder can actually encode a frame.

        A listed encoder is not enough: the device may be missing, busy or
        lack H.264 support. One synthetic frame is encoded with the same
        arguments FFmpegSink uses, and the outcome is cached.
        """
        if self._hw_encode_ok is None:
            self._hw_encode_ok = self._try_hw_encode()
        return self._hw_encode_ok

    def _try_hw_encode(self) -> bool:
        encoder = self.hw_encoder
        if not (self.ffmpeg_available and self.has_ffmpeg_encoder(encoder)):
            return False
        args = hw_encode_args(self.hw_backend)
        cmd = [self.ffmpeg_path, "-hide_banner", "-loglevel", "error", *args.input_args,
               "-f", "lavfi", "-i", "color=black:s=256x256:r=30", "-frames:v", "1"]
        if args.upload_filter:
            cmd.extend(["-vf", args.upload_filter])
        cmd.extend(["-c:v", encoder, *args.output_args])
        if args.pix_fmt:
            cmd.extend(["-pix_fmt", args.pix_fmt])
        cmd.extend(["-f", "null", "-"])
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=10)
        except (subprocess.TimeoutExpired, FileNotFoundError) as e:
            logger.warning("Hardware encoder %s check failed: %s", encoder, e)
            return False
        if result.returncode != 0:
            logger.info(
                "Hardware encoder %s unusable, falling back to software: %s",
                encoder, result.stderr.strip()[-200:],
            )
            return False
        return True

    def status(self) -> dict:
        """Get current encoder availability."""
        return {
            "platform": platform.system(),
            "ffmpeg_available": self.ffmpeg_available,
            "hw_backend": self.hw_backend.value,
            "hw_encoder": self.hw_encoder,
            "formats": {
                c.format_id: c.is_supported(self) for c in DEFAULT_FORMATS
            },
        }


def _try_opencv_writer(fourcc: str, extension: str) -> bool:
    """Try to open and write one frame with an OpenCV VideoWriter."""
    fd, path = tempfile.mkstemp(suffix=f".{extension}")
    os.close(fd)
    writer = cv2.VideoWriter(path, cv2.VideoWriter_fourcc(*fourcc), 30.0, (64, 64))
    try:
        if not writer.isOpened():
            return False
        writer.write(np.zeros((64, 64, 3), dtype=np.uint8))
        return True
    finally:
        writer.release()
        try:
            os.remove(path)
        except OSError:
            pass


def _check_nvidia() -> bool:
    """Check for an NVIDIA GPU."""
    try:
        result = subprocess.run(["nvidia-smi"], capture_output=True, timeout=5)
        return result.returncode == 0
    except (subprocess.TimeoutExpired, FileNotFoundError):
        return False


def _detect_hw_backend() -> HWAccelBackend:
    """Detect the best hardware encoder family for the current platform."""
    system = platform.system()
    if system == "Darwin":
        return HWAccelBackend.VIDEOTOOLBOX
    if system in ("Linux", "Windows") and _check_nvidia():
        return HWAccelBackend.NVENC
    if system == "Linux" and os.path.exists(VAAPI_DEVICE):
        return HWAccelBackend.VAAPI
    return HWAccelBackend.NONE


@dataclass(frozen=True)
class FormatCandidate:
    """
    One entry in the format priority list.

    Attributes:
        format_id: Identifier reported with the finished artifact
        extension: Container file extension
        backend: Library that encodes this format
        codec: FFmpeg encoder name, or OpenCV fourcc
        predicate: Optional override for the support check
    """
    format_id: str
    extension: str
    backend: SinkBackend
    codec: str
    predicate: Callable[["FormatCandidate", EncoderCapabilities], bool] | None = None

    def resolved_codec(self, caps: EncoderCapabilities) -> str:
        """The concrete codec name; 'hw' expands to the platform encoder."""
        if self.codec == "hw":
            return caps.hw_encoder
        return self.codec

    def is_supported(self, caps: EncoderCapabilities) -> bool:
        if self.predicate is not None:
            return self.predicate(self, caps)
        codec = self.resolved_codec(caps)
        if self.backend == SinkBackend.FFMPEG:
            if not (caps.ffmpeg_available and caps.has_ffmpeg_encoder(codec)):
                return False
            return self.codec != "hw" or caps.hw_encoder_works()
        return caps.has_opencv_fourcc(codec, self.extension)


# Priority: MP4 (hardware H.264) > MP4 (H.264) > MP4 (generic) > WebM (VP9) > WebM (generic)
DEFAULT_FORMATS: list[FormatCandidate] = [
    FormatCandidate("video/mp4;codecs=avc1-hw", "mp4", SinkBackend.FFMPEG, "hw"),
    FormatCandidate("video/mp4;codecs=avc1", "mp4", SinkBackend.FFMPEG, "libx264"),
    FormatCandidate("video/mp4", "mp4", SinkBackend.OPENCV, "mp4v"),
    FormatCandidate("video/webm;codecs=vp9", "webm", SinkBackend.FFMPEG, "libvpx-vp9"),
    FormatCandidate("video/webm", "webm", SinkBackend.OPENCV, "VP80"),
]

_default_caps: EncoderCapabilities | None = None


def get_capabilities() -> EncoderCapabilities:
    """Process-wide cached capabilities."""
    global _default_caps
    if _default_caps is None:
        _default_caps = EncoderCapabilities()
    return _default_caps


def negotiate_format(
    candidates: Iterable[FormatCandidate] | None = None,
    caps: EncoderCapabilities | None = None,
) -> FormatCandidate:
    """
    Pick the first supported format from a priority list.

    Args:
        candidates: Ordered candidates (default: DEFAULT_FORMATS)
        caps: Capabilities to check against (default: process-wide cache)

    Returns:
        The first candidate whose support check passes

    Raises:
        FormatNegotiationFailure: If no candidate is supported
    """
    caps = caps or get_capabilities()
    tried = []
    for candidate in (DEFAULT_FORMATS if candidates is None else candidates):
        tried.append(candidate.format_id)
        if candidate.is_supported(caps):
            logger.info("Using export format: %s (%s)", candidate.format_id, candidate.resolved_codec(caps))
            return candidate
        logger.debug("Export format not supported: %s", candidate.format_id)
    raise FormatNegotiationFailure(tried)


def print_format_status(caps: EncoderCapabilities | None = None) -> None:
    """Print encoder availability and the format priority list."""
    status = (caps or get_capabilities()).status()
    print("blobfx Export Format Status")
    print("=" * 40)
    print(f"  Platform:        {status['platform']}")
    print(f"  FFmpeg:          {'available' if status['ffmpeg_available'] else 'not found'}")
    print(f"  HW backend:      {status['hw_backend']}")
    if status['hw_encoder']:
        print(f"  HW encoder:      {status['hw_encoder']}")
    print("  Formats (priority order):")
    for format_id, supported in status['formats'].items():
        print(f"    {'✓' if supported else '✗'} {format_id}")
