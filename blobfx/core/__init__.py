"""
Core module - Configuration, errors, protocols, video decoding and encode formats.
"""

from blobfx.core.errors import (
    BlobFXError,
    BackendUnavailable,
    FrameAcquisitionFailure,
    FormatNegotiationFailure,
    DecoderError,
    SinkError,
    ExportCancelled,
)
from blobfx.core.config import (
    Config,
    TrackerSettings,
    ExportOptions,
    PreviewOptions,
    load_config,
    save_config,
)
from blobfx.core.base import RegionExtractor, FrameSource, EncodeSink
from blobfx.core.video import VideoSource, VideoProperties, get_video_properties
from blobfx.core.codecs import (
    DEFAULT_FORMATS,
    EncoderCapabilities,
    FormatCandidate,
    HWAccelBackend,
    SinkBackend,
    negotiate_format,
    print_format_status,
)

__all__ = [
    "BlobFXError",
    "BackendUnavailable",
    "FrameAcquisitionFailure",
    "FormatNegotiationFailure",
    "DecoderError",
    "SinkError",
    "ExportCancelled",
    "Config",
    "TrackerSettings",
    "ExportOptions",
    "PreviewOptions",
    "load_config",
    "save_config",
    "RegionExtractor",
    "FrameSource",
    "EncodeSink",
    "VideoSource",
    "VideoProperties",
    "get_video_properties",
    "DEFAULT_FORMATS",
    "EncoderCapabilities",
    "FormatCandidate",
    "HWAccelBackend",
    "SinkBackend",
    "negotiate_format",
    "print_format_status",
]
