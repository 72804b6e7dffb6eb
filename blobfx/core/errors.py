"""
Error taxonomy for blobfx.

Only FormatNegotiationFailure, DecoderError and SinkError abort an export.
BackendUnavailable is a "not ready yet" signal the caller retries on, and
FrameAcquisitionFailure is always handled locally by skipping one frame.
"""


class BlobFXError(Exception):
    """Base class for all blobfx errors."""


class BackendUnavailable(BlobFXError):
    """The vision, decoder or encoder backend is not ready yet."""


class FrameAcquisitionFailure(BlobFXError):
    """Pixel data for a single frame could not be read."""


class FormatNegotiationFailure(BlobFXError):
    """None of the candidate encode formats is supported."""

    def __init__(self, tried: list[str]):
        self.tried = list(tried)
        super().__init__(
            f"No supported encode format found (tried: {', '.join(self.tried) or 'none'})"
        )


class DecoderError(BlobFXError):
    """Unrecoverable error from the source decoder."""


class SinkError(BlobFXError):
    """Unrecoverable error from the encode sink."""


class ExportCancelled(BlobFXError):
    """Raised inside the export loop when cancellation has been observed."""
