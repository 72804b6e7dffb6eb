"""
Utility functions for blobfx.
"""

from blobfx.utils.logger import setup_logger

__all__ = [
    "setup_logger",
]
