"""
Pixel Raster Access
===================

Minimal pixel-buffer capability used by the local engines.

The engines never draw on a platform surface; they only need a writable
RGBA raster they can read, write and resize. This module is the single
place that checks a frame provides one.

Design Rules:
    - Fail fast with RenderContextUnavailable on unusable buffers
    - Always hand out a private copy; source frames stay untouched
"""

import numpy as np

from gif_alchemy.frames.frame import Frame


class LocalProcessingError(Exception):
    """Raised when local processing cannot run for a frame."""
    pass


class RenderContextUnavailable(LocalProcessingError):
    """Raised when a frame has no usable RGBA pixel raster."""
    pass


def validate_raster(frame: Frame) -> np.ndarray:
    """
    Check that a frame carries an (H, W, 4) uint8 RGBA raster.

    Args:
        frame: Frame to check

    Returns:
        The frame's pixel array (read-only)

    Raises:
        RenderContextUnavailable: If the raster is missing or malformed
    """
    pixels = getattr(frame, "pixels", None)

    if not isinstance(pixels, np.ndarray):
        raise RenderContextUnavailable(
            f"Frame has no pixel raster (got {type(pixels).__name__})"
        )
    if pixels.ndim != 3 or pixels.shape[2] != 4:
        raise RenderContextUnavailable(
            f"Frame raster must be RGBA (H, W, 4), got shape {pixels.shape}"
        )
    if pixels.dtype != np.uint8:
        raise RenderContextUnavailable(
            f"Frame raster must be uint8, got {pixels.dtype}"
        )
    if pixels.shape[0] == 0 or pixels.shape[1] == 0:
        raise RenderContextUnavailable("Frame raster is empty")

    return pixels


def writable_copy(frame: Frame) -> np.ndarray:
    """Return a private, writable copy of a frame's validated raster."""
    return validate_raster(frame).copy()
