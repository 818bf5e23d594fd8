"""
Frame Data Model
=================

Internal frame representation for the editing pipeline.

This module defines the typed Frame class that is passed between the
decoder, the per-frame processors, and the encoder.

Design Rules:
    - This is the ONLY frame format passed between pipeline stages
    - Pixels are an (H, W, 4) uint8 RGBA array
    - Frames are never modified in place; every stage builds a new Frame
"""

from dataclasses import dataclass

import numpy as np


DEFAULT_DELAY_MS = 100


@dataclass(frozen=True, slots=True)
class Frame:
    """
    One decoded frame of an animated sequence.

    It is immutable (frozen) and its pixel array is marked read-only
    so that a failed stage can never corrupt the source frame.

    Attributes:
        pixels: RGBA pixel buffer, shape (height, width, 4), dtype uint8
        delay_ms: Display delay in milliseconds
    """

    pixels: np.ndarray
    delay_ms: int = DEFAULT_DELAY_MS

    def __post_init__(self) -> None:
        """Normalize delay and freeze the pixel buffer."""
        if not self.delay_ms or self.delay_ms <= 0:
            object.__setattr__(self, "delay_ms", DEFAULT_DELAY_MS)
        if isinstance(self.pixels, np.ndarray):
            self.pixels.flags.writeable = False

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    def with_pixels(self, pixels: np.ndarray) -> "Frame":
        """Return a new Frame with the same delay and new pixels."""
        return Frame(pixels=pixels, delay_ms=self.delay_ms)

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the pixel buffer."""
        return (
            f"Frame(width={self.width}, "
            f"height={self.height}, "
            f"delay_ms={self.delay_ms})"
        )
