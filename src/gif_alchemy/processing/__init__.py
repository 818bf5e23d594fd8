"""
Processing Module
=================

Local, deterministic pixel engines.

This module provides:
    - RecolorEngine: Hue/saturation replacement with lightness preserved
    - BackgroundRemovalEngine: Chroma-key removal with feathered alpha
    - LocalFrameProcessor: Mode pipeline used as the remote fallback

Example:
    from gif_alchemy.processing import LocalFrameProcessor

    processor = LocalFrameProcessor()
    edited = processor.process(frame, config.modes, config)
"""

from gif_alchemy.processing.background import BackgroundRemovalEngine, remove_background
from gif_alchemy.processing.local import LocalFrameProcessor
from gif_alchemy.processing.raster import LocalProcessingError, RenderContextUnavailable
from gif_alchemy.processing.recolor import RecolorEngine, recolor


__all__ = [
    "BackgroundRemovalEngine",
    "remove_background",
    "LocalFrameProcessor",
    "LocalProcessingError",
    "RenderContextUnavailable",
    "RecolorEngine",
    "recolor",
]
