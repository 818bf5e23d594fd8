"""
Local Frame Processor
=====================

Deterministic, offline frame editing.

Composes the recolor and background removal engines according to the
project's active modes. This is the scheduler's fallback of last resort:
it performs no I/O and cannot fail for quota or network reasons.

Order:
    1. Recolor (if 'recolor' is active and rules exist)
    2. Background removal (if 'remove-bg' is active)

Design Rules:
    - Each stage works on its own copy of the pixel buffer
    - A frame without a usable raster raises RenderContextUnavailable
"""

import logging
from typing import Iterable

from gif_alchemy.frames.frame import Frame
from gif_alchemy.models.project import EditConfig, ProcessingMode
from gif_alchemy.processing.background import BackgroundRemovalEngine
from gif_alchemy.processing.raster import validate_raster
from gif_alchemy.processing.recolor import (
    DEFAULT_ALPHA_CUTOFF,
    DEFAULT_THRESHOLD,
    RecolorEngine,
)


logger = logging.getLogger(__name__)


class LocalFrameProcessor:
    """
    Local edit pipeline for single frames.

    Attributes:
        recolor_engine: Engine used for the recolor stage
        removal_engine: Engine used for the background stage
        tolerance: Background key tolerance
        feather_band: Feather band width for transparent removal

    Example:
        processor = LocalFrameProcessor()
        edited = processor.process(frame, config.modes, config)
    """

    def __init__(
        self,
        recolor_threshold: float = DEFAULT_THRESHOLD,
        alpha_cutoff: int = DEFAULT_ALPHA_CUTOFF,
        tolerance: float = 60.0,
        feather_band: float = 20.0,
    ) -> None:
        self.recolor_engine = RecolorEngine(
            threshold=recolor_threshold,
            alpha_cutoff=alpha_cutoff,
        )
        self.removal_engine = BackgroundRemovalEngine()
        self.tolerance = tolerance
        self.feather_band = feather_band

    def process(
        self,
        frame: Frame,
        modes: Iterable[ProcessingMode],
        config: EditConfig,
    ) -> Frame:
        """
        Apply the active modes to a frame.

        Args:
            frame: Source frame (never modified)
            modes: Active edit modes
            config: Recolor rules and background settings

        Returns:
            New Frame with the edits applied

        Raises:
            RenderContextUnavailable: If the frame has no usable raster
        """
        validate_raster(frame)
        modes = set(modes)
        result = frame.with_pixels(frame.pixels.copy())

        if ProcessingMode.RECOLOR in modes and config.recolor_rules:
            result = self.recolor_engine.recolor(result, config.recolor_rules)

        if ProcessingMode.REMOVE_BG in modes:
            spec = config.removal_spec(
                tolerance=self.tolerance,
                feather_band=self.feather_band,
            )
            result = self.removal_engine.remove_background(result, spec)

        return result
