"""
Recolor Engine
==============

Best-match recoloring with lightness preservation.

For each pixel that is not (nearly) transparent, the engine finds the rule
whose source color is closest in RGB space. If that distance is under the
threshold, the pixel takes the target's hue and saturation while keeping its
own lightness, so shading and texture survive the color change.

Matching Choice (best match):
    Rules are compared by distance, not by order. A pixel halfway between
    two rule sources goes to the closer one. Exact ties go to the earlier
    rule.
"""

import logging
from typing import Sequence

import numpy as np

from gif_alchemy.frames.frame import Frame
from gif_alchemy.models.color import RecolorRule
from gif_alchemy.processing.colorspace import (
    hsl_to_rgb_array,
    rgb_to_hsl,
    rgb_to_hsl_array,
)
from gif_alchemy.processing.raster import writable_copy


logger = logging.getLogger(__name__)


DEFAULT_THRESHOLD = 60.0
DEFAULT_ALPHA_CUTOFF = 10


def recolor_pixels(
    pixels: np.ndarray,
    rules: Sequence[RecolorRule],
    threshold: float = DEFAULT_THRESHOLD,
    alpha_cutoff: int = DEFAULT_ALPHA_CUTOFF,
) -> np.ndarray:
    """
    Recolor an RGBA array in place.

    Args:
        pixels: Writable (H, W, 4) uint8 array
        rules: Recolor rules in evaluation order
        threshold: Maximum (exclusive) RGB distance for a match
        alpha_cutoff: Pixels with alpha below this are skipped

    Returns:
        The same array, for chaining
    """
    if not rules:
        return pixels

    rgb = pixels[..., :3].astype(np.float64)
    best_distance = np.full(rgb.shape[:-1], float(threshold))
    best_rule = np.full(rgb.shape[:-1], -1, dtype=np.int64)

    for index, rule in enumerate(rules):
        source = np.array(rule.source_color.as_tuple(), dtype=np.float64)
        distance = np.sqrt(((rgb - source) ** 2).sum(axis=-1))
        closer = distance < best_distance
        best_distance = np.where(closer, distance, best_distance)
        best_rule[closer] = index

    matched = (pixels[..., 3] >= alpha_cutoff) & (best_rule >= 0)
    if not matched.any():
        return pixels

    target_hs = np.array(
        [rgb_to_hsl(*rule.target_color.as_tuple())[:2] for rule in rules],
        dtype=np.float64,
    )
    chosen = target_hs[best_rule[matched]]

    _, _, current_lightness = rgb_to_hsl_array(pixels[..., :3][matched])
    pixels[..., :3][matched] = hsl_to_rgb_array(
        chosen[:, 0], chosen[:, 1], current_lightness
    )

    return pixels


class RecolorEngine:
    """
    Pure recolor transform over frames.

    Attributes:
        threshold: Maximum (exclusive) RGB distance for a rule match
        alpha_cutoff: Alpha below which pixels count as transparent

    Example:
        engine = RecolorEngine()
        rules = [RecolorRule(source="#FF0000", target="#0000FF")]
        blue = engine.recolor(red_frame, rules)
    """

    def __init__(
        self,
        threshold: float = DEFAULT_THRESHOLD,
        alpha_cutoff: int = DEFAULT_ALPHA_CUTOFF,
    ) -> None:
        if threshold <= 0:
            raise ValueError("threshold must be positive")

        self.threshold = threshold
        self.alpha_cutoff = alpha_cutoff

    def recolor(self, frame: Frame, rules: Sequence[RecolorRule]) -> Frame:
        """
        Return a recolored copy of the frame.

        Raises:
            RenderContextUnavailable: If the frame has no usable raster
        """
        pixels = writable_copy(frame)
        recolor_pixels(pixels, rules, self.threshold, self.alpha_cutoff)
        return frame.with_pixels(pixels)


def recolor(frame: Frame, rules: Sequence[RecolorRule]) -> Frame:
    """Recolor with the default threshold and alpha cutoff."""
    return RecolorEngine().recolor(frame, rules)
