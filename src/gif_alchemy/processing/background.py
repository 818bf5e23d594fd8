"""
Background Removal Engine
=========================

Chroma-key background removal and replacement.

Pixels close to the key color are either made transparent or painted with
a solid replacement color. In transparent mode, pixels just outside the
tolerance get a feathered alpha so subject edges do not look cut out.

Rules:
    d = RGB distance(pixel, key)
    d < tolerance:
        replacement set -> RGB = replacement, alpha = 255
        otherwise       -> alpha = 0
    tolerance <= d < tolerance + band (transparent mode only):
        alpha = alpha * (d - tolerance) / band
    Fully transparent pixels are never touched.
"""

import logging

import numpy as np

from gif_alchemy.frames.frame import Frame
from gif_alchemy.models.color import RemovalSpec
from gif_alchemy.processing.raster import writable_copy


logger = logging.getLogger(__name__)


def remove_background_pixels(pixels: np.ndarray, spec: RemovalSpec) -> np.ndarray:
    """
    Apply background removal to an RGBA array in place.

    Args:
        pixels: Writable (H, W, 4) uint8 array
        spec: Key color, tolerance and optional replacement

    Returns:
        The same array, for chaining
    """
    alpha = pixels[..., 3]
    visible = alpha != 0

    key = np.array(spec.key_color.as_tuple(), dtype=np.float64)
    distance = np.sqrt(((pixels[..., :3].astype(np.float64) - key) ** 2).sum(axis=-1))

    inside = visible & (distance < spec.tolerance)

    if spec.replacement is not None:
        pixels[inside, :3] = spec.replacement.as_tuple()
        pixels[inside, 3] = 255
        return pixels

    band = (
        visible
        & (distance >= spec.tolerance)
        & (distance < spec.tolerance + spec.feather_band)
    )
    if band.any():
        factor = (distance[band] - spec.tolerance) / spec.feather_band
        feathered = np.clip(alpha[band] * factor, 0, 255)
        pixels[band, 3] = np.rint(feathered).astype(np.uint8)

    pixels[inside, 3] = 0
    return pixels


class BackgroundRemovalEngine:
    """
    Pure background removal transform over frames.

    Example:
        engine = BackgroundRemovalEngine()
        spec = RemovalSpec(key_color=Color.from_hex("#00FF00"))
        keyed = engine.remove_background(frame, spec)
    """

    def remove_background(self, frame: Frame, spec: RemovalSpec) -> Frame:
        """
        Return a copy of the frame with its background removed or replaced.

        Raises:
            RenderContextUnavailable: If the frame has no usable raster
        """
        pixels = writable_copy(frame)
        remove_background_pixels(pixels, spec)
        return frame.with_pixels(pixels)


def remove_background(frame: Frame, spec: RemovalSpec) -> Frame:
    """Functional form of BackgroundRemovalEngine.remove_background."""
    return BackgroundRemovalEngine().remove_background(frame, spec)
