"""
Color Space Conversion
======================

Stateless RGB <-> HSL conversion.

Scalar functions work on single 0-255 integer triples. The array variants
apply the same arithmetic element-wise to (..., 3) pixel arrays and are what
the engines use; both produce identical results for the same pixel.

Conventions:
    - HSL components are in [0, 1]
    - RGB output is rounded half-up to the nearest integer
    - Achromatic input (max == min) yields h = 0, s = 0
"""

import math
from typing import Tuple

import numpy as np


def rgb_to_hsl(r: int, g: int, b: int) -> Tuple[float, float, float]:
    """
    Convert an RGB color to HSL.

    Args:
        r, g, b: Channel values in [0, 255]

    Returns:
        (h, s, l) each in [0, 1]
    """
    r, g, b = r / 255, g / 255, b / 255
    mx = max(r, g, b)
    mn = min(r, g, b)
    h = 0.0
    s = 0.0
    l = (mx + mn) / 2

    if mx != mn:
        d = mx - mn
        s = d / (2 - mx - mn) if l > 0.5 else d / (mx + mn)
        if mx == r:
            h = (g - b) / d + (6 if g < b else 0)
        elif mx == g:
            h = (b - r) / d + 2
        else:
            h = (r - g) / d + 4
        h /= 6

    return h, s, l


def _hue_to_rgb(p: float, q: float, t: float) -> float:
    if t < 0:
        t += 1
    if t > 1:
        t -= 1
    if t < 1 / 6:
        return p + (q - p) * 6 * t
    if t < 1 / 2:
        return q
    if t < 2 / 3:
        return p + (q - p) * (2 / 3 - t) * 6
    return p


def _round_channel(value: float) -> int:
    return int(math.floor(value * 255 + 0.5))


def hsl_to_rgb(h: float, s: float, l: float) -> Tuple[int, int, int]:
    """
    Convert an HSL color to RGB.

    Args:
        h, s, l: Components in [0, 1]

    Returns:
        (r, g, b) integers in [0, 255]
    """
    if s == 0:
        r = g = b = l
    else:
        q = l * (1 + s) if l < 0.5 else l + s - l * s
        p = 2 * l - q
        r = _hue_to_rgb(p, q, h + 1 / 3)
        g = _hue_to_rgb(p, q, h)
        b = _hue_to_rgb(p, q, h - 1 / 3)

    return _round_channel(r), _round_channel(g), _round_channel(b)


# =============================================================================
# Array variants
# =============================================================================

def rgb_to_hsl_array(rgb: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Vectorized rgb_to_hsl.

    Args:
        rgb: Array of shape (..., 3) with values in [0, 255]

    Returns:
        Tuple of (h, s, l) arrays of shape (...)
    """
    c = rgb.astype(np.float64) / 255
    r, g, b = c[..., 0], c[..., 1], c[..., 2]
    mx = c.max(axis=-1)
    mn = c.min(axis=-1)
    l = (mx + mn) / 2
    d = mx - mn

    chromatic = mx != mn
    safe_d = np.where(chromatic, d, 1.0)

    denom = np.where(l > 0.5, 2 - mx - mn, mx + mn)
    denom = np.where(chromatic, denom, 1.0)
    s = np.where(chromatic, d / denom, 0.0)

    h_red = (g - b) / safe_d + np.where(g < b, 6.0, 0.0)
    h_green = (b - r) / safe_d + 2
    h_blue = (r - g) / safe_d + 4
    h = np.select([mx == r, mx == g], [h_red, h_green], h_blue)
    h = np.where(chromatic, h / 6, 0.0)

    return h, s, l


def _hue_to_rgb_array(p: np.ndarray, q: np.ndarray, t: np.ndarray) -> np.ndarray:
    t = np.where(t < 0, t + 1, t)
    t = np.where(t > 1, t - 1, t)
    return np.select(
        [t < 1 / 6, t < 1 / 2, t < 2 / 3],
        [p + (q - p) * 6 * t, q, p + (q - p) * (2 / 3 - t) * 6],
        p,
    )


def hsl_to_rgb_array(h: np.ndarray, s: np.ndarray, l: np.ndarray) -> np.ndarray:
    """
    Vectorized hsl_to_rgb.

    Args:
        h, s, l: Broadcastable arrays with components in [0, 1]

    Returns:
        uint8 array of shape (..., 3)
    """
    h, s, l = np.broadcast_arrays(
        np.asarray(h, dtype=np.float64),
        np.asarray(s, dtype=np.float64),
        np.asarray(l, dtype=np.float64),
    )
    q = np.where(l < 0.5, l * (1 + s), l + s - l * s)
    p = 2 * l - q

    r = _hue_to_rgb_array(p, q, h + 1 / 3)
    g = _hue_to_rgb_array(p, q, h)
    b = _hue_to_rgb_array(p, q, h - 1 / 3)

    achromatic = s == 0
    rgb = np.stack(
        [
            np.where(achromatic, l, r),
            np.where(achromatic, l, g),
            np.where(achromatic, l, b),
        ],
        axis=-1,
    )
    return np.clip(np.floor(rgb * 255 + 0.5), 0, 255).astype(np.uint8)
