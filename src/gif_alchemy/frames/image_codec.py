"""
Image Codec
===========

PNG encoding and decoding of single frames for the remote edit path.

Design Rules:
    - This is the ONLY place that converts between frames and still images
    - Decoded images are always normalized to (H, W, 4) RGBA uint8
    - Fails fast on corrupt data
"""

import base64
import logging
from typing import Union

import cv2
import numpy as np


logger = logging.getLogger(__name__)


class ImageDecodeError(Exception):
    """Raised when image decoding fails."""
    pass


def encode_png(pixels: np.ndarray) -> bytes:
    """
    Encode an RGBA array as PNG bytes.

    Args:
        pixels: (H, W, 4) uint8 RGBA array

    Returns:
        PNG file bytes

    Raises:
        ValueError: If encoding fails
    """
    bgra = cv2.cvtColor(np.ascontiguousarray(pixels), cv2.COLOR_RGBA2BGRA)
    ok, buffer = cv2.imencode(".png", bgra)
    if not ok:
        raise ValueError("cv2.imencode failed to produce PNG data")
    return buffer.tobytes()


def decode_image(data: Union[bytes, str]) -> np.ndarray:
    """
    Decode PNG/JPEG bytes (or base64 text) into an RGBA array.

    Args:
        data: Raw image bytes, or base64-encoded image text

    Returns:
        RGBA image as np.ndarray (H, W, 4), dtype=uint8

    Raises:
        ImageDecodeError: If decoding fails or image is invalid
    """
    try:
        if isinstance(data, str):
            data = base64.b64decode(data)

        nparr = np.frombuffer(data, np.uint8)
        decoded = cv2.imdecode(nparr, cv2.IMREAD_UNCHANGED)

        if decoded is None:
            raise ImageDecodeError("cv2.imdecode returned None")

        if decoded.dtype != np.uint8:
            raise ImageDecodeError(f"Invalid dtype: {decoded.dtype}")

        if decoded.ndim == 2:
            return cv2.cvtColor(decoded, cv2.COLOR_GRAY2RGBA)
        if decoded.shape[2] == 3:
            return cv2.cvtColor(decoded, cv2.COLOR_BGR2RGBA)
        if decoded.shape[2] == 4:
            return cv2.cvtColor(decoded, cv2.COLOR_BGRA2RGBA)

        raise ImageDecodeError(f"Invalid image shape: {decoded.shape}")

    except base64.binascii.Error as e:
        raise ImageDecodeError(f"Base64 decode failed: {e}")
    except Exception as e:
        if isinstance(e, ImageDecodeError):
            raise
        raise ImageDecodeError(f"Unexpected error decoding image: {e}")
