"""
Frames Module
=============

Frame model and codecs for animated GIF sequences.

This module provides the ingestion and output layer:
    - Frame: Immutable RGBA pixel buffer + delay
    - decode_gif / encode_gif: Animated GIF codec (Pillow)
    - encode_png / decode_image: Single-image codec for remote calls (OpenCV)
    - downsample_frames / resize_frame: Frame-count and width limits
"""

from gif_alchemy.frames.frame import DEFAULT_DELAY_MS, Frame
from gif_alchemy.frames.gif_codec import (
    EncodingError,
    GifDecodeError,
    decode_gif,
    encode_gif,
)
from gif_alchemy.frames.image_codec import ImageDecodeError, decode_image, encode_png
from gif_alchemy.frames.sampling import (
    MAX_FRAMES,
    MAX_WIDTH,
    downsample_frames,
    fit_to_size,
    resize_frame,
)


__all__ = [
    "DEFAULT_DELAY_MS",
    "Frame",
    "EncodingError",
    "GifDecodeError",
    "decode_gif",
    "encode_gif",
    "ImageDecodeError",
    "decode_image",
    "encode_png",
    "MAX_FRAMES",
    "MAX_WIDTH",
    "downsample_frames",
    "fit_to_size",
    "resize_frame",
]
