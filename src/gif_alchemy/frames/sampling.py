"""
Frame Sampling
==============

Frame-count and frame-size limits applied after decoding.

Long sequences are strided down to a maximum frame count with delays
stretched by the stride so total playback time is preserved. Wide frames
are downscaled proportionally with a single area-averaging resample.
"""

import logging
import math
from typing import List, Sequence

import cv2
import numpy as np

from gif_alchemy.frames.frame import Frame


logger = logging.getLogger(__name__)


MAX_FRAMES = 50
MAX_WIDTH = 300


def downsample_frames(frames: Sequence[Frame], max_frames: int = MAX_FRAMES) -> List[Frame]:
    """
    Keep every Nth frame when a sequence exceeds max_frames.

    Args:
        frames: Decoded frames in display order
        max_frames: Maximum number of frames to keep

    Returns:
        Frames to process; delays of kept frames are multiplied by the stride
    """
    if max_frames < 1:
        raise ValueError("max_frames must be >= 1")

    if len(frames) <= max_frames:
        return list(frames)

    stride = math.ceil(len(frames) / max_frames)
    kept = [
        Frame(pixels=frame.pixels, delay_ms=frame.delay_ms * stride)
        for index, frame in enumerate(frames)
        if index % stride == 0
    ]

    logger.info(
        f"Downsampled {len(frames)} frames to {len(kept)} (stride={stride})"
    )
    return kept


def resize_frame(frame: Frame, max_width: int = MAX_WIDTH) -> Frame:
    """
    Downscale a frame wider than max_width, preserving aspect ratio.

    Frames at or under the limit are returned unchanged.
    """
    if frame.width <= max_width:
        return frame

    scale = max_width / frame.width
    target_height = max(1, int(math.floor(frame.height * scale + 0.5)))

    resized = cv2.resize(
        np.ascontiguousarray(frame.pixels),
        (max_width, target_height),
        interpolation=cv2.INTER_AREA,
    )
    return frame.with_pixels(resized)


def fit_to_size(pixels: np.ndarray, width: int, height: int) -> np.ndarray:
    """Resize an RGBA array to exactly (width, height) if it differs."""
    if pixels.shape[1] == width and pixels.shape[0] == height:
        return pixels
    interpolation = (
        cv2.INTER_AREA if pixels.shape[1] > width else cv2.INTER_LINEAR
    )
    return cv2.resize(
        np.ascontiguousarray(pixels),
        (width, height),
        interpolation=interpolation,
    )
