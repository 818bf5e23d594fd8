"""
GIF Codec
=========

Animated GIF decoding and encoding on top of Pillow.

Decoder:
    bytes -> list of Frames, each a full-canvas RGBA snapshot. Pillow
    composites every frame onto the logical screen and applies the previous
    frame's disposal (disposal 2 clears the drawn region) before the next
    frame is captured. Missing or zero delays become 100 ms.

Encoder:
    RGBA arrays + delays (+ optional transparent key color) -> GIF bytes.
    Each frame gets its own adaptive palette of up to 255 colors; palette
    index 255 is reserved for transparency. A pixel is written transparent
    when its alpha is below 128, or when it exactly equals the key color.
"""

import io
import logging
from typing import List, Optional, Sequence

import numpy as np
from PIL import Image, ImageSequence, UnidentifiedImageError

from gif_alchemy.frames.frame import DEFAULT_DELAY_MS, Frame
from gif_alchemy.models.color import Color


logger = logging.getLogger(__name__)


TRANSPARENT_INDEX = 255
ALPHA_VISIBLE_THRESHOLD = 128


class GifDecodeError(Exception):
    """Raised when GIF data cannot be decoded into frames."""
    pass


class EncodingError(Exception):
    """Raised when frames cannot be encoded into a GIF."""
    pass


# =============================================================================
# Decoding
# =============================================================================

def decode_gif(data: bytes) -> List[Frame]:
    """
    Decode animated GIF bytes into composited RGBA frames.

    Args:
        data: GIF file contents

    Returns:
        Frames in display order, all sized to the logical screen

    Raises:
        GifDecodeError: If the data is not a readable image
    """
    try:
        image = Image.open(io.BytesIO(data))
    except (UnidentifiedImageError, OSError) as e:
        raise GifDecodeError(f"Unreadable image data: {e}")

    frames: List[Frame] = []
    try:
        for raw in ImageSequence.Iterator(image):
            delay = raw.info.get("duration") or DEFAULT_DELAY_MS
            rgba = raw.convert("RGBA")
            frames.append(
                Frame(
                    pixels=np.array(rgba, dtype=np.uint8),
                    delay_ms=int(delay),
                )
            )
    except (OSError, ValueError, EOFError) as e:
        raise GifDecodeError(f"Failed to read frame {len(frames)}: {e}")

    if not frames:
        raise GifDecodeError("Image contains no frames")

    logger.debug(
        f"Decoded {len(frames)} frames "
        f"({frames[0].width}x{frames[0].height})"
    )
    return frames


# =============================================================================
# Encoding
# =============================================================================

def _to_paletted(
    pixels: np.ndarray,
    transparent_key: Optional[Color],
    palette_colors: int,
) -> Image.Image:
    """Quantize one RGBA frame to a palette image with a transparent index."""
    rgba = np.ascontiguousarray(pixels)
    height, width = rgba.shape[:2]

    hidden = rgba[..., 3] < ALPHA_VISIBLE_THRESHOLD
    if transparent_key is not None:
        key = np.array(transparent_key.as_tuple(), dtype=np.uint8)
        hidden |= np.all(rgba[..., :3] == key, axis=-1)

    rgb = Image.fromarray(np.ascontiguousarray(rgba[..., :3]))
    quantized = rgb.quantize(
        colors=palette_colors,
        method=Image.Quantize.MEDIANCUT,
        dither=Image.Dither.NONE,
    )

    indices = np.array(quantized, dtype=np.uint8)
    indices[hidden] = TRANSPARENT_INDEX

    palette = list(quantized.getpalette() or [])
    palette = (palette + [0] * 768)[:768]

    paletted = Image.frombytes("P", (width, height), indices.tobytes())
    paletted.putpalette(palette)
    paletted.info["transparency"] = TRANSPARENT_INDEX
    return paletted


def encode_gif(
    frames: Sequence[np.ndarray],
    delays: Sequence[int],
    transparent_key: Optional[Color] = None,
    palette_colors: int = 255,
    loop: int = 0,
) -> bytes:
    """
    Encode RGBA frames into an animated GIF.

    Args:
        frames: (H, W, 4) uint8 arrays, all the same size
        delays: Per-frame delays in milliseconds (same length as frames)
        transparent_key: Color to key out as transparent, if any
        palette_colors: Colors per frame palette (max 255)
        loop: Loop count (0 = forever)

    Returns:
        GIF file bytes

    Raises:
        EncodingError: On empty input, size mismatch or encoder failure
    """
    if not frames:
        raise EncodingError("No frames to encode")
    if len(frames) != len(delays):
        raise EncodingError(
            f"Frame/delay count mismatch: {len(frames)} frames, {len(delays)} delays"
        )
    if not 2 <= palette_colors <= 255:
        raise EncodingError("palette_colors must be in [2, 255]")

    size = frames[0].shape[:2]
    for index, pixels in enumerate(frames):
        if pixels.shape[:2] != size:
            raise EncodingError(
                f"Frame {index} is {pixels.shape[1]}x{pixels.shape[0]}, "
                f"expected {size[1]}x{size[0]}"
            )

    try:
        images = [_to_paletted(pixels, transparent_key, palette_colors) for pixels in frames]
        buffer = io.BytesIO()
        images[0].save(
            buffer,
            format="GIF",
            save_all=True,
            append_images=images[1:],
            duration=[max(1, int(d)) for d in delays],
            loop=loop,
            disposal=2,
            transparency=TRANSPARENT_INDEX,
            optimize=False,
        )
    except (OSError, ValueError) as e:
        raise EncodingError(f"GIF encoder failed: {e}")

    logger.debug(f"Encoded {len(frames)} frames, {buffer.tell()} bytes")
    return buffer.getvalue()
