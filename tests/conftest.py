"""
Test Configuration
==================

Pytest fixtures and test doubles for GifAlchemy.
"""

import asyncio
import io
import os
from types import SimpleNamespace
from typing import List, Optional, Sequence

import numpy as np
import pytest
from PIL import Image

# Keep the service offline regardless of the developer's environment
os.environ["GIF_ALCHEMY_USE_REMOTE"] = "0"

from gif_alchemy.frames.frame import Frame
from gif_alchemy.frames.gif_codec import encode_gif
from gif_alchemy.frames.image_codec import decode_image, encode_png
from gif_alchemy.models.color import Color


def make_frame(
    rgb=(0, 255, 0),
    size=(10, 10),
    alpha: int = 255,
    delay_ms: int = 100,
) -> Frame:
    """Solid-color frame of (width, height) = size."""
    width, height = size
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    pixels[..., :3] = rgb
    pixels[..., 3] = alpha
    return Frame(pixels=pixels, delay_ms=delay_ms)


def make_gif(colors: Sequence[tuple], size=(20, 10), delay_ms: int = 80) -> bytes:
    """Animated GIF with one solid frame per color."""
    images = [Image.new("RGB", size, color) for color in colors]
    buffer = io.BytesIO()
    images[0].save(
        buffer,
        format="GIF",
        save_all=True,
        append_images=images[1:],
        duration=delay_ms,
        loop=0,
    )
    return buffer.getvalue()


def response_with_image(data: bytes) -> SimpleNamespace:
    """Generate-content shaped response carrying one inline image."""
    part = SimpleNamespace(inline_data=SimpleNamespace(data=data, mime_type="image/png"))
    candidate = SimpleNamespace(content=SimpleNamespace(parts=[part]), finish_reason=None)
    return SimpleNamespace(candidates=[candidate])


class QuotaError(Exception):
    """Error shaped like an HTTP 429 from the remote service."""

    def __init__(self, message: str = "429 RESOURCE_EXHAUSTED") -> None:
        super().__init__(message)
        self.code = 429


class FakeTransport:
    """ContentTransport returning scripted responses or raising scripted errors."""

    def __init__(self, outcomes: List[object]) -> None:
        self.outcomes = list(outcomes)
        self.prompts: List[str] = []

    async def generate_content(self, image_png: bytes, prompt: str):
        self.prompts.append(prompt)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeEditor:
    """
    ImageEditor double.

    By default it echoes the input image with every pixel painted `paint`.
    `delays` maps frame call order to a sleep in seconds; `fail_with`
    raises on every call.
    """

    def __init__(
        self,
        paint: Optional[tuple] = None,
        fail_with: Optional[BaseException] = None,
        delays: Optional[dict] = None,
        size: Optional[tuple] = None,
    ) -> None:
        self.paint = paint
        self.fail_with = fail_with
        self.delays = delays or {}
        self.size = size
        self.calls = 0

    async def edit(self, image_png, instruction, modes, cancel_event=None) -> bytes:
        call = self.calls
        self.calls += 1
        await asyncio.sleep(self.delays.get(call, 0))
        if self.fail_with is not None:
            raise self.fail_with
        pixels = decode_image(image_png)
        if self.size is not None:
            width, height = self.size
            pixels = np.zeros((height, width, 4), dtype=np.uint8)
            pixels[..., 3] = 255
        if self.paint is not None:
            pixels[..., :3] = self.paint
        return encode_png(pixels)


class RecordingEncoder:
    """Encoder double that records its inputs."""

    def __init__(self) -> None:
        self.frames: List[np.ndarray] = []
        self.delays: List[int] = []
        self.transparent_key: Optional[Color] = None
        self.calls = 0

    def __call__(self, frames, delays, transparent_key=None) -> bytes:
        self.calls += 1
        self.frames = [np.array(f) for f in frames]
        self.delays = list(delays)
        self.transparent_key = transparent_key
        return encode_gif(frames, delays, transparent_key)


@pytest.fixture
def green_frame() -> Frame:
    """10x10 opaque chroma-green frame."""
    return make_frame((0, 255, 0))


@pytest.fixture
def red_frame() -> Frame:
    """10x10 opaque pure-red frame."""
    return make_frame((255, 0, 0))


@pytest.fixture
def recording_encoder() -> RecordingEncoder:
    return RecordingEncoder()


@pytest.fixture
def sample_gif() -> bytes:
    """Three-frame 20x10 GIF (red, green, blue)."""
    return make_gif([(255, 0, 0), (0, 255, 0), (0, 0, 255)])
