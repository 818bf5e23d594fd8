"""
Color Models
============

Color primitives and edit-rule models shared by the local engines and the
remote instruction builder.

Models:
    - Color: Immutable (r, g, b) triple with hex parsing and RGB distance
    - RecolorRule: Source -> target color mapping (+ optional description)
    - RemovalSpec: Chroma key, tolerance and optional solid replacement
"""

import math
import re
from dataclasses import dataclass
from typing import Optional, Tuple

from pydantic import BaseModel, Field, field_validator


_HEX_PATTERN = re.compile(r"^#?([a-f\d]{2})([a-f\d]{2})([a-f\d]{2})$", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class Color:
    """
    RGB color with channels in [0, 255].

    Attributes:
        r: Red channel
        g: Green channel
        b: Blue channel
    """

    r: int
    g: int
    b: int

    def __post_init__(self) -> None:
        """Validate channel range."""
        for channel in (self.r, self.g, self.b):
            if not 0 <= channel <= 255:
                raise ValueError(f"Color channel out of range: {channel}")

    @classmethod
    def from_hex(cls, value: str) -> "Color":
        """
        Parse a 6-hex-digit color string such as '#FF0000' or '00ff00'.

        Raises:
            ValueError: If the string is not a 6-digit hex color
        """
        match = _HEX_PATTERN.match(value.strip())
        if match is None:
            raise ValueError(f"Invalid hex color: {value!r}")
        return cls(*(int(part, 16) for part in match.groups()))

    def to_hex(self) -> str:
        return f"#{self.r:02X}{self.g:02X}{self.b:02X}"

    def as_tuple(self) -> Tuple[int, int, int]:
        return (self.r, self.g, self.b)

    def distance(self, other: "Color") -> float:
        """Euclidean distance in RGB space."""
        return math.sqrt(
            (self.r - other.r) ** 2
            + (self.g - other.g) ** 2
            + (self.b - other.b) ** 2
        )

    def __str__(self) -> str:
        return self.to_hex()


CHROMA_KEY = Color(0, 255, 0)


class RecolorRule(BaseModel):
    """
    A single recolor mapping.

    The description is only used to build the remote edit instruction;
    the local engine matches on the source color alone.
    """

    source: str = Field(..., description="Hex color to match")
    target: str = Field(..., description="Hex color to apply")
    description: Optional[str] = Field(
        default=None,
        description="Free-text object description for the remote instruction",
    )

    @field_validator("source", "target")
    @classmethod
    def _validate_hex(cls, value: str) -> str:
        return Color.from_hex(value).to_hex()

    class Config:
        """Pydantic model configuration."""

        frozen = True

    @property
    def source_color(self) -> Color:
        return Color.from_hex(self.source)

    @property
    def target_color(self) -> Color:
        return Color.from_hex(self.target)


@dataclass(frozen=True, slots=True)
class RemovalSpec:
    """
    Background removal parameters.

    Attributes:
        key_color: Color treated as background
        tolerance: RGB distance under which a pixel is background
        replacement: Solid fill color, or None for transparency
        feather_band: Width of the partial-alpha band past the tolerance
    """

    key_color: Color = CHROMA_KEY
    tolerance: float = 60.0
    replacement: Optional[Color] = None
    feather_band: float = 20.0

    @property
    def is_transparent(self) -> bool:
        return self.replacement is None
