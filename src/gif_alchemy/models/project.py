"""
Project State Models
====================

Per-sequence editing state owned by the schedulers.

Core Concepts:
    - ProcessingMode: Edit operations that can be combined on a project
    - EditConfig: Mode set + recolor rules + background settings
    - ProcessingStatus: Lifecycle states of a project
    - ProjectState: Frames, configuration, status, progress and result

Lifecycle:
    PARSING -> IDLE | ERROR
    IDLE -> PROCESSING | ERROR
    PROCESSING -> ENCODING | IDLE (cancelled) | ERROR
    ENCODING -> COMPLETED | ERROR
    COMPLETED / ERROR -> IDLE only through reset()
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field, field_validator

from gif_alchemy.frames.frame import Frame
from gif_alchemy.models.color import CHROMA_KEY, Color, RecolorRule, RemovalSpec


class ProcessingMode(str, Enum):
    """Edit operations available to a project."""

    RECOLOR = "recolor"
    REMOVE_BG = "remove-bg"


class ProcessingStatus(str, Enum):
    """
    Lifecycle states for a project.

    Exactly one project may be PROCESSING or ENCODING at a time
    when running under the batch scheduler.
    """

    PARSING = "PARSING"
    IDLE = "IDLE"
    PROCESSING = "PROCESSING"
    ENCODING = "ENCODING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


_ALLOWED_TRANSITIONS: Dict[ProcessingStatus, FrozenSet[ProcessingStatus]] = {
    ProcessingStatus.PARSING: frozenset({ProcessingStatus.IDLE, ProcessingStatus.ERROR}),
    ProcessingStatus.IDLE: frozenset({ProcessingStatus.PROCESSING, ProcessingStatus.ERROR}),
    ProcessingStatus.PROCESSING: frozenset({
        ProcessingStatus.ENCODING,
        ProcessingStatus.IDLE,
        ProcessingStatus.ERROR,
    }),
    ProcessingStatus.ENCODING: frozenset({ProcessingStatus.COMPLETED, ProcessingStatus.ERROR}),
    ProcessingStatus.COMPLETED: frozenset(),
    ProcessingStatus.ERROR: frozenset(),
}


class InvalidTransitionError(Exception):
    """Raised when a project is moved to a status it cannot reach."""
    pass


class EditConfig(BaseModel):
    """
    Editing configuration for one project.

    Attributes:
        modes: Active edit modes (applied recolor first, then remove-bg)
        recolor_rules: Ordered recolor rules
        remove_color: Hex color treated as background by the local path
        replacement_color: Hex fill color, or None for a transparent background
    """

    modes: List[ProcessingMode] = Field(
        default_factory=lambda: [ProcessingMode.REMOVE_BG],
        description="Active edit modes",
    )

    recolor_rules: List[RecolorRule] = Field(
        default_factory=lambda: [RecolorRule(source="#FF0000", target="#00FF00")],
        description="Recolor rules, evaluated as best match",
    )

    remove_color: str = Field(
        default=CHROMA_KEY.to_hex(),
        description="Background key color for local removal",
    )

    replacement_color: Optional[str] = Field(
        default=None,
        description="Solid background color (None or 'transparent' = transparent)",
    )

    @field_validator("remove_color")
    @classmethod
    def _validate_remove_color(cls, value: str) -> str:
        return Color.from_hex(value).to_hex()

    @field_validator("replacement_color", mode="before")
    @classmethod
    def _validate_replacement(cls, value: Optional[str]) -> Optional[str]:
        if value is None or str(value).strip().lower() in ("", "transparent"):
            return None
        return Color.from_hex(value).to_hex()

    def has_mode(self, mode: ProcessingMode) -> bool:
        return mode in self.modes

    @property
    def is_transparent(self) -> bool:
        return self.replacement_color is None

    def removal_spec(
        self,
        key_color: Optional[Color] = None,
        tolerance: float = 60.0,
        feather_band: float = 20.0,
    ) -> RemovalSpec:
        """Build the RemovalSpec for this configuration."""
        return RemovalSpec(
            key_color=key_color or Color.from_hex(self.remove_color),
            tolerance=tolerance,
            replacement=(
                Color.from_hex(self.replacement_color)
                if self.replacement_color
                else None
            ),
            feather_band=feather_band,
        )


@dataclass
class ProjectState:
    """
    Mutable state of one frame sequence.

    Mutated only by the scheduler that owns the current run.

    Attributes:
        name: Display name (original file name without extension)
        frames: Decoded, downsampled and resized frames
        config: Editing configuration
        status: Current lifecycle status
        progress: Completion percentage of the current run (0-100)
        error: Human-readable error message, if status is ERROR
        result_blob: Encoded GIF bytes, if status is COMPLETED
        id: Unique project identifier
    """

    name: str
    frames: List[Frame] = field(default_factory=list)
    config: EditConfig = field(default_factory=EditConfig)
    status: ProcessingStatus = ProcessingStatus.PARSING
    progress: int = 0
    error: Optional[str] = None
    result_blob: Optional[bytes] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:9])

    def transition(self, new_status: ProcessingStatus) -> None:
        """
        Move to a new status.

        Raises:
            InvalidTransitionError: If the move is not allowed
        """
        if new_status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Project {self.id}: cannot move from "
                f"{self.status.value} to {new_status.value}"
            )
        self.status = new_status

    def fail(self, message: str) -> None:
        """Move to ERROR with a message and drop any result."""
        self.transition(ProcessingStatus.ERROR)
        self.error = message
        self.result_blob = None

    def reset(self) -> None:
        """
        Return a finished project to IDLE for a fresh run.

        Projects without frames cannot be processed and stay in ERROR.
        """
        if self.status in (ProcessingStatus.PROCESSING, ProcessingStatus.ENCODING):
            raise InvalidTransitionError(
                f"Project {self.id}: cannot reset while {self.status.value}"
            )
        self.progress = 0
        self.result_blob = None
        if self.frames:
            self.status = ProcessingStatus.IDLE
            self.error = None
        else:
            self.status = ProcessingStatus.ERROR

    @property
    def is_busy(self) -> bool:
        return self.status in (ProcessingStatus.PROCESSING, ProcessingStatus.ENCODING)

    @property
    def output_filename(self) -> str:
        return f"{self.name}.gif"

    def to_dict(self) -> dict:
        """Export as dictionary for the API (frames summarized)."""
        first = self.frames[0] if self.frames else None
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "progress": self.progress,
            "error": self.error,
            "frame_count": len(self.frames),
            "width": first.width if first else None,
            "height": first.height if first else None,
            "has_result": self.result_blob is not None,
            "config": self.config.model_dump(mode="json"),
        }
