"""
Project Ingestion and Registry
==============================

Turns uploaded GIF files into ProjectState objects and keeps the ordered
list of projects that the batch scheduler walks.

Ingestion:
    bytes -> decode -> downsample (max frames) -> resize (max width)
    Success leaves the project IDLE; a decode failure leaves it in ERROR
    with "Failed to parse GIF.".
"""

import logging
from pathlib import Path
from typing import Iterator, List, Optional

from gif_alchemy.frames.frame import Frame
from gif_alchemy.frames.gif_codec import GifDecodeError, decode_gif
from gif_alchemy.frames.sampling import MAX_FRAMES, MAX_WIDTH, downsample_frames, resize_frame
from gif_alchemy.models.project import (
    EditConfig,
    InvalidTransitionError,
    ProcessingStatus,
    ProjectState,
)


logger = logging.getLogger(__name__)


class ProjectLimitError(Exception):
    """Raised when adding a project would exceed the registry limit."""
    pass


def load_frames(
    data: bytes,
    max_frames: int = MAX_FRAMES,
    max_width: int = MAX_WIDTH,
) -> List[Frame]:
    """
    Decode GIF bytes and apply the frame-count and width limits.

    Raises:
        GifDecodeError: If the data cannot be decoded
    """
    frames = decode_gif(data)
    frames = downsample_frames(frames, max_frames)
    return [resize_frame(frame, max_width) for frame in frames]


def ingest_gif(
    filename: str,
    data: bytes,
    config: Optional[EditConfig] = None,
    max_frames: int = MAX_FRAMES,
    max_width: int = MAX_WIDTH,
) -> ProjectState:
    """
    Create a project from an uploaded GIF.

    Args:
        filename: Original file name (extension is dropped for the name)
        data: GIF file contents
        config: Edit configuration to copy into the project
        max_frames: Frame-count limit
        max_width: Width limit

    Returns:
        ProjectState in IDLE, or in ERROR if the file could not be parsed
    """
    project = ProjectState(
        name=Path(filename).stem or "untitled",
        config=(config or EditConfig()).model_copy(deep=True),
    )

    try:
        project.frames = load_frames(data, max_frames, max_width)
    except GifDecodeError as e:
        logger.warning(f"Failed to parse {filename!r}: {e}")
        project.fail("Failed to parse GIF.")
        return project

    project.transition(ProcessingStatus.IDLE)
    logger.info(
        f"Ingested {filename!r} as project {project.id}: "
        f"{len(project.frames)} frames, "
        f"{project.frames[0].width}x{project.frames[0].height}"
    )
    return project


class ProjectRegistry:
    """
    Ordered, size-limited collection of projects.

    The underlying list is shared with the batch scheduler, which relies
    on list order for selecting the next IDLE project.

    Attributes:
        max_projects: Maximum number of projects held at once
        defaults: Edit configuration copied into newly uploaded projects
    """

    def __init__(
        self,
        max_projects: int = 10,
        defaults: Optional[EditConfig] = None,
    ) -> None:
        if max_projects < 1:
            raise ValueError("max_projects must be >= 1")

        self.max_projects = max_projects
        self.defaults = (defaults or EditConfig()).model_copy(deep=True)
        self._projects: List[ProjectState] = []

    @property
    def projects(self) -> List[ProjectState]:
        """The live, ordered project list."""
        return self._projects

    @property
    def remaining_capacity(self) -> int:
        return self.max_projects - len(self._projects)

    def add(self, project: ProjectState) -> ProjectState:
        """
        Append a project.

        Raises:
            ProjectLimitError: If the registry is full
        """
        if self.remaining_capacity <= 0:
            raise ProjectLimitError(
                f"Limit reached: at most {self.max_projects} projects"
            )
        self._projects.append(project)
        return project

    def get(self, project_id: str) -> Optional[ProjectState]:
        return next((p for p in self._projects if p.id == project_id), None)

    def remove(self, project_id: str) -> bool:
        """
        Discard a project.

        Returns:
            True if a project was removed

        Raises:
            InvalidTransitionError: If the project is being processed
        """
        project = self.get(project_id)
        if project is None:
            return False
        if project.is_busy:
            raise InvalidTransitionError(
                f"Project {project_id} is {project.status.value} and cannot be removed"
            )
        self._projects.remove(project)
        return True

    def apply_config(self, config: EditConfig) -> None:
        """
        Make `config` the default and copy it into every project.

        Each project is reset: IDLE again with progress, error and result
        cleared, or left in ERROR with its message if it has no frames.

        Raises:
            InvalidTransitionError: If any project is being processed
        """
        busy = [p.id for p in self._projects if p.is_busy]
        if busy:
            raise InvalidTransitionError(
                f"Cannot apply settings while processing: {', '.join(busy)}"
            )

        self.defaults = config.model_copy(deep=True)
        for project in self._projects:
            project.config = config.model_copy(deep=True)
            project.reset()

        logger.info(f"Applied settings to {len(self._projects)} projects")

    def __len__(self) -> int:
        return len(self._projects)

    def __iter__(self) -> Iterator[ProjectState]:
        return iter(self._projects)
