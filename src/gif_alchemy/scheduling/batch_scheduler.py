"""
Project Batch Scheduler
=======================

Serialized processing across many projects.

This scheduler:
    - Runs at most one project's FrameJobScheduler at a time, process-wide
    - Walks the project list in order, starting the next IDLE project
      whenever nothing is running, until no IDLE project remains
    - Owns every project status change made during a run

Admission Control:
    A single asyncio.Lock guards every run, batch or single-project, so the
    total number of concurrent remote calls is bounded by one project's
    worker pool.

Stopping:
    stop() clears the batch flag and sets the current run's cancellation
    event. The running project returns to IDLE with progress 0; finished
    projects keep their results.
"""

import asyncio
import logging
from typing import Optional, Sequence

from gif_alchemy.frames.gif_codec import EncodingError
from gif_alchemy.models.project import ProcessingStatus, ProjectState
from gif_alchemy.scheduling.frame_scheduler import (
    ConfigurationError,
    FrameJobScheduler,
    RunResult,
    validate_run,
)


logger = logging.getLogger(__name__)


class ProjectBatchScheduler:
    """
    One-at-a-time project runner with batch mode.

    Attributes:
        frame_scheduler: Scheduler used for each project run
        use_remote: Whether runs try the remote editor first

    Example:
        batch = ProjectBatchScheduler(FrameJobScheduler())
        task = asyncio.create_task(batch.run_all(projects))
        ...
        batch.stop()
        await task
    """

    def __init__(
        self,
        frame_scheduler: FrameJobScheduler,
        use_remote: bool = False,
    ) -> None:
        self.frame_scheduler = frame_scheduler
        self.use_remote = use_remote

        self._lock = asyncio.Lock()
        self._batch_active: bool = False
        self._cancel_event: Optional[asyncio.Event] = None
        self._current: Optional[ProjectState] = None
        self._task: Optional[asyncio.Task] = None

        self._runs_completed: int = 0
        self._runs_cancelled: int = 0
        self._runs_failed: int = 0

    @property
    def batch_active(self) -> bool:
        """Whether a batch is currently advancing through projects."""
        return self._batch_active

    @property
    def current_project(self) -> Optional[ProjectState]:
        """Project currently being processed, if any."""
        return self._current

    @property
    def is_running(self) -> bool:
        return self._current is not None

    async def run_all(self, projects: Sequence[ProjectState]) -> None:
        """
        Process every IDLE project in list order, one at a time.

        The list is re-scanned after each run, so projects appended while
        the batch is active are picked up.
        """
        if self._batch_active:
            logger.warning("Batch already active, ignoring start request")
            return

        self._batch_active = True
        logger.info("Batch started")

        try:
            while self._batch_active:
                next_project = next(
                    (p for p in projects if p.status == ProcessingStatus.IDLE),
                    None,
                )
                if next_project is None:
                    break
                await self.process_project(next_project)
        finally:
            self._batch_active = False
            logger.info("Batch finished")

    def start(self, projects: Sequence[ProjectState]) -> asyncio.Task:
        """Start run_all as a background task (must be called in a loop)."""
        if self._task is not None and not self._task.done():
            return self._task
        self._task = asyncio.create_task(self.run_all(projects), name="project_batch")
        return self._task

    def stop(self) -> None:
        """Stop the batch and cancel the in-flight project run."""
        if self._batch_active or self._cancel_event is not None:
            logger.info("Stopping batch")
        self._batch_active = False
        if self._cancel_event is not None:
            self._cancel_event.set()

    async def wait(self) -> None:
        """Wait for a batch started with start() to finish."""
        if self._task is not None:
            await self._task

    async def process_project(self, project: ProjectState) -> Optional[RunResult]:
        """
        Run a single project under the global admission lock.

        The status is checked again once the lock is held: a request queued
        behind another run for the same project finds it no longer IDLE and
        is skipped.

        Returns:
            RunResult, or None if the project ended in ERROR or was skipped
        """
        async with self._lock:
            if project.status != ProcessingStatus.IDLE:
                logger.info(
                    f"Project {project.id} is {project.status.value}, skipping run"
                )
                return None
            return await self._run(project)

    async def _run(self, project: ProjectState) -> Optional[RunResult]:
        """Drive one project through PROCESSING -> ENCODING -> COMPLETED."""
        try:
            validate_run(project.frames, project.config)
        except ConfigurationError as e:
            logger.warning(f"Project {project.id} not started: {e}")
            project.fail(str(e))
            self._runs_failed += 1
            return None

        cancel_event = asyncio.Event()

        def on_progress(percent: int) -> None:
            project.progress = percent

        def on_encoding() -> None:
            project.transition(ProcessingStatus.ENCODING)

        try:
            self._cancel_event = cancel_event
            self._current = project

            project.transition(ProcessingStatus.PROCESSING)
            project.progress = 0
            project.error = None
            project.result_blob = None

            logger.info(f"Processing project {project.id} ({project.name})")

            result = await self.frame_scheduler.run_project(
                project.frames,
                project.config,
                use_remote=self.use_remote,
                cancel_event=cancel_event,
                on_progress=on_progress,
                on_encoding=on_encoding,
            )
        except asyncio.CancelledError:
            if project.status == ProcessingStatus.PROCESSING:
                project.transition(ProcessingStatus.IDLE)
                project.progress = 0
            else:
                project.fail("Processing interrupted.")
            self._runs_cancelled += 1
            raise
        except ConfigurationError as e:
            project.fail(str(e))
            self._runs_failed += 1
            return None
        except EncodingError as e:
            logger.error(f"Project {project.id} encoding failed: {e}")
            project.fail(f"Encoding failed: {e}")
            self._runs_failed += 1
            return None
        except Exception as e:
            logger.error(f"Project {project.id} processing failed: {e}")
            project.fail(f"Processing failed: {e}")
            self._runs_failed += 1
            return None
        finally:
            self._current = None
            self._cancel_event = None

        if result.cancelled:
            project.transition(ProcessingStatus.IDLE)
            project.progress = 0
            self._runs_cancelled += 1
            logger.info(f"Project {project.id} cancelled")
            return result

        project.result_blob = result.blob
        project.progress = 100
        project.transition(ProcessingStatus.COMPLETED)
        self._runs_completed += 1
        logger.info(
            f"Project {project.id} completed: {result.frame_count} frames, "
            f"{len(result.blob or b'')} bytes"
        )
        return result

    def get_metrics(self) -> dict:
        """Get scheduler metrics for observability."""
        return {
            "batch_active": self._batch_active,
            "current_project": self._current.id if self._current else None,
            "runs_completed": self._runs_completed,
            "runs_cancelled": self._runs_cancelled,
            "runs_failed": self._runs_failed,
            "use_remote": self.use_remote,
        }
