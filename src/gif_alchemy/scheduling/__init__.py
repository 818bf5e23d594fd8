"""
Scheduling Module
=================

Frame-level and project-level schedulers.
"""

from gif_alchemy.scheduling.batch_scheduler import ProjectBatchScheduler
from gif_alchemy.scheduling.frame_scheduler import (
    ConfigurationError,
    FrameJob,
    FrameJobScheduler,
    RunContext,
    RunOutcome,
    RunResult,
    validate_run,
)


__all__ = [
    "ProjectBatchScheduler",
    "ConfigurationError",
    "FrameJob",
    "FrameJobScheduler",
    "RunContext",
    "RunOutcome",
    "RunResult",
    "validate_run",
]
