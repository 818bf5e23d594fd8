"""
GifAlchemy
==========

Frame pipeline for recoloring animated GIFs and removing their backgrounds.

Each uploaded GIF becomes a project: its frames are decoded, downsampled and
resized, then edited frame by frame (by a remote image-edit model when one is
configured, or by the local pixel engines) and re-encoded as an animated GIF.

Components:
    - frames: Frame model, GIF/PNG codecs, frame sampling
    - models: Colors, edit rules, project lifecycle
    - processing: Local recolor and background-removal engines
    - remote: Image-edit client with quota-aware retry
    - scheduling: Per-project worker pool and batch scheduler

Example:
    from gif_alchemy.projects import ingest_gif
    from gif_alchemy.scheduling import FrameJobScheduler, ProjectBatchScheduler

    project = ingest_gif("cat.gif", data)
    batch = ProjectBatchScheduler(FrameJobScheduler())
    await batch.process_project(project)
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
