"""
GifAlchemy Main Application
===========================

FastAPI entry point for the GIF editing service.

Uploaded GIFs become projects. Projects are processed one at a time, either
individually or as a batch walking every IDLE project in upload order.

Endpoints:
    GET    /                        - Service information
    GET    /health                  - Liveness probe
    GET    /metrics                 - Scheduler and remote client metrics
    GET    /defaults                - Edit configuration for new uploads
    PUT    /defaults                - Apply a configuration to all projects
    POST   /projects?name=x.gif     - Upload a GIF (raw request body)
    GET    /projects                - List projects
    GET    /projects/{id}           - Project status
    PUT    /projects/{id}/config    - Replace the edit configuration
    POST   /projects/{id}/reset     - Return a finished project to IDLE
    DELETE /projects/{id}           - Discard a project
    POST   /projects/{id}/process   - Process a single project
    GET    /projects/{id}/result    - Download the encoded GIF
    POST   /batch/start             - Process every IDLE project in order
    POST   /batch/stop              - Stop the batch and cancel the current run
    GET    /batch                   - Batch status
"""

import asyncio
import functools
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Set

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response

from gif_alchemy.config import settings
from gif_alchemy.frames.gif_codec import encode_gif
from gif_alchemy.models.color import Color
from gif_alchemy.models.project import (
    EditConfig,
    InvalidTransitionError,
    ProcessingStatus,
    ProjectState,
)
from gif_alchemy.processing.local import LocalFrameProcessor
from gif_alchemy.projects import ProjectLimitError, ProjectRegistry, ingest_gif
from gif_alchemy.remote.client import RemoteConfigurationError, RemoteEditClient
from gif_alchemy.remote.gemini import GeminiTransport
from gif_alchemy.scheduling.batch_scheduler import ProjectBatchScheduler
from gif_alchemy.scheduling.frame_scheduler import FrameJobScheduler


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_registry: Optional[ProjectRegistry] = None
_remote_client: Optional[RemoteEditClient] = None
_frame_scheduler: Optional[FrameJobScheduler] = None
_batch: Optional[ProjectBatchScheduler] = None
_tasks: Set[asyncio.Task] = set()
_startup_time: float = 0.0


# =============================================================================
# Getters
# =============================================================================

def get_registry() -> ProjectRegistry:
    if _registry is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return _registry


def get_batch() -> ProjectBatchScheduler:
    if _batch is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return _batch


def get_project(project_id: str) -> ProjectState:
    project = get_registry().get(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail=f"Project {project_id} not found")
    return project


# =============================================================================
# Component Factories
# =============================================================================

def create_remote_client() -> Optional[RemoteEditClient]:
    """
    Create the remote edit client from config.

    Returns None ("offline mode") when remote editing is disabled or no API
    key is configured. Fails fast if a key is set but the SDK is unusable.
    """
    if not settings.remote.is_available:
        logger.info("Remote editing unavailable, using local processing only")
        return None

    transport = GeminiTransport(
        api_key=settings.remote.api_key,
        model=settings.remote.model,
    )
    return RemoteEditClient(
        transport,
        max_retries=settings.remote.max_retries,
        base_delay_ms=settings.remote.base_delay_ms,
        max_jitter_ms=settings.remote.max_jitter_ms,
        chroma_key=Color.from_hex(settings.processing.chroma_key),
    )


def create_frame_scheduler(editor: Optional[RemoteEditClient]) -> FrameJobScheduler:
    """Create the per-project worker pool from config."""
    processing = settings.processing
    return FrameJobScheduler(
        editor=editor,
        local_processor=LocalFrameProcessor(
            recolor_threshold=processing.recolor_threshold,
            alpha_cutoff=processing.alpha_cutoff,
            tolerance=processing.removal_tolerance,
            feather_band=processing.feather_band,
        ),
        encoder=functools.partial(
            encode_gif,
            palette_colors=settings.encoder.palette_colors,
            loop=settings.encoder.loop,
        ),
        concurrency=processing.concurrency,
        stagger_ms=processing.stagger_ms,
        chroma_key=Color.from_hex(processing.chroma_key),
        removal_tolerance=processing.removal_tolerance,
        feather_band=processing.feather_band,
    )


def _spawn(coro) -> asyncio.Task:
    """Run a coroutine in the background, keeping a reference until it ends."""
    task = asyncio.create_task(coro)
    _tasks.add(task)
    task.add_done_callback(_tasks.discard)
    return task


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _registry, _remote_client, _frame_scheduler, _batch, _startup_time

    _startup_time = time.time()
    logger.info(f"Starting {settings.app.name} {settings.app.version}")

    try:
        _remote_client = create_remote_client()
    except RemoteConfigurationError as e:
        logger.error(f"Remote editor disabled: {e}")
        _remote_client = None

    _registry = ProjectRegistry(
        max_projects=settings.projects.max_projects,
        defaults=settings.defaults,
    )
    _frame_scheduler = create_frame_scheduler(_remote_client)
    _batch = ProjectBatchScheduler(
        _frame_scheduler,
        use_remote=_remote_client is not None,
    )

    logger.info(
        f"Service ready: mode={'remote' if _remote_client else 'offline'}, "
        f"max_projects={settings.projects.max_projects}"
    )

    yield

    # Shutdown
    logger.info("Shutting down gracefully...")
    _batch.stop()
    for task in list(_tasks):
        task.cancel()
    if _tasks:
        await asyncio.gather(*_tasks, return_exceptions=True)
    await _batch.wait()
    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="GifAlchemy",
    description="Recolor animated GIFs and remove their backgrounds",
    version=settings.app.version,
    lifespan=lifespan,
)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": "GifAlchemy",
        "version": settings.app.version,
        "name": settings.app.name,
        "status": "running",
        "mode": "remote" if _remote_client else "offline",
    })


@app.get("/health")
async def health() -> JSONResponse:
    """
    Liveness probe - is the process alive?

    Always returns 200 if the service is running.
    """
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Detailed metrics for observability."""
    registry = get_registry()
    counts = {status.value: 0 for status in ProcessingStatus}
    for project in registry:
        counts[project.status.value] += 1

    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "projects": len(registry),
        "projects_by_status": counts,
        "batch": get_batch().get_metrics(),
        "remote": _remote_client.get_metrics() if _remote_client else None,
    })


# -----------------------------------------------------------------------------
# Defaults
# -----------------------------------------------------------------------------

@app.get("/defaults")
async def get_defaults() -> JSONResponse:
    return JSONResponse(get_registry().defaults.model_dump(mode="json"))


@app.put("/defaults")
async def apply_defaults(config: EditConfig) -> JSONResponse:
    """
    Apply a configuration to every project and to future uploads.

    Every project is reset, so finished results are discarded. Refused
    while any project is processing.
    """
    registry = get_registry()
    if get_batch().is_running:
        raise HTTPException(status_code=409, detail="Wait for current processing to finish")
    try:
        registry.apply_config(config)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return JSONResponse({
        "defaults": registry.defaults.model_dump(mode="json"),
        "projects": [project.to_dict() for project in registry],
    })


# -----------------------------------------------------------------------------
# Projects
# -----------------------------------------------------------------------------

@app.post("/projects", status_code=201)
async def upload_project(
    request: Request,
    name: str = Query(default="untitled.gif", description="Original file name"),
) -> JSONResponse:
    """
    Upload a GIF as a new project.

    The body is the raw GIF file. A file that cannot be parsed is still
    added, in ERROR with "Failed to parse GIF.".
    """
    registry = get_registry()
    if registry.remaining_capacity <= 0:
        raise HTTPException(
            status_code=409,
            detail=f"Limit reached: at most {registry.max_projects} projects",
        )

    data = await request.body()
    project = await asyncio.to_thread(
        ingest_gif,
        name,
        data,
        registry.defaults,
        settings.processing.max_frames,
        settings.processing.max_width,
    )

    try:
        registry.add(project)
    except ProjectLimitError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return JSONResponse(project.to_dict(), status_code=201)


@app.get("/projects")
async def list_projects() -> JSONResponse:
    return JSONResponse([project.to_dict() for project in get_registry()])


@app.get("/projects/{project_id}")
async def project_status(project_id: str) -> JSONResponse:
    return JSONResponse(get_project(project_id).to_dict())


@app.put("/projects/{project_id}/config")
async def update_config(project_id: str, config: EditConfig) -> JSONResponse:
    """Replace a project's edit configuration (not while it is processing)."""
    project = get_project(project_id)
    if project.is_busy:
        raise HTTPException(
            status_code=409,
            detail=f"Project {project_id} is {project.status.value}",
        )
    project.config = config
    return JSONResponse(project.to_dict())


@app.post("/projects/{project_id}/reset")
async def reset_project(project_id: str) -> JSONResponse:
    project = get_project(project_id)
    try:
        project.reset()
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return JSONResponse(project.to_dict())


@app.delete("/projects/{project_id}")
async def delete_project(project_id: str) -> JSONResponse:
    try:
        removed = get_registry().remove(project_id)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if not removed:
        raise HTTPException(status_code=404, detail=f"Project {project_id} not found")
    return JSONResponse({"deleted": project_id})


@app.post("/projects/{project_id}/process", status_code=202)
async def process_project(project_id: str) -> JSONResponse:
    """Start processing one IDLE project in the background."""
    project = get_project(project_id)
    batch = get_batch()

    if batch.is_running or batch.batch_active:
        raise HTTPException(status_code=409, detail="Another project is being processed")
    if project.status != ProcessingStatus.IDLE:
        raise HTTPException(
            status_code=409,
            detail=f"Project {project_id} is {project.status.value}, reset it first",
        )

    _spawn(batch.process_project(project))
    return JSONResponse(project.to_dict(), status_code=202)


@app.get("/projects/{project_id}/result")
async def download_result(project_id: str) -> Response:
    """Download the encoded GIF of a COMPLETED project."""
    project = get_project(project_id)
    if project.status != ProcessingStatus.COMPLETED or project.result_blob is None:
        raise HTTPException(status_code=404, detail="No result available")

    return Response(
        content=project.result_blob,
        media_type="image/gif",
        headers={
            "Content-Disposition": f'attachment; filename="{project.output_filename}"',
        },
    )


# -----------------------------------------------------------------------------
# Batch
# -----------------------------------------------------------------------------

def _batch_status() -> dict:
    batch = get_batch()
    current = batch.current_project
    return {
        "active": batch.batch_active,
        "current_project": current.to_dict() if current else None,
        "idle_projects": sum(
            1 for p in get_registry() if p.status == ProcessingStatus.IDLE
        ),
    }


@app.post("/batch/start", status_code=202)
async def start_batch() -> JSONResponse:
    batch = get_batch()
    if batch.batch_active or batch.is_running:
        raise HTTPException(status_code=409, detail="Processing already running")
    batch.start(get_registry().projects)
    return JSONResponse(_batch_status(), status_code=202)


@app.post("/batch/stop")
async def stop_batch() -> JSONResponse:
    get_batch().stop()
    return JSONResponse(_batch_status())


@app.get("/batch")
async def batch_status() -> JSONResponse:
    return JSONResponse(_batch_status())


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "gif_alchemy.main:app",
        host=settings.server.host,
        port=settings.server.port,
    )
