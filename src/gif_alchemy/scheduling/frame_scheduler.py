"""
Frame Job Scheduler
===================

Bounded-concurrency processing of one frame sequence.

This scheduler:
    - Queues one job per frame (index 0..N-1)
    - Runs a fixed-size pool of asyncio workers that drain the queue
    - Tries the remote editor first (if enabled), falling back to local
    - Trips a run-scoped circuit breaker on quota exhaustion
    - Reassembles results by index and hands them to the encoder

Run State:
    All state shared between workers lives in a RunContext created for
    each run: the cancellation event, the quota-exhaustion flag and the
    completed counter. Nothing is module-global.

Cancellation:
    Cooperative. Workers check the cancel event before taking each job.
    A job that has started always finishes; stagger and backoff waits end
    early and the job completes locally.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence

import numpy as np

from gif_alchemy.frames.frame import Frame
from gif_alchemy.frames.gif_codec import EncodingError, encode_gif
from gif_alchemy.frames.image_codec import decode_image, encode_png
from gif_alchemy.frames.sampling import fit_to_size
from gif_alchemy.models.color import CHROMA_KEY, Color, RemovalSpec
from gif_alchemy.models.project import EditConfig, ProcessingMode
from gif_alchemy.processing.background import BackgroundRemovalEngine
from gif_alchemy.processing.local import LocalFrameProcessor
from gif_alchemy.remote.client import (
    ImageEditor,
    RemoteCancelledError,
    TransientRemoteError,
    build_recolor_instruction,
    is_quota_error,
    wait_or_cancel,
)


logger = logging.getLogger(__name__)


Encoder = Callable[[Sequence[np.ndarray], Sequence[int], Optional[Color]], bytes]
ProgressCallback = Callable[[int], None]


class ConfigurationError(Exception):
    """Raised before scheduling when a run cannot start."""
    pass


class RunOutcome(str, Enum):
    """How a run ended when it did not raise."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class FrameJob:
    """One unit of work: a frame and its position in the sequence."""

    index: int
    frame: Frame


@dataclass
class RunContext:
    """
    State shared by the workers of a single run.

    Attributes:
        total: Number of jobs in the run
        use_remote: Whether the remote path is enabled for this run
        cancel_event: Cooperative cancellation signal
        quota_exhausted: Circuit breaker; once set, no job calls remote
        completed: Jobs finished so far (only ever incremented)
        failure: First fatal job error, if any
    """

    total: int
    use_remote: bool
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    quota_exhausted: bool = False
    completed: int = 0
    remote_frames: int = 0
    local_frames: int = 0
    failure: Optional[BaseException] = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    @property
    def should_stop(self) -> bool:
        return self.cancelled or self.failure is not None

    @property
    def progress(self) -> int:
        """Completion percentage, rounded half-up."""
        if self.total == 0:
            return 100
        return int(math.floor(self.completed / self.total * 100 + 0.5))

    def trip_quota_breaker(self) -> None:
        if not self.quota_exhausted:
            logger.warning("Quota exceeded. Remaining frames will be processed locally.")
        self.quota_exhausted = True


@dataclass
class RunResult:
    """
    Result of a run that was not aborted by an error.

    Attributes:
        outcome: COMPLETED or CANCELLED
        blob: Encoded GIF bytes (COMPLETED only)
        frame_count: Number of frames handed to the encoder
        transparent_key: Key color passed to the encoder, if any
        quota_exhausted: Whether the circuit breaker tripped
        remote_frames: Frames whose final result came from the remote path
        local_frames: Frames whose final result came from local processing
    """

    outcome: RunOutcome
    blob: Optional[bytes] = None
    frame_count: int = 0
    transparent_key: Optional[Color] = None
    quota_exhausted: bool = False
    remote_frames: int = 0
    local_frames: int = 0

    @property
    def cancelled(self) -> bool:
        return self.outcome == RunOutcome.CANCELLED


def validate_run(frames: Sequence[Frame], config: EditConfig) -> None:
    """
    Check that a run can start.

    Raises:
        ConfigurationError: If there are no frames or no modes
    """
    if not frames:
        raise ConfigurationError("No frames to process.")
    if not config.modes:
        raise ConfigurationError("No modes selected.")


def build_instruction(config: EditConfig) -> str:
    """Combined remote instruction for the project's active modes."""
    instructions = []
    if config.has_mode(ProcessingMode.RECOLOR) and config.recolor_rules:
        instructions.append(build_recolor_instruction(config.recolor_rules))
    return ". ".join(instructions)


class FrameJobScheduler:
    """
    Worker pool for one project's frames.

    Attributes:
        editor: Remote image editor (None = local only)
        local_processor: Local fallback processor
        encoder: Callable producing the final encoded blob
        concurrency: Number of workers
        stagger_ms: Per-index delay before a remote call

    Example:
        scheduler = FrameJobScheduler(editor=client, concurrency=2)
        result = await scheduler.run_project(frames, config, use_remote=True)
        if not result.cancelled:
            save(result.blob)
    """

    def __init__(
        self,
        editor: Optional[ImageEditor] = None,
        local_processor: Optional[LocalFrameProcessor] = None,
        encoder: Encoder = encode_gif,
        concurrency: int = 2,
        stagger_ms: float = 200.0,
        chroma_key: Color = CHROMA_KEY,
        removal_tolerance: float = 60.0,
        feather_band: float = 20.0,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")

        self.editor = editor
        self.local_processor = local_processor or LocalFrameProcessor(
            tolerance=removal_tolerance,
            feather_band=feather_band,
        )
        self.encoder = encoder
        self.concurrency = concurrency
        self.stagger_ms = stagger_ms
        self.chroma_key = chroma_key
        self.removal_tolerance = removal_tolerance
        self.feather_band = feather_band
        self._removal_engine = BackgroundRemovalEngine()

        logger.info(
            f"FrameJobScheduler initialized: concurrency={concurrency}, "
            f"stagger_ms={stagger_ms}, remote={'yes' if editor else 'no'}"
        )

    async def run_project(
        self,
        frames: Sequence[Frame],
        config: EditConfig,
        use_remote: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_encoding: Optional[Callable[[], None]] = None,
    ) -> RunResult:
        """
        Process every frame and encode the result.

        Args:
            frames: Source frames in display order
            config: Project edit configuration
            use_remote: Try the remote editor before local processing
            cancel_event: Shared cancellation signal
            on_progress: Called with the percentage after every job
            on_encoding: Called once, right before encoding starts

        Returns:
            RunResult with outcome COMPLETED (blob set) or CANCELLED

        Raises:
            ConfigurationError: No frames or no modes (nothing scheduled)
            LocalProcessingError: A frame could not be processed locally
            EncodingError: The encoder failed
        """
        validate_run(frames, config)

        if use_remote and self.editor is None:
            logger.warning("Remote processing requested but no editor configured")
            use_remote = False

        ctx = RunContext(
            total=len(frames),
            use_remote=use_remote,
            cancel_event=cancel_event or asyncio.Event(),
        )
        instruction = build_instruction(config)

        queue: asyncio.Queue = asyncio.Queue()
        for index, frame in enumerate(frames):
            queue.put_nowait(FrameJob(index=index, frame=frame))

        results: List[Optional[Frame]] = [None] * len(frames)
        worker_count = min(self.concurrency, len(frames))

        logger.info(
            f"Run started: frames={len(frames)}, workers={worker_count}, "
            f"modes={[m.value for m in config.modes]}, remote={use_remote}"
        )

        await asyncio.gather(*(
            self._worker(worker_id, queue, results, ctx, config, instruction, on_progress)
            for worker_id in range(worker_count)
        ))

        if ctx.cancelled:
            logger.info(f"Run cancelled after {ctx.completed}/{ctx.total} frames")
            return RunResult(
                outcome=RunOutcome.CANCELLED,
                quota_exhausted=ctx.quota_exhausted,
                remote_frames=ctx.remote_frames,
                local_frames=ctx.local_frames,
            )

        if ctx.failure is not None:
            raise ctx.failure

        kept = [(frames[i], r) for i, r in enumerate(results) if r is not None]
        if len(kept) < len(frames):
            logger.warning(f"Dropped {len(frames) - len(kept)} frames with no result")

        transparent_key = self._transparent_key(config, ctx)

        if on_encoding is not None:
            on_encoding()

        try:
            blob = await asyncio.to_thread(
                self.encoder,
                [processed.pixels for _, processed in kept],
                [source.delay_ms for source, _ in kept],
                transparent_key,
            )
        except EncodingError:
            raise
        except Exception as e:
            raise EncodingError(f"Encoder failed: {e}") from e

        logger.info(
            f"Run completed: frames={len(kept)}, remote={ctx.remote_frames}, "
            f"local={ctx.local_frames}, quota_exhausted={ctx.quota_exhausted}"
        )

        return RunResult(
            outcome=RunOutcome.COMPLETED,
            blob=blob,
            frame_count=len(kept),
            transparent_key=transparent_key,
            quota_exhausted=ctx.quota_exhausted,
            remote_frames=ctx.remote_frames,
            local_frames=ctx.local_frames,
        )

    def _transparent_key(self, config: EditConfig, ctx: RunContext) -> Optional[Color]:
        """
        Key color for the encoder.

        Only remote results rely on it: local transparency is already
        in the pixel alpha.
        """
        if (
            config.has_mode(ProcessingMode.REMOVE_BG)
            and config.is_transparent
            and ctx.use_remote
            and not ctx.quota_exhausted
        ):
            return self.chroma_key
        return None

    async def _worker(
        self,
        worker_id: int,
        queue: asyncio.Queue,
        results: List[Optional[Frame]],
        ctx: RunContext,
        config: EditConfig,
        instruction: str,
        on_progress: Optional[ProgressCallback],
    ) -> None:
        """Pull jobs until the queue is empty or the run should stop."""
        while not ctx.should_stop:
            try:
                job = queue.get_nowait()
            except asyncio.QueueEmpty:
                break

            if ctx.should_stop:
                break

            try:
                results[job.index] = await self._process_job(job, ctx, config, instruction)
            except Exception as e:
                logger.error(f"Worker {worker_id}: frame {job.index} failed: {e}")
                if ctx.failure is None:
                    ctx.failure = e
                break

            ctx.completed += 1
            if on_progress is not None:
                on_progress(ctx.progress)

    async def _process_job(
        self,
        job: FrameJob,
        ctx: RunContext,
        config: EditConfig,
        instruction: str,
    ) -> Frame:
        """Remote first (when allowed), local otherwise."""
        processed: Optional[Frame] = None

        if ctx.use_remote and not ctx.quota_exhausted:
            processed = await self._try_remote(job, ctx, config, instruction)

        if processed is None:
            processed = await asyncio.to_thread(
                self.local_processor.process,
                job.frame,
                config.modes,
                config,
            )
            ctx.local_frames += 1

        return processed

    async def _try_remote(
        self,
        job: FrameJob,
        ctx: RunContext,
        config: EditConfig,
        instruction: str,
    ) -> Optional[Frame]:
        """
        Edit one frame remotely.

        Returns:
            Edited frame, or None when the job should fall back to local
        """
        if await wait_or_cancel(job.index * self.stagger_ms / 1000.0, ctx.cancel_event):
            return None
        if ctx.quota_exhausted:
            return None

        try:
            image_png = encode_png(job.frame.pixels)
            data = await self.editor.edit(image_png, instruction, config.modes, ctx.cancel_event)
            pixels = decode_image(data)
        except Exception as e:
            if isinstance(e, RemoteCancelledError) or ctx.cancelled:
                logger.debug(f"Remote edit for frame {job.index} ended by cancellation")
            elif isinstance(e, TransientRemoteError) or is_quota_error(e):
                ctx.trip_quota_breaker()
            else:
                logger.warning(f"Remote edit failed for frame {job.index}, using local: {e}")
            return None

        pixels = fit_to_size(pixels, job.frame.width, job.frame.height)
        edited = job.frame.with_pixels(pixels)

        if config.has_mode(ProcessingMode.REMOVE_BG) and not config.is_transparent:
            spec = RemovalSpec(
                key_color=self.chroma_key,
                tolerance=self.removal_tolerance,
                replacement=Color.from_hex(config.replacement_color),
                feather_band=self.feather_band,
            )
            edited = await asyncio.to_thread(
                self._removal_engine.remove_background, edited, spec
            )

        ctx.remote_frames += 1
        return edited
