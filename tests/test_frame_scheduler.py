"""
Frame Job Scheduler Tests
=========================

Tests for ordering, remote fallback, the quota circuit breaker,
cancellation and encoding.
"""

import asyncio
import logging

import numpy as np
import pytest

from conftest import FakeEditor, FakeTransport, QuotaError, RecordingEncoder, make_frame
from gif_alchemy.frames.frame import Frame
from gif_alchemy.frames.gif_codec import EncodingError
from gif_alchemy.models.color import CHROMA_KEY, RecolorRule
from gif_alchemy.models.project import EditConfig, ProcessingMode
from gif_alchemy.processing.raster import RenderContextUnavailable
from gif_alchemy.remote.client import (
    PermanentRemoteError,
    QuotaExhaustedError,
    RemoteEditClient,
)
from gif_alchemy.scheduling import ConfigurationError, FrameJobScheduler, RunOutcome


RECOLOR_NO_MATCH = EditConfig(
    modes=[ProcessingMode.RECOLOR],
    recolor_rules=[RecolorRule(source="#FF00FF", target="#00FFFF")],
)
TRANSPARENT_REMOVAL = EditConfig(modes=[ProcessingMode.REMOVE_BG])


def _scheduler(encoder, editor=None, concurrency=2) -> FrameJobScheduler:
    return FrameJobScheduler(
        editor=editor,
        encoder=encoder,
        concurrency=concurrency,
        stagger_ms=0,
    )


def _distinct_frames(count: int, size=(10, 10)) -> list:
    return [
        make_frame((10 * i, 50, 100), size=size, delay_ms=10 * (i + 1))
        for i in range(count)
    ]


def _subject_frame(offset: int, size: int = 200) -> Frame:
    """Green background with a red square whose position depends on offset."""
    pixels = np.zeros((size, size, 4), dtype=np.uint8)
    pixels[...] = (0, 255, 0, 255)
    pixels[50 + offset:100 + offset, 50:100] = (255, 0, 0, 255)
    return Frame(pixels=pixels, delay_ms=100)


class QuotaAfterEditor(FakeEditor):
    """Succeeds for the first `ok_calls` calls, then reports quota exhaustion."""

    def __init__(self, ok_calls: int) -> None:
        super().__init__()
        self.ok_calls = ok_calls

    async def edit(self, image_png, instruction, modes, cancel_event=None) -> bytes:
        if self.calls >= self.ok_calls:
            self.calls += 1
            raise QuotaExhaustedError("429 quota")
        return await super().edit(image_png, instruction, modes, cancel_event)


class StepEditor(FakeEditor):
    """Editor whose calls each wait for their own gate, in call order."""

    def __init__(self) -> None:
        super().__init__()
        self.started = []
        self._gates = {}

    def gate(self, call: int) -> asyncio.Event:
        return self._gates.setdefault(call, asyncio.Event())

    async def edit(self, image_png, instruction, modes, cancel_event=None) -> bytes:
        call = len(self.started)
        self.started.append(call)
        await self.gate(call).wait()
        return await super().edit(image_png, instruction, modes, cancel_event)


class CancellingTransport(FakeTransport):
    """Transport that cancels the run as it answers."""

    def __init__(self, outcomes, cancel_event: asyncio.Event) -> None:
        super().__init__(outcomes)
        self.cancel_event = cancel_event

    async def generate_content(self, image_png: bytes, prompt: str):
        self.cancel_event.set()
        return await super().generate_content(image_png, prompt)


class TestValidation:
    """Tests for run preconditions."""

    def test_no_frames(self, recording_encoder):
        with pytest.raises(ConfigurationError, match="No frames to process."):
            asyncio.run(_scheduler(recording_encoder).run_project([], EditConfig()))
        assert recording_encoder.calls == 0

    def test_no_modes(self, recording_encoder, green_frame):
        with pytest.raises(ConfigurationError, match="No modes selected."):
            asyncio.run(
                _scheduler(recording_encoder).run_project([green_frame], EditConfig(modes=[]))
            )
        assert recording_encoder.calls == 0

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError):
            FrameJobScheduler(concurrency=0)


class TestOrdering:
    """Tests for index-ordered reassembly."""

    def test_out_of_order_completion(self, recording_encoder):
        """Results reach the encoder in source order with source delays."""
        frames = _distinct_frames(4)
        editor = FakeEditor(delays={0: 0.06, 1: 0.04, 2: 0.02, 3: 0.0})
        scheduler = _scheduler(recording_encoder, editor, concurrency=4)

        result = asyncio.run(
            scheduler.run_project(frames, RECOLOR_NO_MATCH, use_remote=True)
        )

        assert result.outcome == RunOutcome.COMPLETED
        assert result.remote_frames == 4
        assert recording_encoder.delays == [10, 20, 30, 40]
        for source, encoded in zip(frames, recording_encoder.frames):
            np.testing.assert_array_equal(encoded, source.pixels)

    def test_progress_reported(self, recording_encoder):
        frames = _distinct_frames(3)
        seen = []
        encoding = []

        asyncio.run(
            _scheduler(recording_encoder).run_project(
                frames,
                RECOLOR_NO_MATCH,
                on_progress=seen.append,
                on_encoding=lambda: encoding.append(list(seen)),
            )
        )

        assert seen == [33, 67, 100]
        assert encoding == [[33, 67, 100]]


class TestRemoteFallback:
    """Tests for the remote path and its local fallback."""

    def test_remote_disabled_uses_local(self, recording_encoder, green_frame):
        editor = FakeEditor()

        result = asyncio.run(
            _scheduler(recording_encoder, editor).run_project(
                [green_frame], TRANSPARENT_REMOVAL, use_remote=False
            )
        )

        assert editor.calls == 0
        assert result.local_frames == 1
        assert recording_encoder.transparent_key is None

    def test_permanent_error_falls_back_per_frame(self, recording_encoder):
        """A non-quota failure only affects its own frame."""
        editor = FakeEditor(fail_with=PermanentRemoteError("No image data found in response."))
        frames = _distinct_frames(3)

        result = asyncio.run(
            _scheduler(recording_encoder, editor).run_project(
                frames, RECOLOR_NO_MATCH, use_remote=True
            )
        )

        assert editor.calls == 3
        assert result.local_frames == 3
        assert not result.quota_exhausted

    def test_quota_breaker_stops_remote_calls(self, recording_encoder):
        """After a quota failure no later job calls the remote editor."""
        editor = QuotaAfterEditor(ok_calls=2)
        frames = _distinct_frames(6)

        result = asyncio.run(
            _scheduler(recording_encoder, editor, concurrency=1).run_project(
                frames, TRANSPARENT_REMOVAL, use_remote=True
            )
        )

        assert editor.calls == 3
        assert result.quota_exhausted
        assert result.remote_frames == 2
        assert result.local_frames == 4
        assert result.transparent_key is None
        assert len(recording_encoder.frames) == 6

    def test_remote_transparent_passes_key(self, recording_encoder):
        """Remote transparent removal leaves keying to the encoder."""
        editor = FakeEditor(paint=(0, 255, 0))

        result = asyncio.run(
            _scheduler(recording_encoder, editor).run_project(
                _distinct_frames(2), TRANSPARENT_REMOVAL, use_remote=True
            )
        )

        assert result.remote_frames == 2
        assert recording_encoder.transparent_key == CHROMA_KEY
        assert np.all(recording_encoder.frames[0][..., :3] == (0, 255, 0))

    def test_remote_solid_replacement(self, recording_encoder):
        """Remote chroma output is re-keyed locally to the replacement color."""
        editor = FakeEditor(paint=(0, 255, 0))
        config = EditConfig(modes=[ProcessingMode.REMOVE_BG], replacement_color="#FFFFFF")

        result = asyncio.run(
            _scheduler(recording_encoder, editor).run_project(
                _distinct_frames(2), config, use_remote=True
            )
        )

        assert result.transparent_key is None
        for pixels in recording_encoder.frames:
            assert np.all(pixels == (255, 255, 255, 255))

    def test_remote_size_normalized(self, recording_encoder):
        """Remote images of a different size are resized to the input size."""
        editor = FakeEditor(size=(5, 7))

        asyncio.run(
            _scheduler(recording_encoder, editor).run_project(
                _distinct_frames(2, size=(12, 8)), RECOLOR_NO_MATCH, use_remote=True
            )
        )

        assert all(f.shape == (8, 12, 4) for f in recording_encoder.frames)

    def test_remote_requested_without_editor(self, recording_encoder, green_frame):
        result = asyncio.run(
            _scheduler(recording_encoder).run_project(
                [green_frame], TRANSPARENT_REMOVAL, use_remote=True
            )
        )

        assert result.local_frames == 1
        assert result.transparent_key is None


class TestCancellation:
    """Tests for cooperative cancellation."""

    def test_cancel_before_start(self, recording_encoder):
        async def scenario():
            cancel = asyncio.Event()
            cancel.set()
            return await _scheduler(recording_encoder).run_project(
                _distinct_frames(4), RECOLOR_NO_MATCH, cancel_event=cancel
            )

        result = asyncio.run(scenario())

        assert result.cancelled
        assert result.blob is None
        assert recording_encoder.calls == 0

    def test_cancel_mid_run(self, recording_encoder):
        """In-flight jobs finish, no new job starts, nothing is encoded."""
        progress = []

        async def scenario():
            cancel = asyncio.Event()

            def on_progress(percent):
                progress.append(percent)
                cancel.set()

            return await _scheduler(recording_encoder, concurrency=1).run_project(
                _distinct_frames(5),
                RECOLOR_NO_MATCH,
                cancel_event=cancel,
                on_progress=on_progress,
            )

        result = asyncio.run(scenario())

        assert result.outcome == RunOutcome.CANCELLED
        assert progress == [20]
        assert recording_encoder.calls == 0

    def test_cancel_lets_other_worker_finish(self, recording_encoder):
        """A job still in flight on another worker completes after cancel."""
        progress = []

        async def scenario():
            editor = StepEditor()
            cancel = asyncio.Event()

            def on_progress(percent):
                progress.append(percent)
                cancel.set()

            run = asyncio.create_task(
                _scheduler(recording_encoder, editor, concurrency=2).run_project(
                    _distinct_frames(5),
                    RECOLOR_NO_MATCH,
                    use_remote=True,
                    cancel_event=cancel,
                    on_progress=on_progress,
                )
            )
            while len(editor.started) < 2:
                await asyncio.sleep(0)

            editor.gate(0).set()
            await cancel.wait()
            assert progress == [20]

            editor.gate(1).set()
            return editor, await run

        editor, result = asyncio.run(asyncio.wait_for(scenario(), timeout=5))

        assert result.outcome == RunOutcome.CANCELLED
        assert progress == [20, 40]
        assert editor.started == [0, 1]
        assert result.remote_frames == 2
        assert result.local_frames == 0
        assert recording_encoder.calls == 0

    def test_cancel_during_backoff_keeps_breaker_closed(self, recording_encoder, caplog):
        """Cancelling while waiting to retry is not reported as quota exhaustion."""

        async def scenario():
            cancel = asyncio.Event()
            client = RemoteEditClient(
                CancellingTransport([QuotaError()], cancel),
                base_delay_ms=60_000,
            )
            return await _scheduler(recording_encoder, client, concurrency=1).run_project(
                _distinct_frames(3),
                RECOLOR_NO_MATCH,
                use_remote=True,
                cancel_event=cancel,
            )

        with caplog.at_level(logging.WARNING):
            result = asyncio.run(asyncio.wait_for(scenario(), timeout=5))

        assert result.cancelled
        assert not result.quota_exhausted
        assert result.local_frames == 1
        assert "Quota exceeded" not in caplog.text


class TestFailures:
    """Tests for local and encoder failures."""

    def test_local_failure_raises(self, recording_encoder):
        frames = _distinct_frames(3)
        frames[1] = Frame(pixels=np.zeros((10, 10, 3), dtype=np.uint8))

        with pytest.raises(RenderContextUnavailable):
            asyncio.run(
                _scheduler(recording_encoder, concurrency=1).run_project(
                    frames, RECOLOR_NO_MATCH
                )
            )
        assert recording_encoder.calls == 0

    def test_encoder_failure_wrapped(self, green_frame):
        def broken_encoder(frames, delays, transparent_key=None):
            raise ValueError("palette overflow")

        with pytest.raises(EncodingError, match="palette overflow"):
            asyncio.run(
                _scheduler(broken_encoder).run_project([green_frame], TRANSPARENT_REMOVAL)
            )


class TestEndToEnd:
    """Full local run through the real encoder."""

    def test_transparent_removal_offline(self):
        """8 frames of 200x200: key-near pixels transparent, no encoder key."""
        encoder = RecordingEncoder()
        frames = [_subject_frame(offset) for offset in range(8)]

        result = asyncio.run(
            _scheduler(encoder).run_project(frames, TRANSPARENT_REMOVAL, use_remote=False)
        )

        assert result.outcome == RunOutcome.COMPLETED
        assert result.frame_count == 8
        assert result.blob.startswith(b"GIF8")
        assert encoder.transparent_key is None

        for source, pixels in zip(frames, encoder.frames):
            rgb = source.pixels[..., :3].astype(np.float64)
            near_key = np.sqrt(((rgb - (0, 255, 0)) ** 2).sum(axis=-1)) < 60
            assert np.all(pixels[near_key, 3] == 0)
            assert np.all(pixels[~near_key, 3] == 255)
