"""
Remote Client Tests
===================

Tests for prompt building, response validation and quota retry.
"""

import asyncio
import base64
from types import SimpleNamespace

import pytest

from conftest import FakeTransport, QuotaError, response_with_image
from gif_alchemy.models.color import Color, RecolorRule
from gif_alchemy.models.project import ProcessingMode
from gif_alchemy.remote import (
    EmptyResponseError,
    GeminiTransport,
    NoImageInResponseError,
    PermanentRemoteError,
    QuotaExhaustedError,
    RemoteCancelledError,
    RemoteConfigurationError,
    RemoteEditClient,
    build_prompt,
    build_recolor_instruction,
    is_quota_error,
)
from gif_alchemy.remote.client import extract_image


def _client(transport, **kwargs) -> RemoteEditClient:
    kwargs.setdefault("base_delay_ms", 0)
    kwargs.setdefault("max_jitter_ms", 0)
    return RemoteEditClient(transport, **kwargs)


class TestPrompt:
    """Tests for instruction and prompt text."""

    def test_recolor_instruction(self):
        rules = [
            RecolorRule(source="#FF0000", target="#0000FF", description="red car"),
            RecolorRule(source="#00FF00", target="#FFFF00"),
        ]

        instruction = build_recolor_instruction(rules)

        assert instruction == (
            "Change the red car to #0000FF (Hex #0000FF), and "
            "Change the object with this color to #FFFF00 (Hex #FFFF00)"
        )

    def test_remove_bg_prompt_requests_chroma_key(self):
        prompt = build_prompt("", [ProcessingMode.REMOVE_BG])

        assert "Remove the background" in prompt
        assert "#00FF00" in prompt
        assert prompt.endswith("Output only the modified image.")

    def test_custom_chroma_key(self):
        prompt = build_prompt("", [ProcessingMode.REMOVE_BG], Color(255, 0, 255))
        assert "#FF00FF" in prompt

    def test_recolor_only_keeps_background(self):
        prompt = build_prompt("Change the car to #0000FF", [ProcessingMode.RECOLOR])

        assert prompt.startswith("Change the car to #0000FF")
        assert "Maintain the background" in prompt
        assert "Remove the background" not in prompt


class TestExtractImage:
    """Tests for response validation."""

    def test_returns_inline_bytes(self):
        assert extract_image(response_with_image(b"\x89PNG")) == b"\x89PNG"

    def test_decodes_base64_text(self):
        text = base64.b64encode(b"\x89PNG").decode("ascii")
        assert extract_image(response_with_image(text)) == b"\x89PNG"

    def test_no_candidates(self):
        with pytest.raises(EmptyResponseError, match="Response contained no content parts."):
            extract_image(SimpleNamespace(candidates=[]))

    def test_finish_reason_reported(self):
        candidate = SimpleNamespace(
            content=SimpleNamespace(parts=[]),
            finish_reason=SimpleNamespace(name="SAFETY"),
        )
        with pytest.raises(EmptyResponseError, match="SAFETY"):
            extract_image(SimpleNamespace(candidates=[candidate]))

    def test_text_only_response(self):
        part = SimpleNamespace(inline_data=None, text="I cannot do that")
        candidate = SimpleNamespace(content=SimpleNamespace(parts=[part]), finish_reason=None)

        with pytest.raises(NoImageInResponseError, match="No image data found in response."):
            extract_image(SimpleNamespace(candidates=[candidate]))


class TestQuotaClassification:
    """Tests for quota error detection."""

    def test_status_code(self):
        assert is_quota_error(QuotaError("too many"))

    @pytest.mark.parametrize("message", ["HTTP 429", "Quota exceeded", "RESOURCE_EXHAUSTED"])
    def test_message_markers(self, message):
        assert is_quota_error(RuntimeError(message))

    def test_other_errors(self):
        assert not is_quota_error(RuntimeError("500 internal"))


class TestRemoteEditClient:
    """Tests for the retry loop."""

    def test_success_first_try(self):
        transport = FakeTransport([response_with_image(b"img")])
        client = _client(transport)

        result = asyncio.run(client.edit(b"png", "", [ProcessingMode.REMOVE_BG]))

        assert result == b"img"
        assert client.call_count == 1
        assert client.retry_count == 0
        assert "Remove the background" in transport.prompts[0]

    def test_quota_retried_then_succeeds(self):
        transport = FakeTransport([QuotaError(), QuotaError(), response_with_image(b"img")])
        client = _client(transport)

        result = asyncio.run(client.edit(b"png", "", [ProcessingMode.RECOLOR]))

        assert result == b"img"
        assert client.call_count == 3
        assert client.retry_count == 2

    def test_quota_exhausted_after_max_retries(self):
        transport = FakeTransport([QuotaError()])
        client = _client(transport, max_retries=3)

        with pytest.raises(QuotaExhaustedError):
            asyncio.run(client.edit(b"png", "", [ProcessingMode.RECOLOR]))

        assert client.call_count == 4
        assert client.retry_count == 3

    def test_non_quota_error_not_retried(self):
        transport = FakeTransport([RuntimeError("500 internal")])
        client = _client(transport)

        with pytest.raises(PermanentRemoteError):
            asyncio.run(client.edit(b"png", "", [ProcessingMode.RECOLOR]))

        assert client.call_count == 1

    def test_empty_response_not_retried(self):
        transport = FakeTransport([SimpleNamespace(candidates=[])])
        client = _client(transport)

        with pytest.raises(EmptyResponseError):
            asyncio.run(client.edit(b"png", "", [ProcessingMode.RECOLOR]))

        assert client.call_count == 1

    def test_cancel_ends_backoff(self):
        """A cancelled run does not wait out the backoff."""
        transport = FakeTransport([QuotaError()])
        client = _client(transport, base_delay_ms=60_000)

        async def scenario():
            cancel = asyncio.Event()
            cancel.set()
            await client.edit(b"png", "", [ProcessingMode.RECOLOR], cancel)

        with pytest.raises(RemoteCancelledError):
            asyncio.run(asyncio.wait_for(scenario(), timeout=5))

        assert client.call_count == 1

    def test_backoff_delay(self):
        client = RemoteEditClient(
            FakeTransport([None]),
            base_delay_ms=2000,
            max_jitter_ms=1000,
            random_fn=lambda: 0.5,
        )

        assert client.backoff_delay_ms(0) == 2500
        assert client.backoff_delay_ms(2) == 8500


class TestGeminiTransport:
    """Tests for transport configuration."""

    @pytest.mark.parametrize("key", [None, ""])
    def test_missing_key(self, key):
        with pytest.raises(RemoteConfigurationError, match="API key not found"):
            GeminiTransport(api_key=key)
