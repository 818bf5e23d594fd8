"""
Remote Edit Client
==================

Request/response boundary to the remote AI image-edit service.

This client:
    - Builds the natural-language edit instruction for a frame
    - Sends one PNG image + instruction through a transport
    - Retries quota/rate-limit failures with exponential backoff + jitter
    - Validates that the response actually contains an image

Retry Policy:
    delay(attempt) = base_delay * 2**attempt + uniform(0, max_jitter)
    attempt = 0, 1, ..., max_retries - 1
    Only quota failures (HTTP 429, or a message mentioning '429', 'quota'
    or 'exhausted') are retried. Everything else fails immediately.

Design Rules:
    - No shared mutable state beyond the transport handle
    - Backoff waits wake early when the run is cancelled
"""

import asyncio
import base64
import logging
import random
from typing import Any, Callable, Iterable, Optional, Protocol, Sequence

from gif_alchemy.models.color import CHROMA_KEY, Color, RecolorRule
from gif_alchemy.models.project import ProcessingMode


logger = logging.getLogger(__name__)


QUOTA_MARKERS = ("429", "quota", "exhausted")


# =============================================================================
# Errors
# =============================================================================

class RemoteEditError(Exception):
    """Base class for remote edit failures."""
    pass


class TransientRemoteError(RemoteEditError):
    """Rate-limit style failure that may clear up later."""
    pass


class QuotaExhaustedError(TransientRemoteError):
    """Quota failure that persisted through every retry."""
    pass


class PermanentRemoteError(RemoteEditError):
    """Any non-quota remote failure. Never retried."""
    pass


class EmptyResponseError(PermanentRemoteError):
    """Response had no content parts."""
    pass


class NoImageInResponseError(PermanentRemoteError):
    """Response had content parts but none carried image data."""
    pass


class RemoteCancelledError(RemoteEditError):
    """The run was cancelled while waiting to retry."""
    pass


class RemoteConfigurationError(RemoteEditError):
    """Raised when the remote client cannot be constructed."""
    pass


def is_quota_error(error: BaseException) -> bool:
    """
    Classify a failure as quota/rate-limit related.

    Checks numeric status attributes for 429 first, then the message text.
    """
    for attr in ("code", "status_code", "status"):
        if getattr(error, attr, None) == 429:
            return True
    message = str(error).lower()
    return any(marker in message for marker in QUOTA_MARKERS)


# =============================================================================
# Instructions
# =============================================================================

def build_recolor_instruction(rules: Sequence[RecolorRule]) -> str:
    """Describe recolor rules as one sentence for the remote model."""
    changes = []
    for rule in rules:
        target = rule.description or "object with this color"
        changes.append(f"Change the {target} to {rule.target} (Hex {rule.target})")
    return ", and ".join(changes)


def build_prompt(
    instruction: str,
    modes: Iterable[ProcessingMode],
    chroma_key: Color = CHROMA_KEY,
) -> str:
    """
    Append mode-specific and general constraints to an instruction.

    In remove-bg mode the model is asked for a solid chroma-key background
    so the result can be keyed locally afterwards.
    """
    prompt = instruction

    if ProcessingMode.REMOVE_BG in set(modes):
        prompt += (
            " Remove the background from the main subject in this image."
            f" Replace the background with a solid green color (Hex: {chroma_key.to_hex()})."
            " Ensure the subject retains its original colors (unless instructed to change)"
            " and details. High quality, clear edges."
        )
    else:
        prompt += " Maintain the background and other details exactly as they are."

    prompt += " Photorealistic, consistent lighting, no noise. Output only the modified image."
    return prompt


# =============================================================================
# Response handling
# =============================================================================

def extract_image(response: Any) -> bytes:
    """
    Pull inline image bytes out of a generate-content response.

    Raises:
        EmptyResponseError: If the first candidate has no parts
        NoImageInResponseError: If no part carries inline image data
    """
    candidates = getattr(response, "candidates", None) or []
    candidate = candidates[0] if candidates else None
    content = getattr(candidate, "content", None)
    parts = getattr(content, "parts", None)

    if not parts:
        finish_reason = getattr(candidate, "finish_reason", None)
        if finish_reason:
            reason = getattr(finish_reason, "name", finish_reason)
            raise EmptyResponseError(f"Generation finished with reason: {reason}")
        raise EmptyResponseError("Response contained no content parts.")

    for part in parts:
        inline = getattr(part, "inline_data", None)
        data = getattr(inline, "data", None) if inline is not None else None
        if data:
            if isinstance(data, str):
                return base64.b64decode(data)
            return bytes(data)

    raise NoImageInResponseError("No image data found in response.")


# =============================================================================
# Client
# =============================================================================

class ContentTransport(Protocol):
    """
    Protocol for the raw remote call.

    Implementations send one PNG and one prompt and return the service's
    response object (candidates -> content -> parts -> inline_data).
    """

    async def generate_content(self, image_png: bytes, prompt: str) -> Any:
        ...


class ImageEditor(Protocol):
    """Protocol consumed by the frame scheduler."""

    async def edit(
        self,
        image_png: bytes,
        instruction: str,
        modes: Iterable[ProcessingMode],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> bytes:
        ...


async def wait_or_cancel(seconds: float, cancel_event: Optional[asyncio.Event]) -> bool:
    """
    Sleep for `seconds`, waking early if cancel_event is set.

    Returns:
        True if the wait ended because of cancellation
    """
    if cancel_event is None:
        await asyncio.sleep(seconds)
        return False
    if cancel_event.is_set():
        return True
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
        return True
    except asyncio.TimeoutError:
        return False


class RemoteEditClient:
    """
    Remote image edit with bounded quota retry.

    Attributes:
        transport: Raw remote call implementation
        max_retries: Retries after the first attempt (quota failures only)
        base_delay_ms: Backoff base delay
        max_jitter_ms: Upper bound of the random jitter added per retry

    Example:
        client = RemoteEditClient(GeminiTransport(api_key="..."))
        edited_png = await client.edit(png, "Change the car to #0000FF", modes)
    """

    def __init__(
        self,
        transport: ContentTransport,
        max_retries: int = 3,
        base_delay_ms: float = 2000.0,
        max_jitter_ms: float = 1000.0,
        chroma_key: Color = CHROMA_KEY,
        random_fn: Callable[[], float] = random.random,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")

        self.transport = transport
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_jitter_ms = max_jitter_ms
        self.chroma_key = chroma_key
        self._random = random_fn

        self._call_count: int = 0
        self._retry_count: int = 0

    def backoff_delay_ms(self, attempt: int) -> float:
        """Delay before retry number `attempt` (0-based)."""
        return self.base_delay_ms * (2 ** attempt) + self._random() * self.max_jitter_ms

    async def edit(
        self,
        image_png: bytes,
        instruction: str,
        modes: Iterable[ProcessingMode],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> bytes:
        """
        Edit one image remotely.

        Args:
            image_png: PNG-encoded source frame
            instruction: Caller's edit instruction (may be empty)
            modes: Active edit modes (selects the prompt suffix)
            cancel_event: Run cancellation signal, checked during backoff

        Returns:
            Image bytes returned by the service

        Raises:
            QuotaExhaustedError: Quota failure after all retries
            RemoteCancelledError: Cancelled while waiting to retry
            PermanentRemoteError: Any other failure
        """
        prompt = build_prompt(instruction, modes, self.chroma_key)

        for attempt in range(self.max_retries + 1):
            try:
                self._call_count += 1
                response = await self.transport.generate_content(image_png, prompt)
                return extract_image(response)

            except PermanentRemoteError:
                raise

            except Exception as e:
                if not is_quota_error(e):
                    raise PermanentRemoteError(f"Remote edit failed: {e}") from e

                if attempt >= self.max_retries:
                    raise QuotaExhaustedError(
                        f"Quota exhausted after {self.max_retries} retries: {e}"
                    ) from e

                delay_ms = self.backoff_delay_ms(attempt)
                self._retry_count += 1
                logger.warning(f"Quota hit, retrying in {round(delay_ms)}ms...")

                if await wait_or_cancel(delay_ms / 1000.0, cancel_event):
                    raise RemoteCancelledError(
                        f"Run cancelled during quota backoff: {e}"
                    ) from e

        raise QuotaExhaustedError("Retry budget exhausted")

    @property
    def call_count(self) -> int:
        """Total transport calls made."""
        return self._call_count

    @property
    def retry_count(self) -> int:
        """Total quota retries performed."""
        return self._retry_count

    def get_metrics(self) -> dict:
        """Get client metrics for observability."""
        return {
            "call_count": self._call_count,
            "retry_count": self._retry_count,
            "max_retries": self.max_retries,
            "base_delay_ms": self.base_delay_ms,
        }
