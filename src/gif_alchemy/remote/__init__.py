"""
Remote Module
=============

Remote image editing with quota-aware retry.

Implementations:
    - RemoteEditClient: Prompt building, retry/backoff and response checks
    - GeminiTransport: google-genai transport (requires an API key)
"""

from gif_alchemy.remote.client import (
    ContentTransport,
    EmptyResponseError,
    ImageEditor,
    NoImageInResponseError,
    PermanentRemoteError,
    QuotaExhaustedError,
    RemoteCancelledError,
    RemoteConfigurationError,
    RemoteEditClient,
    RemoteEditError,
    TransientRemoteError,
    build_prompt,
    build_recolor_instruction,
    is_quota_error,
)
from gif_alchemy.remote.gemini import DEFAULT_MODEL, GeminiTransport


__all__ = [
    "ContentTransport",
    "EmptyResponseError",
    "ImageEditor",
    "NoImageInResponseError",
    "PermanentRemoteError",
    "QuotaExhaustedError",
    "RemoteCancelledError",
    "RemoteConfigurationError",
    "RemoteEditClient",
    "RemoteEditError",
    "TransientRemoteError",
    "build_prompt",
    "build_recolor_instruction",
    "is_quota_error",
    "DEFAULT_MODEL",
    "GeminiTransport",
]
