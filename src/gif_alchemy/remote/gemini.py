"""
Gemini Transport
================

Google GenAI transport for the remote edit client.

This transport:
    - Sends one inline PNG part plus one text part to an image-capable model
    - Returns the raw generate-content response for validation upstream

Design Rules:
    - Fail fast on misconfiguration (missing key or SDK)
    - Never interpret the response here
"""

import logging
from typing import Any, Optional

from gif_alchemy.remote.client import RemoteConfigurationError


logger = logging.getLogger(__name__)


DEFAULT_MODEL = "gemini-2.5-flash-image"


class GeminiTransport:
    """
    Remote call through the google-genai SDK.

    Attributes:
        model: Model name used for generate_content
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_MODEL,
    ) -> None:
        """
        Initialize the transport.

        Args:
            api_key: Gemini API key
            model: Image-editing model name

        Raises:
            RemoteConfigurationError: If the key is missing or the client fails
        """
        if not api_key:
            raise RemoteConfigurationError("API key not found")

        self.model = model
        self._client = None
        self._init_client(api_key)

        logger.info(f"GeminiTransport initialized: model={model}")

    def _init_client(self, api_key: str) -> None:
        """Initialize the google-genai client."""
        try:
            from google import genai

            self._client = genai.Client(api_key=api_key)
        except ImportError:
            raise RemoteConfigurationError(
                "google-genai is required for GeminiTransport. "
                "Install with: pip install google-genai"
            )
        except Exception as e:
            raise RemoteConfigurationError(f"Failed to initialize GenAI client: {e}")

    async def generate_content(self, image_png: bytes, prompt: str) -> Any:
        """
        Send one image + prompt to the model.

        Args:
            image_png: PNG-encoded image
            prompt: Full edit prompt

        Returns:
            GenerateContentResponse from the SDK
        """
        from google.genai import types

        return await self._client.aio.models.generate_content(
            model=self.model,
            contents=[
                types.Part.from_bytes(data=image_png, mime_type="image/png"),
                prompt,
            ],
        )
