"""Replicate API generator for images."""

import asyncio
from typing import Any

import replicate
import structlog
from replicate.exceptions import ReplicateError as ReplicateAPIError

from brandshot.services.generation.errors import (
    CredentialError,
    PermanentProviderError,
    TransientProviderError,
    classify_error,
)
from brandshot.services.generation.synthetic import normalize_aspect
from brandshot.services.generation.types import GeneratedAsset, GenerationRequest, MediaKind

logger = structlog.get_logger()

DEFAULT_REPLICATE_MODEL = "black-forest-labs/flux-schnell"


class ReplicateGenerator:
    """Image generator that runs a Replicate model and returns its CDN URL.

    The SDK is synchronous, so each call runs in a worker thread.
    """

    name = "replicate"

    def __init__(self, api_token: str, model_version: str = DEFAULT_REPLICATE_MODEL):
        """Initialize the Replicate generator.

        Args:
            api_token: Replicate API authentication token
            model_version: Model identifier (default: "black-forest-labs/flux-schnell")
        """
        self.api_token = (api_token or "").strip()
        self.model_version = model_version or DEFAULT_REPLICATE_MODEL
        self._client = replicate.Client(api_token=self.api_token) if self.api_token else None

    async def generate(self, request: GenerationRequest) -> GeneratedAsset:
        """Generate one image using the Replicate API.

        Returns:
            GeneratedAsset carrying the Replicate CDN URL (expires after 10 days)

        Raises:
            CredentialError: REPLICATE_API_TOKEN not configured or rejected
            TransientProviderError: Temporary failure, worth a retry
            PermanentProviderError: Permanent failure, should not retry
        """
        if request.kind != MediaKind.IMAGE:
            raise PermanentProviderError("replicate only supports image generation", self.name)
        if self._client is None:
            raise CredentialError("REPLICATE_API_TOKEN not configured", self.name)

        model_input: dict[str, Any] = {
            "prompt": request.prompt,
            "aspect_ratio": request.aspect_ratio,
        }
        if request.seed > 0:
            model_input["seed"] = request.seed

        try:
            # SDK is synchronous
            output = await asyncio.to_thread(
                self._client.run, self.model_version, input=model_input
            )
        except (ReplicateAPIError, ConnectionError, TimeoutError) as e:
            raise classify_error(e, self.name) from e

        if isinstance(output, list) and len(output) > 0:
            image_url = str(output[0])
        elif isinstance(output, str) or hasattr(output, "url"):
            image_url = str(output)
        else:
            raise PermanentProviderError(
                f"Unexpected output format from Replicate: {type(output)}", self.name
            )

        if not image_url:
            raise TransientProviderError("Replicate returned an empty output", self.name)

        width, height = normalize_aspect(request.aspect_ratio)
        logger.debug("replicate.image_generated", model=self.model_version, url=image_url)
        return GeneratedAsset(
            kind=MediaKind.IMAGE,
            format="image/webp" if image_url.endswith(".webp") else "image/png",
            url=image_url,
            width=width,
            height=height,
            provider=self.name,
        )
