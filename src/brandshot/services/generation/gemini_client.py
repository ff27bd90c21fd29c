"""Gemini generateContent client for image and video generation."""

import base64
import binascii
import io
from typing import Any
from urllib.parse import quote

import httpx
import structlog
from PIL import Image, UnidentifiedImageError

from brandshot.services.generation.errors import (
    CredentialError,
    PermanentProviderError,
    TransientProviderError,
    classify_status,
)
from brandshot.services.generation.synthetic import estimate_video_length, normalize_aspect
from brandshot.services.generation.types import GeneratedAsset, GenerationRequest, MediaKind

logger = structlog.get_logger()

DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"


def build_image_prompt(request: GenerationRequest) -> str:
    lines = [request.prompt.strip()] if request.prompt.strip() else []
    if request.aspect_ratio.strip():
        lines.append(f"Aspect ratio: {request.aspect_ratio.strip()}")
    if request.watermark_tag.strip():
        lines.append(f"Watermark tag: {request.watermark_tag.strip()}")
    if request.locale.strip():
        lines.append(f"Locale: {request.locale.strip()}")
    return "\n".join(lines) or "Create a marketing image"


def build_video_prompt(request: GenerationRequest) -> str:
    lines = [request.prompt.strip()] if request.prompt.strip() else []
    if request.locale.strip():
        lines.append(f"Locale: {request.locale.strip()}")
    return "\n".join(lines) or "Create a short promotional video"


def image_dimensions(data: bytes) -> tuple[int, int]:
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.size
    except (UnidentifiedImageError, OSError):
        return 0, 0


class GeminiClient:
    """Thin async wrapper over the Gemini REST API."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        model: str = DEFAULT_GEMINI_MODEL,
        base_url: str = DEFAULT_GEMINI_BASE_URL,
    ):
        self.http_client = http_client
        self.api_key = (api_key or "").strip()
        self.model = model or DEFAULT_GEMINI_MODEL
        self.base_url = (base_url or DEFAULT_GEMINI_BASE_URL).rstrip("/")

    async def generate_content(self, payload: dict[str, Any], provider: str) -> dict[str, Any]:
        """POST models/<model>:generateContent and return the decoded body.

        Raises:
            CredentialError: No API key, or the key was rejected
            TransientProviderError: Timeout, connection failure, 429/5xx
            PermanentProviderError: Other 4xx or an undecodable body
        """
        if not self.api_key:
            raise CredentialError("gemini: api key is required", provider)

        endpoint = f"{self.base_url}/models/{quote(self.model, safe='')}:generateContent"
        try:
            response = await self.http_client.post(
                endpoint, json=payload, params={"key": self.api_key}
            )
        except httpx.TimeoutException as e:
            raise TransientProviderError(f"gemini: request timeout: {e}", provider) from e
        except httpx.TransportError as e:
            raise TransientProviderError(f"gemini: network error: {e}", provider) from e

        if response.status_code >= 400:
            try:
                message = response.json().get("error", {}).get("message", "")
            except ValueError:
                message = ""
            raise classify_status(
                response.status_code, f"gemini: {message or response.text.strip()}", provider
            )

        try:
            return response.json()
        except ValueError as e:
            raise PermanentProviderError(f"gemini: decode response: {e}", provider) from e

    async def first_inline_asset(self, body: dict[str, Any], provider: str) -> tuple[bytes, str, str]:
        """Return (data, mime, url) of the first media part in a response."""
        for candidate in body.get("candidates") or []:
            for part in (candidate.get("content") or {}).get("parts") or []:
                inline = part.get("inlineData") or {}
                if inline.get("data"):
                    try:
                        data = base64.b64decode(inline["data"])
                    except (binascii.Error, ValueError):
                        continue
                    return data, inline.get("mimeType", ""), ""

                file_data = part.get("fileData") or {}
                if file_data.get("fileUri"):
                    data, mime = await self.download_file(file_data["fileUri"], provider)
                    if data:
                        return data, file_data.get("mimeType") or mime, file_data["fileUri"]
        return b"", "", ""

    async def download_file(self, uri: str, provider: str) -> tuple[bytes, str]:
        target = uri
        if not uri.startswith(("http://", "https://")):
            target = f"{self.base_url}/{uri.lstrip('/')}"
        try:
            response = await self.http_client.get(target, params={"key": self.api_key})
        except httpx.TimeoutException as e:
            raise TransientProviderError(f"gemini: download timeout: {e}", provider) from e
        except httpx.TransportError as e:
            raise TransientProviderError(f"gemini: download failed: {e}", provider) from e
        if response.status_code >= 400:
            raise classify_status(
                response.status_code, f"gemini: download file: {response.text.strip()}", provider
            )
        return response.content, response.headers.get("content-type", "")


class GeminiImageGenerator:
    """Image generator using Gemini's image_generation tool."""

    name = "gemini"

    def __init__(self, client: GeminiClient):
        self.client = client

    async def generate(self, request: GenerationRequest) -> GeneratedAsset:
        payload = {
            "contents": [{"role": "user", "parts": [{"text": build_image_prompt(request)}]}],
            "tools": [{"image_generation": {}}],
            "tool_config": {"image_generation_config": {"number_of_images": 1}},
        }
        body = await self.client.generate_content(payload, self.name)
        data, mime, url = await self.client.first_inline_asset(body, self.name)
        if not data:
            raise PermanentProviderError("gemini: no image content returned", self.name)

        width, height = image_dimensions(data)
        if not width or not height:
            width, height = normalize_aspect(request.aspect_ratio)

        logger.debug("gemini.image_generated", model=self.client.model, request_id=request.request_id)
        return GeneratedAsset(
            kind=MediaKind.IMAGE,
            format=mime or "image/png",
            url=url,
            data=data,
            width=width,
            height=height,
            provider=self.name,
        )


class GeminiVideoGenerator:
    """Video generator using Gemini's video_generation tool."""

    name = "gemini"

    def __init__(self, client: GeminiClient):
        self.client = client

    async def generate(self, request: GenerationRequest) -> GeneratedAsset:
        payload = {
            "contents": [{"role": "user", "parts": [{"text": build_video_prompt(request)}]}],
            "tools": [{"video_generation": {}}],
        }
        body = await self.client.generate_content(payload, self.name)
        data, mime, url = await self.client.first_inline_asset(body, self.name)
        if not data:
            raise PermanentProviderError("gemini: no video content returned", self.name)

        logger.debug("gemini.video_generated", model=self.client.model, request_id=request.request_id)
        return GeneratedAsset(
            kind=MediaKind.VIDEO,
            format=mime or "video/mp4",
            url=url,
            data=data,
            width=1920,
            height=1080,
            length_seconds=estimate_video_length(request.prompt),
            provider=self.name,
        )
