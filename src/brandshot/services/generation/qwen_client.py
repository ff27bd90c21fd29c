"""DashScope Qwen client for text-to-image and image editing."""

import base64
from typing import Any, Optional

import httpx
import structlog

from brandshot.services.generation.errors import (
    CredentialError,
    PermanentProviderError,
    TransientProviderError,
    classify_message,
    classify_status,
)
from brandshot.services.generation.types import (
    GeneratedAsset,
    GenerationRequest,
    MediaKind,
    SourceImage,
)

logger = structlog.get_logger()

DEFAULT_QWEN_BASE_URL = "https://dashscope-intl.aliyuncs.com/api/v1"
DEFAULT_QWEN_MODEL = "qwen-image-plus"
DEFAULT_QWEN_SIZE = "1328*1328"


def aspect_ratio_size(aspect: str) -> Optional[str]:
    """Map an aspect ratio to a DashScope size token (None for unsupported ratios)."""
    return {
        "1:1": "1328*1328",
        "16:9": "1664*928",
        "4:3": "1472*1104",
        "3:4": "1140*1472",
        "9:16": "928*1664",
    }.get(aspect.strip())


def normalize_image_format(mime: str) -> str:
    mime = (mime or "").split(";")[0].strip().lower()
    if mime in ("image/jpeg", "image/jpg"):
        return "image/jpeg"
    if mime.startswith("image/"):
        return mime
    return "image/png"


class QwenGenerator:
    """Image generator backed by the DashScope multimodal generation API.

    One call produces one image; the dispatcher fans out for quantity.
    """

    name = "qwen"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        model: str = DEFAULT_QWEN_MODEL,
        base_url: str = DEFAULT_QWEN_BASE_URL,
        default_size: str = DEFAULT_QWEN_SIZE,
        prompt_extend: bool = True,
        watermark: bool = False,
    ):
        """Initialize the Qwen generator.

        Args:
            http_client: Shared httpx client (owned by the caller)
            api_key: DashScope API key (from QWEN_API_KEY env var)
            model: DashScope model identifier
            base_url: API base URL
            default_size: Size token used when the aspect ratio has no mapping
            prompt_extend: Let DashScope rewrite the prompt server-side
            watermark: Ask DashScope to add its own watermark
        """
        self.http_client = http_client
        self.api_key = (api_key or "").strip()
        self.model = model or DEFAULT_QWEN_MODEL
        self.base_url = (base_url or DEFAULT_QWEN_BASE_URL).rstrip("/")
        self.default_size = default_size or DEFAULT_QWEN_SIZE
        self.prompt_extend = prompt_extend
        self.watermark = watermark

    async def generate(self, request: GenerationRequest) -> GeneratedAsset:
        """Generate one image via DashScope and download it.

        Raises:
            CredentialError: API key missing or rejected
            TransientProviderError: Timeout, 429/5xx, upstream "InternalError"
            PermanentProviderError: Validation failures, unusable response
        """
        if request.kind != MediaKind.IMAGE:
            raise PermanentProviderError("qwen only supports image generation", self.name)
        if not self.api_key:
            raise CredentialError("qwen: api key is required", self.name)

        prompt = request.prompt.strip()
        if not prompt:
            raise PermanentProviderError("qwen: prompt is required", self.name)

        payload = self.build_payload(request)
        endpoint = f"{self.base_url}/services/aigc/multimodal-generation/generation"

        try:
            response = await self.http_client.post(
                endpoint,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.TimeoutException as e:
            raise TransientProviderError(f"qwen: request timeout: {e}", self.name) from e
        except httpx.TransportError as e:
            raise TransientProviderError(f"qwen: network error: {e}", self.name) from e

        body = _json_or_empty(response)
        if response.status_code >= 300:
            message = body.get("message") or response.text.strip()
            code = body.get("code", "")
            detail = f"{message} ({code})" if code else message
            raise classify_status(response.status_code, f"qwen: {detail}", self.name)

        if body.get("code"):
            raise classify_message(f"qwen: {body.get('message', '')} ({body['code']})", self.name)

        image_url = _first_image_url(body)
        if not image_url:
            raise PermanentProviderError("qwen: empty image url", self.name)

        data, mime = await self._download(image_url)
        usage = body.get("usage") or {}

        logger.debug(
            "qwen.image_generated",
            model=self.model,
            request_id=body.get("request_id", ""),
            url=image_url,
        )
        return GeneratedAsset(
            kind=MediaKind.IMAGE,
            format=normalize_image_format(mime),
            url=image_url,
            data=data,
            width=int(usage.get("width") or 0),
            height=int(usage.get("height") or 0),
            provider=self.name,
        )

    def build_payload(self, request: GenerationRequest) -> dict[str, Any]:
        """Translate a GenerationRequest into the DashScope request body."""
        contents: list[dict[str, Any]] = []
        image = _encode_source_image(request.source_image)
        if image:
            contents.append({"image": image})
        contents.append({"text": request.prompt.strip()})

        parameters: dict[str, Any] = {
            "size": aspect_ratio_size(request.aspect_ratio) or self.default_size,
            "style": "product-photography",
            "watermark": self.watermark,
        }
        if self.prompt_extend:
            parameters["prompt_extend"] = True
        if request.negative_prompt.strip():
            parameters["negative_prompt"] = request.negative_prompt.strip()
        if request.quality.strip():
            parameters["quality"] = request.quality.strip()
        if request.locale.strip():
            parameters["locale"] = request.locale.strip()
        if request.seed > 0:
            parameters["seed"] = request.seed

        workflow = request.workflow
        workflow_params = {
            "mode": workflow.mode.value if workflow.is_editing else "",
            "background_theme": workflow.background_theme,
            "background_style": workflow.background_style,
            "enhance_level": workflow.enhance_level,
            "retouch_strength": workflow.retouch_strength,
            "notes": workflow.notes,
        }
        workflow_params = {key: value for key, value in workflow_params.items() if value}
        if workflow_params:
            parameters["workflow"] = workflow_params

        return {
            "model": self.model,
            "input": {"messages": [{"role": "user", "content": contents}]},
            "parameters": parameters,
        }

    async def _download(self, image_url: str) -> tuple[bytes, str]:
        try:
            response = await self.http_client.get(image_url)
        except httpx.TimeoutException as e:
            raise TransientProviderError(f"qwen: download timeout: {e}", self.name) from e
        except httpx.TransportError as e:
            raise TransientProviderError(f"qwen: download failed: {e}", self.name) from e
        if response.status_code >= 300:
            raise classify_status(response.status_code, "qwen: download image", self.name)
        return response.content, response.headers.get("content-type", "image/png")


def _json_or_empty(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _first_image_url(body: dict[str, Any]) -> str:
    choices = (body.get("output") or {}).get("choices") or []
    for choice in choices:
        for content in (choice.get("message") or {}).get("content") or []:
            url = (content.get("image") or "").strip()
            if url:
                return url
    return ""


def _encode_source_image(source: Optional[SourceImage]) -> Optional[dict[str, Any]]:
    if source is None or (not source.data and not source.url.strip()):
        return None

    image: dict[str, Any] = {}
    if source.mime.strip():
        image["format"] = source.mime.strip().lower().removeprefix("image/")
    elif "." in source.filename.strip(" ."):
        image["format"] = source.filename.rsplit(".", 1)[1].lower()
    if source.data:
        image["image_bytes"] = base64.b64encode(source.data).decode()
        if source.width:
            image["width"] = source.width
        if source.height:
            image["height"] = source.height
    if source.url.strip():
        image["url"] = source.url.strip()
    if source.filename.strip():
        image["name"] = source.filename.strip()
    return image
