"""Prompt payload schema and the builders that turn it into generation requests.

A job's prompt_json is opaque to the job store; this module owns its shape.
Image jobs carry a PromptPayload, video jobs a loose dict with a "prompt" key.
"""

import hashlib
from typing import Any, Optional

from pydantic import BaseModel, Field

from brandshot.services.generation.types import (
    GenerationRequest,
    MediaKind,
    SourceImage,
    Workflow,
    WorkflowMode,
    normalize_workflow_mode,
)

DEFAULT_NEGATIVE_PROMPT = (
    "low quality, blurry, distorted, washed out, incorrect anatomy, "
    "extra limbs, text artefacts, watermark"
)

DEFAULT_PROMPT_VERSION = "2024-01"
DEFAULT_ASPECT_RATIO = "1:1"
DEFAULT_LOCALE = "en"
DEFAULT_QUALITY = "standard"
ALLOWED_ASPECT_RATIOS = ("1:1", "4:3", "3:4", "16:9", "9:16")


class WatermarkConfig(BaseModel):
    enabled: bool = False
    text: str = ""
    position: str = ""


class ExtrasConfig(BaseModel):
    locale: str = ""
    quality: str = ""


class SourceAssetConfig(BaseModel):
    """Uploaded or remote asset referenced by a prompt."""

    asset_id: str = ""
    storage_key: str = ""
    url: str = ""
    mime: str = ""
    filename: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.asset_id.strip() or self.storage_key.strip() or self.url.strip())


class WorkflowConfig(BaseModel):
    mode: str = ""
    background_theme: str = ""
    background_style: str = ""
    enhance_level: str = ""
    retouch_strength: str = ""
    notes: str = ""


class PromptPayload(BaseModel):
    """Structured marketing prompt stored in generation_jobs.prompt_json."""

    version: str = ""
    title: str = ""
    product_type: str = ""
    style: str = ""
    background: str = ""
    instructions: str = ""
    watermark: WatermarkConfig = Field(default_factory=WatermarkConfig)
    aspect_ratio: str = ""
    quantity: int = 0
    references: list[str] = Field(default_factory=list)
    extras: ExtrasConfig = Field(default_factory=ExtrasConfig)
    source_asset: SourceAssetConfig = Field(default_factory=SourceAssetConfig)
    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)

    def normalized(self, preferred_locale: str = "", max_quantity: int = 2) -> "PromptPayload":
        """Return a copy with server defaults applied and limits enforced.

        Args:
            preferred_locale: User's locale, used when extras.locale is empty
            max_quantity: Plan cap on assets per job

        Returns:
            Normalized PromptPayload (self is left untouched)
        """
        payload = self.model_copy(deep=True)

        payload.version = payload.version or DEFAULT_PROMPT_VERSION
        payload.quantity = max(1, min(payload.quantity, max_quantity))
        payload.aspect_ratio = payload.aspect_ratio.strip() or DEFAULT_ASPECT_RATIO
        payload.extras.locale = payload.extras.locale or preferred_locale or DEFAULT_LOCALE
        payload.extras.quality = payload.extras.quality or DEFAULT_QUALITY

        payload.workflow.mode = normalize_workflow_mode(payload.workflow.mode).value
        payload.workflow.background_theme = payload.workflow.background_theme.strip()
        payload.workflow.background_style = payload.workflow.background_style.strip()
        payload.workflow.enhance_level = payload.workflow.enhance_level.strip()
        payload.workflow.retouch_strength = payload.workflow.retouch_strength.strip()
        payload.workflow.notes = payload.workflow.notes.strip()

        payload.source_asset.asset_id = payload.source_asset.asset_id.strip()
        payload.source_asset.storage_key = payload.source_asset.storage_key.strip()
        payload.source_asset.url = payload.source_asset.url.strip()
        payload.source_asset.mime = payload.source_asset.mime.strip()
        payload.source_asset.filename = payload.source_asset.filename.strip()
        return payload

    def validate_required(self) -> None:
        """Check the fields a marketing prompt cannot do without.

        Called by the request handler in front of `enqueue_job` before quota is
        reserved. The dispatcher does not repeat it: stored prompts were
        accepted at enqueue time and are only normalized when claimed.

        Raises:
            ValueError: Describing the first missing or invalid field
        """
        for name in ("title", "product_type", "style", "background"):
            if not getattr(self, name).strip():
                raise ValueError(f"{name} is required")
        if self.aspect_ratio not in ALLOWED_ASPECT_RATIOS:
            raise ValueError(f"aspect_ratio must be one of {', '.join(ALLOWED_ASPECT_RATIOS)}")
        if self.watermark.enabled:
            if not self.watermark.text.strip():
                raise ValueError("watermark.text is required when watermark.enabled is true")
            if not self.watermark.position.strip():
                raise ValueError("watermark.position is required when watermark.enabled is true")
        mode = normalize_workflow_mode(self.workflow.mode)
        if mode != WorkflowMode.GENERATE and self.source_asset.is_empty:
            raise ValueError(f"source_asset is required when workflow.mode is {mode.value}")


def build_marketing_prompt(payload: PromptPayload) -> str:
    """Render a structured prompt into a natural-language text-to-image instruction."""
    lines: list[str] = []

    title = payload.title.strip()
    if title:
        lines.append(f'Create a premium marketing photograph for "{title}".')
    else:
        lines.append("Create a premium marketing photograph for the featured product.")

    if payload.product_type.strip():
        lines.append(f"Product category: {payload.product_type.strip()}.")

    stylistic = []
    if payload.style.strip():
        stylistic.append(f'visual style "{payload.style.strip()}"')
    if payload.background.strip():
        stylistic.append(f'background "{payload.background.strip()}"')
    if stylistic:
        lines.append("Visual direction: " + ", ".join(stylistic) + ".")

    if payload.instructions.strip():
        lines.append(f"Creative guidance: {payload.instructions.strip()}.")

    references = [ref.strip() for ref in payload.references if ref.strip()]
    if references:
        lines.append("Inspiration references: " + "; ".join(references))

    if not payload.source_asset.is_empty:
        lines.append(
            "Use the uploaded product photo as the main subject. "
            "Preserve its shape, texture, and logo without warping."
        )

    workflow = payload.workflow
    mode = normalize_workflow_mode(workflow.mode)
    if mode == WorkflowMode.BACKGROUND:
        theme = workflow.background_theme.strip() or "an on-brand, aesthetic setting"
        if workflow.background_style.strip():
            theme = f"{theme} with {workflow.background_style.strip()} style"
        lines.append(
            f"Replace only the background with {theme} while keeping the product "
            "lighting consistent and natural."
        )
    elif mode == WorkflowMode.ENHANCE:
        boost = workflow.enhance_level.strip() or "balanced"
        lines.append(
            f"Enhance the original photo with {boost} colour grading, improved brightness, "
            "and crisp contrast while avoiding oversaturation."
        )
    elif mode == WorkflowMode.RETOUCH:
        strength = workflow.retouch_strength.strip() or "gentle"
        lines.append(
            f"Retouch blemishes using a {strength} touch so the product remains "
            "authentic and appetising."
        )

    if workflow.notes.strip():
        lines.append(f"Additional workflow note: {workflow.notes.strip()}.")

    if payload.watermark.enabled and payload.watermark.text.strip():
        position = payload.watermark.position.strip() or "bottom-right"
        lines.append(
            f'Embed the brand watermark text "{payload.watermark.text.strip()}" at the '
            f"{position} of the composition in a subtle yet readable style."
        )

    quality = payload.extras.quality.strip() or DEFAULT_QUALITY
    lines.append(f"Render with {quality} quality lighting, sharp focus, and clean post-processing.")

    locale = payload.extras.locale.strip() or DEFAULT_LOCALE
    lines.append(f"Use {locale.upper()} language for any on-image typography or signage.")

    lines.append(
        "Ensure the scene looks appetising, well-lit, and ready for social media or menu promotion."
    )
    return "\n".join(lines)


def extract_video_prompt(payload: Any) -> str:
    """Pull the prompt text out of a video job payload.

    Accepts {"prompt": "..."} or {"prompt": {"text": ...}} / {"prompt": {"title": ...}}.
    """
    if not isinstance(payload, dict):
        return ""
    prompt = payload.get("prompt")
    if isinstance(prompt, str):
        return prompt
    if isinstance(prompt, dict):
        for key in ("text", "title"):
            value = prompt.get(key)
            if isinstance(value, str):
                return value
    return ""


def build_variation_prompt(prompt: str, total: int, index: int) -> str:
    """Append a variation marker so parallel units don't collapse to one image."""
    trimmed = prompt.strip()
    if total <= 1:
        return trimmed
    suffix = f"Variation #{index + 1} for the same campaign."
    if not trimmed:
        return suffix
    return f"{trimmed}\n{suffix}"


def deterministic_seed(*values: Any) -> int:
    """Stable positive 31-bit seed derived from the given values."""
    if not values:
        return 0
    digest = hashlib.sha256("|".join(str(value) for value in values).encode()).digest()
    seed = int.from_bytes(digest[:4], "big") % 2147483647
    if seed <= 0:
        seed = int.from_bytes(digest[4:8], "big") % 2147483647 or 1
    return seed


def build_image_requests(
    payload: PromptPayload,
    *,
    job_id: str,
    provider: str,
    quantity: int,
    aspect_ratio: str,
    source_image: Optional[SourceImage] = None,
) -> list[GenerationRequest]:
    """Expand an image job into one GenerationRequest per generation unit.

    An attached source image promotes plain generation to enhancement.
    """
    mode = normalize_workflow_mode(payload.workflow.mode)
    if source_image is not None and mode == WorkflowMode.GENERATE:
        mode = WorkflowMode.ENHANCE

    workflow = Workflow(
        mode=mode,
        background_theme=payload.workflow.background_theme.strip(),
        background_style=payload.workflow.background_style.strip(),
        enhance_level=payload.workflow.enhance_level.strip(),
        retouch_strength=payload.workflow.retouch_strength.strip(),
        notes=payload.workflow.notes.strip(),
    )
    base_prompt = build_marketing_prompt(payload)
    locale = payload.extras.locale.strip()
    total = max(quantity, 1)

    requests = []
    for index in range(total):
        prompt = build_variation_prompt(base_prompt, total, index)
        requests.append(
            GenerationRequest(
                kind=MediaKind.IMAGE,
                prompt=prompt,
                aspect_ratio=aspect_ratio or DEFAULT_ASPECT_RATIO,
                provider=provider,
                request_id=job_id,
                locale=locale,
                quality=payload.extras.quality.strip(),
                negative_prompt=DEFAULT_NEGATIVE_PROMPT,
                watermark_tag=payload.watermark.text.strip(),
                workflow=workflow,
                source_image=source_image,
                seed=deterministic_seed(job_id, provider, locale, prompt, index),
                variation_index=index,
                variation_total=total,
            )
        )
    return requests


def build_video_requests(
    payload: Any,
    *,
    job_id: str,
    provider: str,
    quantity: int,
    aspect_ratio: str,
) -> list[GenerationRequest]:
    """Expand a video job into one GenerationRequest per generation unit."""
    prompt = extract_video_prompt(payload)
    locale = payload.get("locale", "") if isinstance(payload, dict) else ""
    if not isinstance(locale, str):
        locale = ""
    total = max(quantity, 1)
    return [
        GenerationRequest(
            kind=MediaKind.VIDEO,
            prompt=build_variation_prompt(prompt, total, index),
            aspect_ratio=aspect_ratio or DEFAULT_ASPECT_RATIO,
            provider=provider,
            request_id=job_id,
            locale=locale,
            variation_index=index,
            variation_total=total,
        )
        for index in range(total)
    ]
