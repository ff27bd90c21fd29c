"""Deterministic offline generator.

Terminal link of every fallback chain: needs no credentials and produces
a striped PNG (or a text placeholder for video) derived from the request,
so the pipeline stays operational in local and CI environments.
"""

import asyncio
import hashlib
import io
from typing import Any

import structlog
from PIL import Image, ImageDraw

from brandshot.services.generation.types import GeneratedAsset, GenerationRequest, MediaKind

logger = structlog.get_logger()


def normalize_aspect(aspect: str) -> tuple[int, int]:
    """Map an aspect ratio string to pixel dimensions (default 1024x1024)."""
    value = (aspect or "").strip().lower()
    presets = {
        "16:9": (1920, 1080),
        "9:16": (1080, 1920),
        "4:5": (1024, 1280),
        "3:2": (1536, 1024),
        "1:1": (1024, 1024),
        "square": (1024, 1024),
        "": (1024, 1024),
    }
    if value in presets:
        return presets[value]

    parts = value.split(":")
    if len(parts) == 2:
        try:
            a, b = int(parts[0].strip()), int(parts[1].strip())
        except ValueError:
            return 1024, 1024
        if a > 0 and b > 0:
            return 1024, int(1024 * b / a)
    return 1024, 1024


def estimate_video_length(prompt: str) -> int:
    """Rough clip length in seconds: one second per three words, within [8, 45]."""
    words = len(prompt.split())
    if words == 0:
        return 12
    return max(8, min(45, words // 3))


def synthetic_seed(*parts: Any) -> str:
    hasher = hashlib.sha256()
    for part in parts:
        hasher.update(str(part).encode())
        hasher.update(b"|")
    return hasher.hexdigest()[:16]


def _color_from_seed(seed: str, shift: int) -> tuple[int, int, int]:
    doubled = seed + seed
    start = (shift * 6) % len(seed)
    segment = doubled[start : start + 6]
    return int(segment[0:2], 16), int(segment[2:4], 16), int(segment[4:6], 16)


def render_synthetic_image(width: int, height: int, seed: str) -> bytes:
    """Render a striped PNG whose colours are derived from the seed."""
    width = width if width > 0 else 1024
    height = height if height > 0 else 1024

    img = Image.new("RGB", (width, height), _color_from_seed(seed, 0))
    draw = ImageDraw.Draw(img)

    accent = _color_from_seed(seed, 1)
    stripe_height = max(32, height // 12)
    for y in range(0, height, stripe_height * 2):
        draw.rectangle((0, y, width, min(height, y + stripe_height) - 1), fill=accent)

    diagonal = _color_from_seed(seed, 2)
    for x in range(0, max(width, height), max(16, width // 32)):
        draw.line((x, 0, x + height, height), fill=diagonal)

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def render_synthetic_video(seed: str, prompt: str) -> bytes:
    lines = [
        "Synthetic video placeholder",
        f"Seed: {seed}",
        f"Prompt: {prompt.strip()}",
        "",
        "This placeholder stands in for rendered video bytes.",
    ]
    return "\n".join(lines).encode()


class SyntheticGenerator:
    """Generator that never calls the network and never fails on valid input."""

    def __init__(self, name: str = "synthetic"):
        self.name = name

    async def generate(self, request: GenerationRequest) -> GeneratedAsset:
        if request.kind == MediaKind.VIDEO:
            seed = synthetic_seed(request.request_id, request.prompt, request.locale, self.name, 0)
            logger.debug("synthetic.video_generated", request_id=request.request_id)
            return GeneratedAsset(
                kind=MediaKind.VIDEO,
                format="video/mp4",
                data=render_synthetic_video(seed, request.prompt),
                width=1920,
                height=1080,
                length_seconds=estimate_video_length(request.prompt),
                provider=self.name,
            )

        width, height = normalize_aspect(request.aspect_ratio)
        seed = synthetic_seed(
            request.request_id,
            request.prompt,
            request.locale,
            request.watermark_tag,
            request.variation_index,
        )
        data = await asyncio.to_thread(render_synthetic_image, width, height, seed)
        logger.debug(
            "synthetic.image_generated",
            request_id=request.request_id,
            width=width,
            height=height,
        )
        return GeneratedAsset(
            kind=MediaKind.IMAGE,
            format="image/png",
            data=data,
            width=width,
            height=height,
            provider=self.name,
        )
