"""Provider registry: maps requested provider ids onto fallback chains."""

import httpx
import structlog

from brandshot.core.config import Settings
from brandshot.services.generation.gemini_client import (
    GeminiClient,
    GeminiImageGenerator,
    GeminiVideoGenerator,
)
from brandshot.services.generation.orchestrator import FallbackGenerator
from brandshot.services.generation.qwen_client import QwenGenerator
from brandshot.services.generation.replicate_client import ReplicateGenerator
from brandshot.services.generation.synthetic import SyntheticGenerator
from brandshot.services.generation.types import MediaKind

logger = structlog.get_logger()

QWEN_ALIASES = ("qwen", "qwen-image", "qwen-image-plus")
GEMINI_ALIASES = ("gemini", "gemini-1.5-flash", "gemini-2.0-flash", "gemini-2.5-flash")


def normalize_provider(name: str | None) -> str:
    return (name or "").strip().lower()


class ProviderRegistry:
    """Immutable per-kind lookup from provider id to generator chain.

    Resolution never fails at runtime: unknown ids resolve to the kind's
    default, and an unregistered default is rejected at construction.
    """

    def __init__(
        self,
        providers: dict[MediaKind, dict[str, FallbackGenerator]],
        defaults: dict[MediaKind, str],
    ):
        self._providers = {
            kind: {normalize_provider(name): chain for name, chain in mapping.items()}
            for kind, mapping in providers.items()
        }
        self._defaults = {kind: normalize_provider(name) for kind, name in defaults.items()}

        for kind in MediaKind:
            default = self._defaults.get(kind, "")
            if default not in self._providers.get(kind, {}):
                raise ValueError(
                    f"Default {kind.value} provider {default!r} is not registered "
                    f"(known: {', '.join(sorted(self._providers.get(kind, {}))) or 'none'})"
                )

    def resolve(self, kind: MediaKind, requested: str | None) -> tuple[FallbackGenerator, str]:
        """Return the chain for the requested provider, or the default chain.

        Args:
            kind: Media kind of the job
            requested: Provider id stored on the job (case and whitespace insensitive)

        Returns:
            Tuple of (generator chain, resolved provider id)
        """
        mapping = self._providers[kind]
        name = normalize_provider(requested)
        if name in mapping:
            return mapping[name], name
        default = self._defaults[kind]
        return mapping[default], default

    def names(self, kind: MediaKind) -> list[str]:
        return sorted(self._providers[kind])


def build_provider_registry(settings: Settings, http_client: httpx.AsyncClient) -> ProviderRegistry:
    """Wire every provider chain from settings.

    Chains:
        qwen      -> gemini -> synthetic
        replicate -> synthetic
        gemini    -> synthetic
    """
    timeout = settings.generation_timeout_seconds
    synthetic = FallbackGenerator(SyntheticGenerator())

    gemini_client = GeminiClient(
        http_client,
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        base_url=settings.gemini_base_url,
    )
    gemini_image = FallbackGenerator(GeminiImageGenerator(gemini_client), synthetic, timeout)
    gemini_video = FallbackGenerator(GeminiVideoGenerator(gemini_client), synthetic, timeout)

    qwen = FallbackGenerator(
        QwenGenerator(
            http_client,
            api_key=settings.qwen_api_key,
            model=settings.qwen_model,
            base_url=settings.qwen_base_url,
            default_size=settings.qwen_default_size,
        ),
        gemini_image,
        timeout,
    )
    replicate_chain = FallbackGenerator(
        ReplicateGenerator(settings.replicate_api_token, settings.replicate_model_version),
        synthetic,
        timeout,
    )

    image: dict[str, FallbackGenerator] = {"synthetic": synthetic}
    for alias in (*QWEN_ALIASES, settings.qwen_model):
        image[alias] = qwen
    for alias in ("replicate", settings.replicate_model_version):
        image[alias] = replicate_chain
    for alias in (*GEMINI_ALIASES, settings.gemini_model):
        image[alias] = gemini_image

    video: dict[str, FallbackGenerator] = {"synthetic": synthetic}
    for alias in (*GEMINI_ALIASES, settings.gemini_model):
        video[alias] = gemini_video

    registry = ProviderRegistry(
        providers={MediaKind.IMAGE: image, MediaKind.VIDEO: video},
        defaults={
            MediaKind.IMAGE: settings.default_image_provider,
            MediaKind.VIDEO: settings.default_video_provider,
        },
    )
    logger.info(
        "providers.registered",
        image=registry.names(MediaKind.IMAGE),
        video=registry.names(MediaKind.VIDEO),
    )
    return registry
