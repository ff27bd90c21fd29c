"""Provider-agnostic request/result types and the Generator protocol."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Protocol, runtime_checkable


class MediaKind(str, Enum):
    """Media kind a generator produces."""

    IMAGE = "image"
    VIDEO = "video"


class WorkflowMode(str, Enum):
    """Editing modes supported by the image pipeline."""

    GENERATE = "generate"
    BACKGROUND = "background"
    ENHANCE = "enhance"
    RETOUCH = "retouch"


def normalize_workflow_mode(mode: Optional[str]) -> WorkflowMode:
    """Map free-form user input onto a supported mode (default: generate)."""
    value = (mode or "").strip().lower()
    for candidate in WorkflowMode:
        if candidate.value == value:
            return candidate
    return WorkflowMode.GENERATE


@dataclass(frozen=True)
class Workflow:
    """How the provider should manipulate the image."""

    mode: WorkflowMode = WorkflowMode.GENERATE
    background_theme: str = ""
    background_style: str = ""
    enhance_level: str = ""
    retouch_strength: str = ""
    notes: str = ""

    @property
    def is_editing(self) -> bool:
        return self.mode != WorkflowMode.GENERATE


@dataclass(frozen=True)
class SourceImage:
    """Uploaded or remote image used as conditioning input."""

    asset_id: str = ""
    storage_key: str = ""
    url: str = ""
    mime: str = ""
    data: bytes = field(default=b"", repr=False)
    width: int = 0
    height: int = 0
    filename: str = ""


@dataclass(frozen=True)
class GenerationRequest:
    """Normalized instruction for one generation unit.

    Built fresh per job by the dispatcher and never persisted.
    """

    kind: MediaKind
    prompt: str
    aspect_ratio: str = "1:1"
    provider: str = ""
    request_id: str = ""
    locale: str = ""
    quality: str = ""
    negative_prompt: str = ""
    watermark_tag: str = ""
    workflow: Workflow = field(default_factory=Workflow)
    source_image: Optional[SourceImage] = None
    seed: int = 0
    variation_index: int = 0
    variation_total: int = 1

    def simplified(self) -> "GenerationRequest":
        """Degraded payload for the single retry after a transient failure.

        Drops the optional fields most likely to trip a validation-sensitive
        upstream: negative prompt, quality, locale and seed. The workflow is
        dropped entirely for plain generation; editing modes keep their
        directives and lose only the free-text notes.
        """
        if self.workflow.is_editing:
            workflow = replace(self.workflow, notes="")
        else:
            workflow = Workflow()
        return replace(
            self,
            negative_prompt="",
            workflow=workflow,
            quality="",
            locale="",
            seed=0,
        )


@dataclass
class GeneratedAsset:
    """One media asset returned by a generator, prior to persistence."""

    kind: MediaKind
    format: str
    url: str = ""
    storage_key: str = ""
    data: bytes = field(default=b"", repr=False)
    width: int = 0
    height: int = 0
    length_seconds: int = 0
    provider: str = ""


@runtime_checkable
class Generator(Protocol):
    """Contract implemented by every provider.

    Implementations raise CredentialError, TransientProviderError or
    PermanentProviderError (brandshot.services.generation.errors) on failure.
    """

    name: str

    async def generate(self, request: GenerationRequest) -> GeneratedAsset: ...
