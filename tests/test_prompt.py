"""Prompt payload normalization and request building tests."""

import pytest

from brandshot.services.generation.prompt import (
    DEFAULT_NEGATIVE_PROMPT,
    PromptPayload,
    build_image_requests,
    build_marketing_prompt,
    build_variation_prompt,
    build_video_requests,
    deterministic_seed,
    extract_video_prompt,
)
from brandshot.services.generation.types import MediaKind, SourceImage, WorkflowMode


def make_payload(**overrides) -> PromptPayload:
    data = {
        "title": "Citrus Burst",
        "product_type": "beverage",
        "style": "bright minimal",
        "background": "sunlit kitchen",
    }
    data.update(overrides)
    return PromptPayload.model_validate(data)


def test_normalized_applies_defaults():
    payload = make_payload(quantity=7, workflow={"mode": " Background ", "notes": "  soft "})

    normalized = payload.normalized(preferred_locale="de", max_quantity=2)

    assert normalized.version == "2024-01"
    assert normalized.quantity == 2
    assert normalized.aspect_ratio == "1:1"
    assert normalized.extras.locale == "de"
    assert normalized.extras.quality == "standard"
    assert normalized.workflow.mode == "background"
    assert normalized.workflow.notes == "soft"
    # Original untouched
    assert payload.quantity == 7
    assert payload.extras.locale == ""


def test_normalized_locale_falls_back_to_english():
    normalized = make_payload(quantity=0).normalized()

    assert normalized.extras.locale == "en"
    assert normalized.quantity == 1


def test_validate_required_accepts_complete_payload():
    make_payload().normalized().validate_required()


@pytest.mark.parametrize(
    "overrides,message",
    [
        ({"title": " "}, "title is required"),
        ({"aspect_ratio": "2:1"}, "aspect_ratio"),
        ({"watermark": {"enabled": True, "position": "top"}}, "watermark.text"),
        ({"watermark": {"enabled": True, "text": "ACME"}}, "watermark.position"),
        ({"workflow": {"mode": "retouch"}}, "source_asset is required"),
    ],
)
def test_validate_required_rejects(overrides, message):
    payload = make_payload(**overrides).normalized()

    with pytest.raises(ValueError, match=message):
        payload.validate_required()


def test_marketing_prompt_includes_directives():
    payload = make_payload(
        instructions="show condensation",
        references=["https://example.test/ref.png", " "],
        watermark={"enabled": True, "text": "ACME", "position": "top-left"},
        workflow={"mode": "enhance", "enhance_level": "vivid"},
        source_asset={"asset_id": "abc"},
    ).normalized(preferred_locale="fr")

    prompt = build_marketing_prompt(payload)

    assert prompt.startswith('Create a premium marketing photograph for "Citrus Burst".')
    assert "Product category: beverage." in prompt
    assert 'visual style "bright minimal"' in prompt
    assert "Creative guidance: show condensation." in prompt
    assert "Inspiration references: https://example.test/ref.png" in prompt
    assert "Use the uploaded product photo as the main subject." in prompt
    assert "vivid colour grading" in prompt
    assert 'watermark text "ACME" at the top-left' in prompt
    assert "Use FR language" in prompt


def test_variation_prompt():
    assert build_variation_prompt(" base ", 1, 0) == "base"
    assert build_variation_prompt("base", 2, 1) == "base\nVariation #2 for the same campaign."
    assert build_variation_prompt("", 2, 0) == "Variation #1 for the same campaign."


def test_deterministic_seed_is_stable_and_positive():
    seed = deterministic_seed("job", "qwen", "en", "prompt", 0)

    assert seed == deterministic_seed("job", "qwen", "en", "prompt", 0)
    assert seed != deterministic_seed("job", "qwen", "en", "prompt", 1)
    assert 0 < seed < 2**31
    assert deterministic_seed() == 0


def test_build_image_requests_fans_out_per_unit():
    payload = make_payload().normalized()

    requests = build_image_requests(
        payload, job_id="job-1", provider="qwen", quantity=2, aspect_ratio="16:9"
    )

    assert len(requests) == 2
    assert [r.variation_index for r in requests] == [0, 1]
    assert all(r.variation_total == 2 for r in requests)
    assert all(r.kind == MediaKind.IMAGE for r in requests)
    assert all(r.aspect_ratio == "16:9" for r in requests)
    assert all(r.negative_prompt == DEFAULT_NEGATIVE_PROMPT for r in requests)
    assert requests[0].seed != requests[1].seed
    assert requests[1].prompt.endswith("Variation #2 for the same campaign.")


def test_source_image_promotes_generate_to_enhance():
    source = SourceImage(asset_id="a1", data=b"img", mime="image/png")

    (request,) = build_image_requests(
        make_payload().normalized(),
        job_id="job-1",
        provider="qwen",
        quantity=1,
        aspect_ratio="1:1",
        source_image=source,
    )

    assert request.workflow.mode == WorkflowMode.ENHANCE
    assert request.source_image is source


@pytest.mark.parametrize(
    "payload,expected",
    [
        ({"prompt": "waves at dusk"}, "waves at dusk"),
        ({"prompt": {"text": "city timelapse"}}, "city timelapse"),
        ({"prompt": {"title": "launch teaser"}}, "launch teaser"),
        ({"prompt": 42}, ""),
        ("not a dict", ""),
    ],
)
def test_extract_video_prompt(payload, expected):
    assert extract_video_prompt(payload) == expected


def test_build_video_requests():
    requests = build_video_requests(
        {"prompt": "waves at dusk", "locale": "es"},
        job_id="job-2",
        provider="gemini",
        quantity=1,
        aspect_ratio="",
    )

    assert len(requests) == 1
    assert requests[0].kind == MediaKind.VIDEO
    assert requests[0].prompt == "waves at dusk"
    assert requests[0].aspect_ratio == "1:1"
    assert requests[0].locale == "es"
