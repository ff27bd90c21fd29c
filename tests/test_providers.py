"""Provider generator tests against mocked HTTP transports."""

import base64
import io
import json

import httpx
import pytest
from PIL import Image

from brandshot.services.generation.errors import (
    CredentialError,
    PermanentProviderError,
    TransientProviderError,
)
from brandshot.services.generation.gemini_client import (
    GeminiClient,
    GeminiImageGenerator,
    GeminiVideoGenerator,
)
from brandshot.services.generation.qwen_client import QwenGenerator, aspect_ratio_size
from brandshot.services.generation.replicate_client import ReplicateGenerator
from brandshot.services.generation.synthetic import (
    SyntheticGenerator,
    estimate_video_length,
    normalize_aspect,
)
from brandshot.services.generation.types import (
    GenerationRequest,
    MediaKind,
    SourceImage,
    Workflow,
    WorkflowMode,
)

IMAGE_URL = "https://cdn.example.test/out.png"


def png_bytes(width=4, height=3) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), (200, 10, 10)).save(buffer, format="PNG")
    return buffer.getvalue()


def image_request(**overrides) -> GenerationRequest:
    fields = dict(
        kind=MediaKind.IMAGE,
        prompt="Citrus soda on a marble counter",
        aspect_ratio="16:9",
        request_id="job-1",
        locale="en",
        quality="high",
        negative_prompt="blurry",
        seed=42,
    )
    fields.update(overrides)
    return GenerationRequest(**fields)


def qwen_handler(captured: list, generation_response: httpx.Response):
    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        if request.url.path.endswith("/services/aigc/multimodal-generation/generation"):
            return generation_response
        if str(request.url) == IMAGE_URL:
            return httpx.Response(200, content=png_bytes(), headers={"content-type": "image/png"})
        return httpx.Response(404)

    return handler


def qwen_success_body() -> dict:
    return {
        "request_id": "req-1",
        "output": {"choices": [{"message": {"content": [{"image": IMAGE_URL}]}}]},
        "usage": {"width": 1664, "height": 928},
    }


@pytest.mark.asyncio
async def test_qwen_generates_and_downloads_image():
    captured: list[httpx.Request] = []
    transport = httpx.MockTransport(
        qwen_handler(captured, httpx.Response(200, json=qwen_success_body()))
    )
    async with httpx.AsyncClient(transport=transport) as client:
        generator = QwenGenerator(client, api_key="sk-test", base_url="https://qwen.test/api/v1")
        asset = await generator.generate(image_request())

    assert asset.provider == "qwen"
    assert asset.url == IMAGE_URL
    assert asset.format == "image/png"
    assert (asset.width, asset.height) == (1664, 928)
    assert asset.data.startswith(b"\x89PNG")

    post = captured[0]
    assert post.headers["Authorization"] == "Bearer sk-test"
    body = json.loads(post.content)
    assert body["model"] == "qwen-image-plus"
    assert body["parameters"]["size"] == "1664*928"
    assert body["parameters"]["negative_prompt"] == "blurry"
    assert body["parameters"]["seed"] == 42
    assert body["input"]["messages"][0]["content"] == [
        {"text": "Citrus soda on a marble counter"}
    ]


def test_qwen_payload_carries_source_image_and_workflow():
    generator = QwenGenerator(httpx.AsyncClient(), api_key="sk-test", default_size="1024*1024")
    request = image_request(
        aspect_ratio="5:4",
        seed=0,
        negative_prompt="",
        workflow=Workflow(mode=WorkflowMode.BACKGROUND, background_theme="beach"),
        source_image=SourceImage(data=b"raw", mime="image/jpeg", filename="shot.jpg", width=10),
    )

    payload = generator.build_payload(request)

    content = payload["input"]["messages"][0]["content"]
    assert content[0]["image"]["format"] == "jpeg"
    assert content[0]["image"]["image_bytes"] == base64.b64encode(b"raw").decode()
    assert content[0]["image"]["width"] == 10
    assert content[1] == {"text": request.prompt}
    parameters = payload["parameters"]
    assert parameters["size"] == "1024*1024"
    assert "seed" not in parameters
    assert "negative_prompt" not in parameters
    assert parameters["workflow"] == {"mode": "background", "background_theme": "beach"}


@pytest.mark.asyncio
async def test_qwen_without_key_raises_credential_error():
    generator = QwenGenerator(httpx.AsyncClient(), api_key="  ")

    with pytest.raises(CredentialError):
        await generator.generate(image_request())


@pytest.mark.asyncio
async def test_qwen_rejects_video_requests():
    generator = QwenGenerator(httpx.AsyncClient(), api_key="sk-test")

    with pytest.raises(PermanentProviderError):
        await generator.generate(image_request(kind=MediaKind.VIDEO))


@pytest.mark.parametrize(
    "response,expected",
    [
        (httpx.Response(401, json={"code": "InvalidApiKey", "message": "bad key"}), CredentialError),
        (httpx.Response(503, text="unavailable"), TransientProviderError),
        (
            httpx.Response(400, json={"code": "InvalidParameter", "message": "size invalid"}),
            PermanentProviderError,
        ),
        (
            httpx.Response(200, json={"code": "InternalError", "message": "internal error"}),
            TransientProviderError,
        ),
        (httpx.Response(200, json={"output": {"choices": []}}), PermanentProviderError),
    ],
)
@pytest.mark.asyncio
async def test_qwen_error_classification(response, expected):
    transport = httpx.MockTransport(qwen_handler([], response))
    async with httpx.AsyncClient(transport=transport) as client:
        generator = QwenGenerator(client, api_key="sk-test")
        with pytest.raises(expected):
            await generator.generate(image_request())


@pytest.mark.asyncio
async def test_qwen_timeout_is_transient():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        generator = QwenGenerator(client, api_key="sk-test")
        with pytest.raises(TransientProviderError):
            await generator.generate(image_request())


def test_aspect_ratio_size():
    assert aspect_ratio_size("1:1") == "1328*1328"
    assert aspect_ratio_size("9:16") == "928*1664"
    assert aspect_ratio_size("21:9") is None


@pytest.mark.asyncio
async def test_gemini_image_decodes_inline_data():
    encoded = base64.b64encode(png_bytes(8, 6)).decode()
    captured: list[httpx.Request] = []

    def handler(request):
        captured.append(request)
        return httpx.Response(
            200,
            json={
                "candidates": [
                    {"content": {"parts": [{"inlineData": {"mimeType": "image/png", "data": encoded}}]}}
                ]
            },
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        gemini = GeminiClient(client, api_key="g-key", base_url="https://gemini.test/v1beta")
        asset = await GeminiImageGenerator(gemini).generate(image_request())

    assert asset.provider == "gemini"
    assert asset.format == "image/png"
    assert (asset.width, asset.height) == (8, 6)
    assert captured[0].url.path == "/v1beta/models/gemini-2.5-flash:generateContent"
    assert captured[0].url.params["key"] == "g-key"
    prompt = json.loads(captured[0].content)["contents"][0]["parts"][0]["text"]
    assert "Aspect ratio: 16:9" in prompt


@pytest.mark.asyncio
async def test_gemini_video_downloads_file_uri():
    def handler(request):
        if request.url.path.endswith(":generateContent"):
            return httpx.Response(
                200,
                json={
                    "candidates": [
                        {
                            "content": {
                                "parts": [
                                    {
                                        "fileData": {
                                            "mimeType": "video/mp4",
                                            "fileUri": "https://files.example.test/clip.mp4",
                                        }
                                    }
                                ]
                            }
                        }
                    ]
                },
            )
        return httpx.Response(200, content=b"mp4-bytes", headers={"content-type": "video/mp4"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        gemini = GeminiClient(client, api_key="g-key")
        asset = await GeminiVideoGenerator(gemini).generate(
            image_request(kind=MediaKind.VIDEO, prompt="waves at dusk")
        )

    assert asset.kind == MediaKind.VIDEO
    assert asset.data == b"mp4-bytes"
    assert asset.url == "https://files.example.test/clip.mp4"
    assert (asset.width, asset.height) == (1920, 1080)
    assert asset.length_seconds == 8


@pytest.mark.asyncio
async def test_gemini_without_key_raises_credential_error():
    gemini = GeminiClient(httpx.AsyncClient(), api_key="")

    with pytest.raises(CredentialError):
        await GeminiImageGenerator(gemini).generate(image_request())


@pytest.mark.asyncio
async def test_gemini_empty_response_is_permanent():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"candidates": []}))
    async with httpx.AsyncClient(transport=transport) as client:
        gemini = GeminiClient(client, api_key="g-key")
        with pytest.raises(PermanentProviderError):
            await GeminiImageGenerator(gemini).generate(image_request())


@pytest.mark.asyncio
async def test_replicate_without_token_raises_credential_error():
    with pytest.raises(CredentialError, match="REPLICATE_API_TOKEN"):
        await ReplicateGenerator("").generate(image_request())


@pytest.mark.asyncio
async def test_synthetic_image_is_deterministic_png():
    generator = SyntheticGenerator()
    request = image_request(aspect_ratio="9:16")

    first = await generator.generate(request)
    second = await generator.generate(request)

    assert first.data == second.data
    assert first.format == "image/png"
    assert first.provider == "synthetic"
    assert (first.width, first.height) == (1080, 1920)
    with Image.open(io.BytesIO(first.data)) as img:
        assert img.size == (1080, 1920)


@pytest.mark.asyncio
async def test_synthetic_variations_differ():
    generator = SyntheticGenerator()

    first = await generator.generate(image_request(aspect_ratio="1:1", variation_index=0))
    second = await generator.generate(image_request(aspect_ratio="1:1", variation_index=1))

    assert first.data != second.data


@pytest.mark.asyncio
async def test_synthetic_video_placeholder():
    asset = await SyntheticGenerator().generate(
        image_request(kind=MediaKind.VIDEO, prompt="waves at dusk")
    )

    assert asset.format == "video/mp4"
    assert (asset.width, asset.height) == (1920, 1080)
    assert asset.length_seconds == 8
    assert b"waves at dusk" in asset.data


@pytest.mark.parametrize(
    "aspect,expected",
    [
        ("16:9", (1920, 1080)),
        ("square", (1024, 1024)),
        ("", (1024, 1024)),
        ("2:1", (1024, 512)),
        ("banana", (1024, 1024)),
        ("0:5", (1024, 1024)),
    ],
)
def test_normalize_aspect(aspect, expected):
    assert normalize_aspect(aspect) == expected


@pytest.mark.parametrize(
    "prompt,expected",
    [("", 12), ("one two three", 8), (" ".join(["word"] * 90), 30), (" ".join(["w"] * 300), 45)],
)
def test_estimate_video_length(prompt, expected):
    assert estimate_video_length(prompt) == expected
