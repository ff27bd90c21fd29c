"""Retry-then-fallback orchestration tests with scripted generators."""

import asyncio

import httpx
import pytest

from brandshot.services.generation.errors import (
    CredentialError,
    PermanentProviderError,
    TransientProviderError,
    classify_error,
    classify_message,
    classify_status,
)
from brandshot.services.generation.orchestrator import FallbackGenerator
from brandshot.services.generation.types import (
    GeneratedAsset,
    GenerationRequest,
    MediaKind,
    Workflow,
    WorkflowMode,
)


class ScriptedGenerator:
    """Generator that replays a list of outcomes and records every request."""

    def __init__(self, name, outcomes):
        self.name = name
        self.outcomes = list(outcomes)
        self.calls: list[GenerationRequest] = []

    async def generate(self, request):
        self.calls.append(request)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome == "hang":
            await asyncio.sleep(10)
        return GeneratedAsset(kind=request.kind, format="image/png", data=b"png", provider=self.name)


def make_request(**overrides):
    fields = dict(
        kind=MediaKind.IMAGE,
        prompt="A sneaker on marble",
        request_id="job-1",
        locale="en",
        quality="high",
        negative_prompt="blurry",
        workflow=Workflow(mode=WorkflowMode.GENERATE, notes="keep it clean"),
        seed=1234,
    )
    fields.update(overrides)
    return GenerationRequest(**fields)


@pytest.mark.asyncio
async def test_primary_success_makes_one_call():
    primary = ScriptedGenerator("qwen", ["ok"])
    fallback = ScriptedGenerator("synthetic", [])

    result = await FallbackGenerator(primary, FallbackGenerator(fallback)).generate(make_request())

    assert result.provider == "qwen"
    assert len(primary.calls) == 1
    assert fallback.calls == []


@pytest.mark.asyncio
async def test_transient_retries_with_simplified_request_then_falls_back():
    """Two transient failures: full call, simplified retry, then the fallback."""
    primary = ScriptedGenerator(
        "qwen",
        [TransientProviderError("upstream 503"), TransientProviderError("upstream 503")],
    )
    fallback = ScriptedGenerator("synthetic", ["ok"])
    request = make_request()

    result = await FallbackGenerator(primary, FallbackGenerator(fallback)).generate(request)

    assert result.provider == "synthetic"
    assert len(primary.calls) == 2
    first, retry = primary.calls
    assert first == request
    assert retry.negative_prompt == ""
    assert retry.quality == ""
    assert retry.locale == ""
    assert retry.seed == 0
    assert retry.workflow == Workflow()
    assert retry.prompt == request.prompt
    # Fallback receives the original request, not the simplified one
    assert fallback.calls == [request]


@pytest.mark.asyncio
async def test_transient_then_success_on_retry():
    primary = ScriptedGenerator("qwen", [TransientProviderError("timeout"), "ok"])
    fallback = ScriptedGenerator("synthetic", [])

    result = await FallbackGenerator(primary, FallbackGenerator(fallback)).generate(make_request())

    assert result.provider == "qwen"
    assert len(primary.calls) == 2
    assert fallback.calls == []


@pytest.mark.asyncio
async def test_simplified_retry_keeps_editing_directives():
    primary = ScriptedGenerator("qwen", [TransientProviderError("timeout"), "ok"])
    workflow = Workflow(mode=WorkflowMode.BACKGROUND, background_theme="beach", notes="soft")

    await FallbackGenerator(primary).generate(make_request(workflow=workflow))

    retry = primary.calls[1]
    assert retry.workflow.mode == WorkflowMode.BACKGROUND
    assert retry.workflow.background_theme == "beach"
    assert retry.workflow.notes == ""


@pytest.mark.asyncio
async def test_credential_error_skips_retry():
    primary = ScriptedGenerator("qwen", [CredentialError("api key is required")])
    fallback = ScriptedGenerator("synthetic", ["ok"])

    result = await FallbackGenerator(primary, FallbackGenerator(fallback)).generate(make_request())

    assert result.provider == "synthetic"
    assert len(primary.calls) == 1
    assert len(fallback.calls) == 1


@pytest.mark.asyncio
async def test_permanent_error_propagates_without_fallback():
    primary = ScriptedGenerator("qwen", [PermanentProviderError("prompt rejected")])
    fallback = ScriptedGenerator("synthetic", ["ok"])

    with pytest.raises(PermanentProviderError):
        await FallbackGenerator(primary, FallbackGenerator(fallback)).generate(make_request())

    assert len(primary.calls) == 1
    assert fallback.calls == []


@pytest.mark.asyncio
async def test_transient_without_fallback_raises_after_retry():
    primary = ScriptedGenerator(
        "synthetic", [TransientProviderError("flaky"), TransientProviderError("flaky")]
    )

    with pytest.raises(TransientProviderError):
        await FallbackGenerator(primary).generate(make_request())

    assert len(primary.calls) == 2


@pytest.mark.asyncio
async def test_chain_walks_multiple_links():
    qwen = ScriptedGenerator("qwen", [CredentialError("missing api key")])
    gemini = ScriptedGenerator("gemini", [CredentialError("missing api key")])
    synthetic = ScriptedGenerator("synthetic", ["ok"])
    chain = FallbackGenerator(qwen, FallbackGenerator(gemini, FallbackGenerator(synthetic)))

    result = await chain.generate(make_request())

    assert chain.chain == ["qwen", "gemini", "synthetic"]
    assert result.provider == "synthetic"


@pytest.mark.asyncio
async def test_timeout_counts_as_transient():
    primary = ScriptedGenerator("qwen", ["hang", "hang"])
    fallback = ScriptedGenerator("synthetic", ["ok"])

    result = await FallbackGenerator(primary, FallbackGenerator(fallback), timeout=0.01).generate(
        make_request()
    )

    assert result.provider == "synthetic"
    assert len(primary.calls) == 2


@pytest.mark.asyncio
async def test_unclassified_exception_is_classified():
    primary = ScriptedGenerator("qwen", [RuntimeError("401 Unauthorized")])
    fallback = ScriptedGenerator("synthetic", ["ok"])

    result = await FallbackGenerator(primary, FallbackGenerator(fallback)).generate(make_request())

    assert result.provider == "synthetic"
    assert len(primary.calls) == 1


@pytest.mark.parametrize(
    "status_code,expected",
    [
        (401, CredentialError),
        (403, CredentialError),
        (408, TransientProviderError),
        (429, TransientProviderError),
        (500, TransientProviderError),
        (503, TransientProviderError),
        (400, PermanentProviderError),
        (422, PermanentProviderError),
    ],
)
def test_classify_status(status_code, expected):
    assert isinstance(classify_status(status_code, "body", "qwen"), expected)


@pytest.mark.parametrize(
    "message,expected",
    [
        ("Request timed out", TransientProviderError),
        ("InternalError.Algo: internal error", TransientProviderError),
        ("rate limit reached", TransientProviderError),
        ("Invalid API key provided", CredentialError),
        ("size must be one of 1328*1328", PermanentProviderError),
    ],
)
def test_classify_message(message, expected):
    assert isinstance(classify_message(message), expected)


def test_classify_error_keeps_provider_errors():
    original = PermanentProviderError("bad", "qwen")
    assert classify_error(original) is original


def test_classify_error_transport_failures():
    assert isinstance(classify_error(asyncio.TimeoutError()), TransientProviderError)
    assert isinstance(
        classify_error(httpx.ReadTimeout("slow"), "qwen"), TransientProviderError
    )
    assert isinstance(
        classify_error(httpx.ConnectError("refused"), "qwen"), TransientProviderError
    )


def test_classify_error_http_status():
    request = httpx.Request("POST", "https://example.test")
    response = httpx.Response(403, request=request, text="denied")
    error = httpx.HTTPStatusError("denied", request=request, response=response)

    classified = classify_error(error, "gemini")

    assert isinstance(classified, CredentialError)
    assert classified.provider == "gemini"
