"""Provider adapter tests.

REST adapters run against httpx.MockTransport; SDK-backed adapters get a fake
client injected through their ClientCache. Covered:
- Missing key fails before any network call
- Vendor payload mapping (aspect tokens, pixel sizes, headers)
- Total-batch cost convention
- Vendor errors, empty results and image fetch failures
- Submit-then-poll completion, terminal error and timeout
"""

import base64
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from replicate.exceptions import ModelError

from conftest import PNG_B64
from sakuga.services.exceptions import (
    CredentialMissingError,
    EmptyResultError,
    GenerationTimeoutError,
    UnsupportedOperationError,
    VendorError,
)
from sakuga.services.providers.a1111 import A1111Adapter
from sakuga.services.providers.base import ClientCache, GenerationParams
from sakuga.services.providers.bfl import BflAdapter
from sakuga.services.providers.fal import FalAdapter
from sakuga.services.providers.gemini import GeminiAdapter
from sakuga.services.providers.ideogram import IdeogramAdapter
from sakuga.services.providers.images import fetch_image
from sakuga.services.providers.openai import OpenAIAdapter
from sakuga.services.providers.replicate import ReplicateAdapter, output_url
from sakuga.services.providers.stability import StabilityAdapter
from sakuga.services.providers.together import TogetherAdapter

IMAGE_BYTES = base64.b64decode(PNG_B64)


class Recorder:
    """MockTransport handler that records requests and delegates to a route function."""

    def __init__(self, route):
        self.route = route
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.route(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def calls_to(self, fragment: str) -> list[httpx.Request]:
        return [r for r in self.requests if fragment in str(r.url)]


def image_response() -> httpx.Response:
    return httpx.Response(200, content=IMAGE_BYTES, headers={"content-type": "image/png"})


def never_called(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"Unexpected request to {request.url}")


# Credentials


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "adapter_cls",
    [IdeogramAdapter, FalAdapter, TogetherAdapter, BflAdapter, StabilityAdapter],
)
async def test_missing_key_fails_without_network_call(settings, adapter_cls):
    recorder = Recorder(never_called)
    adapter = adapter_cls(settings, transport=recorder.transport)

    with pytest.raises(CredentialMissingError) as exc_info:
        await adapter.generate(GenerationParams(prompt="a cat"), None)

    assert "API key not configured" in str(exc_info.value)
    assert recorder.requests == []


@pytest.mark.asyncio
@pytest.mark.parametrize("adapter_cls", [OpenAIAdapter, ReplicateAdapter, GeminiAdapter])
async def test_missing_key_never_builds_sdk_client(settings, adapter_cls):
    adapter = adapter_cls(settings)
    factory = MagicMock()
    adapter.clients = ClientCache(factory)

    with pytest.raises(CredentialMissingError):
        await adapter.generate(GenerationParams(prompt="a cat"), "")

    factory.assert_not_called()


def test_client_cache_rebuilds_only_when_key_changes():
    factory = MagicMock(side_effect=lambda key: SimpleNamespace(key=key))
    cache = ClientCache(factory)

    first = cache.get("key-a")
    assert cache.get("key-a") is first
    second = cache.get("key-b")

    assert second.key == "key-b"
    assert factory.call_count == 2


# Synchronous REST adapters


@pytest.mark.asyncio
async def test_together_single_batched_call(settings):
    def route(request):
        return httpx.Response(
            200, json={"data": [{"b64_json": PNG_B64}, {"b64_json": PNG_B64}]}
        )

    recorder = Recorder(route)
    adapter = TogetherAdapter(settings, transport=recorder.transport)

    result = await adapter.generate(
        GenerationParams(prompt="a cat", model="flux-dev", aspect_ratio="16:9", count=2, seed=7),
        "tg-key",
    )

    assert len(recorder.requests) == 1
    request = recorder.requests[0]
    body = json.loads(request.content)
    assert request.headers["authorization"] == "Bearer tg-key"
    assert body["model"] == "black-forest-labs/FLUX.1-dev"
    assert (body["width"], body["height"], body["n"]) == (1344, 768, 2)
    assert body["seed"] == 7
    assert len(result.images) == 2
    assert result.cost == pytest.approx(0.036)


@pytest.mark.asyncio
async def test_together_empty_data_is_a_failure(settings):
    recorder = Recorder(lambda request: httpx.Response(200, json={"data": []}))
    adapter = TogetherAdapter(settings, transport=recorder.transport)

    with pytest.raises(EmptyResultError, match="No image generated"):
        await adapter.generate(GenerationParams(prompt="a cat"), "tg-key")


@pytest.mark.asyncio
async def test_ideogram_maps_aspect_ratio_and_fetches_urls(settings):
    def route(request):
        if request.url.host == "api.ideogram.ai":
            return httpx.Response(200, json={"data": [{"url": "https://cdn.test/img.png"}]})
        return image_response()

    recorder = Recorder(route)
    adapter = IdeogramAdapter(settings, transport=recorder.transport)

    result = await adapter.generate(
        GenerationParams(prompt="a cat", aspect_ratio="16:9", count=2, sampler="ignored"),
        "ideo-key",
    )

    generate_calls = recorder.calls_to("/generate")
    assert len(generate_calls) == 2
    body = json.loads(generate_calls[0].content)["image_request"]
    assert generate_calls[0].headers["api-key"] == "ideo-key"
    assert body["aspect_ratio"] == "ASPECT_16_9"
    assert body["model"] == "V_2"
    assert "sampler" not in body
    assert len(recorder.calls_to("cdn.test")) == 2
    assert result.images[0].image_data == PNG_B64
    assert result.cost == pytest.approx(0.16)


@pytest.mark.asyncio
async def test_vendor_error_message_is_passed_through(settings):
    recorder = Recorder(
        lambda request: httpx.Response(429, json={"error": {"message": "rate limited"}})
    )
    adapter = IdeogramAdapter(settings, transport=recorder.transport)

    with pytest.raises(VendorError) as exc_info:
        await adapter.generate(GenerationParams(prompt="a cat"), "ideo-key")

    assert str(exc_info.value) == "rate limited"
    assert exc_info.value.provider == "ideogram"


@pytest.mark.asyncio
async def test_image_fetch_failure_fails_the_adapter(settings):
    def route(request):
        if request.url.host == "fal.run":
            return httpx.Response(200, json={"images": [{"url": "https://cdn.test/x.png"}]})
        return httpx.Response(404)

    adapter = FalAdapter(settings, transport=Recorder(route).transport)

    with pytest.raises(VendorError, match="Failed to fetch image"):
        await adapter.generate(GenerationParams(prompt="a cat"), "fal-key")


@pytest.mark.asyncio
async def test_fal_generate_and_edit(settings):
    def route(request):
        if request.url.host == "fal.run":
            return httpx.Response(200, json={"images": [{"url": "https://cdn.test/x.png"}]})
        return image_response()

    recorder = Recorder(route)
    adapter = FalAdapter(settings, transport=recorder.transport)

    result = await adapter.generate(
        GenerationParams(prompt="a cat", model="flux-pro", aspect_ratio="9:16"), "fal-key"
    )
    generate_call = recorder.calls_to("fal.run/fal-ai/flux-pro")[0]
    assert generate_call.headers["authorization"] == "Key fal-key"
    assert json.loads(generate_call.content)["image_size"] == "portrait_16_9"
    assert result.cost == pytest.approx(0.05)

    edited = await adapter.edit(
        GenerationParams(prompt="make it blue", image_data=b"raw", mime_type="image/jpeg"),
        "fal-key",
    )
    edit_body = json.loads(recorder.calls_to("image-to-image")[0].content)
    assert edit_body["image_url"] == "data:image/jpeg;base64," + base64.b64encode(b"raw").decode()
    assert edit_body["strength"] == 0.75
    assert edited.cost == pytest.approx(0.025)


@pytest.mark.asyncio
async def test_stability_upscale_picks_endpoint_by_scale(settings):
    recorder = Recorder(lambda request: httpx.Response(200, json={"image": PNG_B64}))
    adapter = StabilityAdapter(settings, transport=recorder.transport)

    fast = await adapter.upscale(GenerationParams(image_data=b"raw", scale=2), "sk-stab")
    conservative = await adapter.upscale(GenerationParams(image_data=b"raw", scale=4), "sk-stab")

    assert recorder.requests[0].url.path.endswith("/upscale/fast")
    assert recorder.requests[1].url.path.endswith("/upscale/conservative")
    assert recorder.requests[0].headers["authorization"] == "Bearer sk-stab"
    assert fast.cost == pytest.approx(0.05)
    assert conservative.cost == pytest.approx(0.25)


@pytest.mark.asyncio
async def test_unsupported_operation_is_rejected(settings):
    adapter = IdeogramAdapter(settings, transport=Recorder(never_called).transport)

    with pytest.raises(UnsupportedOperationError):
        await adapter.edit(GenerationParams(prompt="x", image_data=b"raw"), "ideo-key")


# Submit-then-poll


@pytest.mark.asyncio
async def test_bfl_polls_until_ready(settings):
    statuses = iter(["Pending", "Pending", "Ready"])

    def route(request):
        if request.method == "POST":
            return httpx.Response(200, json={"id": "task-1"})
        if request.url.path == "/v1/get_result":
            status = next(statuses)
            payload = {"status": status}
            if status == "Ready":
                payload["result"] = {"sample": "https://delivery.test/sample.png"}
            return httpx.Response(200, json=payload)
        return image_response()

    recorder = Recorder(route)
    adapter = BflAdapter(settings, transport=recorder.transport, max_poll_attempts=5)

    result = await adapter.generate(GenerationParams(prompt="a cat"), "bfl-key")

    submit = recorder.requests[0]
    assert submit.url.path == "/v1/flux-schnell"
    assert submit.headers["x-key"] == "bfl-key"
    assert len(recorder.calls_to("get_result")) == 3
    assert recorder.calls_to("get_result")[0].url.params["id"] == "task-1"
    assert len(result.images) == 1
    assert result.cost == pytest.approx(0.003)


@pytest.mark.asyncio
async def test_bfl_error_status_fails_immediately(settings):
    def route(request):
        if request.method == "POST":
            return httpx.Response(200, json={"id": "task-1"})
        return httpx.Response(200, json={"status": "Error"})

    recorder = Recorder(route)
    adapter = BflAdapter(settings, transport=recorder.transport, max_poll_attempts=10)

    with pytest.raises(VendorError, match="Error"):
        await adapter.generate(GenerationParams(prompt="a cat"), "bfl-key")

    assert len(recorder.calls_to("get_result")) == 1


@pytest.mark.asyncio
async def test_bfl_times_out_after_max_attempts(settings):
    def route(request):
        if request.method == "POST":
            return httpx.Response(200, json={"id": "task-1"})
        return httpx.Response(200, json={"status": "Pending"})

    recorder = Recorder(route)
    adapter = BflAdapter(settings, transport=recorder.transport)

    with pytest.raises(GenerationTimeoutError, match="Generation timed out"):
        await adapter.generate(GenerationParams(prompt="a cat"), "bfl-key")

    assert len(recorder.calls_to("get_result")) == settings.bfl_max_poll_attempts


# Local WebUI


@pytest.mark.asyncio
async def test_a1111_needs_no_key_and_uses_configured_url(settings):
    local = settings.model_copy(update={"a1111_url": "http://sd.local:7860/"})
    recorder = Recorder(
        lambda request: httpx.Response(200, json={"images": [PNG_B64, PNG_B64]})
    )
    adapter = A1111Adapter(local, transport=recorder.transport)

    result = await adapter.generate(
        GenerationParams(prompt="a cat", count=2, steps=20, sampler="Euler a"), None
    )

    request = recorder.requests[0]
    body = json.loads(request.content)
    assert str(request.url) == "http://sd.local:7860/sdapi/v1/txt2img"
    assert body["batch_size"] == 2
    assert body["steps"] == 20
    assert body["sampler_name"] == "Euler a"
    assert body["seed"] == -1
    assert len(result.images) == 2
    assert result.cost == 0.0
    assert adapter.is_available(None) is True


@pytest.mark.asyncio
async def test_a1111_inpaint_sends_mask(settings):
    recorder = Recorder(lambda request: httpx.Response(200, json={"images": [PNG_B64]}))
    adapter = A1111Adapter(settings, transport=recorder.transport)

    await adapter.inpaint(
        GenerationParams(prompt="a hat", image_data=b"img", mask_data=b"mask"), None
    )

    request = recorder.requests[0]
    body = json.loads(request.content)
    assert str(request.url) == "http://localhost:7860/sdapi/v1/img2img"
    assert body["init_images"] == [base64.b64encode(b"img").decode()]
    assert body["mask"] == base64.b64encode(b"mask").decode()
    assert body["inpainting_fill"] == 1
    assert adapter.is_available(None) is False


# SDK adapters


@pytest.mark.asyncio
async def test_openai_dalle3_issues_one_call_per_image(settings):
    client = SimpleNamespace(
        images=SimpleNamespace(
            generate=AsyncMock(return_value=SimpleNamespace(data=[SimpleNamespace(b64_json=PNG_B64)]))
        )
    )
    adapter = OpenAIAdapter(settings)
    adapter.clients = ClientCache(lambda key: client)

    result = await adapter.generate(
        GenerationParams(prompt="a cat", aspect_ratio="16:9", count=2), "sk-test"
    )

    assert client.images.generate.await_count == 2
    kwargs = client.images.generate.await_args.kwargs
    assert kwargs["model"] == "dall-e-3"
    assert kwargs["size"] == "1792x1024"
    assert kwargs["n"] == 1
    assert result.cost == pytest.approx(0.08)


@pytest.mark.asyncio
async def test_gemini_encodes_inline_bytes(settings):
    part = SimpleNamespace(inline_data=SimpleNamespace(data=IMAGE_BYTES, mime_type="image/png"))
    response = SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))])
    generate_content = AsyncMock(return_value=response)
    client = SimpleNamespace(aio=SimpleNamespace(models=SimpleNamespace(generate_content=generate_content)))
    adapter = GeminiAdapter(settings)
    adapter.clients = ClientCache(lambda key: client)

    result = await adapter.generate(GenerationParams(prompt="a cat", count=3), "gem-key")

    assert generate_content.await_count == 3
    assert [image.image_data for image in result.images] == [PNG_B64] * 3
    assert result.cost == pytest.approx(0.06)


@pytest.mark.asyncio
async def test_replicate_fetches_output_url(settings):
    recorder = Recorder(lambda request: image_response())
    client = SimpleNamespace(async_run=AsyncMock(return_value=["https://replicate.test/out.png"]))
    adapter = ReplicateAdapter(settings, transport=recorder.transport)
    adapter.clients = ClientCache(lambda key: client)

    result = await adapter.generate(GenerationParams(prompt="a cat", count=2), "r8-key")

    assert client.async_run.await_count == 2
    assert client.async_run.await_args.args[0] == "black-forest-labs/flux-schnell"
    assert len(recorder.requests) == 2
    assert result.cost == pytest.approx(0.006)


def test_output_url_handles_model_output_shapes():
    assert output_url(["https://a.test/1.png", "https://a.test/2.png"]) == "https://a.test/1.png"
    assert output_url("https://a.test/1.png") == "https://a.test/1.png"
    assert output_url(SimpleNamespace(url="https://a.test/f.png")) == "https://a.test/f.png"
    assert output_url([]) == ""
    assert output_url(None) == ""


@pytest.mark.asyncio
async def test_replicate_failed_prediction_becomes_vendor_error(settings):
    prediction = SimpleNamespace(error="NSFW content detected")
    client = SimpleNamespace(async_run=AsyncMock(side_effect=ModelError(prediction)))
    adapter = ReplicateAdapter(settings, transport=Recorder(never_called).transport)
    adapter.clients = ClientCache(lambda key: client)

    with pytest.raises(VendorError, match="NSFW content detected") as exc_info:
        await adapter.generate(GenerationParams(prompt="a cat"), "r8-key")

    assert exc_info.value.provider == "replicate"


@pytest.mark.asyncio
async def test_replicate_connection_failure_becomes_vendor_error(settings):
    client = SimpleNamespace(async_run=AsyncMock(side_effect=httpx.ConnectError("down")))
    adapter = ReplicateAdapter(settings, transport=Recorder(never_called).transport)
    adapter.clients = ClientCache(lambda key: client)

    with pytest.raises(VendorError, match="Network error: down"):
        await adapter.generate(GenerationParams(prompt="a cat"), "r8-key")


@pytest.mark.asyncio
async def test_openai_transport_failure_becomes_vendor_error(settings):
    client = SimpleNamespace(
        images=SimpleNamespace(generate=AsyncMock(side_effect=httpx.ReadTimeout("slow")))
    )
    adapter = OpenAIAdapter(settings)
    adapter.clients = ClientCache(lambda key: client)

    with pytest.raises(VendorError, match="Request timed out: slow"):
        await adapter.generate(GenerationParams(prompt="a cat"), "sk-test")


@pytest.mark.asyncio
async def test_gemini_transport_failure_becomes_vendor_error(settings):
    generate_content = AsyncMock(side_effect=httpx.ConnectError("refused"))
    client = SimpleNamespace(aio=SimpleNamespace(models=SimpleNamespace(generate_content=generate_content)))
    adapter = GeminiAdapter(settings)
    adapter.clients = ClientCache(lambda key: client)

    with pytest.raises(VendorError, match="Network error: refused"):
        await adapter.generate(GenerationParams(prompt="a cat"), "gem-key")


def test_sdk_clients_get_provider_timeout(settings, monkeypatch):
    replicate_client = MagicMock()
    genai_client = MagicMock()
    monkeypatch.setattr("sakuga.services.providers.replicate.replicate.Client", replicate_client)
    monkeypatch.setattr("sakuga.services.providers.gemini.genai.Client", genai_client)
    slow = settings.model_copy(update={"provider_timeout_seconds": 45.0})

    ReplicateAdapter(slow).clients.get("r8-key")
    GeminiAdapter(slow).clients.get("gem-key")

    replicate_kwargs = replicate_client.call_args.kwargs
    assert replicate_kwargs["api_token"] == "r8-key"
    assert replicate_kwargs["timeout"].read == 45.0
    genai_kwargs = genai_client.call_args.kwargs
    assert genai_kwargs["api_key"] == "gem-key"
    assert genai_kwargs["http_options"].timeout == 45000


# Shared fetch helper


@pytest.mark.asyncio
async def test_fetch_image_decodes_data_uri_without_network():
    recorder = Recorder(never_called)
    async with httpx.AsyncClient(transport=recorder.transport) as client:
        image = await fetch_image(client, f"data:image/webp;base64,{PNG_B64}")

    assert image.image_data == PNG_B64
    assert image.mime_type == "image/webp"
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_fetch_image_network_error_becomes_vendor_error():
    def route(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=Recorder(route).transport) as client:
        with pytest.raises(VendorError, match="Failed to fetch image"):
            await fetch_image(client, "https://cdn.test/x.png", provider="fal")
