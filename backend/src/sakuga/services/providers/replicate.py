"""Replicate adapter (official SDK) for FLUX / SDXL generation and Real-ESRGAN upscaling."""

import base64
from typing import Any

import httpx
import replicate
from replicate.exceptions import ReplicateException

from sakuga.core.config import Settings
from sakuga.services.exceptions import VendorError
from sakuga.services.providers.base import (
    Capability,
    ClientCache,
    GenerationParams,
    GenerationResult,
    ProviderAdapter,
    ProviderCapabilitySet,
)
from sakuga.services.providers.images import fetch_image

MODELS = {
    "flux-pro": "black-forest-labs/flux-pro",
    "flux-schnell": "black-forest-labs/flux-schnell",
    "sdxl": "stability-ai/sdxl:39ed52f2a78e934b3ba6e2a89f5b1c712de7dfea535525255b1aa35c5565e08b",
}

UPSCALER = (
    "nightmareai/real-esrgan:f121d640bd286e1fdc67f9799164c1d5be36ff74576ee11c803ae5b665dd46aa"
)
UPSCALE_COST = 0.01


def output_url(output: Any) -> str:
    """Extract the first image URL from a model output (format varies by model).

    Outputs are URL strings, FileOutput objects (str() gives the URL) or lists of either.
    """
    if isinstance(output, (list, tuple)):
        if not output:
            return ""
        output = output[0]
    if output is None:
        return ""
    return str(getattr(output, "url", None) or output)


class ReplicateAdapter(ProviderAdapter):
    """Runs hosted models on Replicate; outputs are downloaded from the Replicate CDN."""

    descriptor = ProviderCapabilitySet(
        id="replicate",
        name="Replicate",
        models=tuple(MODELS),
        default_model="flux-schnell",
        capabilities=frozenset({Capability.GENERATE, Capability.UPSCALE, Capability.VARIANTS}),
        advanced_params=frozenset({"seed"}),
        costs={"flux-pro": 0.055, "flux-schnell": 0.003, "sdxl": 0.002},
        default_cost=0.003,
        settings_key="replicate_api_token",
    )

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(settings, transport)
        self.clients: ClientCache[replicate.Client] = ClientCache(
            lambda api_key: replicate.Client(
                api_token=api_key,
                timeout=httpx.Timeout(settings.provider_timeout_seconds),
            )
        )

    async def _run(self, api_key: str, model_ref: str, model_input: dict[str, Any]) -> str:
        client = self.clients.get(api_key)
        try:
            output = await client.async_run(model_ref, input=model_input)
        except ReplicateException as e:
            # ModelError (failed prediction) and ReplicateError (API) share this base
            raise VendorError(str(e) or "Replicate prediction failed", provider=self.id) from e
        except httpx.HTTPError as e:
            raise self.transport_error(e) from e
        return output_url(output)

    async def generate(self, params: GenerationParams, api_key: str | None) -> GenerationResult:
        key = self.require_key(api_key)
        model = params.model if params.model in MODELS else "flux-schnell"
        model_input: dict[str, Any] = {
            "prompt": params.prompt,
            "aspect_ratio": params.aspect_ratio or "1:1",
            "output_format": "png",
            "num_outputs": 1,
        }
        if params.seed is not None:
            model_input["seed"] = params.seed

        images = []
        async with self.http_client() as http:
            for _ in range(max(params.count, 1)):
                url = await self._run(key, MODELS[model], model_input)
                if url:
                    images.append(await fetch_image(http, url, provider=self.id))

        return self.build_result(images, self.cost(model, len(images)))

    async def upscale(self, params: GenerationParams, api_key: str | None) -> GenerationResult:
        key = self.require_key(api_key)
        encoded = base64.b64encode(params.image_data or b"").decode("ascii")
        url = await self._run(
            key,
            UPSCALER,
            {
                "image": f"data:{params.mime_type};base64,{encoded}",
                "scale": params.scale,
                "face_enhance": False,
            },
        )
        images = []
        if url:
            async with self.http_client() as http:
                images.append(await fetch_image(http, url, provider=self.id))
        return self.build_result(images, UPSCALE_COST)
