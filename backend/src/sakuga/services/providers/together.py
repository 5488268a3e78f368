"""Together AI adapter (OpenAI-compatible images endpoint, base64 outputs)."""

from typing import Any

from sakuga.services.providers.base import (
    Capability,
    GeneratedImage,
    GenerationParams,
    GenerationResult,
    ProviderAdapter,
    ProviderCapabilitySet,
    dimensions_for,
)

API_URL = "https://api.together.xyz/v1/images/generations"

MODELS = {
    "flux-schnell": "black-forest-labs/FLUX.1-schnell-Free",
    "flux-dev": "black-forest-labs/FLUX.1-dev",
}


class TogetherAdapter(ProviderAdapter):
    """Together AI FLUX models; the whole batch is one request."""

    descriptor = ProviderCapabilitySet(
        id="together",
        name="Together AI",
        models=tuple(MODELS),
        default_model="flux-schnell",
        capabilities=frozenset({Capability.GENERATE, Capability.VARIANTS}),
        advanced_params=frozenset({"seed", "steps", "negative_prompt"}),
        costs={"flux-schnell": 0.003, "flux-dev": 0.018},
        default_cost=0.003,
        settings_key="together_api_key",
    )

    async def generate(self, params: GenerationParams, api_key: str | None) -> GenerationResult:
        key = self.require_key(api_key)
        model = params.model if params.model in MODELS else "flux-schnell"
        width, height = dimensions_for(params.aspect_ratio)

        payload: dict[str, Any] = {
            "model": MODELS[model],
            "prompt": params.prompt,
            "n": max(params.count, 1),
            "width": width,
            "height": height,
            "response_format": "b64_json",
        }
        if params.seed is not None:
            payload["seed"] = params.seed
        if params.steps is not None:
            payload["steps"] = params.steps
        if params.negative_prompt:
            payload["negative_prompt"] = params.negative_prompt

        async with self.http_client() as client:
            response = await self.request(
                client,
                "POST",
                API_URL,
                headers={"Authorization": f"Bearer {key}"},
                json=payload,
            )

        images = [
            GeneratedImage(image_data=item["b64_json"], mime_type="image/png")
            for item in response.json().get("data") or []
            if item.get("b64_json")
        ]
        return self.build_result(images, self.cost(model, len(images)))
