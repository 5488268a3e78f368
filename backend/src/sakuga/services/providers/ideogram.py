"""Ideogram adapter (REST, URL outputs)."""

from typing import Any

from sakuga.services.providers.base import (
    Capability,
    GenerationParams,
    GenerationResult,
    ProviderAdapter,
    ProviderCapabilitySet,
)
from sakuga.services.providers.images import fetch_image

API_URL = "https://api.ideogram.ai"

ASPECT_RATIOS = {
    "1:1": "ASPECT_1_1",
    "16:9": "ASPECT_16_9",
    "9:16": "ASPECT_9_16",
    "4:3": "ASPECT_4_3",
    "3:4": "ASPECT_3_4",
    "3:2": "ASPECT_3_2",
    "2:3": "ASPECT_2_3",
}


class IdeogramAdapter(ProviderAdapter):
    """Ideogram text-to-image; one request per image."""

    descriptor = ProviderCapabilitySet(
        id="ideogram",
        name="Ideogram",
        models=("V_2", "V_2_TURBO", "V_1", "V_1_TURBO"),
        default_model="V_2",
        capabilities=frozenset({Capability.GENERATE, Capability.VARIANTS}),
        advanced_params=frozenset({"seed", "negative_prompt"}),
        costs={"V_2": 0.08, "V_2_TURBO": 0.05, "V_1": 0.02, "V_1_TURBO": 0.01},
        default_cost=0.08,
        settings_key="ideogram_api_key",
    )

    async def generate(self, params: GenerationParams, api_key: str | None) -> GenerationResult:
        key = self.require_key(api_key)
        model = params.model or "V_2"

        image_request: dict[str, Any] = {
            "prompt": params.prompt,
            "model": model,
            "aspect_ratio": ASPECT_RATIOS.get(params.aspect_ratio or "1:1", "ASPECT_1_1"),
            "magic_prompt_option": "AUTO",
        }
        if params.seed is not None:
            image_request["seed"] = params.seed
        if params.negative_prompt:
            image_request["negative_prompt"] = params.negative_prompt

        images = []
        async with self.http_client() as client:
            for _ in range(max(params.count, 1)):
                response = await self.request(
                    client,
                    "POST",
                    f"{API_URL}/generate",
                    headers={"Api-Key": key},
                    json={"image_request": image_request},
                )
                data = response.json().get("data") or []
                if data and data[0].get("url"):
                    images.append(await fetch_image(client, data[0]["url"], provider=self.id))

        return self.build_result(images, self.cost(model, len(images)))
