"""OpenAI DALL-E adapter (official SDK)."""

import asyncio

import httpx
import openai
from openai import AsyncOpenAI

from sakuga.core.config import Settings
from sakuga.services.exceptions import EmptyResultError, VendorError
from sakuga.services.providers.base import (
    PROMPT_ENHANCE_INSTRUCTIONS,
    Capability,
    ClientCache,
    GeneratedImage,
    GenerationParams,
    GenerationResult,
    ProviderAdapter,
    ProviderCapabilitySet,
)

# DALL-E 3 only has square, wide and tall sizes
DALLE3_SIZES = {
    "1:1": "1024x1024",
    "16:9": "1792x1024",
    "4:3": "1792x1024",
    "3:2": "1792x1024",
    "9:16": "1024x1792",
    "3:4": "1024x1792",
    "2:3": "1024x1792",
}

EDIT_COST = 0.02
ENHANCE_MODEL = "gpt-4o-mini"


class OpenAIAdapter(ProviderAdapter):
    """DALL-E 3 / DALL-E 2 generation and DALL-E 2 edits."""

    descriptor = ProviderCapabilitySet(
        id="openai",
        name="OpenAI DALL-E",
        models=("dall-e-3", "dall-e-2"),
        default_model="dall-e-3",
        capabilities=frozenset({Capability.GENERATE, Capability.EDIT, Capability.VARIANTS}),
        costs={"dall-e-3": 0.04, "dall-e-2": 0.02},
        default_cost=0.04,
        settings_key="openai_api_key",
    )

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(settings, transport)
        self.clients: ClientCache[AsyncOpenAI] = ClientCache(self._create_client)

    def _create_client(self, api_key: str) -> AsyncOpenAI:
        http_client = httpx.AsyncClient(transport=self.transport) if self.transport else None
        return AsyncOpenAI(
            api_key=api_key,
            timeout=self.settings.provider_timeout_seconds,
            http_client=http_client,
        )

    @staticmethod
    def _size(model: str, aspect_ratio: str | None) -> str:
        if model == "dall-e-3":
            return DALLE3_SIZES.get(aspect_ratio or "1:1", "1024x1024")
        return "1024x1024"

    async def _images_generate(self, client: AsyncOpenAI, **kwargs) -> list[GeneratedImage]:
        try:
            response = await client.images.generate(response_format="b64_json", **kwargs)
        except openai.APIError as e:
            raise VendorError(e.message or str(e), provider=self.id) from e
        except httpx.HTTPError as e:
            raise self.transport_error(e) from e
        return [
            GeneratedImage(image_data=item.b64_json, mime_type="image/png")
            for item in response.data or []
            if item.b64_json
        ]

    async def generate(self, params: GenerationParams, api_key: str | None) -> GenerationResult:
        client = self.clients.get(self.require_key(api_key))
        model = params.model or "dall-e-3"
        size = self._size(model, params.aspect_ratio)

        if model == "dall-e-3":
            # DALL-E 3 generates one image per call
            batches = await asyncio.gather(
                *[
                    self._images_generate(client, model=model, prompt=params.prompt, n=1, size=size)
                    for _ in range(max(params.count, 1))
                ]
            )
            images = [image for batch in batches for image in batch]
        else:
            images = await self._images_generate(
                client, model=model, prompt=params.prompt, n=min(params.count, 4), size=size
            )

        return self.build_result(images, self.cost(model, len(images)))

    async def edit(self, params: GenerationParams, api_key: str | None) -> GenerationResult:
        client = self.clients.get(self.require_key(api_key))
        try:
            response = await client.images.edit(
                model="dall-e-2",
                image=("image.png", params.image_data or b"", params.mime_type),
                prompt=params.prompt,
                n=1,
                size="1024x1024",
                response_format="b64_json",
            )
        except openai.APIError as e:
            raise VendorError(e.message or str(e), provider=self.id) from e
        except httpx.HTTPError as e:
            raise self.transport_error(e) from e

        images = [
            GeneratedImage(image_data=item.b64_json, mime_type="image/png")
            for item in response.data or []
            if item.b64_json
        ]
        return self.build_result(images[:1], EDIT_COST)

    async def enhance_prompt(self, prompt: str, api_key: str | None) -> str:
        client = self.clients.get(self.require_key(api_key))
        try:
            response = await client.chat.completions.create(
                model=ENHANCE_MODEL,
                messages=[
                    {"role": "system", "content": PROMPT_ENHANCE_INSTRUCTIONS},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=500,
            )
        except openai.APIError as e:
            raise VendorError(e.message or str(e), provider=self.id) from e
        except httpx.HTTPError as e:
            raise self.transport_error(e) from e

        enhanced = (response.choices[0].message.content or "").strip() if response.choices else ""
        if not enhanced:
            raise EmptyResultError("No enhanced prompt returned", provider=self.id)
        return enhanced
