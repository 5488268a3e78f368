"""Google Gemini native image generation adapter (google-genai SDK)."""

import asyncio
import base64
from typing import Any

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

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

MODEL_NAME = "gemini-2.0-flash-exp-image-generation"
COST_PER_IMAGE = 0.02
ENHANCE_MODEL = "gemini-2.0-flash"


def extract_images(response: Any) -> list[GeneratedImage]:
    """Collect inline image parts from a generate_content response."""
    images = []
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            if not inline or not inline.data:
                continue
            data = inline.data
            if isinstance(data, (bytes, bytearray)):
                data = base64.b64encode(bytes(data)).decode("ascii")
            images.append(GeneratedImage(image_data=data, mime_type=inline.mime_type or "image/png"))
    return images


class GeminiAdapter(ProviderAdapter):
    """Text-to-image and image editing through Gemini's multimodal output."""

    descriptor = ProviderCapabilitySet(
        id="gemini",
        name="Google Gemini",
        models=(MODEL_NAME,),
        default_model=MODEL_NAME,
        capabilities=frozenset({Capability.GENERATE, Capability.EDIT}),
        costs={MODEL_NAME: COST_PER_IMAGE},
        default_cost=COST_PER_IMAGE,
        settings_key="gemini_api_key",
    )

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(settings, transport)
        self.clients: ClientCache[genai.Client] = ClientCache(
            lambda api_key: genai.Client(
                api_key=api_key,
                # HttpOptions.timeout is in milliseconds
                http_options=genai_types.HttpOptions(
                    timeout=int(settings.provider_timeout_seconds * 1000)
                ),
            )
        )

    async def _generate_content(self, client: genai.Client, contents: Any) -> list[GeneratedImage]:
        try:
            response = await client.aio.models.generate_content(
                model=MODEL_NAME,
                contents=contents,
                config=genai_types.GenerateContentConfig(response_modalities=["TEXT", "IMAGE"]),
            )
        except genai_errors.APIError as e:
            raise VendorError(e.message or str(e), provider=self.id) from e
        except httpx.HTTPError as e:
            raise self.transport_error(e) from e
        return extract_images(response)

    async def generate(self, params: GenerationParams, api_key: str | None) -> GenerationResult:
        client = self.clients.get(self.require_key(api_key))
        batches = await asyncio.gather(
            *[self._generate_content(client, params.prompt) for _ in range(max(params.count, 1))]
        )
        # Keep the first image of each response
        images = [batch[0] for batch in batches if batch]
        return self.build_result(images, self.cost(MODEL_NAME, len(images)))

    async def edit(self, params: GenerationParams, api_key: str | None) -> GenerationResult:
        client = self.clients.get(self.require_key(api_key))
        images = await self._generate_content(
            client,
            [
                params.prompt,
                genai_types.Part.from_bytes(
                    data=params.image_data or b"", mime_type=params.mime_type
                ),
            ],
        )
        return self.build_result(images[:1], COST_PER_IMAGE)

    async def enhance_prompt(self, prompt: str, api_key: str | None) -> str:
        client = self.clients.get(self.require_key(api_key))
        try:
            response = await client.aio.models.generate_content(
                model=ENHANCE_MODEL,
                contents=f"{PROMPT_ENHANCE_INSTRUCTIONS}\n\nOriginal prompt: {prompt}",
            )
        except genai_errors.APIError as e:
            raise VendorError(e.message or str(e), provider=self.id) from e
        except httpx.HTTPError as e:
            raise self.transport_error(e) from e

        enhanced = (response.text or "").strip()
        if not enhanced:
            raise EmptyResultError("No enhanced prompt returned", provider=self.id)
        return enhanced
