"""Automatic1111 Stable Diffusion WebUI adapter (local, free, no API key)."""

import base64
from typing import Any

from sakuga.services.providers.base import (
    ADVANCED_PARAMS,
    Capability,
    GeneratedImage,
    GenerationParams,
    GenerationResult,
    ProviderAdapter,
    ProviderCapabilitySet,
    dimensions_for,
)

DEFAULT_URL = "http://localhost:7860"
DEFAULT_SAMPLER = "DPM++ 2M Karras"


class A1111Adapter(ProviderAdapter):
    """Talks to a WebUI instance started with ``--api``."""

    descriptor = ProviderCapabilitySet(
        id="a1111",
        name="Automatic1111 (Local)",
        models=("default",),
        default_model="default",
        capabilities=frozenset(
            {Capability.GENERATE, Capability.EDIT, Capability.INPAINT, Capability.VARIANTS}
        ),
        advanced_params=ADVANCED_PARAMS,
        default_cost=0.0,
        requires_api_key=False,
    )

    @property
    def base_url(self) -> str:
        return (self.settings.a1111_url or DEFAULT_URL).rstrip("/")

    def is_available(self, api_key: str | None) -> bool:
        # Listed only once a WebUI address is configured
        return bool(self.settings.a1111_url)

    def _common(self, params: GenerationParams) -> dict[str, Any]:
        width, height = dimensions_for(params.aspect_ratio)
        return {
            "prompt": params.prompt,
            "negative_prompt": params.negative_prompt or "",
            "seed": params.seed if params.seed is not None else -1,
            "steps": params.steps or 30,
            "cfg_scale": params.cfg_scale if params.cfg_scale is not None else 7,
            "sampler_name": params.sampler or DEFAULT_SAMPLER,
            "width": width,
            "height": height,
            "batch_size": max(params.count, 1),
        }

    async def _call(self, endpoint: str, payload: dict[str, Any]) -> list[GeneratedImage]:
        async with self.http_client() as client:
            response = await self.request(
                client, "POST", f"{self.base_url}/sdapi/v1/{endpoint}", json=payload
            )
        return [
            GeneratedImage(image_data=data, mime_type="image/png")
            for data in response.json().get("images") or []
            if data
        ]

    def _img2img(self, params: GenerationParams) -> dict[str, Any]:
        encoded = base64.b64encode(params.image_data or b"").decode("ascii")
        return {
            **self._common(params),
            "batch_size": 1,
            "init_images": [encoded],
            "denoising_strength": params.strength if params.strength is not None else 0.75,
        }

    async def generate(self, params: GenerationParams, api_key: str | None) -> GenerationResult:
        images = await self._call("txt2img", self._common(params))
        return self.build_result(images, 0.0)

    async def edit(self, params: GenerationParams, api_key: str | None) -> GenerationResult:
        images = await self._call("img2img", self._img2img(params))
        return self.build_result(images[:1], 0.0)

    async def inpaint(self, params: GenerationParams, api_key: str | None) -> GenerationResult:
        payload = {
            **self._img2img(params),
            "mask": base64.b64encode(params.mask_data or b"").decode("ascii"),
            "inpainting_fill": 1,
            "inpaint_full_res": True,
        }
        images = await self._call("img2img", payload)
        return self.build_result(images[:1], 0.0)
