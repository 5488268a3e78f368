"""Stability AI adapter (REST v2beta, multipart form-data)."""

from typing import Any

from sakuga.services.providers.base import (
    Capability,
    GeneratedImage,
    GenerationParams,
    GenerationResult,
    ProviderAdapter,
    ProviderCapabilitySet,
)

API_HOST = "https://api.stability.ai"

EDIT_COST = 0.004
INPAINT_COST = 0.004
UPSCALE_COSTS = {2: 0.05, 4: 0.25}


class StabilityAdapter(ProviderAdapter):
    """Stable Diffusion 3 generation, image-to-image, inpainting and upscaling."""

    descriptor = ProviderCapabilitySet(
        id="stability",
        name="Stability AI",
        models=("sd3-large", "sd3-large-turbo", "sd3-medium"),
        default_model="sd3-large",
        capabilities=frozenset(
            {
                Capability.GENERATE,
                Capability.EDIT,
                Capability.INPAINT,
                Capability.UPSCALE,
                Capability.VARIANTS,
            }
        ),
        advanced_params=frozenset({"seed", "negative_prompt"}),
        costs={"sd3-large": 0.065, "sd3-large-turbo": 0.04, "sd3-medium": 0.035},
        default_cost=0.004,
        settings_key="stability_api_key",
    )

    async def _call(
        self,
        api_key: str,
        endpoint: str,
        data: dict[str, Any],
        files: dict[str, Any] | None = None,
    ) -> GeneratedImage | None:
        # The v2beta API only accepts multipart bodies, even without file parts
        form_files = files or {"none": ("", b"")}
        form_data = {k: str(v) for k, v in data.items() if v is not None}
        async with self.http_client() as client:
            response = await self.request(
                client,
                "POST",
                f"{API_HOST}{endpoint}",
                headers={"Authorization": f"Bearer {api_key}", "Accept": "application/json"},
                data=form_data,
                files=form_files,
            )
        payload = response.json()
        if not payload.get("image"):
            return None
        return GeneratedImage(image_data=payload["image"], mime_type="image/png")

    def _advanced(self, params: GenerationParams) -> dict[str, Any]:
        return {"seed": params.seed, "negative_prompt": params.negative_prompt or None}

    async def generate(self, params: GenerationParams, api_key: str | None) -> GenerationResult:
        key = self.require_key(api_key)
        model = params.model or "sd3-large"
        images = []

        for _ in range(max(params.count, 1)):
            image = await self._call(
                key,
                "/v2beta/stable-image/generate/sd3",
                {
                    "prompt": params.prompt,
                    "model": model,
                    "aspect_ratio": params.aspect_ratio or "1:1",
                    "output_format": "png",
                    **self._advanced(params),
                },
            )
            if image:
                images.append(image)

        return self.build_result(images, self.cost(model, len(images)))

    async def edit(self, params: GenerationParams, api_key: str | None) -> GenerationResult:
        key = self.require_key(api_key)
        image = await self._call(
            key,
            "/v2beta/stable-image/generate/sd3",
            {
                "prompt": params.prompt,
                "mode": "image-to-image",
                "strength": params.strength if params.strength is not None else 0.7,
                "output_format": "png",
                **self._advanced(params),
            },
            files={"image": ("image.png", params.image_data or b"", params.mime_type)},
        )
        return self.build_result([image] if image else [], EDIT_COST)

    async def inpaint(self, params: GenerationParams, api_key: str | None) -> GenerationResult:
        key = self.require_key(api_key)
        image = await self._call(
            key,
            "/v2beta/stable-image/edit/inpaint",
            {"prompt": params.prompt, "output_format": "png", **self._advanced(params)},
            files={
                "image": ("image.png", params.image_data or b"", params.mime_type),
                "mask": ("mask.png", params.mask_data or b"", "image/png"),
            },
        )
        return self.build_result([image] if image else [], INPAINT_COST)

    async def upscale(self, params: GenerationParams, api_key: str | None) -> GenerationResult:
        key = self.require_key(api_key)
        scale = 4 if params.scale == 4 else 2

        if scale == 4:
            endpoint = "/v2beta/stable-image/upscale/conservative"
            data = {"prompt": params.prompt or "high quality, detailed", "output_format": "png"}
        else:
            endpoint = "/v2beta/stable-image/upscale/fast"
            data = {"output_format": "png"}

        image = await self._call(
            key,
            endpoint,
            data,
            files={"image": ("image.png", params.image_data or b"", params.mime_type)},
        )
        return self.build_result([image] if image else [], UPSCALE_COSTS[scale])
