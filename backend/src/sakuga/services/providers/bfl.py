"""Black Forest Labs adapter: submit a task, then poll until the result is ready."""

import asyncio

import httpx
import structlog

from sakuga.core.config import Settings
from sakuga.services.exceptions import GenerationTimeoutError, VendorError
from sakuga.services.providers.base import (
    Capability,
    GenerationParams,
    GenerationResult,
    ProviderAdapter,
    ProviderCapabilitySet,
    dimensions_for,
)
from sakuga.services.providers.images import fetch_image

logger = structlog.get_logger()

API_URL = "https://api.bfl.ml/v1"

FAILED_STATUSES = frozenset(
    {"Error", "Failed", "Request Moderated", "Content Moderated", "Task not found"}
)


class BflAdapter(ProviderAdapter):
    """FLUX models direct from Black Forest Labs.

    The API is asynchronous: a submit returns a task id, and the image URL appears
    in ``get_result`` once the task status is ``Ready``.
    """

    descriptor = ProviderCapabilitySet(
        id="bfl",
        name="Black Forest Labs",
        models=("flux-pro-1.1", "flux-pro", "flux-dev", "flux-schnell"),
        default_model="flux-schnell",
        capabilities=frozenset({Capability.GENERATE, Capability.VARIANTS}),
        advanced_params=frozenset({"seed", "steps"}),
        costs={"flux-pro-1.1": 0.06, "flux-pro": 0.055, "flux-dev": 0.025, "flux-schnell": 0.003},
        default_cost=0.025,
        settings_key="bfl_api_key",
    )

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
        poll_interval: float | None = None,
        max_poll_attempts: int | None = None,
    ):
        super().__init__(settings, transport)
        self.poll_interval = (
            settings.bfl_poll_interval_seconds if poll_interval is None else poll_interval
        )
        self.max_poll_attempts = max_poll_attempts or settings.bfl_max_poll_attempts

    async def _submit(self, client: httpx.AsyncClient, key: str, model: str, payload: dict) -> str:
        response = await self.request(
            client, "POST", f"{API_URL}/{model}", headers={"x-key": key}, json=payload
        )
        task_id = response.json().get("id")
        if not task_id:
            raise VendorError("Black Forest Labs did not return a task id", provider=self.id)
        return task_id

    async def _poll(self, client: httpx.AsyncClient, key: str, task_id: str) -> str:
        """Wait for a task to finish and return its sample URL."""
        for attempt in range(1, self.max_poll_attempts + 1):
            response = await self.request(
                client,
                "GET",
                f"{API_URL}/get_result",
                headers={"x-key": key},
                params={"id": task_id},
            )
            payload = response.json()
            status = payload.get("status")

            if status == "Ready":
                sample = (payload.get("result") or {}).get("sample")
                if not sample:
                    raise VendorError("Black Forest Labs returned no sample", provider=self.id)
                return sample

            if status in FAILED_STATUSES:
                raise VendorError(f"Generation failed: {status}", provider=self.id)

            logger.debug(
                "provider.poll.pending",
                provider=self.id,
                task_id=task_id,
                attempt=attempt,
                status=status,
            )
            await asyncio.sleep(self.poll_interval)

        raise GenerationTimeoutError("Generation timed out", provider=self.id)

    async def generate(self, params: GenerationParams, api_key: str | None) -> GenerationResult:
        key = self.require_key(api_key)
        model = params.model if params.model in self.descriptor.models else "flux-schnell"
        width, height = dimensions_for(params.aspect_ratio)

        payload: dict = {"prompt": params.prompt, "width": width, "height": height}
        if params.seed is not None:
            payload["seed"] = params.seed
        if params.steps is not None:
            payload["steps"] = params.steps

        images = []
        async with self.http_client() as client:
            for _ in range(max(params.count, 1)):
                task_id = await self._submit(client, key, model, payload)
                sample_url = await self._poll(client, key, task_id)
                images.append(await fetch_image(client, sample_url, provider=self.id))

        return self.build_result(images, self.cost(model, len(images)))
