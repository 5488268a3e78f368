"""Base contract shared by all provider adapters.

Every adapter normalizes one vendor API into the same shape:

    result = await adapter.generate(params, api_key)
    result.images  # [GeneratedImage(image_data=<base64>, mime_type="image/png"), ...]
    result.cost    # total cost of the whole batch, NOT per image

Callers divide ``cost`` by ``len(images)`` to get the per-image cost.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, ClassVar, Generic, Mapping, TypeVar

import httpx

from sakuga.core.config import Settings
from sakuga.services.exceptions import (
    CredentialMissingError,
    EmptyResultError,
    UnsupportedOperationError,
    VendorError,
)

T = TypeVar("T")


class Capability(str, Enum):
    """Operations a provider may offer."""

    GENERATE = "generate"
    EDIT = "edit"
    INPAINT = "inpaint"
    UPSCALE = "upscale"
    VARIANTS = "variants"


# Advanced parameters a provider may accept; the rest are silently ignored
ADVANCED_PARAMS = frozenset({"seed", "steps", "cfg_scale", "negative_prompt", "sampler"})

# System instruction for chat-model prompt enhancement
PROMPT_ENHANCE_INSTRUCTIONS = (
    "You are an expert at writing image generation prompts. Enhance the user's prompt to be "
    "more detailed and descriptive for better image generation results. Keep it concise but "
    "add relevant details about style, lighting, composition, and mood. Return only the "
    "enhanced prompt, nothing else."
)

# Pixel sizes used by vendors that take explicit width/height
PIXEL_DIMENSIONS: dict[str, tuple[int, int]] = {
    "1:1": (1024, 1024),
    "16:9": (1344, 768),
    "9:16": (768, 1344),
    "4:3": (1152, 896),
    "3:4": (896, 1152),
    "3:2": (1216, 832),
    "2:3": (832, 1216),
}


def dimensions_for(aspect_ratio: str | None) -> tuple[int, int]:
    """Map an aspect ratio to (width, height); unknown ratios fall back to square."""
    return PIXEL_DIMENSIONS.get(aspect_ratio or "1:1", PIXEL_DIMENSIONS["1:1"])


@dataclass(frozen=True)
class ProviderCapabilitySet:
    """Static, process-wide descriptor of one provider."""

    id: str
    name: str
    models: tuple[str, ...]
    default_model: str | None
    capabilities: frozenset[Capability]
    advanced_params: frozenset[str] = frozenset()
    costs: Mapping[str, float] = field(default_factory=dict)
    default_cost: float = 0.0
    requires_api_key: bool = True
    settings_key: str | None = None  # Settings attribute holding the env fallback

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def cost_per_image(self, model: str | None) -> float:
        return self.costs.get(model or self.default_model or "", self.default_cost)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the providers endpoint."""
        return {
            "id": self.id,
            "name": self.name,
            "models": list(self.models),
            "defaultModel": self.default_model,
            "features": sorted(c.value for c in self.capabilities),
            "advancedParams": sorted(self.advanced_params),
            "costPerImage": self.cost_per_image(self.default_model),
            "requiresApiKey": self.requires_api_key,
        }


@dataclass
class GenerationParams:
    """Normalized request for any adapter operation."""

    prompt: str = ""
    model: str | None = None
    aspect_ratio: str | None = "1:1"
    count: int = 1
    image_data: bytes | None = None
    mime_type: str = "image/png"
    mask_data: bytes | None = None
    scale: int = 2
    strength: float | None = None
    # Advanced parameters
    seed: int | None = None
    steps: int | None = None
    cfg_scale: float | None = None
    negative_prompt: str | None = None
    sampler: str | None = None


@dataclass
class GeneratedImage:
    """One generated image as base64 data."""

    image_data: str
    mime_type: str = "image/png"


@dataclass
class GenerationResult:
    """Normalized adapter output. ``cost`` is the total for the whole batch."""

    images: list[GeneratedImage]
    cost: float

    @property
    def per_image_cost(self) -> float:
        return self.cost / len(self.images) if self.images else 0.0


class ClientCache(Generic[T]):
    """Holds one SDK client built for one API key.

    A different key rebuilds the client, so a key changed through the settings
    surface takes effect on the next call.
    """

    def __init__(self, factory: Callable[[str], T]):
        self._factory = factory
        self._key: str | None = None
        self._client: T | None = None

    def get(self, api_key: str) -> T:
        if self._client is None or api_key != self._key:
            self._client = self._factory(api_key)
            self._key = api_key
        return self._client


def extract_error_message(response: httpx.Response, default: str) -> str:
    """Pull the vendor's error message out of an error response, if it has one."""
    try:
        payload = response.json()
    except ValueError:
        return response.text or default

    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        for key in ("message", "detail", "error", "errors"):
            value = payload.get(key)
            if isinstance(value, list) and value:
                return "; ".join(str(v) for v in value)
            if value:
                return str(value)
    return default


class ProviderAdapter:
    """Base class for provider adapters.

    Subclasses set ``descriptor`` and implement ``generate``; optional operations
    are implemented only by adapters whose descriptor lists the capability.
    """

    descriptor: ClassVar[ProviderCapabilitySet]

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        """Initialize adapter.

        Args:
            settings: Application settings (timeouts, base URLs)
            transport: Optional httpx transport (tests pass httpx.MockTransport)
        """
        self.settings = settings
        self.transport = transport

    @property
    def id(self) -> str:
        return self.descriptor.id

    def is_available(self, api_key: str | None) -> bool:
        """Whether the provider can be offered to the client with this key."""
        return bool(api_key) or not self.descriptor.requires_api_key

    def require_key(self, api_key: str | None) -> str:
        """Fail fast, before any network call, when no key is available."""
        if not api_key:
            raise CredentialMissingError(
                f"{self.descriptor.name} API key not configured", provider=self.id
            )
        return api_key

    def http_client(self) -> httpx.AsyncClient:
        """Create an HTTP client with the request-level timeout applied."""
        return httpx.AsyncClient(
            timeout=self.settings.provider_timeout_seconds,
            transport=self.transport,
        )

    async def request(
        self, client: httpx.AsyncClient, method: str, url: str, **kwargs: Any
    ) -> httpx.Response:
        """Send a request and convert transport and HTTP failures into VendorError."""
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise self.transport_error(e) from e

        if response.is_error:
            raise VendorError(
                extract_error_message(response, f"{self.descriptor.name} API error"),
                provider=self.id,
            )
        return response

    def transport_error(self, error: httpx.HTTPError) -> VendorError:
        """Convert a transport-level failure (from httpx or an SDK built on it) into VendorError."""
        if isinstance(error, httpx.TimeoutException):
            return VendorError(f"Request timed out: {error}", provider=self.id)
        return VendorError(f"Network error: {error}", provider=self.id)

    def cost(self, model: str | None, count: int) -> float:
        """Total cost of ``count`` images from ``model``."""
        return self.descriptor.cost_per_image(model) * count

    def build_result(self, images: list[GeneratedImage], cost: float) -> GenerationResult:
        """Wrap images into a result; a successful call with zero images is a failure."""
        if not images:
            raise EmptyResultError("No image generated", provider=self.id)
        return GenerationResult(images=images, cost=cost)

    def _unsupported(self, capability: Capability) -> UnsupportedOperationError:
        return UnsupportedOperationError(
            f"Provider {self.id} does not support {capability.value}", provider=self.id
        )

    async def generate(self, params: GenerationParams, api_key: str | None) -> GenerationResult:
        raise NotImplementedError

    async def edit(self, params: GenerationParams, api_key: str | None) -> GenerationResult:
        raise self._unsupported(Capability.EDIT)

    async def inpaint(self, params: GenerationParams, api_key: str | None) -> GenerationResult:
        raise self._unsupported(Capability.INPAINT)

    async def upscale(self, params: GenerationParams, api_key: str | None) -> GenerationResult:
        raise self._unsupported(Capability.UPSCALE)

    async def enhance_prompt(self, prompt: str, api_key: str | None) -> str:
        """Rewrite a prompt into a more detailed one with the vendor's chat model."""
        raise UnsupportedOperationError(
            f"Provider {self.id} does not support prompt enhancement", provider=self.id
        )
