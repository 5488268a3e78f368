"""Image generation provider adapters and the registry that dispatches to them."""

from sakuga.services.providers.base import (
    Capability,
    GeneratedImage,
    GenerationParams,
    GenerationResult,
    ProviderAdapter,
    ProviderCapabilitySet,
)
from sakuga.services.providers.registry import ProviderRegistry, db_key_loader, default_registry

__all__ = [
    "Capability",
    "GeneratedImage",
    "GenerationParams",
    "GenerationResult",
    "ProviderAdapter",
    "ProviderCapabilitySet",
    "ProviderRegistry",
    "db_key_loader",
    "default_registry",
]
