"""Provider registry: name resolution, effective API keys and capability-checked dispatch."""

from typing import Awaitable, Callable

import structlog

from sakuga.core.config import Settings
from sakuga.services.exceptions import (
    CredentialMissingError,
    UnknownProviderError,
    UnsupportedOperationError,
)
from sakuga.services.providers.a1111 import A1111Adapter
from sakuga.services.providers.base import (
    Capability,
    GenerationParams,
    GenerationResult,
    ProviderAdapter,
    ProviderCapabilitySet,
)
from sakuga.services.providers.bfl import BflAdapter
from sakuga.services.providers.fal import FalAdapter
from sakuga.services.providers.gemini import GeminiAdapter
from sakuga.services.providers.ideogram import IdeogramAdapter
from sakuga.services.providers.openai import OpenAIAdapter
from sakuga.services.providers.replicate import ReplicateAdapter
from sakuga.services.providers.stability import StabilityAdapter
from sakuga.services.providers.together import TogetherAdapter

logger = structlog.get_logger()

KeyLoader = Callable[[str], Awaitable[str | None]]

# Providers with a chat model for prompt enhancement, in fallback order
PROMPT_ENHANCERS = ("openai", "gemini")


def db_key_loader(uow_factory) -> KeyLoader:
    """Build a key loader that reads stored keys through a fresh unit of work."""

    async def _load(provider: str) -> str | None:
        async with await uow_factory() as uow:
            return await uow.api_keys.get_key(provider)

    return _load


class ProviderRegistry:
    """Maps provider ids to adapters and resolves their API keys.

    Keys resolve DB first, then the settings/env fallback. Resolved keys are
    cached per provider until ``reload()`` clears the whole cache.
    """

    def __init__(self, settings: Settings, key_loader: KeyLoader | None = None):
        self.settings = settings
        self.key_loader = key_loader
        self._adapters: dict[str, ProviderAdapter] = {}
        self._key_cache: dict[str, str | None] = {}

    def register(self, adapter: ProviderAdapter) -> None:
        """Add an adapter, replacing any adapter registered under the same id."""
        self._adapters[adapter.id] = adapter
        self._key_cache.pop(adapter.id, None)

    def resolve(self, name: str) -> ProviderAdapter:
        adapter = self._adapters.get(name)
        if adapter is None:
            raise UnknownProviderError(f"Unknown provider: {name}", provider=name)
        return adapter

    @property
    def provider_ids(self) -> list[str]:
        return list(self._adapters)

    async def get_effective_key(self, name: str) -> str | None:
        """Return the key a provider would be called with, or None."""
        if name in self._key_cache:
            return self._key_cache[name]

        adapter = self.resolve(name)
        key = None
        if self.key_loader is not None:
            key = await self.key_loader(name)
        if not key and adapter.descriptor.settings_key:
            key = getattr(self.settings, adapter.descriptor.settings_key, "") or None

        self._key_cache[name] = key
        return key

    async def key_source(self, name: str) -> str:
        """Where the effective key comes from: "db", "env" or "none"."""
        adapter = self.resolve(name)
        if self.key_loader is not None and await self.key_loader(name):
            return "db"
        if adapter.descriptor.settings_key and getattr(
            self.settings, adapter.descriptor.settings_key, ""
        ):
            return "env"
        return "none"

    def reload(self) -> None:
        """Drop every cached key; the next lookup reads the store again."""
        self._key_cache.clear()
        logger.info("provider.keys.reloaded")

    async def get_available_providers(self) -> list[ProviderCapabilitySet]:
        """Descriptors of providers that currently have a usable key.

        Advisory only: dispatch never consults this list.
        """
        available = []
        for name, adapter in self._adapters.items():
            if adapter.is_available(await self.get_effective_key(name)):
                available.append(adapter.descriptor)
        return available

    async def _dispatch(
        self, capability: Capability, name: str, params: GenerationParams
    ) -> GenerationResult:
        adapter = self.resolve(name)
        if not adapter.descriptor.supports(capability):
            raise UnsupportedOperationError(
                f"Provider {name} does not support {capability.value}", provider=name
            )
        api_key = await self.get_effective_key(name)
        operation = getattr(adapter, capability.value)
        return await operation(params, api_key)

    async def generate(self, name: str, params: GenerationParams) -> GenerationResult:
        return await self._dispatch(Capability.GENERATE, name, params)

    async def edit(self, name: str, params: GenerationParams) -> GenerationResult:
        return await self._dispatch(Capability.EDIT, name, params)

    async def inpaint(self, name: str, params: GenerationParams) -> GenerationResult:
        return await self._dispatch(Capability.INPAINT, name, params)

    async def upscale(self, name: str, params: GenerationParams) -> GenerationResult:
        return await self._dispatch(Capability.UPSCALE, name, params)

    async def enhance_prompt(self, prompt: str, preferred: str = "openai") -> tuple[str, str]:
        """Rewrite a prompt with the first prompt enhancer that has a key.

        The preferred provider is tried first when it is an enhancer.

        Returns:
            (enhanced prompt, provider id used)

        Raises:
            CredentialMissingError: No enhancer has a key
        """
        candidates = [preferred] if preferred in PROMPT_ENHANCERS else []
        candidates += [name for name in PROMPT_ENHANCERS if name != preferred]

        for name in candidates:
            if name not in self._adapters:
                continue
            api_key = await self.get_effective_key(name)
            if api_key:
                enhanced = await self._adapters[name].enhance_prompt(prompt, api_key)
                return enhanced, name

        raise CredentialMissingError("No AI provider available for prompt enhancement")


def default_registry(settings: Settings, key_loader: KeyLoader | None = None) -> ProviderRegistry:
    """Registry with every built-in adapter."""
    registry = ProviderRegistry(settings, key_loader)
    for adapter_cls in (
        OpenAIAdapter,
        StabilityAdapter,
        ReplicateAdapter,
        GeminiAdapter,
        IdeogramAdapter,
        FalAdapter,
        TogetherAdapter,
        BflAdapter,
        A1111Adapter,
    ):
        registry.register(adapter_cls(settings))
    return registry
