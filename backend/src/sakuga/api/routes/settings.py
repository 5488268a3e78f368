"""Provider API key management endpoints.

- GET /api/settings/keys - Key status for every provider (keys are masked)
- PUT /api/settings/keys/{provider} - Store a key in the database
- DELETE /api/settings/keys/{provider} - Remove a stored key (env fallback applies again)

Every change clears the registry's key cache, so the next generation uses the
new key. SDK-backed adapters rebuild their client when they see a different key.
"""

import structlog
from fastapi import APIRouter, Depends
from pydantic import Field

from sakuga.api.dependencies import get_registry, get_uow_factory
from sakuga.api.schemas import CamelModel

logger = structlog.get_logger()
router = APIRouter(prefix="/api/settings/keys", tags=["settings"])


# Request/Response Models


class ApiKeyStatus(CamelModel):
    """Key status of one provider; the secret itself is never returned."""

    provider: str
    name: str
    requires_api_key: bool
    configured: bool
    source: str = Field(..., description="Where the effective key comes from: db, env or none")
    masked_key: str | None = Field(default=None, description="First and last characters only")


class UpdateKeyRequest(CamelModel):
    api_key: str = Field(..., min_length=1, description="Secret to store for the provider")


class KeyChangeResponse(CamelModel):
    success: bool = True
    provider: str


def mask_key(api_key: str | None) -> str | None:
    """Show the first and last four characters of long keys, nothing of short ones."""
    if not api_key:
        return None
    if len(api_key) <= 8:
        return "*" * len(api_key)
    return f"{api_key[:4]}...{api_key[-4:]}"


# Endpoints


@router.get("", response_model=list[ApiKeyStatus])
async def list_keys(registry=Depends(get_registry)) -> list[ApiKeyStatus]:
    """Key status for every registered provider."""
    statuses = []
    for provider in registry.provider_ids:
        descriptor = registry.resolve(provider).descriptor
        key = await registry.get_effective_key(provider)
        statuses.append(
            ApiKeyStatus(
                provider=provider,
                name=descriptor.name,
                requires_api_key=descriptor.requires_api_key,
                configured=bool(key),
                source=await registry.key_source(provider),
                masked_key=mask_key(key),
            )
        )
    return statuses


@router.put("/{provider}", response_model=KeyChangeResponse)
async def update_key(
    provider: str,
    request: UpdateKeyRequest,
    registry=Depends(get_registry),
    uow_factory=Depends(get_uow_factory),
) -> KeyChangeResponse:
    """Store (or replace) the key for a provider.

    Raises:
        404: Unknown provider
    """
    registry.resolve(provider)

    async with await uow_factory() as uow:
        await uow.api_keys.upsert(provider, request.api_key.strip())

    registry.reload()
    logger.info("provider.key.updated", provider=provider)
    return KeyChangeResponse(provider=provider)


@router.delete("/{provider}", response_model=KeyChangeResponse)
async def delete_key(
    provider: str,
    registry=Depends(get_registry),
    uow_factory=Depends(get_uow_factory),
) -> KeyChangeResponse:
    """Remove the stored key for a provider (idempotent).

    Raises:
        404: Unknown provider
    """
    registry.resolve(provider)

    async with await uow_factory() as uow:
        deleted = await uow.api_keys.delete(provider)

    registry.reload()
    logger.info("provider.key.deleted", provider=provider, existed=deleted)
    return KeyChangeResponse(provider=provider)
