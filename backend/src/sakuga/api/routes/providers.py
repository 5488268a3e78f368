"""Provider discovery endpoint."""

from fastapi import APIRouter, Depends

from sakuga.api.dependencies import get_registry

router = APIRouter(prefix="/api/providers", tags=["providers"])


@router.get("")
async def list_providers(registry=Depends(get_registry)) -> list[dict]:
    """Providers that currently have a usable key, with their capabilities.

    The list is advisory; the queue dispatches to any registered provider.
    """
    return [descriptor.to_dict() for descriptor in await registry.get_available_providers()]
