"""FastAPI dependencies that expose lifespan-managed objects from app.state.

Everything is created once in the application lifespan and stored on
``app.state``; routes receive it through these dependencies, and tests replace
it by assigning different objects to ``app.state``.
"""

from typing import Callable

from fastapi import Request

from sakuga.core.config import Settings
from sakuga.services.providers.registry import ProviderRegistry
from sakuga.services.storage import ImageStorage
from sakuga.uow import UnitOfWork
from sakuga.workers.queue_processor import QueueProcessor


def get_settings(request: Request) -> Settings:
    """Get application settings loaded at startup."""
    return request.app.state.settings


def get_uow_factory(request: Request) -> Callable[[], UnitOfWork]:
    """Get UnitOfWork factory from app state.

    Args:
        request: FastAPI Request object (contains app.state)

    Returns:
        UnitOfWork factory function from app lifespan

    Example:
        >>> @router.get("/endpoint")
        >>> async def endpoint(uow_factory=Depends(get_uow_factory)):
        ...     async with await uow_factory() as uow:
        ...         await uow.jobs.list_all()
    """
    return request.app.state.uow_factory


def get_registry(request: Request) -> ProviderRegistry:
    return request.app.state.registry


def get_storage(request: Request) -> ImageStorage:
    return request.app.state.storage


def get_processor(request: Request) -> QueueProcessor:
    return request.app.state.processor
