"""Generation history and usage statistics endpoints.

- GET /api/history - Paginated history, newest first, with filters
- GET /api/history/variants/{variant_group} - All images of one multi-image request
- PATCH /api/history/{entry_id}/collection - Assign or clear an entry's collection
- DELETE /api/history/{entry_id} - Delete an entry and its image file
- GET /api/stats - Usage totals by provider and type
"""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query
from pydantic import Field

from sakuga.api.dependencies import get_storage, get_uow_factory
from sakuga.api.schemas import CamelModel, HistoryEntryResponse
from sakuga.models.history import GenerationType
from sakuga.services.exceptions import NotFoundError

logger = structlog.get_logger()
router = APIRouter(prefix="/api", tags=["history"])


# Request/Response Models


class HistoryPage(CamelModel):
    """Paginated history response."""

    items: list[HistoryEntryResponse]
    total: int = Field(..., description="Number of entries matching the filters")
    offset: int
    limit: int


class AssignCollectionRequest(CamelModel):
    collection_id: UUID | None = Field(default=None, description="Collection id; null clears it")


class ProviderUsage(CamelModel):
    count: int
    cost: float


class StatsResponse(CamelModel):
    """Usage statistics over the whole history."""

    total_generations: int
    total_cost: float
    by_provider: dict[str, ProviderUsage]
    by_type: dict[str, int]
    last_7_days: int
    last_30_days: int


class SuccessResponse(CamelModel):
    success: bool = True


# Endpoints


@router.get("/history", response_model=HistoryPage)
async def list_history(
    type: GenerationType | None = Query(default=None, description="Filter by operation"),
    provider: str | None = Query(default=None, description="Filter by provider id"),
    search: str | None = Query(default=None, description="Substring of the prompt"),
    collection_id: UUID | None = Query(default=None, alias="collectionId"),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    uow_factory=Depends(get_uow_factory),
) -> HistoryPage:
    """List generated images, newest first."""
    async with await uow_factory() as uow:
        entries, total = await uow.history.search(
            type=type,
            provider=provider,
            text=search,
            collection_id=collection_id,
            offset=offset,
            limit=limit,
        )
    return HistoryPage(
        items=[HistoryEntryResponse.model_validate(e) for e in entries],
        total=total,
        offset=offset,
        limit=limit,
    )


@router.get("/history/variants/{variant_group}", response_model=list[HistoryEntryResponse])
async def get_variants(
    variant_group: UUID, uow_factory=Depends(get_uow_factory)
) -> list[HistoryEntryResponse]:
    """All images produced by one multi-image request, oldest first."""
    async with await uow_factory() as uow:
        entries = await uow.history.get_variant_group(variant_group)
    return [HistoryEntryResponse.model_validate(e) for e in entries]


@router.patch("/history/{entry_id}/collection", response_model=SuccessResponse)
async def assign_collection(
    entry_id: UUID,
    request: AssignCollectionRequest,
    uow_factory=Depends(get_uow_factory),
) -> SuccessResponse:
    """Assign (or clear) the collection of a history entry.

    Raises:
        404: Entry not found
    """
    async with await uow_factory() as uow:
        updated = await uow.history.assign_collection(entry_id, request.collection_id)
        if not updated:
            raise NotFoundError(f"History entry {entry_id} not found")
    return SuccessResponse()


@router.delete("/history/{entry_id}", response_model=SuccessResponse)
async def delete_history_entry(
    entry_id: UUID,
    uow_factory=Depends(get_uow_factory),
    storage=Depends(get_storage),
) -> SuccessResponse:
    """Delete a history entry and its image file.

    Raises:
        404: Entry not found
    """
    async with await uow_factory() as uow:
        entry = await uow.history.get_by_id(entry_id)
        if entry is None:
            raise NotFoundError(f"History entry {entry_id} not found")
        image_url = entry.image_url
        await uow.history.delete(entry_id)

    file_removed = await storage.delete(image_url)
    logger.info("history.deleted", entry_id=str(entry_id), file_removed=file_removed)
    return SuccessResponse()


@router.get("/stats", response_model=StatsResponse)
async def get_stats(uow_factory=Depends(get_uow_factory)) -> StatsResponse:
    """Totals over every history entry."""
    async with await uow_factory() as uow:
        stats = await uow.history.get_stats()
    return StatsResponse.model_validate(stats)
