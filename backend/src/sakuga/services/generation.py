"""Turns a provider result into stored images and history entries.

Used by the queue processor and by the synchronous generation endpoints so both
paths apply the same cost and variant-group rules.
"""

from uuid import uuid4

import structlog

from sakuga.models.history import GenerationType, HistoryEntry
from sakuga.services.exceptions import EmptyResultError
from sakuga.services.providers.base import GenerationResult
from sakuga.services.storage import ImageStorage
from sakuga.uow import UnitOfWork

logger = structlog.get_logger()


def split_cost(total_cost: float, image_count: int) -> float:
    """Per-image cost: the batch total divided by the number of images returned."""
    if image_count <= 0:
        return 0.0
    return total_cost / image_count


async def record_generation(
    uow: UnitOfWork,
    storage: ImageStorage,
    result: GenerationResult,
    *,
    prompt: str,
    generation_type: GenerationType,
    provider: str,
    model: str | None,
    aspect_ratio: str | None,
    requested_count: int = 1,
    from_queue: bool = False,
    staged: list[str] | None = None,
) -> list[HistoryEntry]:
    """Persist every image of a result and write one history entry per image.

    Entries share a new variant group when more than one image was requested.
    A batch that comes back short is recorded as-is, with the total cost spread
    over the images actually returned.

    Saved image URLs are appended to ``staged`` when given (see
    ImageStorage.staged). Files already written are removed if a later save or
    insert fails.

    Raises:
        EmptyResultError: Result carries no images
    """
    if not result.images:
        raise EmptyResultError("No image generated", provider=provider)

    returned = len(result.images)
    if returned < requested_count:
        logger.warning(
            "job.partial_result",
            provider=provider,
            requested=requested_count,
            returned=returned,
        )

    per_image_cost = split_cost(result.cost, returned)
    variant_group = uuid4() if requested_count > 1 else None

    saved: list[str] = [] if staged is None else staged
    entries = []
    try:
        for image in result.images:
            entry_id = uuid4()
            image_url = await storage.save(image.image_data, image.mime_type, str(entry_id))
            saved.append(image_url)
            entry = HistoryEntry(
                id=entry_id,
                prompt=prompt,
                type=generation_type,
                provider=provider,
                model=model,
                aspect_ratio=aspect_ratio,
                image_url=image_url,
                cost=per_image_cost,
                variant_group=variant_group,
                from_queue=from_queue,
            )
            entries.append(await uow.history.add(entry))
    except Exception:
        for image_url in saved:
            await storage.delete(image_url)
        raise

    return entries
