"""HistoryEntry repository for Sakuga backend.

Provides data access methods for generated images and usage statistics.
"""

from datetime import timedelta
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sakuga.models.history import GenerationType, HistoryEntry
from sakuga.models.types import utc_now


class HistoryRepository:
    """Repository for HistoryEntry entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, entry: HistoryEntry) -> HistoryEntry:
        """Persist new history entry to database."""
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def get_by_id(self, entry_id: UUID) -> HistoryEntry | None:
        """Retrieve history entry by UUID."""
        result = await self.session.execute(
            select(HistoryEntry).where(HistoryEntry.id == entry_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def search(
        self,
        type: GenerationType | None = None,
        provider: str | None = None,
        text: str | None = None,
        collection_id: UUID | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[list[HistoryEntry], int]:
        """Retrieve history entries newest first with filters and pagination.

        Args:
            type: Only entries produced by this operation
            provider: Only entries from this provider
            text: Case-insensitive substring match on the prompt
            collection_id: Only entries assigned to this collection
            offset: Number of entries to skip
            limit: Maximum number of entries to return

        Returns:
            Tuple of (entries for this page, total matching entries)
        """
        conditions = []
        if type is not None:
            conditions.append(HistoryEntry.type == type)
        if provider:
            conditions.append(HistoryEntry.provider == provider)
        if text:
            conditions.append(func.lower(HistoryEntry.prompt).contains(text.lower()))
        if collection_id is not None:
            conditions.append(HistoryEntry.collection_id == collection_id)

        count_result = await self.session.execute(
            select(func.count()).select_from(HistoryEntry).where(*conditions)
        )
        total = count_result.scalar_one()

        result = await self.session.execute(
            select(HistoryEntry)
            .where(*conditions)
            .order_by(HistoryEntry.created_at.desc())  # type: ignore[attr-defined]
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def get_variant_group(self, variant_group: UUID) -> list[HistoryEntry]:
        """Retrieve all entries produced by one multi-image request."""
        result = await self.session.execute(
            select(HistoryEntry)
            .where(HistoryEntry.variant_group == variant_group)  # type: ignore[arg-type]
            .order_by(HistoryEntry.created_at.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def delete(self, entry_id: UUID) -> bool:
        """Delete a history entry.

        Returns:
            True if entry was deleted, False if it did not exist
        """
        result = await self.session.execute(
            delete(HistoryEntry).where(HistoryEntry.id == entry_id)  # type: ignore[arg-type]
        )
        await self.session.flush()
        return result.rowcount > 0  # type: ignore[attr-defined]

    async def assign_collection(self, entry_id: UUID, collection_id: UUID | None) -> bool:
        """Assign (or clear) the collection of a history entry.

        This is the only mutation allowed after an entry is created.
        """
        result = await self.session.execute(
            update(HistoryEntry)
            .where(HistoryEntry.id == entry_id)  # type: ignore[arg-type]
            .values(collection_id=collection_id)
        )
        await self.session.flush()
        return result.rowcount > 0  # type: ignore[attr-defined]

    async def get_stats(self) -> dict:
        """Aggregate usage statistics.

        Returns:
            Dict with total_generations, total_cost, by_provider
            ({provider: {count, cost}}), by_type ({type: count}), last_7_days
            and last_30_days
        """
        totals = await self.session.execute(
            select(func.count(), func.coalesce(func.sum(HistoryEntry.cost), 0.0)).select_from(
                HistoryEntry
            )
        )
        total_generations, total_cost = totals.one()

        by_provider_rows = await self.session.execute(
            select(
                HistoryEntry.provider,
                func.count(),
                func.coalesce(func.sum(HistoryEntry.cost), 0.0),
            )
            .group_by(HistoryEntry.provider)
            .order_by(func.count().desc())
        )
        by_type_rows = await self.session.execute(
            select(HistoryEntry.type, func.count()).group_by(HistoryEntry.type)  # type: ignore[call-overload]
        )

        now = utc_now()
        recent = await self.session.execute(
            select(
                func.count().filter(HistoryEntry.created_at >= now - timedelta(days=7)),  # type: ignore[operator]
                func.count().filter(HistoryEntry.created_at >= now - timedelta(days=30)),  # type: ignore[operator]
            ).select_from(HistoryEntry)
        )
        last_7_days, last_30_days = recent.one()

        return {
            "total_generations": total_generations,
            "total_cost": float(total_cost),
            "by_provider": {
                provider: {"count": count, "cost": float(cost)}
                for provider, count, cost in by_provider_rows.all()
            },
            "by_type": {GenerationType(t).value: count for t, count in by_type_rows.all()},
            "last_7_days": last_7_days,
            "last_30_days": last_30_days,
        }
