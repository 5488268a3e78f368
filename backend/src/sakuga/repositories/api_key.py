"""ApiKey repository for Sakuga backend."""

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from sakuga.models.api_key import ApiKey
from sakuga.models.types import utc_now


class ApiKeyRepository:
    """Repository for provider API keys stored in the database."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_key(self, provider: str) -> str | None:
        """Retrieve the stored secret for a provider.

        Returns:
            Secret if stored and non-empty, None otherwise
        """
        result = await self.session.execute(
            select(ApiKey).where(ApiKey.provider == provider)  # type: ignore[arg-type]
        )
        record = result.scalar_one_or_none()
        return record.api_key if record and record.api_key else None

    async def list_all(self) -> list[ApiKey]:
        """Retrieve all stored keys ordered by provider id."""
        result = await self.session.execute(select(ApiKey).order_by(ApiKey.provider))  # type: ignore[arg-type]
        return list(result.scalars().all())

    async def upsert(self, provider: str, api_key: str) -> ApiKey:
        """Create or replace the stored key for a provider.

        Args:
            provider: Provider id (e.g., "openai")
            api_key: Secret to store

        Returns:
            Persisted ApiKey record
        """
        result = await self.session.execute(
            select(ApiKey).where(ApiKey.provider == provider)  # type: ignore[arg-type]
        )
        record = result.scalar_one_or_none()
        if record is None:
            record = ApiKey(provider=provider, api_key=api_key)
        else:
            record.api_key = api_key
            record.updated_at = utc_now()
        self.session.add(record)
        await self.session.flush()
        return record

    async def delete(self, provider: str) -> bool:
        """Delete the stored key for a provider (idempotent).

        Returns:
            True if a key was deleted, False if none was stored
        """
        result = await self.session.execute(
            delete(ApiKey).where(ApiKey.provider == provider)  # type: ignore[arg-type]
        )
        await self.session.flush()
        return result.rowcount > 0  # type: ignore[attr-defined]
