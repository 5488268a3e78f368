"""Database engine and session factory setup."""

from pathlib import Path

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel


def create_engine(db_url: str, pool_size: int = 5) -> AsyncEngine:
    """Create async database engine.

    SQLite URLs get the connection arguments aiosqlite needs; in-memory SQLite
    shares a single connection so every session sees the same database.

    Args:
        db_url: SQLAlchemy async URL (sqlite+aiosqlite://..., postgresql+psycopg://...)
        pool_size: Maximum number of pooled connections (ignored for SQLite)

    Returns:
        AsyncEngine bound to the URL
    """
    url = make_url(db_url)

    if url.get_backend_name() == "sqlite":
        database = url.database
        if not database or database == ":memory:":
            return create_async_engine(
                db_url,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
                echo=False,
            )

        Path(database).parent.mkdir(parents=True, exist_ok=True)
        return create_async_engine(
            db_url,
            connect_args={"check_same_thread": False},
            echo=False,
        )

    return create_async_engine(
        db_url,
        pool_size=pool_size,
        max_overflow=0,  # No overflow beyond pool_size
        pool_pre_ping=True,  # Verify connections before using
        echo=False,  # Don't log SQL queries (use structlog instead)
    )


def setup_db_session(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create async session factory bound to an engine.

    Args:
        engine: Engine created by create_engine()

    Returns:
        Async session factory for creating database sessions
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Prevent lazy loading issues after commit
    )


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables registered on SQLModel metadata (idempotent)."""
    # Import models so their tables are registered before create_all
    import sakuga.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
