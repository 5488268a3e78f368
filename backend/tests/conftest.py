"""pytest fixtures for Sakuga backend tests.

Provides:
- settings: Function-scoped Settings isolated from the environment
- engine/session/uow_factory: Fresh SQLite database file per test with the full schema
- storage: Image storage in a temporary directory
- mock_adapter/registry/processor: Queue processor wired to a scripted "mock" provider
- test_client: httpx AsyncClient bound to the FastAPI app
"""

import base64
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from sakuga.app import create_app
from sakuga.core.config import Settings
from sakuga.core.database import create_engine, create_schema, setup_db_session
from sakuga.services.providers.base import (
    Capability,
    GeneratedImage,
    GenerationParams,
    GenerationResult,
    ProviderAdapter,
    ProviderCapabilitySet,
)
from sakuga.services.providers.registry import ProviderRegistry, db_key_loader
from sakuga.services.storage import ImageStorage
from sakuga.uow import create_uow_factory
from sakuga.workers.queue_processor import QueueProcessor

PNG_B64 = base64.b64encode(b"\x89PNG\r\n\x1a\nfake-image-bytes").decode("ascii")

PROVIDER_KEY_ENV = (
    "OPENAI_API_KEY",
    "STABILITY_API_KEY",
    "REPLICATE_API_TOKEN",
    "GEMINI_API_KEY",
    "IDEOGRAM_API_KEY",
    "FAL_KEY",
    "TOGETHER_API_KEY",
    "BFL_API_KEY",
    "A1111_URL",
)


def make_result(count: int, cost: float) -> GenerationResult:
    """Build a result with ``count`` identical images and a total ``cost``."""
    return GenerationResult(
        images=[GeneratedImage(image_data=PNG_B64) for _ in range(count)],
        cost=cost,
    )


class MockAdapter(ProviderAdapter):
    """Scripted provider: each call consumes the next queued result or exception.

    With nothing queued a call returns one image costing 0.01.
    """

    descriptor = ProviderCapabilitySet(
        id="mock",
        name="Mock",
        models=("mock-1",),
        default_model="mock-1",
        capabilities=frozenset({Capability.GENERATE, Capability.EDIT, Capability.VARIANTS}),
        default_cost=0.01,
        requires_api_key=False,
    )

    def __init__(self, settings: Settings):
        super().__init__(settings)
        self.outcomes: list = []
        self.calls: list[GenerationParams] = []
        self.on_call = None

    def queue(self, *outcomes) -> None:
        self.outcomes.extend(outcomes)

    async def _next(self, params: GenerationParams) -> GenerationResult:
        self.calls.append(params)
        if self.on_call is not None:
            await self.on_call(params)
        outcome = self.outcomes.pop(0) if self.outcomes else make_result(1, 0.01)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def generate(self, params: GenerationParams, api_key: str | None) -> GenerationResult:
        return await self._next(params)

    async def edit(self, params: GenerationParams, api_key: str | None) -> GenerationResult:
        return await self._next(params)


@pytest.fixture
def settings(tmp_path, monkeypatch) -> Settings:
    """Settings pointing at a temporary database and storage directory.

    Provider keys from the developer's environment are cleared.
    """
    for name in PROVIDER_KEY_ENV:
        monkeypatch.delenv(name, raising=False)

    return Settings(  # type: ignore[call-arg]
        _env_file=None,
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        STORAGE_PATH=str(tmp_path / "storage"),
        APP_ENV="test",
        LOG_LEVEL="WARNING",
        PROVIDER_TIMEOUT_SECONDS=5,
        BFL_POLL_INTERVAL_SECONDS=0,
        BFL_MAX_POLL_ATTEMPTS=3,
    )


@pytest_asyncio.fixture
async def engine(settings):
    """Provide a fresh database with all tables created."""
    engine = create_engine(settings.database_url)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return setup_db_session(engine)


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide a function-scoped database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def uow_factory(session_factory):
    """Provide function-scoped UnitOfWork factory."""
    return create_uow_factory(session_factory)


@pytest.fixture
def storage(settings) -> ImageStorage:
    return ImageStorage(settings.images_path)


@pytest.fixture
def mock_adapter(settings) -> MockAdapter:
    return MockAdapter(settings)


@pytest_asyncio.fixture
async def registry(settings, uow_factory, mock_adapter) -> ProviderRegistry:
    """Registry containing only the mock provider, reading keys from the test database."""
    registry = ProviderRegistry(settings, key_loader=db_key_loader(uow_factory))
    registry.register(mock_adapter)
    return registry


@pytest_asyncio.fixture
async def processor(uow_factory, registry, storage):
    processor = QueueProcessor(uow_factory, registry, storage)
    yield processor
    await processor.shutdown()


@pytest_asyncio.fixture
async def test_client(settings, session_factory, uow_factory, registry, processor):
    """Provide AsyncClient for testing API endpoints with database access."""
    app = create_app(settings)
    # Inject what the lifespan would normally create
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.registry = registry
    app.state.processor = processor

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
