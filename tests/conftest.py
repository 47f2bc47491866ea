"""
Pytest configuration and fixtures for the EasyCars sync tests.
"""
import os

# Settings are read on first import of the package.
os.environ.setdefault("ENCRYPTION_KEY", "dGVzdC1rZXktZm9yLXB5dGVzdC0xMjM0NTY3ODkwMTI=")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SENTRY_DSN", "")

import pytest
import pytest_asyncio
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

from httpx import ASGITransport, AsyncClient

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from easycars_sync.config import get_settings
from easycars_sync.database import Base
from easycars_sync import models  # noqa: F401
from easycars_sync.schemas.credential import CredentialCreate
from easycars_sync.services.credential_store import CredentialStore
from easycars_sync.services.token_cache import reset_token_cache


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Async database session fixture for unit tests.

    Uses SQLite in-memory database for fast isolated tests.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session

    await engine.dispose()


@pytest.fixture(autouse=True)
def _fresh_token_cache():
    reset_token_cache()
    yield
    reset_token_cache()


@pytest_asyncio.fixture
async def dealership_credentials(db_session: AsyncSession):
    """Active EasyCars credentials for dealership 1."""
    return await CredentialStore(db_session).create(
        1,
        CredentialCreate(
            account_number="AC-0001",
            account_secret="account-secret",
            environment="Test",
            yard_code="YARD1",
        ),
    )


@pytest.fixture
def api_client() -> MagicMock:
    """Stand-in for EasyCarsApiClient; endpoint coroutines are AsyncMocks."""
    client = MagicMock()
    client.settings = get_settings()
    client.get_advertisement_stocks = AsyncMock(return_value=[])
    client.create_lead = AsyncMock()
    client.update_lead = AsyncMock()
    client.get_lead_detail = AsyncMock()
    client.test_connection = AsyncMock()
    return client


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, api_client: MagicMock) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, wired to the test session and mocked EasyCars client."""
    from easycars_sync.api.deps import get_api_client
    from easycars_sync.database import get_db
    from easycars_sync.main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_api_client] = lambda: api_client

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http_client:
        yield http_client

    app.dependency_overrides.clear()
