"""
Pytest configuration and shared fixtures for testing.
"""

from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine

from skintrader.config.database import (
    create_database_tables,
    create_engine,
    create_session_factory,
)
from skintrader.config.settings import Settings
from skintrader.integrations.base import MarketplaceAdapter
from skintrader.models.schemas import ItemClassData
from skintrader.repositories.market_repository import MarketRepository


def make_settings(**overrides) -> Settings:
    """Settings isolated from the developer's .env file."""
    values = {
        "ENVIRONMENT": "testing",
        "MARKETPLACE": "bitskins",
        "BITSKINS_API_KEY": "test-api-key",
        "REQUEST_RETRY_ATTEMPTS": 3,
        "RETRY_BASE_DELAY": 0.01,
        "MIN_SALE_COUNT": 3,
        "MIN_PRICE_SLOPE": 0.0,
        "FEE_RATE": 0.1,
        "FEE_FLOOR": 10.0,
        "MIN_PROFIT_MARGIN": 0.2,
        "AFFORDABILITY_FRACTION": 0.5,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Test settings backed by a throwaway SQLite file."""
    return make_settings(DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")


@pytest_asyncio.fixture
async def test_engine(settings) -> AsyncGenerator[AsyncEngine, None]:
    """Create test database engine with all tables."""
    engine = create_engine(settings)
    await create_database_tables(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def repository(test_engine) -> MarketRepository:
    """Repository over the test database."""
    return MarketRepository(create_session_factory(test_engine), "bitskins")


@pytest_asyncio.fixture
async def seeded_repository(repository) -> MarketRepository:
    """Repository with two item classes already in the catalog."""
    await repository.upsert_item_classes([
        ItemClassData(id="100", name="AK-47 | Redline (Field-Tested)"),
        ItemClassData(id="200", name="AWP | Asiimov (Field-Tested)"),
    ])
    return repository


@pytest.fixture
def mock_adapter() -> AsyncMock:
    """Adapter double exposing the marketplace operations."""
    adapter = AsyncMock(spec=MarketplaceAdapter)
    adapter.name = "bitskins"
    adapter.page_size = 2
    adapter.app_id = 730
    adapter.get_fee_rates.return_value = []
    return adapter


@pytest.fixture
def settings_factory():
    """Build isolated Settings with overrides."""
    return make_settings
