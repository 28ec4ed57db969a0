"""
Pytest Configuration and Shared Fixtures for TCC Engine Tests.

This module provides fixtures and configuration for all engine tests, supporting:
- Async endpoint tests with pytest-asyncio
- Market survey rows with round benchmark numbers so expected percentiles can
  be worked out by hand
- A provider factory producing validated ProviderRow objects
- Fresh Settings instances isolated from the process environment
- A FastAPI TestClient wired to an isolated in-memory repository

Reference market (Internal Medicine), per 1.0 cFTE:
    TCC   250,000 / 300,000 / 360,000 / 420,000
    wRVU    4,000 /   5,000 /   6,000 /   7,000
    CF         40 /      45 /      50 /      55

Dependencies:
- pytest
- pytest-asyncio
- httpx (FastAPI TestClient)
"""

from typing import Any, Callable, Dict, Generator, List

import pytest
from fastapi.testclient import TestClient

from tcc_engine.core.config import Settings, get_settings
from tcc_engine.core.dependencies import get_repository, get_settings_dependency
from tcc_engine.main import app
from tcc_engine.models.schemas import MarketRow, ProviderRow
from tcc_engine.services.persistence import InMemoryScenarioRepository


# ============================================================
# PYTEST PLUGINS CONFIGURATION
# ============================================================

pytest_plugins: List[str] = ['pytest_asyncio']


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """
    Configure custom pytest markers for test organization.

    Custom markers defined:
    - slow: Marks tests as slow (deselect with -m "not slow")
    - api: Marks tests that go through the FastAPI application

    Args:
        config: Pytest configuration object
    """
    config.addinivalue_line(
        'markers',
        'slow: marks tests as slow (deselect with -m "not slow")'
    )
    config.addinivalue_line(
        'markers',
        'api: marks tests exercising the HTTP layer'
    )


# ============================================================
# SETTINGS FIXTURES
# ============================================================

@pytest.fixture
def settings() -> Generator[Settings, None, None]:
    """
    Fresh engine settings with documented defaults.

    The get_settings cache is cleared before and after so that a test which
    patches the environment never leaks into the next one.
    """
    get_settings.cache_clear()
    yield Settings(_env_file=None)
    get_settings.cache_clear()


# ============================================================
# MARKET FIXTURES
# ============================================================

IM_MARKET: Dict[str, Any] = {
    "specialty": "Internal Medicine",
    "TCC_25": 250000, "TCC_50": 300000, "TCC_75": 360000, "TCC_90": 420000,
    "WRVU_25": 4000, "WRVU_50": 5000, "WRVU_75": 6000, "WRVU_90": 7000,
    "CF_25": 40, "CF_50": 45, "CF_75": 50, "CF_90": 55,
}

CARDIOLOGY_MARKET: Dict[str, Any] = {
    "specialty": "Cardiology",
    "TCC_25": 400000, "TCC_50": 500000, "TCC_75": 600000, "TCC_90": 700000,
    "WRVU_25": 6000, "WRVU_50": 7000, "WRVU_75": 8000, "WRVU_90": 9000,
    "CF_25": 55, "CF_50": 60, "CF_75": 65, "CF_90": 70,
}


@pytest.fixture
def im_market() -> MarketRow:
    """Internal Medicine market row (see module docstring for values)."""
    return MarketRow.model_validate(IM_MARKET)


@pytest.fixture
def cardiology_market() -> MarketRow:
    return MarketRow.model_validate(CARDIOLOGY_MARKET)


@pytest.fixture
def market_rows(im_market: MarketRow, cardiology_market: MarketRow) -> List[MarketRow]:
    return [im_market, cardiology_market]


# ============================================================
# PROVIDER FIXTURES
# ============================================================

@pytest.fixture
def make_provider() -> Callable[..., ProviderRow]:
    """
    Factory for validated provider rows.

    Defaults describe a full-time Internal Medicine physician paid
    $300,000 base at $45/wRVU producing 5,000 wRVUs: exactly the market
    median on every axis.

    Usage:
        provider = make_provider(providerId="P-2", workRVUs=6000)
    """
    def _make(**overrides: Any) -> ProviderRow:
        record: Dict[str, Any] = {
            "providerId": "P-001",
            "providerName": "Dr. Median",
            "specialty": "Internal Medicine",
            "division": "Medicine",
            "totalFTE": 1.0,
            "clinicalFTE": 1.0,
            "baseSalary": 300000,
            "workRVUs": 5000,
            "currentCF": 45,
        }
        record.update(overrides)
        return ProviderRow.model_validate(record)

    return _make


@pytest.fixture
def median_provider(make_provider: Callable[..., ProviderRow]) -> ProviderRow:
    return make_provider()


# ============================================================
# API FIXTURES
# ============================================================

@pytest.fixture
def repository() -> InMemoryScenarioRepository:
    """Empty in-memory scenario repository."""
    return InMemoryScenarioRepository()


@pytest.fixture
def client(settings: Settings, repository: InMemoryScenarioRepository) -> Generator[TestClient, None, None]:
    """
    TestClient for the application with the repository and settings overridden.

    Overrides are removed on teardown so tests never share saved scenarios.
    """
    app.dependency_overrides[get_repository] = lambda: repository
    app.dependency_overrides[get_settings_dependency] = lambda: settings
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
