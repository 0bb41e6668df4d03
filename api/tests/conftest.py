"""
api.tests.conftest - Pytest fixtures for API tests.

Provides a test client wired to a mocked application context.
"""

from __future__ import annotations

from typing import Generator
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from core.card_sync_service import SetSyncResult, SyncSummary
from core.price_update_service import CardPriceUpdate, PriceUpdateSummary


@pytest.fixture
def queue_stats() -> dict:
    return {
        "queuedItems": 45,
        "highPriorityItems": 12,
        "mediumPriorityItems": 18,
        "lowPriorityItems": 15,
        "estimatedTimeToComplete": 2,
    }


@pytest.fixture
def price_stats() -> dict:
    return {
        "totalCards": 120,
        "cardsWithPrices": 100,
        "cardsWithoutPrices": 20,
        "highValueCards": 10,
        "mediumValueCards": 30,
        "lowValueCards": 60,
        "lastUpdated": {
            "oldest": "2025-03-01T00:00:00+00:00",
            "newest": "2025-03-14T12:00:00+00:00",
            "averageAgeInDays": 6,
        },
    }


@pytest.fixture
def update_summary() -> PriceUpdateSummary:
    return PriceUpdateSummary(results=[
        CardPriceUpdate(
            card_id="base1-4",
            card_name="Charizard",
            set_id="base1",
            success=True,
            old_price=300.0,
            new_price=330.0,
        ),
        CardPriceUpdate(
            card_id="base1-58",
            card_name="Pikachu",
            set_id="base1",
            success=False,
            error="No price available from API",
        ),
    ])


@pytest.fixture
def mock_price_update_service(
    queue_stats: dict,
    price_stats: dict,
    update_summary: PriceUpdateSummary,
) -> MagicMock:
    """Create a mock price update service with standard test data."""
    service = MagicMock()
    service.get_queue_stats.return_value = queue_stats
    service.get_price_update_stats.return_value = price_stats
    service.count_cards.return_value = 120
    service.update_prices_by_tier.return_value = update_summary
    service.batch_update_prices.return_value = update_summary
    service.update_price_for_card.return_value = update_summary.results[0]
    service.schedule_updates.return_value = {
        "queueStats": queue_stats,
        "message": "Successfully queued 45 cards for price updates",
    }
    return service


@pytest.fixture
def sync_summary() -> SyncSummary:
    return SyncSummary(
        sets_found=2,
        results=[SetSyncResult("base1", cards_synced=102, existing_cards=100, variations_added=4)],
        failures={"jungle": "API error 503: Service Unavailable"},
    )


@pytest.fixture
def mock_card_sync_service(sync_summary: SyncSummary) -> MagicMock:
    service = MagicMock()
    service.sync_sets.return_value = 3
    service.sync_cards_by_set.return_value = sync_summary.results[0]
    service.sync_all_sets.return_value = sync_summary
    return service


@pytest.fixture
def mock_tcg_api() -> MagicMock:
    tcg_api = MagicMock(has_api_key=False)
    tcg_api.get_all_sets.return_value = {"data": [{"id": "base1", "name": "Base"}]}
    return tcg_api


@pytest.fixture
def mock_config() -> MagicMock:
    config = MagicMock()
    config.cards_table = "cards"
    config.supabase_url = "https://project.supabase.co"
    config.pokemon_tcg_api_key = ""
    config.requests_per_minute = 30
    config.burst_size = 5
    config.cooldown_seconds = 2.0
    config.cache_ttl_seconds = 3600
    return config


@pytest.fixture
def mock_app_context(
    mock_price_update_service: MagicMock,
    mock_card_sync_service: MagicMock,
    mock_tcg_api: MagicMock,
    mock_config: MagicMock,
) -> MagicMock:
    """Create a mock app context with all services."""
    ctx = MagicMock()
    ctx.config = mock_config
    ctx.supabase = MagicMock()
    ctx.tcg_api = mock_tcg_api
    ctx.price_update_service = mock_price_update_service
    ctx.card_sync_service = mock_card_sync_service
    ctx.close = MagicMock()
    return ctx


@pytest.fixture
def client(
    mock_app_context: MagicMock,
    monkeypatch: pytest.MonkeyPatch,
) -> Generator[TestClient, None, None]:
    """Create a test client whose lifespan builds the mocked context."""
    import api.main
    from api import dependencies

    monkeypatch.setattr(api.main, "create_app_context", lambda: mock_app_context)
    api.main.app.dependency_overrides[dependencies.get_app_context] = lambda: mock_app_context

    with TestClient(api.main.app) as test_client:
        yield test_client

    api.main.app.dependency_overrides.clear()
