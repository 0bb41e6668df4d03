from __future__ import annotations

from typing import Any, Dict, List

import pytest

from core.price_update_service import PriceUpdateService, RateLimitConfig
from tests.conftest_utils import FakeSupabase, FakeTcgApi, card_row, tcg_card


@pytest.fixture
def rows() -> List[Dict[str, Any]]:
    return [
        card_row("charizard", 350.0, "2025-03-02T00:00:00+00:00"),
        card_row("blastoise", 120.0, "2025-03-01T00:00:00+00:00"),
        card_row("venusaur", 50.0, "2025-03-05T00:00:00+00:00"),
        card_row("raichu", 10.0, "2025-03-03T00:00:00+00:00"),
        card_row("pikachu", 4.5, "2025-03-04T00:00:00+00:00"),
        card_row("energy", None, None),
    ]


@pytest.fixture
def supabase(rows) -> FakeSupabase:
    return FakeSupabase(rows)


@pytest.fixture
def tcg_api(rows) -> FakeTcgApi:
    # Every card's new price is its old price plus one dollar
    return FakeTcgApi({
        r["id"]: tcg_card(market=(r["tcg_price"] or 0.25) + 1) for r in rows
    })


@pytest.fixture
def make_service(supabase, tcg_api):
    created: List[PriceUpdateService] = []

    def _make(**rate_limits) -> PriceUpdateService:
        limits = {"cooldown_seconds": 0.0}
        limits.update(rate_limits)
        service = PriceUpdateService(supabase, tcg_api, rate_limits=RateLimitConfig(**limits))
        created.append(service)
        return service

    yield _make

    for service in created:
        service.stop()


@pytest.fixture
def service(make_service) -> PriceUpdateService:
    return make_service()
