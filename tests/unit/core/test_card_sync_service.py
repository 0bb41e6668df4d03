"""Tests for core.card_sync_service."""
from __future__ import annotations

from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from core.card_sync_service import (
    CardSyncService,
    SetSyncResult,
    SetSyncStatus,
    SyncSummary,
    card_era,
    card_to_row,
    card_variations,
    holofoil_pattern,
    pokemon_generation,
    rarity_code,
    set_to_row,
    special_rarity_type,
)
from core.price_update_service import Priority
from data_sources.base_api import APIError
from tests.conftest_utils import FakeSupabase, FakeTcgApi

pytestmark = pytest.mark.unit

SYNCED_AT = "2025-03-10T00:00:00+00:00"


def api_card(card_id: str, market: Optional[float] = None, series: str = "Base",
             subtypes: Optional[List[str]] = None, rarity: str = "Rare Holo",
             dex: Optional[int] = None) -> Dict[str, Any]:
    """A Pokemon TCG API card as returned by the cards endpoint."""
    card: Dict[str, Any] = {
        "id": card_id,
        "name": card_id.title(),
        "supertype": "Pokémon",
        "subtypes": subtypes or ["Stage 2"],
        "types": ["Fire"],
        "number": card_id.split("-")[-1],
        "rarity": rarity,
        "set": {"id": card_id.split("-")[0], "series": series},
        "images": {"small": f"https://images.example/{card_id}.png", "large": None},
        "nationalPokedexNumbers": [dex] if dex else None,
    }
    if market is not None:
        card["tcgplayer"] = {"prices": {"holofoil": {"market": market}}}
    return card


def api_set(set_id: str, total: int = 10, name: str = "") -> Dict[str, Any]:
    return {
        "id": set_id,
        "name": name or set_id.title(),
        "series": "Base",
        "releaseDate": "1999/01/09",
        "total": total,
        "images": {"logo": f"https://images.example/{set_id}/logo.png", "symbol": None},
    }


def set_row(set_id: str, total: int = 10, last_sync_at: Optional[str] = None) -> Dict[str, Any]:
    return {"id": set_id, "name": set_id.title(), "total": total, "last_sync_at": last_sync_at}


def set_cards(set_id: str, count: int) -> List[Dict[str, Any]]:
    return [{"id": f"{set_id}-{n}", "set_id": set_id} for n in range(1, count + 1)]


@pytest.fixture
def supabase() -> FakeSupabase:
    return FakeSupabase(tables={"sets": [], "inventory_cards": [], "card_variations": []})


@pytest.fixture
def tcg_api() -> FakeTcgApi:
    return FakeTcgApi()


@pytest.fixture
def service(supabase, tcg_api):
    service = CardSyncService(supabase, tcg_api, batch_size=2, cooldown_seconds=0.0)
    yield service
    service.stop()


# ---------------------------------------------------------------------------
# Card data helpers
# ---------------------------------------------------------------------------


class TestCardHelpers:
    @pytest.mark.parametrize("rarity, expected", [
        ("Rare Holo", "RH"),
        ("Rare Secret", "SR"),
        ("Double Rare", "Double Rare"),
        (None, None),
    ])
    def test_rarity_code(self, rarity, expected):
        assert rarity_code(rarity) == expected

    @pytest.mark.parametrize("series, expected", [
        ("Base", "Base"),
        ("Team Rocket", "Base"),
        ("E-Card", "E-Card"),
        ("Skyridge", "E-Series"),
        ("Sword & Shield", "Sword & Shield"),
        ("Neo", "Neo"),
        (None, None),
    ])
    def test_card_era(self, series, expected):
        assert card_era(series) == expected

    @pytest.mark.parametrize("series, expected", [
        ("Jungle", "Cosmos"),
        ("Sun & Moon", "Water-Web"),
        ("Scarlet & Violet", "Light-reflecting Border"),
        ("Neo", None),
        (None, None),
    ])
    def test_holofoil_pattern(self, series, expected):
        assert holofoil_pattern(series) == expected

    @pytest.mark.parametrize("dex, expected", [
        (25, 1),
        (151, 1),
        (152, 2),
        (898, 8),
        (1008, 9),
        (1025, None),
        (None, None),
    ])
    def test_pokemon_generation(self, dex, expected):
        assert pokemon_generation(dex) == expected

    @pytest.mark.parametrize("rarity, subtype, expected", [
        ("Special Illustration Rare", "ex", "Special Illustration Rare"),
        ("Illustration Rare", "ex", "Illustration Rare"),
        ("Rare Secret", "V", "Secret Rare"),
        ("Rare Rainbow", "VMAX", "Rainbow Rare"),
        ("Rare Holo V", "V", "Ultra Rare"),
        ("Rare Holo", "Basic", None),
    ])
    def test_special_rarity_type(self, rarity, subtype, expected):
        assert special_rarity_type({"rarity": rarity}, subtype) == expected

    def test_set_row_leaves_sync_time_alone(self):
        row = set_to_row(api_set("base1", total=102))

        assert row["total"] == 102
        assert row["release_date"] == "1999/01/09"
        assert row["logo_url"] == "https://images.example/base1/logo.png"
        assert "last_sync_at" not in row


class TestCardToRow:
    def test_new_card(self):
        row = card_to_row(api_card("base1-4", market=300.0, dex=6), "base1", None, SYNCED_AT)

        assert row["id"] == "base1-4"
        assert row["set_id"] == "base1"
        assert row["rarity_code"] == "RH"
        assert row["card_era"] == "Base"
        assert row["language"] == "English"
        assert row["pokemon_generation"] == 1
        assert row["tcg_price"] == 300.0
        assert row["price_updated_at"] == SYNCED_AT
        assert row["last_sync_at"] == SYNCED_AT

    def test_unchanged_price_keeps_timestamp(self):
        existing = {"tcg_price": 300.0, "price_updated_at": "2025-01-01T00:00:00+00:00"}

        row = card_to_row(api_card("base1-4", market=300.0), "base1", existing, SYNCED_AT)

        assert row["tcg_price"] == 300.0
        assert row["price_updated_at"] == "2025-01-01T00:00:00+00:00"
        assert row["last_sync_at"] == SYNCED_AT

    def test_changed_price_is_fresh(self):
        existing = {"tcg_price": 300.0, "price_updated_at": "2025-01-01T00:00:00+00:00"}

        row = card_to_row(api_card("base1-4", market=320.0), "base1", existing, SYNCED_AT)

        assert (row["tcg_price"], row["price_updated_at"]) == (320.0, SYNCED_AT)

    def test_set_id_falls_back_to_requested_set(self):
        card = api_card("promo-1")
        card["set"] = None

        assert card_to_row(card, "basep", None, SYNCED_AT)["set_id"] == "basep"


class TestCardVariations:
    def test_normal_only_without_prices(self):
        variations = card_variations(api_card("base1-4"))
        assert [v["variation_type"] for v in variations] == ["Normal"]

    def test_holo_and_reverse_holo(self):
        card = api_card("swsh1-1", series="Sword & Shield")
        card["tcgplayer"] = {"prices": {"holofoil": {"market": 1.0}, "reverseHolofoil": {"market": 0.5}}}

        variations = card_variations(card)

        assert [v["variation_type"] for v in variations] == ["Normal", "Holofoil", "Reverse Holofoil"]
        assert variations[1]["holofoil_pattern"] == "Vertical Stripes"
        assert variations[2]["tcg_api_price_key"] == "reverseHolofoil"
        assert all(v["card_id"] == "swsh1-1" for v in variations)

    def test_special_subtype(self):
        card = api_card("swsh1-2", subtypes=["Basic", "V", "Full Art"], rarity="Rare Ultra")

        special = card_variations(card)[-1]

        assert special["variation_type"] == "V"
        assert special["treatment"] == "Full Art"
        assert special["is_special_rarity"] is True
        assert special["special_rarity_type"] == "Ultra Rare"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class TestResults:
    def test_completion_of_empty_set(self):
        status = SetSyncStatus("x", "X", total=0, synced_count=0, last_sync_at=None, priority=Priority.LOW)
        assert status.completion == 1.0

    def test_summary_dict(self):
        summary = SyncSummary(
            sets_found=3,
            results=[SetSyncResult("a", cards_synced=4), SetSyncResult("b", cards_synced=6)],
            failures={"c": "boom"},
        )

        assert summary.to_dict() == {
            "setsFound": 3,
            "setsSynced": 2,
            "setsFailed": 1,
            "cardsSynced": 10,
            "interrupted": False,
            "results": [
                {"setId": "a", "cardsSynced": 4, "existingCards": 0, "variationsAdded": 0, "variationErrors": 0},
                {"setId": "b", "cardsSynced": 6, "existingCards": 0, "variationsAdded": 0, "variationErrors": 0},
            ],
            "failures": [{"setId": "c", "error": "boom"}],
        }


# ---------------------------------------------------------------------------
# Sets
# ---------------------------------------------------------------------------


class TestSyncSets:
    def test_upserts_fresh_sets(self, service, supabase, tcg_api):
        tcg_api.sets = [api_set("base1", total=102), api_set("jungle"), {"name": "no id"}]

        assert service.sync_sets() == 2

        assert tcg_api.sets_cache_flags == [False]
        upsert = supabase.calls_to("sets", "upsert")[0]
        assert upsert["on_conflict"] == "id"
        assert supabase.row("base1", table="sets")["total"] == 102

    def test_keeps_last_sync_time(self, service, supabase, tcg_api):
        supabase.tables["sets"] = [set_row("base1", last_sync_at=SYNCED_AT)]
        tcg_api.sets = [api_set("base1", total=102)]

        service.sync_sets()

        row = supabase.row("base1", table="sets")
        assert row["last_sync_at"] == SYNCED_AT
        assert row["total"] == 102

    def test_no_sets_writes_nothing(self, service, supabase):
        assert service.sync_sets() == 0
        assert supabase.calls_to("sets", "upsert") == []


class TestSyncPriority:
    @pytest.mark.parametrize("in_inventory, expected", [
        (0, Priority.LOW),
        (10, Priority.LOW),
        (11, Priority.MEDIUM),
        (50, Priority.MEDIUM),
        (51, Priority.HIGH),
    ])
    def test_inventory_thresholds(self, service, supabase, in_inventory, expected):
        supabase.tables["inventory_cards"] = set_cards("base1", in_inventory)
        assert service.sync_priority("base1") is expected

    def test_lookup_error_means_low(self, service, supabase):
        supabase.failing_tables["inventory_cards"] = RuntimeError("relation does not exist")
        assert service.sync_priority("base1") is Priority.LOW


class TestGetSetsToSync:
    def test_priority_then_completion_then_age(self, service, supabase):
        supabase.tables["sets"] = [
            set_row("done", last_sync_at="2025-03-01T00:00:00+00:00"),
            set_row("partial", last_sync_at="2025-03-02T00:00:00+00:00"),
            set_row("popular", total=100, last_sync_at="2025-03-03T00:00:00+00:00"),
            set_row("never"),
        ]
        supabase.rows = set_cards("done", 10) + set_cards("partial", 2) + set_cards("never", 10)
        supabase.tables["inventory_cards"] = set_cards("popular", 60)

        statuses = service.get_sets_to_sync()

        assert [s.id for s in statuses] == ["popular", "partial", "never", "done"]
        assert statuses[0].priority is Priority.HIGH
        assert statuses[1].synced_count == 2
        assert statuses[1].completion == 0.2

    def test_empty_table_syncs_sets_first(self, service, supabase, tcg_api):
        tcg_api.sets = [api_set("base1"), api_set("jungle")]

        statuses = service.get_sets_to_sync()

        assert {s.id for s in statuses} == {"base1", "jungle"}
        assert tcg_api.sets_cache_flags == [False]


# ---------------------------------------------------------------------------
# Cards
# ---------------------------------------------------------------------------


@pytest.fixture
def base_set(supabase, tcg_api):
    supabase.tables["sets"] = [set_row("base1")]
    supabase.rows = [{
        "id": "base1-4",
        "set_id": "base1",
        "tcg_price": 300.0,
        "price_updated_at": "2025-01-01T00:00:00+00:00",
    }]
    tcg_api.cards_by_set["base1"] = [api_card("base1-4", market=300.0), api_card("base1-2", market=50.0)]


@pytest.mark.usefixtures("base_set")
class TestSyncCardsBySet:
    def test_upserts_cards(self, service, supabase):
        result = service.sync_cards_by_set("base1")

        assert (result.cards_synced, result.existing_cards) == (2, 1)
        assert supabase.row("base1-2")["tcg_price"] == 50.0
        assert supabase.row("base1-2")["set_id"] == "base1"

    def test_unchanged_price_keeps_timestamp(self, service, supabase):
        service.sync_cards_by_set("base1")
        assert supabase.row("base1-4")["price_updated_at"] == "2025-01-01T00:00:00+00:00"

    def test_upserts_in_batches(self, supabase, tcg_api):
        service = CardSyncService(supabase, tcg_api, upsert_batch_size=1)

        service.sync_cards_by_set("base1")

        upserts = supabase.calls_to("cards", "upsert")
        assert [len(u["values"]) for u in upserts] == [1, 1]
        assert all(u["on_conflict"] == "id" for u in upserts)

    def test_marks_set_synced(self, service, supabase):
        service.sync_cards_by_set("base1")

        update = supabase.calls_to("sets", "update")[0]
        assert update["filters"] == [("id", "eq", "base1")]
        assert supabase.row("base1", table="sets")["last_sync_at"] is not None

    def test_adds_missing_variations_once(self, service, supabase):
        first = service.sync_cards_by_set("base1")
        second = service.sync_cards_by_set("base1")

        # Normal and Holofoil for each card
        assert first.variations_added == 4
        assert second.variations_added == 0
        assert len(supabase.tables["card_variations"]) == 4

    def test_variation_errors_are_counted(self, service, supabase):
        supabase.failing_tables["card_variations"] = RuntimeError("insert failed")

        result = service.sync_cards_by_set("base1")

        assert result.variation_errors == 2
        assert result.cards_synced == 2
        assert supabase.row("base1", table="sets")["last_sync_at"] is not None

    def test_upstream_error_propagates(self, service, supabase, tcg_api):
        tcg_api.cards_by_set["base1"] = APIError("API error 503: Service Unavailable", status_code=503)

        with pytest.raises(APIError):
            service.sync_cards_by_set("base1")

        assert supabase.row("base1", table="sets")["last_sync_at"] is None


# ---------------------------------------------------------------------------
# Full sync
# ---------------------------------------------------------------------------


@pytest.fixture
def three_sets(supabase, tcg_api):
    supabase.tables["sets"] = [set_row("base1"), set_row("jungle"), set_row("fossil")]
    tcg_api.cards_by_set.update({
        "base1": [api_card("base1-4", market=300.0)],
        "jungle": [api_card("jungle-1", market=5.0), api_card("jungle-2")],
        "fossil": RuntimeError("boom"),
    })


@pytest.mark.usefixtures("three_sets")
class TestSyncAllSets:
    def test_syncs_every_set(self, service, monkeypatch):
        wait = MagicMock(return_value=False)
        monkeypatch.setattr(service._stop_event, "wait", wait)

        summary = service.sync_all_sets()

        assert summary.sets_found == 3
        assert {r.set_id for r in summary.results} == {"base1", "jungle"}
        assert summary.failures == {"fossil": "boom"}
        assert summary.to_dict()["cardsSynced"] == 3
        # Cooldown only between batches of two
        assert wait.call_count == 1

    def test_batch_size_override(self, service, tcg_api, monkeypatch):
        wait = MagicMock(return_value=False)
        monkeypatch.setattr(service._stop_event, "wait", wait)

        service.sync_all_sets(batch_size=1)

        assert wait.call_count == 2
        assert sorted(tcg_api.set_calls) == ["base1", "fossil", "jungle"]

    def test_shutdown_interrupts_between_batches(self, service, tcg_api, monkeypatch):
        monkeypatch.setattr(service._stop_event, "wait", MagicMock(return_value=True))

        summary = service.sync_all_sets(batch_size=1)

        assert summary.interrupted is True
        assert len(tcg_api.set_calls) == 1

    @pytest.mark.parametrize("batch_size", [0, -2])
    def test_invalid_batch_size(self, service, batch_size):
        with pytest.raises(ValueError):
            service.sync_all_sets(batch_size=batch_size)
