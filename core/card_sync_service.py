"""
Card and set sync from the Pokemon TCG API into Supabase.

- sync_sets(): upsert the metadata of every set into ``sets``
- get_sets_to_sync(): stored sets ordered by sync priority
- sync_cards_by_set(): upsert one set's cards and their print variations
- sync_all_sets(): sync the cards of every set, a few sets at a time

Card rows keep their stored price and ``price_updated_at`` when the API
reports the same price, so a sync never makes a price look fresher than it is.
"""

from __future__ import annotations

import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from core.constants import (
    CARD_UPSERT_BATCH_SIZE,
    CARD_VARIATIONS_TABLE,
    CARDS_TABLE,
    INVENTORY_TABLE,
    SETS_TABLE,
    SYNC_BATCH_SIZE_DEFAULT,
    SYNC_COOLDOWN_SECONDS_DEFAULT,
    SYNC_HIGH_INVENTORY_THRESHOLD,
    SYNC_MEDIUM_INVENTORY_THRESHOLD,
)
from core.price_update_service import Priority, get_price, parse_timestamp

logger = logging.getLogger(__name__)


RARITY_CODES = {
    "Common": "C",
    "Uncommon": "U",
    "Rare": "R",
    "Rare Holo": "RH",
    "Rare Ultra": "UR",
    "Rare Holo EX": "EX",
    "Rare Holo GX": "GX",
    "Rare Holo V": "V",
    "Rare Holo VMAX": "VMAX",
    "Rare Holo VSTAR": "VSTAR",
    "Rare Secret": "SR",
    "Rare Rainbow": "RR",
    "Promo": "PR",
    "Amazing Rare": "AR",
    "Rare Shiny": "SH",
    "Rare Shining": "SL",
    "Classic Collection": "CC",
    "Trainer Gallery": "TG",
}

# (substrings of the series name, value); first match wins
CARD_ERAS = (
    (("Base", "Fossil", "Jungle", "Team Rocket"), "Base"),
    (("E-Series", "Expedition", "Aquapolis", "Skyridge"), "E-Series"),
    (("EX",), "EX Series"),
    (("Diamond & Pearl",), "Diamond & Pearl"),
    (("Black & White",), "Black & White"),
    (("XY",), "XY"),
    (("Sun & Moon",), "Sun & Moon"),
    (("Sword & Shield",), "Sword & Shield"),
    (("Scarlet & Violet",), "Scarlet & Violet"),
)

HOLOFOIL_PATTERNS = (
    (("Base", "Fossil", "Jungle", "E-Series", "Ex Series"), "Cosmos"),
    (("Black & White",), "Tinsel"),
    (("XY",), "Sheen"),
    (("Sun & Moon",), "Water-Web"),
    (("Sword & Shield",), "Vertical Stripes"),
    (("Scarlet & Violet",), "Light-reflecting Border"),
)

# Highest national dex number of generations 1..9
GENERATION_LAST_DEX = (151, 251, 386, 493, 649, 721, 809, 898, 1008)

SPECIAL_SUBTYPES = ("V", "VMAX", "VSTAR", "EX", "GX", "V-UNION")


# ==============================================================================
# Card data helpers
# ==============================================================================


def _match_series(series: Optional[str], table: Tuple[Tuple[Tuple[str, ...], str], ...]) -> Optional[str]:
    if not series:
        return None
    for markers, value in table:
        if any(marker in series for marker in markers):
            return value
    return None


def rarity_code(rarity: Optional[str]) -> Optional[str]:
    """Short code of a rarity; unknown rarities are returned unchanged."""
    if not rarity:
        return None
    return RARITY_CODES.get(rarity, rarity)


def card_era(series: Optional[str]) -> Optional[str]:
    if not series:
        return None
    return _match_series(series, CARD_ERAS) or series


def holofoil_pattern(series: Optional[str]) -> Optional[str]:
    return _match_series(series, HOLOFOIL_PATTERNS)


def pokemon_generation(dex_number: Optional[int]) -> Optional[int]:
    if not dex_number:
        return None
    for generation, last_dex in enumerate(GENERATION_LAST_DEX, start=1):
        if dex_number <= last_dex:
            return generation
    return None


def special_treatment(card: Mapping[str, Any]) -> Optional[str]:
    subtypes = card.get("subtypes") or []
    rarity = card.get("rarity") or ""
    if "Full Art" in subtypes:
        return "Full Art"
    if "Alt Art" in subtypes or "Alternate Art" in subtypes:
        return "Alt Art"
    if "Rainbow" in rarity:
        return "Rainbow Rare"
    if "Secret" in rarity:
        return "Secret Rare"
    return None


def special_rarity_type(card: Mapping[str, Any], subtype: str) -> Optional[str]:
    subtypes = card.get("subtypes") or []
    rarity = card.get("rarity") or ""
    if "Secret" in rarity:
        return "Secret Rare"
    if "Rainbow" in rarity:
        return "Rainbow Rare"
    if "Amazing Rare" in rarity:
        return "Amazing Rare"
    if "Shiny" in rarity:
        return "Shiny Rare"
    # Checked before the plain name, which it contains
    if "Special Illustration Rare" in rarity or "Special Illustration Rare" in subtypes:
        return "Special Illustration Rare"
    if "Illustration Rare" in rarity or "Illustration Rare" in subtypes:
        return "Illustration Rare"
    return "Ultra Rare" if subtype in SPECIAL_SUBTYPES else None


def set_to_row(tcg_set: Mapping[str, Any]) -> Dict[str, Any]:
    """Row of the ``sets`` table for an API set. ``last_sync_at`` is left alone."""
    images = tcg_set.get("images") or {}
    return {
        "id": tcg_set["id"],
        "name": tcg_set.get("name"),
        "series": tcg_set.get("series"),
        "release_date": tcg_set.get("releaseDate"),
        "total": tcg_set.get("total"),
        "logo_url": images.get("logo"),
        "symbol_url": images.get("symbol"),
    }


def card_to_row(
    card: Mapping[str, Any],
    set_id: str,
    existing: Optional[Mapping[str, Any]],
    synced_at: str,
) -> Dict[str, Any]:
    """
    Row of the ``cards`` table for an API card.

    An unchanged price keeps its stored ``price_updated_at``.
    """
    card_set = card.get("set") or {}
    images = card.get("images") or {}
    dex_numbers = card.get("nationalPokedexNumbers") or [None]

    new_price = get_price(card)
    price_unchanged = existing is not None and new_price == existing.get("tcg_price")

    return {
        "id": card["id"],
        "name": card.get("name"),
        "supertype": card.get("supertype"),
        "types": card.get("types") or None,
        "set_id": card_set.get("id") or set_id,
        "number": card.get("number"),
        "rarity": card.get("rarity"),
        "rarity_code": rarity_code(card.get("rarity")),
        "card_era": card_era(card_set.get("series")),
        "language": "English",
        "image_small": images.get("small"),
        "image_large": images.get("large"),
        "pokemon_generation": pokemon_generation(dex_numbers[0]),
        "tcg_price": existing.get("tcg_price") if price_unchanged else new_price,
        "price_updated_at": existing.get("price_updated_at") if price_unchanged else synced_at,
        "last_sync_at": synced_at,
    }


def card_variations(card: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """Print variations of a card: normal, holo and reverse holo, special subtypes."""
    series = (card.get("set") or {}).get("series")
    tcgplayer = card.get("tcgplayer")
    prices = tcgplayer.get("prices") if isinstance(tcgplayer, Mapping) else None
    if not isinstance(prices, Mapping):
        prices = {}

    base = {
        "card_id": card["id"],
        "treatment": None,
        "holofoil_pattern": None,
        "is_special_rarity": False,
        "special_rarity_type": None,
        "image_url": (card.get("images") or {}).get("small"),
    }
    variations = [{**base, "variation_type": "Normal", "tcg_api_price_key": "normal"}]

    for price_key, variation_type in (("holofoil", "Holofoil"), ("reverseHolofoil", "Reverse Holofoil")):
        if prices.get(price_key):
            variations.append({
                **base,
                "variation_type": variation_type,
                "holofoil_pattern": holofoil_pattern(series),
                "tcg_api_price_key": price_key,
            })

    for subtype in card.get("subtypes") or []:
        if subtype in SPECIAL_SUBTYPES:
            variations.append({
                **base,
                "variation_type": subtype,
                "treatment": special_treatment(card),
                "is_special_rarity": True,
                "special_rarity_type": special_rarity_type(card, subtype),
                "tcg_api_price_key": "normal",
            })

    return variations


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ==============================================================================
# Results
# ==============================================================================


@dataclass
class SetSyncStatus:
    """A stored set and how much of it is synced."""

    id: str
    name: str
    total: int
    synced_count: int
    last_sync_at: Optional[str]
    priority: Priority

    @property
    def completion(self) -> float:
        if not self.total:
            return 1.0
        return self.synced_count / self.total

    def sort_key(self) -> Tuple[int, float, float]:
        # Priority first, then least complete, then longest since the last sync
        synced = parse_timestamp(self.last_sync_at)
        return -self.priority.weight, self.completion, synced.timestamp() if synced else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "total": self.total,
            "syncedCount": self.synced_count,
            "lastSyncAt": self.last_sync_at,
            "priority": self.priority.value,
        }


@dataclass
class SetSyncResult:
    set_id: str
    cards_synced: int = 0
    existing_cards: int = 0
    variations_added: int = 0
    variation_errors: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "setId": self.set_id,
            "cardsSynced": self.cards_synced,
            "existingCards": self.existing_cards,
            "variationsAdded": self.variations_added,
            "variationErrors": self.variation_errors,
        }


@dataclass
class SyncSummary:
    sets_found: int = 0
    results: List[SetSyncResult] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)
    interrupted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "setsFound": self.sets_found,
            "setsSynced": len(self.results),
            "setsFailed": len(self.failures),
            "cardsSynced": sum(r.cards_synced for r in self.results),
            "interrupted": self.interrupted,
            "results": [r.to_dict() for r in self.results],
            "failures": [{"setId": set_id, "error": error} for set_id, error in self.failures.items()],
        }


# ==============================================================================
# Service
# ==============================================================================


class CardSyncService:
    """Copies sets, cards and card variations from the Pokemon TCG API into Supabase."""

    def __init__(
        self,
        supabase: Any,
        tcg_api: Any,
        batch_size: int = SYNC_BATCH_SIZE_DEFAULT,
        cooldown_seconds: float = SYNC_COOLDOWN_SECONDS_DEFAULT,
        upsert_batch_size: int = CARD_UPSERT_BATCH_SIZE,
        cards_table: str = CARDS_TABLE,
        sets_table: str = SETS_TABLE,
        inventory_table: str = INVENTORY_TABLE,
        variations_table: str = CARD_VARIATIONS_TABLE,
    ) -> None:
        self.supabase = supabase
        self.tcg_api = tcg_api
        self.batch_size = batch_size
        self.cooldown_seconds = cooldown_seconds
        self.upsert_batch_size = upsert_batch_size
        self.cards_table = cards_table
        self.sets_table = sets_table
        self.inventory_table = inventory_table
        self.variations_table = variations_table
        self._stop_event = threading.Event()

    # ------------------------------------------------------------------
    # Sets
    # ------------------------------------------------------------------

    def sync_sets(self) -> int:
        """Upsert every set from the API. Returns the number of sets written."""
        logger.info("Starting set sync...")
        sets = self.tcg_api.get_all_sets(use_cache=False).get("data") or []
        rows = [set_to_row(s) for s in sets if isinstance(s, Mapping) and s.get("id")]

        if rows:
            self.supabase.table(self.sets_table).upsert(rows, on_conflict="id").execute()

        logger.info(f"Successfully synced {len(rows)} sets")
        return len(rows)

    def _count(self, table: str, set_id: str) -> int:
        return (
            self.supabase.table(table)
            .select("*", count="exact", head=True)
            .eq("set_id", set_id)
            .execute().count or 0
        )

    def sync_priority(self, set_id: str) -> Priority:
        """Sets with more cards in inventory are synced first. Lookup errors mean low."""
        try:
            in_inventory = self._count(self.inventory_table, set_id)
        except Exception as e:
            logger.error(f"Error calculating sync priority for set {set_id}: {e}")
            return Priority.LOW

        if in_inventory > SYNC_HIGH_INVENTORY_THRESHOLD:
            return Priority.HIGH
        if in_inventory > SYNC_MEDIUM_INVENTORY_THRESHOLD:
            return Priority.MEDIUM
        return Priority.LOW

    def _stored_sets(self) -> List[Dict[str, Any]]:
        return (
            self.supabase.table(self.sets_table)
            .select("id, name, total, last_sync_at")
            .order("last_sync_at")
            .execute().data or []
        )

    def get_sets_to_sync(self) -> List[SetSyncStatus]:
        """
        Stored sets in sync order. An empty ``sets`` table is filled from the
        API first.
        """
        logger.info("Getting sets that need synchronization...")
        rows = self._stored_sets()
        if not rows:
            logger.warning("No sets found in database. Syncing sets first...")
            self.sync_sets()
            rows = self._stored_sets()

        statuses = [
            SetSyncStatus(
                id=str(row["id"]),
                name=row.get("name") or "",
                total=int(row.get("total") or 0),
                synced_count=self._count(self.cards_table, row["id"]),
                last_sync_at=row.get("last_sync_at"),
                priority=self.sync_priority(row["id"]),
            )
            for row in rows
        ]
        statuses.sort(key=SetSyncStatus.sort_key)
        return statuses

    # ------------------------------------------------------------------
    # Cards
    # ------------------------------------------------------------------

    def sync_cards_by_set(self, set_id: str) -> SetSyncResult:
        """
        Upsert every card of ``set_id`` and add missing print variations.

        Variation failures are counted per card; any other failure propagates.
        """
        logger.info(f"Starting card sync for set {set_id}...")

        existing_rows = (
            self.supabase.table(self.cards_table)
            .select("id, tcg_price, price_updated_at")
            .eq("set_id", set_id)
            .execute().data or []
        )
        existing = {str(row["id"]): row for row in existing_rows}
        logger.info(f"Found {len(existing)} existing cards for set {set_id}")

        cards = [
            card for card in self.tcg_api.get_cards_by_set(set_id).get("data") or []
            if isinstance(card, Mapping) and card.get("id")
        ]
        synced_at = _utc_now_iso()
        rows = [card_to_row(card, set_id, existing.get(str(card["id"])), synced_at) for card in cards]

        size = self.upsert_batch_size
        batches = math.ceil(len(rows) / size)
        for number, start in enumerate(range(0, len(rows), size), start=1):
            logger.info(f"Inserting batch {number}/{batches} for set {set_id}")
            self.supabase.table(self.cards_table).upsert(rows[start:start + size], on_conflict="id").execute()

        result = SetSyncResult(set_id=set_id, cards_synced=len(rows), existing_cards=len(existing))
        for card in cards:
            try:
                result.variations_added += self._add_missing_variations(card)
            except Exception as e:
                logger.error(f"Error processing variations for card {card['id']}: {e}")
                result.variation_errors += 1

        self.supabase.table(self.sets_table).update({"last_sync_at": synced_at}).eq("id", set_id).execute()

        logger.info(f"Successfully synced {result.cards_synced} cards for set {set_id}")
        logger.info(
            f"Processed variations: {result.variations_added} added, "
            f"{result.variation_errors} failed"
        )
        return result

    def _add_missing_variations(self, card: Mapping[str, Any]) -> int:
        stored = (
            self.supabase.table(self.variations_table)
            .select("variation_type, treatment")
            .eq("card_id", card["id"])
            .execute().data or []
        )
        seen = {(row.get("variation_type"), row.get("treatment")) for row in stored}

        missing = []
        for variation in card_variations(card):
            key = (variation["variation_type"], variation["treatment"])
            if key not in seen:
                seen.add(key)
                missing.append(variation)

        if missing:
            self.supabase.table(self.variations_table).insert(missing).execute()
        return len(missing)

    # ------------------------------------------------------------------
    # Full sync
    # ------------------------------------------------------------------

    def _sync_one(self, status: SetSyncStatus) -> Tuple[Optional[SetSyncResult], Optional[str]]:
        logger.info(f"Syncing set {status.name} ({status.id}) - Priority: {status.priority.value}")
        try:
            return self.sync_cards_by_set(status.id), None
        except Exception as e:
            logger.error(f"Error syncing set {status.id}: {e}")
            return None, str(e) or type(e).__name__

    def sync_all_sets(self, batch_size: Optional[int] = None) -> SyncSummary:
        """
        Sync the cards of every stored set in priority order.

        ``batch_size`` sets run concurrently, batches are separated by the
        cooldown. A failing set is recorded and the sync moves on.
        """
        if batch_size is None:
            batch_size = self.batch_size
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        logger.info(f"Starting full synchronization with batch size {batch_size}...")
        statuses = self.get_sets_to_sync()
        summary = SyncSummary(sets_found=len(statuses))
        logger.info(f"Found {len(statuses)} sets to sync")

        batches = math.ceil(len(statuses) / batch_size)
        for number, start in enumerate(range(0, len(statuses), batch_size), start=1):
            if start and self._stop_event.wait(self.cooldown_seconds):
                logger.warning("Set sync interrupted by shutdown")
                summary.interrupted = True
                break

            batch = statuses[start:start + batch_size]
            logger.info(f"Processing batch {number}/{batches}")
            with ThreadPoolExecutor(max_workers=len(batch)) as executor:
                outcomes = list(executor.map(self._sync_one, batch))

            for status, (result, error) in zip(batch, outcomes):
                if result is not None:
                    summary.results.append(result)
                else:
                    summary.failures[status.id] = error or "Unknown error"

        logger.info(
            f"Full synchronization completed: {len(summary.results)} sets synced, "
            f"{len(summary.failures)} failed"
        )
        return summary

    def stop(self) -> None:
        """Interrupt a running full sync at its next batch boundary."""
        self._stop_event.set()
