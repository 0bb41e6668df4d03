"""
Price updates for Pokemon TCG cards.

Card rows live in the Supabase ``cards`` table; fresh prices come from the
Pokemon TCG API. Three ways to refresh them:

- update_prices_by_tier(): one pass over the stalest cards of a value tier
- batch_update_prices(): stalest-first batches with a cooldown between them
- schedule_updates(): queue every card; a background worker drains the queue
  in rate-limited bursts, high-value cards first

get_queue_stats() and get_price_update_stats() report on the queue and on
price coverage in the database.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, TypedDict

from core.constants import (
    BURST_SIZE_DEFAULT,
    CARD_UPDATE_COLUMNS,
    CARDS_TABLE,
    COOLDOWN_SECONDS_DEFAULT,
    HIGH_VALUE_THRESHOLD,
    MEDIUM_VALUE_THRESHOLD,
    PRICE_VARIANT_ORDER,
    REQUESTS_PER_MINUTE_DEFAULT,
    THREAD_JOIN_TIMEOUT,
)

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 60 * 60 * 24


# ==============================================================================
# Types
# ==============================================================================


class Priority(str, Enum):
    """Update priority of a queued card."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def weight(self) -> int:
        return {"high": 3, "medium": 2, "low": 1}[self.value]


class PriceTier(str, Enum):
    """Value tier selected for an update pass."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    ALL = "all"


class CardNotFoundError(LookupError):
    """Raised when a card id has no row in the cards table."""

    def __init__(self, card_id: str) -> None:
        self.card_id = card_id
        super().__init__(f"Card not found: {card_id}")


class QueueStats(TypedDict):
    queuedItems: int
    highPriorityItems: int
    mediumPriorityItems: int
    lowPriorityItems: int
    estimatedTimeToComplete: int  # minutes


class LastUpdatedStats(TypedDict):
    oldest: Optional[str]
    newest: Optional[str]
    averageAgeInDays: int


class PriceUpdateStats(TypedDict):
    totalCards: int
    cardsWithPrices: int
    cardsWithoutPrices: int
    highValueCards: int
    mediumValueCards: int
    lowValueCards: int
    lastUpdated: LastUpdatedStats


@dataclass
class RateLimitConfig:
    """Pacing of the background queue worker."""

    requests_per_minute: int = REQUESTS_PER_MINUTE_DEFAULT
    burst_size: int = BURST_SIZE_DEFAULT
    cooldown_seconds: float = COOLDOWN_SECONDS_DEFAULT


@dataclass
class PriceUpdateQueueItem:
    card_id: str
    card_name: str
    set_id: str
    priority: Priority
    current_price: Optional[float] = None
    last_updated: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any], priority: Priority) -> "PriceUpdateQueueItem":
        return cls(
            card_id=str(row["id"]),
            card_name=row.get("name") or "",
            set_id=row.get("set_id") or "",
            priority=priority,
            current_price=row.get("tcg_price"),
            last_updated=row.get("price_updated_at"),
        )


@dataclass
class CardPriceUpdate:
    """Outcome of refreshing one card's price."""

    card_id: str
    card_name: str
    set_id: str
    success: bool
    old_price: Optional[float] = None
    new_price: Optional[float] = None
    error: Optional[str] = None

    @property
    def price_change(self) -> Optional[float]:
        if self.new_price is None:
            return None
        return self.new_price - (self.old_price or 0)

    @property
    def price_change_percent(self) -> Optional[float]:
        if self.new_price is None:
            return None
        if not self.old_price:
            return 0.0
        return (self.new_price - self.old_price) / self.old_price * 100

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "cardId": self.card_id,
            "cardName": self.card_name,
            "setId": self.set_id,
        }
        if self.success:
            data.update({
                "oldPrice": self.old_price,
                "newPrice": self.new_price,
                "priceChange": self.price_change,
                "priceChangePercent": self.price_change_percent,
            })
        else:
            data["error"] = self.error
        data["success"] = self.success
        return data


@dataclass
class PriceUpdateSummary:
    results: List[CardPriceUpdate] = field(default_factory=list)

    @property
    def cards_processed(self) -> int:
        return len(self.results)

    @property
    def successful_updates(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed_updates(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cardsProcessed": self.cards_processed,
            "successfulUpdates": self.successful_updates,
            "failedUpdates": self.failed_updates,
            "results": [r.to_dict() for r in self.results],
        }


# ==============================================================================
# Helpers
# ==============================================================================


def determine_priority(
    price: Optional[float],
    high_threshold: float = HIGH_VALUE_THRESHOLD,
    medium_threshold: float = MEDIUM_VALUE_THRESHOLD,
) -> Priority:
    """Map a card's current price to its update priority. No price means low."""
    if not price:
        return Priority.LOW
    if price > high_threshold:
        return Priority.HIGH
    if price >= medium_threshold:
        return Priority.MEDIUM
    return Priority.LOW


def _as_price(value: Any) -> Optional[float]:
    """Positive finite float of a price value; None when missing or malformed."""
    if not value:
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(price) or price <= 0:
        return None
    return price


def get_price(card: Any) -> Optional[float]:
    """
    Pick the most relevant price from a Pokemon TCG API card.

    Market price of the first variant in PRICE_VARIANT_ORDER that has one,
    else the first mid price of any variant, else None. Values that are not
    numbers are skipped.
    """
    if not isinstance(card, Mapping):
        return None
    tcgplayer = card.get("tcgplayer")
    if not isinstance(tcgplayer, Mapping):
        return None
    prices = tcgplayer.get("prices")
    if not isinstance(prices, Mapping):
        return None

    for variant in PRICE_VARIANT_ORDER:
        variant_prices = prices.get(variant)
        if isinstance(variant_prices, Mapping):
            market = _as_price(variant_prices.get("market"))
            if market is not None:
                return market

    for variant_prices in prices.values():
        if isinstance(variant_prices, Mapping):
            mid = _as_price(variant_prices.get("mid"))
            if mid is not None:
                return mid

    return None


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a Postgres/ISO timestamp; naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparseable timestamp: {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _queue_sort_key(item: PriceUpdateQueueItem) -> tuple[int, float]:
    # Higher priority first, then stalest first; never-updated cards lead their tier
    updated = parse_timestamp(item.last_updated)
    return -item.priority.weight, updated.timestamp() if updated else 0.0


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def empty_queue_stats() -> QueueStats:
    return {
        "queuedItems": 0,
        "highPriorityItems": 0,
        "mediumPriorityItems": 0,
        "lowPriorityItems": 0,
        "estimatedTimeToComplete": 0,
    }


# ==============================================================================
# Service
# ==============================================================================


class PriceUpdateService:
    """
    Refreshes card prices and owns the in-memory update queue.

    Thread-safe: API request threads read queue stats while the background
    worker drains the queue.
    """

    get_price = staticmethod(get_price)

    def __init__(
        self,
        supabase: Any,
        tcg_api: Any,
        rate_limits: Optional[RateLimitConfig] = None,
        high_value_threshold: float = HIGH_VALUE_THRESHOLD,
        medium_value_threshold: float = MEDIUM_VALUE_THRESHOLD,
        cards_table: str = CARDS_TABLE,
    ) -> None:
        """
        Args:
            supabase: supabase.Client used for card reads and price writes.
            tcg_api: PokemonTcgAPI used for current card prices.
            rate_limits: Worker pacing; defaults to 30 rpm, bursts of 5, 2s cooldown.
            high_value_threshold: Prices above this are high priority.
            medium_value_threshold: Prices at or above this are at least medium.
            cards_table: Name of the cards table.
        """
        self.supabase = supabase
        self.tcg_api = tcg_api
        self.rate_limits = rate_limits or RateLimitConfig()
        self.high_value_threshold = high_value_threshold
        self.medium_value_threshold = medium_value_threshold
        self.cards_table = cards_table

        self._queue: List[PriceUpdateQueueItem] = []
        self._lock = threading.RLock()
        self._worker: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._last_burst_time = 0.0

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _cards(self, columns: str = CARD_UPDATE_COLUMNS):
        return self.supabase.table(self.cards_table).select(columns)

    def _count_query(self):
        return self.supabase.table(self.cards_table).select("*", count="exact", head=True)

    def _apply_tier(self, query, tier: PriceTier):
        if tier is PriceTier.HIGH:
            return query.gt("tcg_price", self.high_value_threshold)
        if tier is PriceTier.MEDIUM:
            return query.gte("tcg_price", self.medium_value_threshold).lte("tcg_price", self.high_value_threshold)
        if tier is PriceTier.LOW:
            return query.lt("tcg_price", self.medium_value_threshold)
        return query

    def determine_priority(self, price: Optional[float]) -> Priority:
        return determine_priority(price, self.high_value_threshold, self.medium_value_threshold)

    # ------------------------------------------------------------------
    # Single card update
    # ------------------------------------------------------------------

    def _write_price(self, card_id: str, price: float) -> None:
        (
            self.supabase.table(self.cards_table)
            .update({"tcg_price": price, "price_updated_at": _utc_now_iso()})
            .eq("id", card_id)
            .execute()
        )

    def _update_item(self, item: PriceUpdateQueueItem) -> CardPriceUpdate:
        """Fetch, extract and store one card's price. Failures are returned, not raised."""
        failure = dict(
            card_id=item.card_id,
            card_name=item.card_name,
            set_id=item.set_id,
            success=False,
            old_price=item.current_price,
        )
        try:
            response = self.tcg_api.get_card_by_id(item.card_id)
            api_card = response.get("data") if isinstance(response, Mapping) else None
            if not api_card:
                logger.warning(f"Card not found in TCG API: {item.card_id}")
                return CardPriceUpdate(**failure, error="Card not found in TCG API")

            new_price = get_price(api_card)
            if new_price is None:
                logger.warning(f"No price available for card {item.card_id}")
                return CardPriceUpdate(**failure, error="No price available from API")

            self._write_price(item.card_id, new_price)
        except Exception as e:
            logger.error(f"Failed to update price for card {item.card_id}: {e}")
            return CardPriceUpdate(**failure, error=str(e))

        logger.info(f"Updated price for {item.card_name}: ${item.current_price} -> ${new_price}")
        return CardPriceUpdate(
            card_id=item.card_id,
            card_name=item.card_name,
            set_id=item.set_id,
            success=True,
            old_price=item.current_price,
            new_price=new_price,
        )

    def _update_burst(self, items: List[PriceUpdateQueueItem]) -> List[CardPriceUpdate]:
        """Update several cards concurrently, preserving input order."""
        if not items:
            return []
        with ThreadPoolExecutor(max_workers=len(items)) as executor:
            return list(executor.map(self._update_item, items))

    def _to_items(self, rows: Iterable[Mapping[str, Any]]) -> List[PriceUpdateQueueItem]:
        return [
            PriceUpdateQueueItem.from_row(row, self.determine_priority(row.get("tcg_price")))
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Direct update operations
    # ------------------------------------------------------------------

    def update_prices_by_tier(self, tier: PriceTier | str = PriceTier.ALL, limit: int = 50) -> PriceUpdateSummary:
        """
        Refresh up to ``limit`` of the least recently updated cards in ``tier``.

        Tiers: high (> 50), medium (10..50), low (< 10), all.
        """
        tier = PriceTier(tier)
        logger.info(f"Starting price update for tier: {tier.value}, limit: {limit}")

        query = self._apply_tier(self._cards(), tier)
        cards = query.order("price_updated_at").limit(limit).execute().data or []

        if not cards:
            logger.info("No cards found matching the criteria")
            return PriceUpdateSummary()

        logger.info(f"Found {len(cards)} cards to update prices for")
        return PriceUpdateSummary(results=[self._update_item(item) for item in self._to_items(cards)])

    def update_price_for_card(self, card_id: str) -> CardPriceUpdate:
        """
        Refresh a single card.

        Raises:
            CardNotFoundError: No row with this id.
        """
        logger.info(f"Updating price for card {card_id}")
        rows = self._cards().eq("id", card_id).limit(1).execute().data or []
        if not rows:
            raise CardNotFoundError(card_id)
        return self._update_item(self._to_items(rows)[0])

    def batch_update_prices(
        self,
        batch_size: int = 10,
        limit: Optional[int] = None,
        priority_only: bool = False,
    ) -> PriceUpdateSummary:
        """
        Refresh cards stalest first in batches of ``batch_size``.

        Cards within a batch are updated concurrently; batches are separated by
        the configured cooldown. ``priority_only`` restricts to high-value cards.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        query = self._cards()
        if priority_only:
            query = self._apply_tier(query, PriceTier.HIGH)
        query = query.order("price_updated_at")
        if limit is not None:
            query = query.limit(limit)

        items = self._to_items(query.execute().data or [])
        logger.info(f"Batch price update: {len(items)} cards, batch size {batch_size}")

        summary = PriceUpdateSummary()
        for start in range(0, len(items), batch_size):
            if start and self._stop_event.wait(self.rate_limits.cooldown_seconds):
                logger.warning("Batch price update interrupted by shutdown")
                break
            summary.results.extend(self._update_burst(items[start:start + batch_size]))

        logger.info(
            f"Batch price update finished: {summary.successful_updates} successful, "
            f"{summary.failed_updates} failed"
        )
        return summary

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    def schedule_updates(self) -> Dict[str, Any]:
        """Queue every card for a background update, prioritised by value."""
        logger.info("Starting scheduled price updates")
        cards = self._cards().order("price_updated_at").execute().data or []

        if not cards:
            return {
                "queueStats": empty_queue_stats(),
                "message": "No cards found for updating",
            }

        items = self._to_items(cards)
        self.add_to_update_queue(items)
        return {
            "queueStats": self.get_queue_stats(),
            "message": f"Successfully queued {len(items)} cards for price updates",
        }

    def add_to_update_queue(self, items: Iterable[PriceUpdateQueueItem]) -> int:
        """
        Queue cards that are not already queued and start the worker.

        Returns the number of newly queued cards.
        """
        with self._lock:
            queued_ids = {item.card_id for item in self._queue}
            new_items: List[PriceUpdateQueueItem] = []
            for item in items:
                if item.card_id not in queued_ids:
                    queued_ids.add(item.card_id)
                    new_items.append(item)

            self._queue.extend(new_items)
            self._queue.sort(key=_queue_sort_key)
            logger.info(f"Added {len(new_items)} new cards to queue. Total queue size: {len(self._queue)}")

            self._ensure_worker()
        return len(new_items)

    def queued_card_ids(self) -> List[str]:
        """Card ids in processing order."""
        with self._lock:
            return [item.card_id for item in self._queue]

    @property
    def is_processing(self) -> bool:
        with self._lock:
            return self._worker is not None

    def _ensure_worker(self) -> None:
        with self._lock:
            if self._worker is not None or not self._queue:
                return
            self._stop_event.clear()
            self._worker = threading.Thread(
                target=self._process_queue,
                name="price-update-worker",
                daemon=True,
            )
            self._worker.start()

    def _take_burst(self) -> List[PriceUpdateQueueItem]:
        with self._lock:
            size = self.rate_limits.burst_size
            burst = self._queue[:size]
            del self._queue[:size]
            if not burst:
                # Cleared under the lock so add_to_update_queue starts a new worker
                self._worker = None
            return burst

    def _process_queue(self) -> None:
        """Worker loop: drain the queue in bursts while respecting the cooldown."""
        logger.info("Starting queue processing")
        cooldown = self.rate_limits.cooldown_seconds
        try:
            while not self._stop_event.is_set():
                remaining = cooldown - (time.monotonic() - self._last_burst_time)
                if remaining > 0 and self._stop_event.wait(remaining):
                    break

                burst = self._take_burst()
                if not burst:
                    break

                results = self._update_burst(burst)
                successful = sum(1 for r in results if r.success)
                logger.info(
                    f"Processed {len(burst)} cards: {successful} successful, "
                    f"{len(results) - successful} failed"
                )
                self._last_burst_time = time.monotonic()

                if self._stop_event.wait(cooldown):
                    break
        except Exception:
            logger.exception("Error processing queue")
        finally:
            with self._lock:
                if self._worker is threading.current_thread():
                    self._worker = None
            logger.info("Queue processing completed")

    def stop(self, timeout: float = THREAD_JOIN_TIMEOUT) -> None:
        """Stop the worker. Queued cards stay queued."""
        self._stop_event.set()
        with self._lock:
            worker = self._worker
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def get_queue_stats(self) -> QueueStats:
        """Counts per priority and an estimate of minutes to drain the queue."""
        with self._lock:
            queued = len(self._queue)
            counts = {priority: 0 for priority in Priority}
            for item in self._queue:
                counts[item.priority] += 1

        return {
            "queuedItems": queued,
            "highPriorityItems": counts[Priority.HIGH],
            "mediumPriorityItems": counts[Priority.MEDIUM],
            "lowPriorityItems": counts[Priority.LOW],
            "estimatedTimeToComplete": math.ceil(queued / self.rate_limits.requests_per_minute),
        }

    def count_cards(self) -> int:
        """Exact number of rows in the cards table."""
        return self._count_query().execute().count or 0

    def get_price_update_stats(self) -> PriceUpdateStats:
        """
        Price coverage and freshness across the cards table.

        Blocking: several database round trips. Async callers should run it
        in a worker thread.
        """
        total_cards = self.count_cards()
        cards_with_prices = self._count_query().not_.is_("tcg_price", "null").execute().count or 0
        high_value = self._count_query().gt("tcg_price", self.high_value_threshold).execute().count or 0
        medium_value = (
            self._count_query()
            .gte("tcg_price", self.medium_value_threshold)
            .lte("tcg_price", self.high_value_threshold)
            .execute().count or 0
        )
        low_value = (
            self._count_query()
            .lt("tcg_price", self.medium_value_threshold)
            .not_.is_("tcg_price", "null")
            .execute().count or 0
        )

        rows = (
            self._cards("price_updated_at")
            .not_.is_("price_updated_at", "null")
            .order("price_updated_at")
            .execute().data or []
        )

        return {
            "totalCards": total_cards,
            "cardsWithPrices": cards_with_prices,
            "cardsWithoutPrices": total_cards - cards_with_prices,
            "highValueCards": high_value,
            "mediumValueCards": medium_value,
            "lowValueCards": low_value,
            "lastUpdated": self._last_updated_stats([row.get("price_updated_at") for row in rows]),
        }

    @staticmethod
    def _last_updated_stats(timestamps: List[Optional[str]], now: Optional[datetime] = None) -> LastUpdatedStats:
        """Oldest/newest of ascending timestamps and their mean age in whole days."""
        if not timestamps:
            return {"oldest": None, "newest": None, "averageAgeInDays": 0}

        now = now or datetime.now(timezone.utc)
        ages = [
            (now - parsed).total_seconds()
            for parsed in (parse_timestamp(ts) for ts in timestamps)
            if parsed is not None
        ]
        average_days = math.floor(sum(ages) / len(ages) / SECONDS_PER_DAY + 0.5) if ages else 0

        return {
            "oldest": timestamps[0],
            "newest": timestamps[-1],
            "averageAgeInDays": average_days,
        }
