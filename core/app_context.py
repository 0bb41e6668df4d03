# core/app_context.py
from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Optional

from supabase import Client

from core.card_sync_service import CardSyncService
from core.config import Config
from core.price_update_service import PriceUpdateService, RateLimitConfig
from data_sources.base_api import set_retry_logging_verbosity
from data_sources.pokemon_tcg_api import PokemonTcgAPI
from data_sources.supabase_client import create_supabase_client

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """
    Aggregates the services used by the API.

    - config: service settings and credentials
    - supabase: Supabase client for the cards, sets and inventory tables
    - tcg_api: Pokemon TCG API client (price and catalogue source)
    - price_update_service: price refresh operations and the update queue
    - card_sync_service: set and card catalogue sync

    Call close() on shutdown to stop background work and release HTTP sessions.
    """
    config: Config
    supabase: Client
    tcg_api: PokemonTcgAPI
    price_update_service: PriceUpdateService
    card_sync_service: CardSyncService

    def close(self) -> None:
        logger.info("Closing AppContext resources...")

        self.card_sync_service.stop()
        self.price_update_service.stop()
        logger.debug("Background work stopped")

        try:
            self.tcg_api.close()
            logger.debug("Pokemon TCG API client closed")
        except Exception as e:
            logger.error(f"Error closing Pokemon TCG API client: {e}")

        logger.info("AppContext resources closed")


def create_app_context(config: Optional[Config] = None) -> AppContext:
    config = config or Config()
    set_retry_logging_verbosity(config.api_retry_logging_verbosity)
    timeouts = config.get_api_timeouts()

    supabase = create_supabase_client(config.supabase_url, config.supabase_key)
    tcg_api = PokemonTcgAPI(
        api_key=config.pokemon_tcg_api_key,
        base_url=config.pokemon_tcg_base_url,
        rate_limit=config.pokemon_tcg_rate_limit,
        cache_ttl=config.cache_ttl_seconds,
        timeout=timeouts,
    )
    if not tcg_api.has_api_key:
        logger.info("No Pokemon TCG API key configured; using the public rate limit")

    price_update_service = PriceUpdateService(
        supabase=supabase,
        tcg_api=tcg_api,
        rate_limits=RateLimitConfig(
            requests_per_minute=config.requests_per_minute,
            burst_size=config.burst_size,
            cooldown_seconds=config.cooldown_seconds,
        ),
        high_value_threshold=config.high_value_threshold,
        medium_value_threshold=config.medium_value_threshold,
        cards_table=config.cards_table,
    )
    card_sync_service = CardSyncService(
        supabase=supabase,
        tcg_api=tcg_api,
        batch_size=config.sync_batch_size,
        cooldown_seconds=config.sync_cooldown_seconds,
        cards_table=config.cards_table,
    )

    return AppContext(
        config=config,
        supabase=supabase,
        tcg_api=tcg_api,
        price_update_service=price_update_service,
        card_sync_service=card_sync_service,
    )
