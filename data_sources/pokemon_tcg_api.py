"""
Pokemon TCG API client (https://pokemontcg.io).

Card and set lookups used by the price updater and the set sync. Responses
keep the API's ``{"data": ...}`` envelope.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List
from urllib.parse import quote

from core.constants import POKEMON_TCG_API_URL, TCG_PAGE_SIZE
from data_sources.base_api import BaseAPIClient

logger = logging.getLogger(__name__)


class PokemonTcgAPI(BaseAPIClient):
    """Rate-limited, cached client for the Pokemon TCG API v2."""

    cache_namespace = "ptcg"

    def __init__(
            self,
            api_key: str = "",
            base_url: str = POKEMON_TCG_API_URL,
            rate_limit: float = 1.0,
            cache_ttl: int = 3600,
            timeout=10,
    ) -> None:
        super().__init__(
            base_url=base_url,
            rate_limit=rate_limit,
            cache_ttl=cache_ttl,
            timeout=timeout,
            headers={"X-Api-Key": api_key} if api_key else None,
        )
        self.has_api_key = bool(api_key)

    def get_all_sets(self, use_cache: bool = True) -> Dict[str, Any]:
        """Fetch every card set."""
        return self.get("sets", use_cache=use_cache)

    def get_cards_by_set(self, set_id: str, page_size: int = TCG_PAGE_SIZE,
                         use_cache: bool = False) -> Dict[str, Any]:
        """
        Fetch every card of one set, following pagination.

        Cards carry prices, so pages bypass the cache unless asked otherwise.

        Returns ``{"data": [...], "totalCount": n}``.
        """
        cards: List[Dict[str, Any]] = []
        page = 1
        while True:
            response = self.get("cards", params={
                "q": f"set.id:{set_id}",
                "page": page,
                "pageSize": page_size,
            }, use_cache=use_cache)
            batch = response.get("data") or []
            cards.extend(batch)
            total = response.get("totalCount", len(cards))
            if len(batch) < page_size or len(cards) >= total:
                break
            page += 1

        logger.debug(f"Fetched {len(cards)} cards for set {set_id} in {page} page(s)")
        return {"data": cards, "totalCount": len(cards)}

    def get_card_by_id(self, card_id: str, use_cache: bool = False) -> Dict[str, Any]:
        """
        Fetch a single card.

        Prices change, so lookups bypass the cache unless asked otherwise.

        Raises:
            APIError: Unknown card (404) or upstream failure.
        """
        return self.get(f"cards/{quote(card_id, safe='')}", use_cache=use_cache)
