"""
Service interfaces for dependency injection.

Protocol definitions for the services held by the application context, so
API routers can type against them without importing the concrete wiring.

Usage:
    from core.interfaces import IAppContext

    async def handler(ctx: IAppContext = Depends(get_app_context)):
        stats = ctx.price_update_service.get_queue_stats()
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, runtime_checkable


@runtime_checkable
class IPriceUpdateService(Protocol):
    """Interface for the card price update service.

    Matches core.price_update_service.PriceUpdateService.
    """

    def get_queue_stats(self) -> Mapping[str, Any]:
        """Current queue statistics. Non-blocking."""
        ...

    def get_price_update_stats(self) -> Mapping[str, Any]:
        """Price coverage statistics. Blocks on database I/O."""
        ...

    def update_prices_by_tier(self, tier: Any = "all", limit: int = 50) -> Any:
        ...

    def update_price_for_card(self, card_id: str) -> Any:
        ...

    def batch_update_prices(
        self,
        batch_size: int = 10,
        limit: Optional[int] = None,
        priority_only: bool = False,
    ) -> Any:
        ...

    def schedule_updates(self) -> Mapping[str, Any]:
        ...

    def count_cards(self) -> int:
        ...

    def stop(self, timeout: float = ...) -> None:
        ...


@runtime_checkable
class ICardSyncService(Protocol):
    """Interface for the set and card sync service.

    Matches core.card_sync_service.CardSyncService.
    """

    def sync_sets(self) -> int:
        ...

    def sync_cards_by_set(self, set_id: str) -> Any:
        ...

    def sync_all_sets(self, batch_size: Optional[int] = None) -> Any:
        ...

    def stop(self) -> None:
        ...


@runtime_checkable
class IConfig(Protocol):
    """Interface for configuration access."""

    @property
    def supabase_url(self) -> str:
        ...

    @property
    def cards_table(self) -> str:
        ...

    def get_api_timeouts(self) -> tuple[int, int]:
        ...


@runtime_checkable
class IAppContext(Protocol):
    """Interface for the application context.

    Use this for type hints instead of importing AppContext directly.
    """

    config: IConfig
    supabase: Any  # supabase.Client
    tcg_api: Any  # PokemonTcgAPI
    price_update_service: IPriceUpdateService
    card_sync_service: ICardSyncService

    def close(self) -> None:
        """Clean up all resources held by the context."""
        ...
