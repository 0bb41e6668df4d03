"""
api.dependencies - FastAPI dependency providers.

Routers depend on one service rather than reaching through the
whole context, so tests can override a single provider.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Depends

if TYPE_CHECKING:
    from core.interfaces import IAppContext, ICardSyncService, IPriceUpdateService


def get_app_context() -> "IAppContext":
    """Global application context. Only valid inside the app lifespan."""
    from api.main import get_app_context as _get_ctx

    return _get_ctx()


def get_price_update_service(
    ctx: "IAppContext" = Depends(get_app_context),
) -> "IPriceUpdateService":
    """The price update service owned by the application context."""
    return ctx.price_update_service


def get_card_sync_service(
    ctx: "IAppContext" = Depends(get_app_context),
) -> "ICardSyncService":
    """The set and card sync service owned by the application context."""
    return ctx.card_sync_service


def get_tcg_api(ctx: "IAppContext" = Depends(get_app_context)):
    """The Pokemon TCG API client."""
    return ctx.tcg_api
