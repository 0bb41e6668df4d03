"""API routers package."""

from api.routers.health import router as health_router
from api.routers.price_update import router as price_update_router
from api.routers.diagnostics import router as diagnostics_router
from api.routers.card_sync import router as card_sync_router

__all__ = [
    "health_router",
    "price_update_router",
    "diagnostics_router",
    "card_sync_router",
]
