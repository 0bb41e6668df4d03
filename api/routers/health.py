"""
api.routers.health - Health check endpoints.

Provides endpoints for monitoring service health and status.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, HTTPException
from starlette.concurrency import run_in_threadpool

from api import __version__
from api.models import HealthResponse, ConfigResponse
from api.dependencies import get_app_context

if TYPE_CHECKING:
    from core.interfaces import IAppContext

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(
    ctx: "IAppContext" = Depends(get_app_context),
) -> HealthResponse:
    """
    Check API health status.

    Reports database reachability, the TCG API client, and the update queue.
    """
    services: dict[str, str] = {}

    db_status = "disconnected"
    try:
        await run_in_threadpool(ctx.price_update_service.count_cards)
        db_status = "connected"
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        db_status = f"error: {str(e)[:50]}"

    services["database"] = db_status

    if ctx.tcg_api is None:
        services["pokemon_tcg_api"] = "unavailable"
    elif getattr(ctx.tcg_api, "has_api_key", False):
        services["pokemon_tcg_api"] = "available"
    else:
        services["pokemon_tcg_api"] = "available (no api key)"

    queue = ctx.price_update_service.get_queue_stats()
    services["price_update_queue"] = f"{queue['queuedItems']} queued"

    overall_status = "healthy" if db_status == "connected" else "degraded"

    return HealthResponse(
        status=overall_status,
        version=__version__,
        database=db_status,
        services=services,
    )


@router.get("/health/ready")
async def readiness_check(
    ctx: "IAppContext" = Depends(get_app_context),
) -> dict[str, str]:
    """
    Kubernetes-style readiness check.

    Returns 200 once the cards table can be queried.
    """
    try:
        await run_in_threadpool(ctx.price_update_service.count_cards)
    except Exception as e:
        raise HTTPException(status_code=503, detail=f"Not ready: {e}")
    return {"status": "ready"}


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """Kubernetes-style liveness check."""
    return {"status": "alive"}


@router.get("/config", response_model=ConfigResponse)
async def get_config(
    ctx: "IAppContext" = Depends(get_app_context),
) -> ConfigResponse:
    """
    Get current configuration.

    Secrets are reported only as configured or not.
    """
    config = ctx.config
    return ConfigResponse(
        cards_table=config.cards_table,
        supabase_configured=bool(config.supabase_url),
        pokemon_tcg_api_key_configured=bool(config.pokemon_tcg_api_key),
        requests_per_minute=config.requests_per_minute,
        burst_size=config.burst_size,
        cooldown_seconds=config.cooldown_seconds,
        cache_ttl_seconds=config.cache_ttl_seconds,
    )
