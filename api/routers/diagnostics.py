"""
api.routers.diagnostics - Diagnostic price update endpoints.

Used from the admin testing page to inspect the queue and to trigger
small update runs by hand.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from api.dependencies import get_price_update_service
from api.models import QueueStatsEnvelope, ScheduleResponse, ServiceHealthResponse, TierUpdateResponse
from api.responses import Stopwatch, error_message, utc_timestamp
from core.constants import QUEUE_STATS_FALLBACK_MESSAGE
from core.price_update_service import PriceTier

if TYPE_CHECKING:
    from core.interfaces import IPriceUpdateService

logger = logging.getLogger(__name__)
router = APIRouter()

SCHEDULE_MODES = ("stats", "run")


@router.get("/test-price-update/queue-stats", response_model=QueueStatsEnvelope)
async def get_queue_and_price_stats(
    service: "IPriceUpdateService" = Depends(get_price_update_service),
) -> JSONResponse:
    """
    Queue statistics with price statistics merged in under ``priceStats``.

    Any failure yields a 500 with ``queueStats: null``; no partial results.
    """
    try:
        queue_stats = service.get_queue_stats()
        price_stats = await run_in_threadpool(service.get_price_update_stats)
        merged = dict(queue_stats)
        merged["priceStats"] = price_stats
        response = JSONResponse(content={
            "status": "success",
            "queueStats": jsonable_encoder(merged),
        })
    except Exception as e:
        logger.error(f"Failed to get queue statistics: {e}")
        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "message": error_message(e, QUEUE_STATS_FALLBACK_MESSAGE),
                "queueStats": None,
            },
        )

    return response


@router.get("/test-price-update/health", response_model=ServiceHealthResponse)
async def diagnostics_health(
    service: "IPriceUpdateService" = Depends(get_price_update_service),
) -> JSONResponse:
    """Price statistics plus the queue snapshot under ``stats.queue``."""
    try:
        stats = await run_in_threadpool(service.get_price_update_stats)
        queue_stats = service.get_queue_stats()
    except Exception as e:
        logger.error(f"Price Update Service health check failed: {e}")
        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "message": error_message(e, "Price Update Service health check failed"),
                "timestamp": utc_timestamp(),
            },
        )

    return JSONResponse(content=jsonable_encoder({
        "status": "success",
        "message": "Price Update Service is operational",
        "timestamp": utc_timestamp(),
        "stats": {**stats, "queue": queue_stats},
    }))


@router.get("/test-price-update", response_model=TierUpdateResponse)
async def run_tier_update(
    service: "IPriceUpdateService" = Depends(get_price_update_service),
    tier: PriceTier = Query(PriceTier.ALL, description="Value tier to refresh"),
    limit: int = Query(10, ge=1, le=500, description="Maximum cards to update"),
) -> JSONResponse:
    """Refresh the stalest cards of one value tier."""
    logger.info(f"Starting price update test for tier: {tier.value}, limit: {limit}")
    try:
        summary = await run_in_threadpool(service.update_prices_by_tier, tier, limit)
    except Exception as e:
        logger.error(f"Price update test failed: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"success": False, "timestamp": utc_timestamp(), "error": str(e)},
        )

    body = {"success": True, "timestamp": utc_timestamp(), "tier": tier.value}
    if summary.cards_processed == 0:
        body.update({"message": "No cards found matching the criteria", "cardsProcessed": 0})
    else:
        body.update(summary.to_dict())
    return JSONResponse(content=jsonable_encoder(body))


@router.get("/test-price-schedule", response_model=ScheduleResponse)
async def run_price_schedule(
    service: "IPriceUpdateService" = Depends(get_price_update_service),
    mode: str = Query("stats", description="'stats' to report, 'run' to queue every card"),
) -> JSONResponse:
    """Report price statistics or queue all cards for a scheduled update."""
    if mode not in SCHEDULE_MODES:
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "timestamp": utc_timestamp(),
                "error": f"Invalid mode: {mode}. Valid modes are 'stats' and 'run'.",
            },
        )

    try:
        if mode == "stats":
            logger.info("Fetching price update statistics")
            stats = await run_in_threadpool(service.get_price_update_stats)
            body = {"success": True, "timestamp": utc_timestamp(), "stats": stats}
        else:
            logger.info("Starting scheduled price updates")
            timer = Stopwatch()
            scheduled = await run_in_threadpool(service.schedule_updates)
            body = {
                "success": True,
                "timestamp": utc_timestamp(),
                "executionTimeMs": timer.elapsed_ms,
                "queueStats": scheduled["queueStats"],
                "message": scheduled["message"],
            }
    except Exception as e:
        logger.error(f"Price schedule operation failed: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"success": False, "timestamp": utc_timestamp(), "error": str(e)},
        )

    return JSONResponse(content=jsonable_encoder(body))
