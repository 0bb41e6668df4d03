"""
api.routers.price_update - Card price update endpoints.

Provides endpoints for running price updates and watching the update queue.
"""

from __future__ import annotations

import logging
from typing import Optional, TYPE_CHECKING

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from api.dependencies import get_price_update_service
from api.models import PriceUpdateResponse, QueueStatsResponse, ServiceHealthResponse
from api.responses import Stopwatch, utc_timestamp
from core.price_update_service import CardNotFoundError

if TYPE_CHECKING:
    from core.interfaces import IPriceUpdateService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/price-update", response_model=PriceUpdateResponse)
async def run_price_update(
    service: "IPriceUpdateService" = Depends(get_price_update_service),
    card_id: Optional[str] = Query(None, alias="cardId", description="Update only this card"),
    batch_size: int = Query(10, alias="batchSize", ge=1, le=100, description="Cards per batch"),
    limit: Optional[int] = Query(None, ge=1, description="Maximum cards to update"),
    priority_only: bool = Query(False, alias="priorityOnly", description="Only high-value cards"),
) -> JSONResponse:
    """
    Update prices for one card or for a stalest-first batch run.

    With ``cardId`` only that card is refreshed; otherwise cards are updated
    in batches of ``batchSize``, up to ``limit`` cards.
    """
    timer = Stopwatch()
    try:
        if card_id:
            logger.info(f"Starting price update for specific card: {card_id}")
            outcome = await run_in_threadpool(service.update_price_for_card, card_id)
        else:
            logger.info(
                f"Starting batch price update: batchSize={batch_size}, "
                f"limit={limit or 'none'}, priorityOnly={priority_only}"
            )
            outcome = await run_in_threadpool(
                service.batch_update_prices, batch_size, limit, priority_only
            )
        result = outcome.to_dict()
    except CardNotFoundError as e:
        logger.warning(f"Price update failed: {e}")
        return _update_error(404, card_id, timer, str(e))
    except Exception as e:
        logger.error(f"Price update failed: {e}", exc_info=True)
        return _update_error(500, card_id, timer, str(e))

    return JSONResponse(content=jsonable_encoder({
        "status": "success",
        "cardId": card_id or None,
        "executionTimeMs": timer.elapsed_ms,
        "result": result,
    }))


def _update_error(status_code: int, card_id: Optional[str], timer: Stopwatch, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "status": "error",
            "cardId": card_id or None,
            "executionTimeMs": timer.elapsed_ms,
            "error": {"message": message},
        },
    )


@router.get("/price-update/queue-stats", response_model=QueueStatsResponse)
async def get_queue_stats(
    service: "IPriceUpdateService" = Depends(get_price_update_service),
) -> JSONResponse:
    """Live statistics of the background update queue."""
    try:
        logger.info("Retrieving price update queue statistics")
        stats = service.get_queue_stats()
    except Exception as e:
        logger.error(f"Failed to retrieve queue statistics: {e}")
        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "message": "Failed to retrieve queue statistics",
                "error": str(e),
                "timestamp": utc_timestamp(),
            },
        )

    return JSONResponse(content=jsonable_encoder({
        "status": "success",
        "timestamp": utc_timestamp(),
        "stats": stats,
    }))


@router.get("/price-update/health", response_model=ServiceHealthResponse)
async def price_update_health(
    service: "IPriceUpdateService" = Depends(get_price_update_service),
) -> JSONResponse:
    """
    Check that the cards table is reachable.

    Returns 503 when the database cannot be queried.
    """
    try:
        logger.info("Performing price update service health check")
        card_count = await run_in_threadpool(service.count_cards)
    except Exception as e:
        logger.error(f"Price update service health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={
                "status": "error",
                "message": "Price update service is unavailable",
                "error": str(e),
                "timestamp": utc_timestamp(),
            },
        )

    return JSONResponse(content={
        "status": "success",
        "message": "Price update service is available",
        "timestamp": utc_timestamp(),
        "stats": {"cardCount": card_count},
    })
