"""
api.routers.card_sync - Set and card sync endpoints.

Copies the Pokemon TCG API catalogue into the database. A full sync can run
for minutes, so it runs in the server thread pool.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, TYPE_CHECKING

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from api.dependencies import get_card_sync_service, get_tcg_api
from api.models import SyncResponse, TcgApiHealthResponse
from api.responses import Stopwatch, error_message, utc_timestamp

if TYPE_CHECKING:
    from core.interfaces import ICardSyncService

logger = logging.getLogger(__name__)
router = APIRouter()

ALL_CARDS_MESSAGE = "Syncing all cards needs a setId; use mode=full to sync every set"


async def _run_sync(
    service: "ICardSyncService",
    mode: str,
    set_id: Optional[str],
    batch_size: int,
) -> Dict[str, Any]:
    if mode == "sets-only":
        synced = await run_in_threadpool(service.sync_sets)
        return {"setsSynced": synced}

    if set_id:
        result = await run_in_threadpool(service.sync_cards_by_set, set_id)
        return result.to_dict()

    if mode == "cards-only":
        return {"message": ALL_CARDS_MESSAGE}

    summary = await run_in_threadpool(service.sync_all_sets, batch_size)
    return summary.to_dict()


@router.get("/pokemon-tcg", response_model=SyncResponse)
async def sync_catalogue(
    service: "ICardSyncService" = Depends(get_card_sync_service),
    mode: str = Query("full", description="'full', 'sets-only' or 'cards-only'"),
    set_id: Optional[str] = Query(None, alias="setId", description="Sync only this set's cards"),
    batch_size: int = Query(5, alias="batchSize", ge=1, le=20, description="Sets synced concurrently"),
) -> JSONResponse:
    """
    Sync sets and cards from the Pokemon TCG API.

    - ``sets-only``: set metadata only
    - ``cards-only``: cards of ``setId``
    - ``full`` (and any other mode): cards of ``setId``, or of every set
    """
    timer = Stopwatch()
    logger.info(
        f"Starting sync operation: mode={mode}, setId={set_id or 'all'}, batchSize={batch_size}"
    )
    try:
        result = await _run_sync(service, mode, set_id, batch_size)
    except Exception as e:
        logger.error(f"Sync failed: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "mode": mode,
                "setId": set_id or None,
                "executionTimeMs": timer.elapsed_ms,
                "error": {"message": error_message(e, "Sync failed")},
            },
        )

    logger.info(f"Sync completed in {timer.elapsed_ms}ms")
    return JSONResponse(content=jsonable_encoder({
        "status": "success",
        "mode": mode,
        "setId": set_id or None,
        "executionTimeMs": timer.elapsed_ms,
        "result": result,
    }))


@router.get("/pokemon-tcg/health", response_model=TcgApiHealthResponse)
async def tcg_api_health(tcg_api: Any = Depends(get_tcg_api)) -> JSONResponse:
    """
    Check that the Pokemon TCG API answers with at least one set.

    Returns 503 when it does not.
    """
    try:
        logger.info("Performing Pokemon TCG API health check")
        response = await run_in_threadpool(tcg_api.get_all_sets, False)
        sets = response.get("data") if isinstance(response, dict) else None
        if not sets:
            raise ValueError("No data returned from Pokemon TCG API")
    except Exception as e:
        logger.error(f"Pokemon TCG API health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={
                "status": "error",
                "message": "Pokemon TCG API is unavailable",
                "error": error_message(e, "Pokemon TCG API health check failed"),
                "timestamp": utc_timestamp(),
            },
        )

    return JSONResponse(content=jsonable_encoder({
        "status": "success",
        "message": "Pokemon TCG API is available",
        "timestamp": utc_timestamp(),
        "sample": sets[0],
    }))
