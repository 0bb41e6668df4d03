"""
api.main - FastAPI application entry point.

Run with:
    uvicorn api.main:app --reload
    python run_api.py
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import __version__
from api.middleware import setup_error_handlers
from api.routers import (
    health_router,
    price_update_router,
    diagnostics_router,
    card_sync_router,
)
from core.app_context import create_app_context

if TYPE_CHECKING:
    from core.interfaces import IAppContext

logger = logging.getLogger(__name__)

# Set during lifespan startup
_app_context: "IAppContext | None" = None


def get_app_context() -> "IAppContext":
    """Get the global app context. Must be called after app startup."""
    if _app_context is None:
        raise RuntimeError("App context not initialized. Server not started?")
    return _app_context


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the app context on startup and release it on shutdown."""
    global _app_context

    logger.info("Starting TCG Price Tracker API...")
    _app_context = create_app_context()
    logger.info("App context initialized successfully")

    yield

    logger.info("Shutting down TCG Price Tracker API...")
    if _app_context is not None:
        _app_context.close()
        _app_context = None
    logger.info("Shutdown complete")


app = FastAPI(
    title="TCG Price Tracker API",
    description="Price updates, queue statistics and catalogue sync for Pokemon TCG cards",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_error_handlers(app)

app.include_router(health_router, tags=["Health"])
app.include_router(price_update_router, prefix="/api", tags=["Price Update"])
app.include_router(diagnostics_router, prefix="/api", tags=["Diagnostics"])
app.include_router(card_sync_router, prefix="/api", tags=["Card Sync"])


@app.get("/", include_in_schema=False)
async def root():
    return {
        "message": "TCG Price Tracker API",
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
        log_level="info",
    )
