"""
api.models - Pydantic models for API response schemas.

Price routes keep the camelCase JSON contract of the tracker's web frontend,
so their field names are camelCase. Health and config models use snake_case.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


# ==============================================================================
# Statistics Models
# ==============================================================================


class QueueStats(BaseModel):
    """Snapshot of the price update queue."""

    queuedItems: int = Field(..., ge=0, description="Cards waiting in the queue", examples=[45])
    highPriorityItems: int = Field(..., ge=0, description="Queued cards priced above 50")
    mediumPriorityItems: int = Field(..., ge=0, description="Queued cards priced 10 to 50")
    lowPriorityItems: int = Field(..., ge=0, description="Queued cards priced below 10 or unpriced")
    estimatedTimeToComplete: int = Field(
        ..., ge=0, description="Minutes to drain the queue at the configured rate", examples=[2]
    )


class LastUpdated(BaseModel):
    oldest: Optional[str] = Field(None, description="Oldest price_updated_at")
    newest: Optional[str] = Field(None, description="Newest price_updated_at")
    averageAgeInDays: int = Field(0, description="Mean age of price updates in days")


class PriceUpdateStats(BaseModel):
    """Price coverage across the cards table."""

    totalCards: int
    cardsWithPrices: int
    cardsWithoutPrices: int
    highValueCards: int
    mediumValueCards: int
    lowValueCards: int
    lastUpdated: LastUpdated


class QueueStatsEnvelope(BaseModel):
    """Queue stats merged with price stats under ``priceStats``."""

    status: Literal["success", "error"] = Field(..., examples=["success"])
    queueStats: Optional[dict[str, Any]] = Field(
        None,
        description="Queue statistics plus a priceStats entry; null on error",
        examples=[{"queuedItems": 3, "priceStats": {"totalCards": 120}}],
    )
    message: Optional[str] = Field(None, description="Error message (errors only)")


class QueueStatsResponse(BaseModel):
    status: Literal["success", "error"]
    timestamp: str
    stats: Optional[QueueStats] = None
    message: Optional[str] = None
    error: Optional[str] = None


# ==============================================================================
# Price Update Models
# ==============================================================================


class CardPriceUpdate(BaseModel):
    """Outcome for a single card."""

    cardId: str = Field(..., examples=["base1-4"])
    cardName: str = Field(..., examples=["Charizard"])
    setId: str = Field(..., examples=["base1"])
    success: bool
    oldPrice: Optional[float] = None
    newPrice: Optional[float] = None
    priceChange: Optional[float] = None
    priceChangePercent: Optional[float] = None
    error: Optional[str] = None


class PriceUpdateSummary(BaseModel):
    cardsProcessed: int
    successfulUpdates: int
    failedUpdates: int
    results: list[CardPriceUpdate] = Field(default_factory=list)


class ErrorDetail(BaseModel):
    message: str


class PriceUpdateResponse(BaseModel):
    """Envelope of GET /api/price-update."""

    status: Literal["success", "error"]
    cardId: Optional[str] = None
    executionTimeMs: int
    result: Optional[CardPriceUpdate | PriceUpdateSummary] = None
    error: Optional[ErrorDetail] = None


class TierUpdateResponse(BaseModel):
    """Envelope of GET /api/test-price-update."""

    success: bool
    timestamp: str
    tier: Optional[str] = None
    message: Optional[str] = None
    cardsProcessed: Optional[int] = None
    successfulUpdates: Optional[int] = None
    failedUpdates: Optional[int] = None
    results: Optional[list[CardPriceUpdate]] = None
    error: Optional[str] = None


class ScheduleResponse(BaseModel):
    """Envelope of GET /api/test-price-schedule."""

    success: bool
    timestamp: str
    stats: Optional[PriceUpdateStats] = None
    executionTimeMs: Optional[int] = None
    queueStats: Optional[QueueStats] = None
    message: Optional[str] = None
    error: Optional[str] = None


class ServiceHealthResponse(BaseModel):
    status: Literal["success", "error"]
    message: str
    timestamp: str
    stats: Optional[dict[str, Any]] = None
    error: Optional[str] = None


# ==============================================================================
# Card Sync Models
# ==============================================================================


class SyncResponse(BaseModel):
    """Envelope of GET /api/pokemon-tcg."""

    status: Literal["success", "error"]
    mode: str = Field(..., examples=["full"])
    setId: Optional[str] = Field(None, examples=["base1"])
    executionTimeMs: int
    result: Optional[dict[str, Any]] = Field(
        None,
        description="Sync outcome; shape depends on the mode",
        examples=[{"setId": "base1", "cardsSynced": 102, "existingCards": 100}],
    )
    error: Optional[ErrorDetail] = None


class TcgApiHealthResponse(BaseModel):
    """Envelope of GET /api/pokemon-tcg/health."""

    status: Literal["success", "error"]
    message: str
    timestamp: str
    sample: Optional[dict[str, Any]] = Field(None, description="First set returned by the API")
    error: Optional[str] = None


# ==============================================================================
# Health & Status Models
# ==============================================================================


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(..., description="Service status", examples=["healthy"])
    version: str = Field(..., description="API version", examples=["0.1.0"])
    database: str = Field(
        ..., description="Database status", examples=["connected"]
    )
    services: dict[str, str] = Field(
        default_factory=dict, description="Status of individual services"
    )


class ConfigResponse(BaseModel):
    """Non-sensitive configuration values."""

    cards_table: str = Field(..., description="Table holding card prices")
    supabase_configured: bool = Field(..., description="Whether a Supabase URL is set")
    pokemon_tcg_api_key_configured: bool = Field(..., description="Whether a TCG API key is set")
    requests_per_minute: int = Field(..., description="Queue throughput used for estimates")
    burst_size: int = Field(..., description="Cards updated per burst")
    cooldown_seconds: float = Field(..., description="Pause between bursts")
    cache_ttl_seconds: int = Field(..., description="TCG API cache TTL in seconds")
