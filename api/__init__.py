"""
api - FastAPI backend for the TCG Price Tracker.

Provides RESTful API endpoints for:
- Card price updates (single card, batches, value tiers)
- Price update queue scheduling and statistics
- Service health
"""

__version__ = "0.1.0"
