"""
Supabase database client.

The services query tables through the ``supabase`` client directly:

    client = create_supabase_client(url, key)
    rows = (
        client.table("cards")
        .select("id, name, tcg_price")
        .gt("tcg_price", 50)
        .order("price_updated_at")
        .limit(10)
        .execute()
    ).data
"""

from __future__ import annotations

import logging

from supabase import Client, create_client

logger = logging.getLogger(__name__)


def create_supabase_client(url: str, key: str) -> Client:
    """
    Build a Supabase client for the project at ``url``.

    Raises:
        ValueError: URL or key missing.
    """
    if not url:
        raise ValueError("Supabase URL is not configured")
    if not key:
        raise ValueError("Supabase key is not configured")

    logger.info(f"Connecting to Supabase project at {url}")
    return create_client(url.rstrip("/"), key)
