"""
Configuration management for the TCG Price Tracker.
Handles service settings, secrets from the environment, and persistence.
"""

import json
import logging
import copy
import os
from pathlib import Path
from typing import Optional, Dict, Any, Tuple

from core.constants import (
    BURST_SIZE_DEFAULT,
    CARDS_TABLE,
    COOLDOWN_SECONDS_DEFAULT,
    HIGH_VALUE_THRESHOLD,
    MEDIUM_VALUE_THRESHOLD,
    POKEMON_TCG_API_URL,
    REQUESTS_PER_MINUTE_DEFAULT,
    SYNC_BATCH_SIZE_DEFAULT,
    SYNC_COOLDOWN_SECONDS_DEFAULT,
)

logger = logging.getLogger(__name__)

# Environment variables checked in order; the first non-empty one wins
ENV_SUPABASE_URL = ("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL")
ENV_SUPABASE_KEY = ("SUPABASE_ANON_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY")
ENV_POKEMON_TCG_API_KEY = ("POKEMONTCG_API_KEY",)


def _first_env(names: Tuple[str, ...]) -> Optional[str]:
    for name in names:
        value = os.environ.get(name, "").strip()
        if value:
            return value
    return None


class Config:
    """
    Service configuration with JSON persistence.

    - Non-secret settings live in a JSON file on disk, merged over DEFAULT_CONFIG.
    - Supabase credentials and the TCG API key come from the environment when set,
      so deployments never need to write secrets to the config file.
    """

    # NOTE: treated as immutable. Use _default_config_deepcopy() for a fresh copy.
    DEFAULT_CONFIG: Dict[str, Any] = {
        "supabase": {
            "url": "",
            "anon_key": "",
            "cards_table": CARDS_TABLE,
        },
        "pokemon_tcg": {
            "base_url": POKEMON_TCG_API_URL,
            "api_key": "",
            # GUARDRAIL: 0.1..10 requests per second
            "rate_limit_per_second": 1.0,
            "cache_ttl_seconds": 3600,
        },
        "price_update": {
            "requests_per_minute": REQUESTS_PER_MINUTE_DEFAULT,
            "burst_size": BURST_SIZE_DEFAULT,
            "cooldown_seconds": COOLDOWN_SECONDS_DEFAULT,
            "high_value_threshold": HIGH_VALUE_THRESHOLD,
            "medium_value_threshold": MEDIUM_VALUE_THRESHOLD,
        },
        "card_sync": {
            "batch_size": SYNC_BATCH_SIZE_DEFAULT,
            "cooldown_seconds": SYNC_COOLDOWN_SECONDS_DEFAULT,
        },
        "api": {
            # "minimal" or "detailed"
            "retry_logging_verbosity": "minimal",
            "timeouts": {
                "connect": 10,
                "read": 10,
            },
        },
    }

    def __init__(self, config_file: Optional[Path] = None) -> None:
        """
        Args:
            config_file: Optional path to config JSON file. Defaults to
                         ~/.tcg_price_tracker/config.json.
        """
        self.config_file: Path = self._resolve_config_path(config_file)
        self.config_file.parent.mkdir(parents=True, exist_ok=True)

        self.data: Dict[str, Any] = self._load()
        logger.info(f"Config loaded from {self.config_file}")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_config_path(config_file: Optional[Path]) -> Path:
        if config_file is not None:
            return config_file
        return Path.home() / ".tcg_price_tracker" / "config.json"

    def _load(self) -> Dict[str, Any]:
        """Load configuration from JSON file, merging with defaults."""
        if not self.config_file.exists():
            logger.info("No config file found, using defaults")
            return self._default_config_deepcopy()

        try:
            with self.config_file.open("r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as exc:
            logger.error(f"Failed to load config: {exc}. Using defaults.")
            return self._default_config_deepcopy()

        if not isinstance(raw, dict):
            logger.error("Config file does not contain an object. Using defaults.")
            return self._default_config_deepcopy()

        return self._merge_with_defaults(raw)

    @classmethod
    def _default_config_deepcopy(cls) -> Dict[str, Any]:
        return copy.deepcopy(cls.DEFAULT_CONFIG)

    def _merge_with_defaults(self, user_config: Dict[str, Any]) -> Dict[str, Any]:
        """Per-section merge so new default keys appear without dropping user values."""
        merged = self._default_config_deepcopy()

        for key, value in user_config.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key].update(value)
            else:
                merged[key] = value

        return merged

    def _section(self, name: str) -> Dict[str, Any]:
        return self.data.get(name, {}) or {}

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self) -> None:
        """Persist the current configuration to the config file."""
        try:
            with self.config_file.open("w", encoding="utf-8") as f:
                json.dump(self.data, f, indent=2, ensure_ascii=False)
            logger.info("Configuration saved")
        except OSError as exc:
            logger.error(f"Failed to save config: {exc}")

    # ------------------------------------------------------------------
    # Supabase
    # ------------------------------------------------------------------

    @property
    def supabase_url(self) -> str:
        return _first_env(ENV_SUPABASE_URL) or str(self._section("supabase").get("url", ""))

    @property
    def supabase_key(self) -> str:
        return _first_env(ENV_SUPABASE_KEY) or str(self._section("supabase").get("anon_key", ""))

    @property
    def cards_table(self) -> str:
        return str(self._section("supabase").get("cards_table") or CARDS_TABLE)

    # ------------------------------------------------------------------
    # Pokemon TCG API
    # ------------------------------------------------------------------

    @property
    def pokemon_tcg_api_key(self) -> str:
        return _first_env(ENV_POKEMON_TCG_API_KEY) or str(self._section("pokemon_tcg").get("api_key", ""))

    @property
    def pokemon_tcg_base_url(self) -> str:
        return str(self._section("pokemon_tcg").get("base_url") or POKEMON_TCG_API_URL)

    @property
    def pokemon_tcg_rate_limit(self) -> float:
        """Requests per second, clamped to 0.1..10."""
        try:
            value = float(self._section("pokemon_tcg").get("rate_limit_per_second", 1.0))
        except (TypeError, ValueError):
            value = 1.0
        return max(0.1, min(10.0, value))

    @property
    def cache_ttl_seconds(self) -> int:
        """Cache TTL for TCG API lookups, clamped to 60..86400."""
        try:
            value = int(self._section("pokemon_tcg").get("cache_ttl_seconds", 3600))
        except (TypeError, ValueError):
            value = 3600
        return max(60, min(86400, value))

    # ------------------------------------------------------------------
    # Price update queue
    # ------------------------------------------------------------------

    def _price_update_number(self, key: str, default: float, low: float, high: float) -> float:
        try:
            value = float(self._section("price_update").get(key, default))
        except (TypeError, ValueError):
            value = default
        return max(low, min(high, value))

    @property
    def requests_per_minute(self) -> int:
        return int(self._price_update_number("requests_per_minute", REQUESTS_PER_MINUTE_DEFAULT, 1, 600))

    @property
    def burst_size(self) -> int:
        return int(self._price_update_number("burst_size", BURST_SIZE_DEFAULT, 1, 50))

    @property
    def cooldown_seconds(self) -> float:
        return self._price_update_number("cooldown_seconds", COOLDOWN_SECONDS_DEFAULT, 0.0, 60.0)

    @property
    def high_value_threshold(self) -> float:
        return self._price_update_number("high_value_threshold", HIGH_VALUE_THRESHOLD, 0.0, 1_000_000.0)

    @property
    def medium_value_threshold(self) -> float:
        return self._price_update_number("medium_value_threshold", MEDIUM_VALUE_THRESHOLD, 0.0, 1_000_000.0)

    # ------------------------------------------------------------------
    # Card and set sync
    # ------------------------------------------------------------------

    @property
    def sync_batch_size(self) -> int:
        """Sets synced concurrently, clamped to 1..20."""
        try:
            value = int(self._section("card_sync").get("batch_size", SYNC_BATCH_SIZE_DEFAULT))
        except (TypeError, ValueError):
            value = SYNC_BATCH_SIZE_DEFAULT
        return max(1, min(20, value))

    @property
    def sync_cooldown_seconds(self) -> float:
        try:
            value = float(self._section("card_sync").get("cooldown_seconds", SYNC_COOLDOWN_SECONDS_DEFAULT))
        except (TypeError, ValueError):
            value = SYNC_COOLDOWN_SECONDS_DEFAULT
        return max(0.0, min(60.0, value))

    # ------------------------------------------------------------------
    # HTTP behaviour
    # ------------------------------------------------------------------

    @property
    def api_retry_logging_verbosity(self) -> str:
        """Return retry logging verbosity: "minimal" or "detailed"."""
        val = str(self._section("api").get("retry_logging_verbosity", "minimal")).lower()
        return "detailed" if val == "detailed" else "minimal"

    def get_api_timeouts(self) -> Tuple[int, int]:
        """Return (connect, read) timeouts in seconds, each clamped to 1..60."""
        timeouts = self._section("api").get("timeouts", {}) or {}

        def _clamp(key: str) -> int:
            try:
                value = int(timeouts.get(key, 10))
            except (TypeError, ValueError):
                value = 10
            return max(1, min(60, value))

        return _clamp("connect"), _clamp("read")

    def __repr__(self) -> str:
        return f"Config(file={self.config_file}, supabase_url={self.supabase_url!r})"
